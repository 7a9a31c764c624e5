"""
Two-tier response cache in front of the upstream text generator.

Entries live in exactly one of two in-memory tiers:
    - hot:  most recent and most frequently read answers
    - warm: entries demoted from hot, promoted back after repeated reads

Every entry carries its own TTL. Expired entries are logically dead but
are kept until the next sweep so a failing generator can fall back to
them. Both tiers are periodically snapshotted through a SnapshotStore.

Usage:
    cache = ResponseCache(snapshot_store=FileSnapshotStore("cache/cache.json"))
    answer = await cache.get(question, lambda: generate(question), question=question)
"""

import hashlib
import json
import logging
import re
import threading
import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Awaitable, Callable, Optional, Union

from vetchat.cache.faq import CANNED_ANSWERS, classify_topic
from vetchat.cache.similarity import calculate_similarity, similarity_upper_bound
from vetchat.cache.snapshot import SnapshotStore
from vetchat.config import CacheConfig, settings
from vetchat.utils import collapse_whitespace

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]

SNAPSHOT_VERSION = 1


def normalize_key(key: Any) -> str:
    """Content hash for a cache key.

    Strings are case and whitespace insensitive; anything else is hashed
    from its canonical JSON form.
    """
    if isinstance(key, str):
        payload = collapse_whitespace(key.lower())
    else:
        payload = json.dumps(key, sort_keys=True, default=str)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def normalize_question(text: str) -> str:
    return collapse_whitespace(text.lower())


@dataclass
class CacheEntry:
    """A cached value plus the bookkeeping used for expiry and eviction."""

    value: Any
    created_at: float
    ttl: float
    hits: int = 0
    last_accessed: float = 0.0
    question: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    demotions: int = 0
    promotions: int = 0
    generator_calls: int = 0
    saved_calls: int = 0
    stale_served: int = 0
    canned_hits: int = 0
    topic_hits: int = 0
    fuzzy_hits: int = 0


class ResponseCache:
    """Thread-safe hot/warm cache with TTL, promotion, and fail-soft reads.

    The lock only guards tier membership and counters. It is never held
    while a producer runs or while a snapshot is written.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        canned_answers: Optional[dict[str, str]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or settings.cache
        self._store = snapshot_store
        self._canned = dict(CANNED_ANSWERS if canned_answers is None else canned_answers)
        self._clock = clock
        self._hot: dict[str, CacheEntry] = {}
        self._warm: dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self._lock = threading.RLock()

    # --- Read-through ---

    async def get(
        self,
        key: Any,
        producer: Producer,
        ttl: Optional[float] = None,
        question: Optional[str] = None,
    ) -> Any:
        """
        Return the cached value for ``key`` or compute it with ``producer``.

        Args:
            key: String or JSON-serializable composite key.
            producer: Zero-argument coroutine factory computing the value.
            ttl: Lifetime in seconds, defaults to the configured TTL.
            question: Source question text, enables fuzzy matching on this entry.

        Raises:
            Whatever ``producer`` raises, unless a stale value can be served.
        """
        cache_key = normalize_key(key)
        now = self._clock()

        with self._lock:
            entry = self._find(cache_key)
            if entry is not None and not entry.is_expired(now):
                self._stats.hits += 1
                self._stats.saved_calls += 1
                self._touch(cache_key, entry, now)
                return entry.value
            self._stats.misses += 1
            self._stats.generator_calls += 1
            stale = entry

        try:
            value = await producer()
        except Exception:
            if stale is None:
                raise
            with self._lock:
                self._stats.stale_served += 1
            logger.warning("Producer failed, serving stale entry %s", cache_key[:8])
            return stale.value

        self._store_entry(cache_key, value, ttl, question)
        return value

    def set(
        self,
        key: Any,
        value: Any,
        ttl: Optional[float] = None,
        question: Optional[str] = None,
    ) -> str:
        cache_key = normalize_key(key)
        self._store_entry(cache_key, value, ttl, question)
        return cache_key

    def _store_entry(
        self, cache_key: str, value: Any, ttl: Optional[float], question: Optional[str]
    ) -> None:
        now = self._clock()
        entry = CacheEntry(
            value=value,
            created_at=now,
            ttl=ttl if ttl is not None else self._config.default_ttl_sec,
            last_accessed=now,
            question=normalize_question(question) if question else None,
        )
        with self._lock:
            self._insert_hot(cache_key, entry)

    # --- Tier bookkeeping (caller holds the lock) ---

    def _find(self, cache_key: str) -> Optional[CacheEntry]:
        entry = self._hot.get(cache_key)
        if entry is None:
            entry = self._warm.get(cache_key)
        return entry

    def _touch(self, cache_key: str, entry: CacheEntry, now: float) -> None:
        entry.hits += 1
        entry.last_accessed = now
        if cache_key in self._warm and entry.hits > self._config.promotion_threshold:
            del self._warm[cache_key]
            self._insert_hot(cache_key, entry)
            self._stats.promotions += 1
            logger.debug("Promoted %s to hot tier after %d hits", cache_key[:8], entry.hits)

    def _insert_hot(self, cache_key: str, entry: CacheEntry) -> None:
        self._warm.pop(cache_key, None)
        self._hot[cache_key] = entry
        while len(self._hot) > self._config.hot_max_size:
            victim_key = self._least_recent(self._hot, exclude=cache_key)
            victim = self._hot.pop(victim_key)
            # Warm residency counts reads from zero
            victim.hits = 0
            self._stats.evictions += 1
            self._stats.demotions += 1
            self._insert_warm(victim_key, victim)

    def _insert_warm(self, cache_key: str, entry: CacheEntry) -> None:
        self._warm[cache_key] = entry
        while len(self._warm) > self._config.warm_max_size:
            victim_key = self._least_recent(self._warm)
            del self._warm[victim_key]
            self._stats.evictions += 1

    @staticmethod
    def _least_recent(tier: dict[str, CacheEntry], exclude: Optional[str] = None) -> str:
        candidates = (k for k in tier if k != exclude)
        return min(candidates, key=lambda k: tier[k].last_accessed)

    # --- Similar-question lookup ---

    def topic_key(self, category: str) -> dict[str, str]:
        return {"topic": category}

    def remember_topic_answer(self, category: str, answer: str, ttl: Optional[float] = None) -> None:
        """Store the answer served for a topic category, consulted by ``find_similar``.

        Topic answers stand in for every question in the category, so they
        default to the shorter ``topic_ttl_sec`` lifetime.
        """
        if ttl is None:
            ttl = self._config.topic_ttl_sec
        self.set(self.topic_key(category), answer, ttl)

    def find_similar(self, text: str) -> Optional[str]:
        """
        Cheap lookup ahead of ``get`` for free-form questions.

        Order: canned answer by substring, then the cached answer for the
        question's topic category, then fuzzy match against questions held
        in the hot tier. Returns None when nothing matches.

        The fuzzy step only compares questions up to ``fuzzy_max_length``
        characters and stops each comparison once it cannot reach the
        similarity threshold.
        """
        normalized = normalize_question(text)
        if not normalized:
            return None

        for phrase, answer in self._canned.items():
            if phrase in normalized:
                self._record_match("canned_hits")
                return answer

        now = self._clock()
        category = classify_topic(normalized)
        if category is not None:
            cache_key = normalize_key(self.topic_key(category))
            with self._lock:
                entry = self._find(cache_key)
                if entry is not None and not entry.is_expired(now):
                    self._touch(cache_key, entry, now)
                    self._stats.topic_hits += 1
                    self._stats.hits += 1
                    self._stats.saved_calls += 1
                    return entry.value

        max_length = self._config.fuzzy_max_length
        if len(normalized) > max_length:
            return None

        with self._lock:
            candidates = [
                (key, entry.question, entry.value)
                for key, entry in self._hot.items()
                if entry.question
                and len(entry.question) <= max_length
                and not entry.is_expired(now)
            ]

        threshold = self._config.similarity_threshold
        for cache_key, question, value in candidates:
            if similarity_upper_bound(normalized, question) <= threshold:
                continue
            if calculate_similarity(normalized, question, min_similarity=threshold) > threshold:
                with self._lock:
                    entry = self._hot.get(cache_key)
                    if entry is not None:
                        self._touch(cache_key, entry, now)
                self._record_match("fuzzy_hits")
                return value
        return None

    def _record_match(self, counter: str) -> None:
        with self._lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + 1)
            self._stats.hits += 1
            self._stats.saved_calls += 1

    # --- Maintenance ---

    def invalidate(self, key: Any) -> bool:
        cache_key = normalize_key(key)
        with self._lock:
            removed = self._hot.pop(cache_key, None) or self._warm.pop(cache_key, None)
        return removed is not None

    def invalidate_matching(self, pattern: Union[str, re.Pattern]) -> int:
        """Drop entries whose question or value matches ``pattern``."""
        regex = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        removed = 0
        with self._lock:
            for tier in (self._hot, self._warm):
                doomed = [
                    key for key, entry in tier.items()
                    if (entry.question and regex.search(entry.question))
                    or regex.search(str(entry.value))
                ]
                for key in doomed:
                    del tier[key]
                removed += len(doomed)
        if removed:
            logger.info("Invalidated %d cache entries matching %r", removed, regex.pattern)
        return removed

    def sweep_expired(self) -> int:
        """Remove expired entries from both tiers."""
        now = self._clock()
        removed = 0
        with self._lock:
            for tier in (self._hot, self._warm):
                expired = [key for key, entry in tier.items() if entry.is_expired(now)]
                for key in expired:
                    del tier[key]
                removed += len(expired)
        if removed:
            logger.info("Cleaned %d expired cache entries", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._hot.clear()
            self._warm.clear()
            self._stats = CacheStats()
        logger.info("Cache cleared")

    def contains(self, key: Any) -> Optional[str]:
        """Name of the tier holding ``key`` ("hot"/"warm"), or None."""
        cache_key = normalize_key(key)
        with self._lock:
            if cache_key in self._hot:
                return "hot"
            if cache_key in self._warm:
                return "warm"
        return None

    # --- Persistence ---

    def persist(self) -> bool:
        """Write both tiers to the snapshot store. Returns False on failure."""
        if self._store is None:
            return False
        with self._lock:
            payload = {
                "version": SNAPSHOT_VERSION,
                "saved_at": self._clock(),
                "hot": {key: asdict(entry) for key, entry in self._hot.items()},
                "warm": {key: asdict(entry) for key, entry in self._warm.items()},
            }
        blob = json.dumps(payload, default=str).encode("utf-8")
        try:
            self._store.write(blob)
        except OSError as exc:
            logger.error("Cache persistence failed: %s", exc)
            return False
        logger.debug(
            "Persisted cache snapshot: %d hot, %d warm", len(payload["hot"]), len(payload["warm"])
        )
        return True

    def load(self) -> int:
        """Replace both tiers with the stored snapshot, dropping expired entries.

        A missing or unreadable snapshot leaves the cache empty. Returns the
        number of live entries restored.
        """
        if self._store is None:
            return 0
        try:
            blob = self._store.read()
        except OSError as exc:
            logger.warning("Cache snapshot unavailable (%s), starting empty", exc)
            return 0
        if blob is None:
            logger.info("No cache snapshot found, starting fresh")
            return 0

        try:
            payload = json.loads(blob)
            hot = {k: CacheEntry.from_dict(v) for k, v in payload.get("hot", {}).items()}
            warm = {k: CacheEntry.from_dict(v) for k, v in payload.get("warm", {}).items()}
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Cache snapshot is corrupt (%s), starting empty", exc)
            return 0

        with self._lock:
            self._hot = {}
            self._warm = {}
            for key, entry in sorted(warm.items(), key=lambda item: item[1].last_accessed):
                self._insert_warm(key, entry)
            for key, entry in sorted(hot.items(), key=lambda item: item[1].last_accessed):
                self._insert_hot(key, entry)

        self.sweep_expired()
        with self._lock:
            hot_size, warm_size = len(self._hot), len(self._warm)
        logger.info("Loaded cache snapshot: %d hot, %d warm entries", hot_size, warm_size)
        return hot_size + warm_size

    # --- Reporting ---

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            stats = asdict(self._stats)
            hot_size = len(self._hot)
            warm_size = len(self._warm)
        lookups = stats["hits"] + stats["misses"]
        stats["hit_rate"] = round(stats["hits"] / lookups, 4) if lookups else 0.0
        calls = stats["generator_calls"] + stats["saved_calls"]
        stats["savings_rate"] = round(stats["saved_calls"] / calls, 4) if calls else 0.0
        stats["hot_size"] = hot_size
        stats["warm_size"] = warm_size
        return stats
