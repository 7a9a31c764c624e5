"""
Operational analytics for the chat backend.

Tracks sessions, the booking funnel, upstream generation calls, question
categories and endpoint latency. Samples are kept in bounded windows so
memory stays flat for long-running processes.
"""

import logging
import re
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

MAX_SAMPLES = 1000
SLOW_RESPONSE_MS = 3000.0

QUESTION_CATEGORIES: dict[str, re.Pattern] = {
    "vaccination": re.compile(r"vaccin|shot|immuniz", re.IGNORECASE),
    "emergency": re.compile(r"emergency|urgent|immediately|asap", re.IGNORECASE),
    "diet": re.compile(r"food|eat|diet|nutrition|feed", re.IGNORECASE),
    "behavior": re.compile(r"behavior|training|aggress|bark|bite", re.IGNORECASE),
    "grooming": re.compile(r"groom|bath|nail|hair|fur", re.IGNORECASE),
    "medication": re.compile(r"medicin|drug|prescri|dose", re.IGNORECASE),
    "symptom": re.compile(r"symptom|sick|pain|limp|vomit|diarrhea", re.IGNORECASE),
    "appointment": re.compile(r"appointment|schedule|book|visit", re.IGNORECASE),
}


def categorize_question(message: str) -> list[str]:
    """Every category whose pattern appears in ``message``."""
    return [name for name, pattern in QUESTION_CATEGORIES.items() if pattern.search(message)]


def percentile(samples: list[float], fraction: float) -> float:
    """Nearest-rank percentile of ``samples``; 0.0 when empty."""
    if not samples:
        return 0.0
    ordered = sorted(samples)
    index = min(int(len(ordered) * fraction), len(ordered) - 1)
    return ordered[index]


@dataclass
class GenerationSample:
    prompt_length: int
    response_length: int
    duration_ms: float
    error: Optional[str] = None


@dataclass
class AnalyticsSnapshot:
    """Point-in-time summary returned by ``get_statistics``."""

    sessions_started: int = 0
    messages: int = 0
    bookings_started: int = 0
    bookings_completed: int = 0
    bookings_abandoned: int = 0
    booking_completion_rate: float = 0.0
    dropoff_by_state: dict[str, int] = field(default_factory=dict)
    generation_calls: int = 0
    generation_failures: int = 0
    avg_generation_ms: float = 0.0
    avg_response_ms: float = 0.0
    p50_response_ms: float = 0.0
    p95_response_ms: float = 0.0
    slow_responses: int = 0
    popular_categories: dict[str, int] = field(default_factory=dict)


class AnalyticsTracker:
    """Thread-safe in-process counters and latency windows."""

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._lock = threading.Lock()
        self._sessions: set[str] = set()
        self._messages = 0
        self._bookings_started = 0
        self._bookings_completed = 0
        self._dropoff: Counter[str] = Counter()
        self._categories: Counter[str] = Counter()
        self._generations: deque[GenerationSample] = deque(maxlen=max_samples)
        self._response_times: deque[float] = deque(maxlen=max_samples)
        self._slow_responses = 0

    def track_session_started(self, session_id: str) -> None:
        with self._lock:
            self._sessions.add(session_id)

    def track_message(self, session_id: str, message: str) -> list[str]:
        categories = categorize_question(message)
        with self._lock:
            self._messages += 1
            self._categories.update(categories)
        return categories

    def track_booking_started(self, session_id: str) -> None:
        with self._lock:
            self._bookings_started += 1

    def track_booking_completed(self, session_id: str) -> None:
        with self._lock:
            self._bookings_completed += 1

    def track_booking_abandoned(self, session_id: str, state: str) -> None:
        """Record where in the field sequence a visitor gave up."""
        with self._lock:
            self._dropoff[state] += 1

    def track_generation(
        self,
        prompt_length: int,
        response_length: int,
        duration_ms: float,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._generations.append(
                GenerationSample(prompt_length, response_length, duration_ms, error)
            )
        if error:
            logger.warning("Generation failed after %.0fms: %s", duration_ms, error)

    def track_response_time(self, endpoint: str, duration_ms: float) -> None:
        with self._lock:
            self._response_times.append(duration_ms)
            if duration_ms > SLOW_RESPONSE_MS:
                self._slow_responses += 1
        if duration_ms > SLOW_RESPONSE_MS:
            logger.warning("Slow response on %s: %.0fms", endpoint, duration_ms)

    def get_statistics(self) -> AnalyticsSnapshot:
        with self._lock:
            generations = list(self._generations)
            times = list(self._response_times)
            started = self._bookings_started
            completed = self._bookings_completed
            snapshot = AnalyticsSnapshot(
                sessions_started=len(self._sessions),
                messages=self._messages,
                bookings_started=started,
                bookings_completed=completed,
                bookings_abandoned=sum(self._dropoff.values()),
                dropoff_by_state=dict(self._dropoff),
                slow_responses=self._slow_responses,
                popular_categories=dict(self._categories.most_common()),
            )

        ok = [g.duration_ms for g in generations if g.error is None]
        snapshot.generation_calls = len(generations)
        snapshot.generation_failures = sum(1 for g in generations if g.error is not None)
        snapshot.avg_generation_ms = sum(ok) / len(ok) if ok else 0.0
        snapshot.booking_completion_rate = completed / started if started else 0.0
        snapshot.avg_response_ms = sum(times) / len(times) if times else 0.0
        snapshot.p50_response_ms = percentile(times, 0.50)
        snapshot.p95_response_ms = percentile(times, 0.95)
        return snapshot

    def format_report(self, snapshot: Optional[AnalyticsSnapshot] = None) -> str:
        """Format statistics into a human-readable report."""
        s = snapshot or self.get_statistics()
        top = ", ".join(f"{name} ({count})" for name, count in s.popular_categories.items())
        lines = [
            "=" * 60,
            "CHAT BACKEND ANALYTICS",
            "=" * 60,
            "",
            "TRAFFIC",
            f"  Sessions:               {s.sessions_started}",
            f"  Messages:               {s.messages}",
            f"  Top categories:         {top or 'none'}",
            "",
            "BOOKING FUNNEL",
            f"  Started:                {s.bookings_started}",
            f"  Completed:              {s.bookings_completed}",
            f"  Completion rate:        {s.booking_completion_rate:.1%}",
            f"  Abandoned:              {s.bookings_abandoned}",
            "",
            "UPSTREAM MODEL",
            f"  Calls:                  {s.generation_calls}",
            f"  Failures:               {s.generation_failures}",
            f"  Avg latency:            {s.avg_generation_ms:.0f}ms",
            "",
            "LATENCY",
            f"  Avg response:           {s.avg_response_ms:.0f}ms",
            f"  p50 / p95:              {s.p50_response_ms:.0f}ms / {s.p95_response_ms:.0f}ms",
            f"  Slow responses:         {s.slow_responses}",
            "=" * 60,
        ]
        return "\n".join(lines)
