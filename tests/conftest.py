"""Shared test fixtures and helpers."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

import pytest

from vetchat.cache.response_cache import ResponseCache
from vetchat.cache.snapshot import MemorySnapshotStore
from vetchat.config import AppConfig, CacheConfig
from vetchat.conversation.booking_flow import BookingFlow
from vetchat.conversation.orchestrator import ConversationOrchestrator
from vetchat.evaluation.analytics import AnalyticsTracker
from vetchat.schemas.conversation_schema import ChatMessage, ConversationSession
from vetchat.tools.generator import GenerationError, GenerationResult
from vetchat.tools.slot_manager import SlotManager
from vetchat.tools.store import InMemoryStore

# 2026-10-19 is a Monday
MONDAY_9AM = datetime(2026, 10, 19, 9, 0)
TUESDAY_2PM = datetime(2026, 10, 20, 14, 0)


class FixedClock:
    """Manually advanced ``datetime.now`` replacement."""

    def __init__(self, now: datetime = MONDAY_9AM) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeTime:
    """Manually advanced ``time.time`` replacement."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerator:
    """Records prompts and returns a fixed answer, a failure, or a slow reply."""

    def __init__(
        self,
        answer: str = "Most adult dogs need at least an hour of exercise a day.",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        context: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        self.calls.append({"prompt": prompt, "history": list(history), "context": context})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.answer, duration_ms=12.0)


def failing_generator() -> FakeGenerator:
    return FakeGenerator(error=GenerationError("upstream unavailable"))


def make_session(session_id: str = "session-1") -> ConversationSession:
    return ConversationSession(session_id=session_id)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def slot_manager(clock):
    return SlotManager(clock=clock)


@pytest.fixture
def flow(slot_manager, clock):
    return BookingFlow(slot_manager, clock=clock)


@pytest.fixture
def snapshot_store():
    return MemorySnapshotStore()


@pytest.fixture
def cache(fake_time, snapshot_store):
    return ResponseCache(config=CacheConfig(), snapshot_store=snapshot_store, clock=fake_time)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def analytics():
    return AnalyticsTracker()


@pytest.fixture
def orchestrator(store, flow, slot_manager, cache, generator, analytics):
    return ConversationOrchestrator(
        store=store,
        booking_flow=flow,
        slot_manager=slot_manager,
        cache=cache,
        generator=generator,
        analytics=analytics,
        config=AppConfig(),
    )
