"""
Wiring of the process-wide collaborators.

The slot manager, response cache, analytics tracker and rate limiter are
shared by every request. ``build_app_context`` creates them once at
startup; tests pass in-memory substitutes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from vetchat.api.rate_limiter import RateLimiter
from vetchat.cache.response_cache import ResponseCache
from vetchat.cache.snapshot import FileSnapshotStore, SnapshotStore
from vetchat.config import AppConfig, settings
from vetchat.conversation.booking_flow import BookingFlow
from vetchat.conversation.orchestrator import ConversationOrchestrator
from vetchat.evaluation.analytics import AnalyticsTracker
from vetchat.tools.generator import OpenAIGenerator, TextGenerator
from vetchat.tools.slot_manager import SlotManager
from vetchat.tools.store import ConversationStore, InMemoryStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: AppConfig
    store: ConversationStore
    slot_manager: SlotManager
    cache: ResponseCache
    analytics: AnalyticsTracker
    rate_limiter: RateLimiter
    orchestrator: ConversationOrchestrator


def build_app_context(
    config: Optional[AppConfig] = None,
    store: Optional[ConversationStore] = None,
    generator: Optional[TextGenerator] = None,
    snapshot_store: Optional[SnapshotStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> AppContext:
    """Create every shared service for one running process."""
    config = config or settings
    clock = clock or datetime.now
    store = store if store is not None else InMemoryStore()

    slot_manager = SlotManager(config=config.clinic, clock=clock)
    cache = ResponseCache(
        config=config.cache,
        snapshot_store=snapshot_store or FileSnapshotStore(config.cache.snapshot_path),
    )
    analytics = AnalyticsTracker()
    flow = BookingFlow(slot_manager, config=config.clinic, clock=clock)
    orchestrator = ConversationOrchestrator(
        store=store,
        booking_flow=flow,
        slot_manager=slot_manager,
        cache=cache,
        generator=generator or OpenAIGenerator(config=config.model),
        analytics=analytics,
        config=config,
    )
    logger.info("Application context ready for '%s'", config.clinic.name)
    return AppContext(
        config=config,
        store=store,
        slot_manager=slot_manager,
        cache=cache,
        analytics=analytics,
        rate_limiter=RateLimiter(config.rate_limits),
        orchestrator=orchestrator,
    )
