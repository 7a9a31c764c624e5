"""
Per-message entry point for the chat backend.

Every inbound message is routed to exactly one path:
    1. cancellation of an in-progress booking
    2. the yes/no confirmation gate
    3. the next field of an in-progress booking
    4. the start of a new booking
    5. open pet-care Q&A through the response cache and the text generator

Messages for the same session are processed one at a time.
"""

import asyncio
import logging
import time
import uuid
import weakref
from typing import Any, Optional

from vetchat.cache.faq import classify_topic
from vetchat.cache.response_cache import ResponseCache
from vetchat.config import AppConfig, settings
from vetchat.conversation.booking_flow import BookingFlow
from vetchat.conversation.field_validation import parse_confirmation
from vetchat.conversation.intents import detect_booking_intent, detect_cancel_intent
from vetchat.evaluation.analytics import AnalyticsTracker
from vetchat.logging_context import get_session_logger, set_session_id
from vetchat.prompts.prompt_templates import (
    APPOINTMENT_SAVE_FAILED_MESSAGE,
    BOOKING_SUCCESS_MESSAGE,
    CONFIRMATION_REPROMPT,
    GENERATION_FALLBACK_MESSAGE,
)
from vetchat.schemas.appointment_schema import Appointment
from vetchat.schemas.chat_schema import ChatResponse
from vetchat.schemas.conversation_schema import BookingState, ConversationSession, Role
from vetchat.tools.generator import GenerationError, TextGenerator
from vetchat.tools.slot_manager import InvalidReservationError, SlotManager
from vetchat.tools.store import ConversationStore, PersistenceError

logger = get_session_logger(__name__)


class ConversationOrchestrator:
    """Routes each chat message and persists the updated session."""

    def __init__(
        self,
        store: ConversationStore,
        booking_flow: BookingFlow,
        slot_manager: SlotManager,
        cache: ResponseCache,
        generator: TextGenerator,
        analytics: Optional[AnalyticsTracker] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._store = store
        self._flow = booking_flow
        self._slots = slot_manager
        self._cache = cache
        self._generator = generator
        self._analytics = analytics or AnalyticsTracker()
        self._config = config or settings
        self._session_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def handle_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> ChatResponse:
        """
        Process one user message and return the bot reply.

        Raises:
            ValueError: If the message is empty after trimming.
            PersistenceError: If the session cannot be loaded or saved.
        """
        text = message.strip()
        if not text:
            raise ValueError("Message is required")

        session_id = session_id or str(uuid.uuid4())
        set_session_id(session_id)

        lock = self._session_lock(session_id)
        async with lock:
            return await self._handle_locked(text, session_id, context)

    async def _handle_locked(
        self, text: str, session_id: str, context: Optional[dict[str, Any]]
    ) -> ChatResponse:
        started = time.perf_counter()

        session = await self._store.find_session(session_id)
        if session is None:
            session = ConversationSession(session_id=session_id, context=context or None)
            self._analytics.track_session_started(session_id)
            logger.info("New conversation %s", session_id)
        elif context and not (session.context or {}).get("userId"):
            session.context = {**(session.context or {}), **context}

        session.add_message(Role.USER, text)
        reply = await self._route(session, text)
        session.add_message(Role.BOT, reply)

        await self._store.save_session(session)

        self._analytics.track_response_time("chat", (time.perf_counter() - started) * 1000)
        return ChatResponse(
            session_id=session_id,
            message=reply,
            booking_state=session.booking_state,
        )

    async def _route(self, session: ConversationSession, text: str) -> str:
        state = session.booking_state

        if state != BookingState.NONE and detect_cancel_intent(text):
            self._analytics.track_booking_abandoned(session.session_id, state.value)
            return self._flow.cancel(session).message

        if state == BookingState.AWAITING_CONFIRMATION:
            return await self._handle_confirmation(session, text)

        if state != BookingState.NONE:
            return self._flow.process_booking_response(session, text).message

        if detect_booking_intent(text):
            self._analytics.track_booking_started(session.session_id)
            return self._flow.start(session).message

        return await self._answer_question(session, text)

    async def _handle_confirmation(self, session: ConversationSession, text: str) -> str:
        recovered = self._flow.recover(session, text)
        if recovered is not None:
            return recovered.message

        decision = parse_confirmation(text)
        if decision is None:
            return CONFIRMATION_REPROMPT
        if not decision:
            self._analytics.track_booking_abandoned(session.session_id, session.booking_state.value)
            return self._flow.decline(session).message

        draft = session.booking_draft
        if not draft.slot_key:
            return self._flow.reservation_lost(session).message
        try:
            booking = self._slots.confirm_reservation(draft.slot_key, session.session_id)
        except InvalidReservationError as exc:
            logger.warning("Could not confirm slot for %s: %s", session.session_id, exc)
            return self._flow.reservation_lost(session).message

        appointment = Appointment(
            session_id=session.session_id,
            owner_name=draft.owner_name or "",
            pet_name=draft.pet_name or "",
            phone=draft.phone or "",
            preferred_date_time=draft.preferred_date_time or "",
            appointment_date=draft.appointment_date or booking.start,
            slot_key=draft.slot_key,
            veterinarian=self._slots.assign_veterinarian(booking.start),
        )
        self._flow.complete(session)

        # The session has already left the booking flow; a failed write is reported, not undone
        try:
            await self._store.create_appointment(appointment)
        except PersistenceError as exc:
            logger.error("Appointment save failed for %s: %s", session.session_id, exc)
            self._slots.cancel_booking(appointment.slot_key or "")
            return APPOINTMENT_SAVE_FAILED_MESSAGE

        self._analytics.track_booking_completed(session.session_id)
        return BOOKING_SUCCESS_MESSAGE

    async def _answer_question(self, session: ConversationSession, text: str) -> str:
        self._analytics.track_message(session.session_id, text)

        similar = await asyncio.to_thread(self._cache.find_similar, text)
        if similar is not None:
            logger.debug("Answered from cache lookup without generation")
            return similar

        context = session.context
        history = session.recent_history(self._config.model.history_turns, exclude_last=True)
        timeout = self._config.model.request_timeout_sec
        generated = False

        async def produce() -> str:
            nonlocal generated
            started = time.perf_counter()
            try:
                result = await asyncio.wait_for(
                    self._generator.generate(text, history, context), timeout=timeout
                )
            except asyncio.TimeoutError:
                elapsed = (time.perf_counter() - started) * 1000
                self._analytics.track_generation(len(text), 0, elapsed, error="timeout")
                raise GenerationError(f"Generation timed out after {timeout}s") from None
            except Exception as exc:
                elapsed = (time.perf_counter() - started) * 1000
                self._analytics.track_generation(len(text), 0, elapsed, error=str(exc) or type(exc).__name__)
                raise
            self._analytics.track_generation(len(text), len(result.text), result.duration_ms)
            generated = True
            return result.text

        key: Any = text if not context else {"message": text, "context": context}
        try:
            answer = await self._cache.get(
                key, produce, ttl=self._config.cache.default_ttl_sec, question=text
            )
        except Exception as exc:
            logger.warning("Answer generation failed, using fallback: %s", exc)
            return GENERATION_FALLBACK_MESSAGE

        if generated:
            category = classify_topic(text)
            if category is not None:
                self._cache.remember_topic_answer(category, answer)
        return answer

    async def get_conversation(self, session_id: str) -> Optional[ConversationSession]:
        return await self._store.find_session(session_id)
