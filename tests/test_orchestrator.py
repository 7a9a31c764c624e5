"""End-to-end conversation tests through the orchestrator."""

import asyncio
from dataclasses import replace

import pytest

from vetchat.cache.faq import CANNED_ANSWERS
from vetchat.config import AppConfig, ModelConfig
from vetchat.conversation.orchestrator import ConversationOrchestrator
from vetchat.prompts.prompt_templates import (
    APPOINTMENT_SAVE_FAILED_MESSAGE,
    BOOKING_CANCELLED_MESSAGE,
    BOOKING_DECLINED_MESSAGE,
    BOOKING_SUCCESS_MESSAGE,
    CONFIRMATION_REPROMPT,
    GENERATION_FALLBACK_MESSAGE,
    OWNER_NAME_QUESTION,
    PET_NAME_QUESTION,
    RESERVATION_LOST_MESSAGE,
)
from vetchat.schemas.appointment_schema import AppointmentStatus
from vetchat.schemas.conversation_schema import BookingState, Role
from vetchat.tools.store import InMemoryStore, PersistenceError
from tests.conftest import TUESDAY_2PM, FakeGenerator, failing_generator

TUESDAY_KEY = "2026-10-20T14:00:00"

BOOKING_SCRIPT = [
    "Hi, I'd like to book an appointment",
    "Jane Doe",
    "Rex",
    "555-123-4567",
    "tomorrow at 2pm",
]


async def _run(orchestrator, messages, session_id="s1"):
    response = None
    for message in messages:
        response = await orchestrator.handle_message(message, session_id)
    return response


def _with(orchestrator, **overrides) -> ConversationOrchestrator:
    """Same collaborators as ``orchestrator`` with some replaced."""
    parts = {
        "store": orchestrator._store,
        "booking_flow": orchestrator._flow,
        "slot_manager": orchestrator._slots,
        "cache": orchestrator._cache,
        "generator": orchestrator._generator,
        "analytics": orchestrator._analytics,
        "config": orchestrator._config,
    }
    parts.update(overrides)
    return ConversationOrchestrator(**parts)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_booking(self, orchestrator, store, slot_manager, analytics):
        response = await _run(orchestrator, BOOKING_SCRIPT)
        assert response.booking_state == BookingState.AWAITING_CONFIRMATION
        assert "Owner Name: Jane Doe" in response.message

        response = await orchestrator.handle_message("yes", "s1")
        assert response.message == BOOKING_SUCCESS_MESSAGE
        assert response.booking_state == BookingState.NONE

        appointments = await store.find_appointments("s1")
        assert len(appointments) == 1
        appointment = appointments[0]
        assert appointment.owner_name == "Jane Doe"
        assert appointment.pet_name == "Rex"
        assert appointment.phone == "5551234567"
        assert appointment.appointment_date == TUESDAY_2PM
        assert appointment.slot_key == TUESDAY_KEY
        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.veterinarian == slot_manager.assign_veterinarian(TUESDAY_2PM)
        assert slot_manager.get_statistics()["confirmed"] == 1

        stats = analytics.get_statistics()
        assert stats.bookings_started == 1
        assert stats.bookings_completed == 1

    @pytest.mark.asyncio
    async def test_transcript_saved(self, orchestrator):
        await _run(orchestrator, BOOKING_SCRIPT[:2])
        session = await orchestrator.get_conversation("s1")
        assert [m.role for m in session.messages] == [Role.USER, Role.BOT, Role.USER, Role.BOT]
        assert session.messages[1].text == OWNER_NAME_QUESTION
        assert session.messages[3].text == PET_NAME_QUESTION

    @pytest.mark.asyncio
    async def test_session_id_generated(self, orchestrator):
        response = await orchestrator.handle_message("Hello there")
        assert response.session_id
        assert await orchestrator.get_conversation(response.session_id) is not None

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            await orchestrator.handle_message("   ", "s1")


class TestConfirmationGate:
    @pytest.mark.asyncio
    async def test_no_declines_and_frees_slot(self, orchestrator, slot_manager, store):
        await _run(orchestrator, BOOKING_SCRIPT)
        response = await orchestrator.handle_message("no", "s1")
        assert response.message == BOOKING_DECLINED_MESSAGE
        assert response.booking_state == BookingState.NONE
        assert not slot_manager.is_slot_booked(TUESDAY_KEY)
        assert await store.find_appointments("s1") == []

    @pytest.mark.asyncio
    async def test_unclear_answer_reprompts(self, orchestrator):
        await _run(orchestrator, BOOKING_SCRIPT)
        response = await orchestrator.handle_message("yes please", "s1")
        assert response.message == CONFIRMATION_REPROMPT
        assert response.booking_state == BookingState.AWAITING_CONFIRMATION

    @pytest.mark.asyncio
    async def test_expired_hold_asks_for_new_time(self, orchestrator, clock, store):
        await _run(orchestrator, BOOKING_SCRIPT)
        clock.advance(minutes=6)
        response = await orchestrator.handle_message("yes", "s1")
        assert response.message.startswith(RESERVATION_LOST_MESSAGE)
        assert response.booking_state == BookingState.AWAITING_DATE_TIME
        assert await store.find_appointments("s1") == []

    @pytest.mark.asyncio
    async def test_save_failure_reported_and_slot_freed(self, orchestrator, slot_manager):
        class FailingStore(InMemoryStore):
            async def create_appointment(self, appointment):
                raise PersistenceError("database unavailable")

        failing = _with(orchestrator, store=FailingStore())
        await _run(failing, BOOKING_SCRIPT)
        response = await failing.handle_message("yes", "s1")
        assert response.message == APPOINTMENT_SAVE_FAILED_MESSAGE
        assert response.booking_state == BookingState.NONE
        assert not slot_manager.is_slot_booked(TUESDAY_KEY)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_flow(self, orchestrator, analytics):
        await _run(orchestrator, BOOKING_SCRIPT[:3])
        response = await orchestrator.handle_message("actually, cancel", "s1")
        assert response.message == BOOKING_CANCELLED_MESSAGE
        assert response.booking_state == BookingState.NONE
        assert analytics.get_statistics().dropoff_by_state == {"awaiting_phone": 1}

    @pytest.mark.asyncio
    async def test_cancel_at_confirmation_frees_slot(self, orchestrator, slot_manager):
        await _run(orchestrator, BOOKING_SCRIPT)
        response = await orchestrator.handle_message("stop", "s1")
        assert response.booking_state == BookingState.NONE
        assert not slot_manager.is_slot_booked(TUESDAY_KEY)

    @pytest.mark.asyncio
    async def test_inflected_cancel_word_ends_flow(self, orchestrator, store):
        await _run(orchestrator, BOOKING_SCRIPT[:1])
        response = await orchestrator.handle_message("Cancelled", "s1")
        assert response.message == BOOKING_CANCELLED_MESSAGE
        assert response.booking_state == BookingState.NONE
        session = await store.find_session("s1")
        assert session.booking_draft.owner_name is None

    @pytest.mark.asyncio
    async def test_cancel_word_outside_booking_is_a_question(self, orchestrator, generator):
        response = await orchestrator.handle_message("How do I stop my dog barking?", "s1")
        assert response.booking_state == BookingState.NONE
        assert len(generator.calls) == 1


class TestConcurrentSessions:
    @pytest.mark.asyncio
    async def test_second_session_offered_alternatives(self, orchestrator):
        await _run(orchestrator, BOOKING_SCRIPT, session_id="first")
        response = await _run(orchestrator, BOOKING_SCRIPT, session_id="second")
        assert response.booking_state == BookingState.AWAITING_DATE_TIME
        assert response.message.startswith("That time slot is already booked.")
        assert "Available times nearby:" in response.message

    @pytest.mark.asyncio
    async def test_expired_hold_can_be_taken(self, orchestrator, clock):
        await _run(orchestrator, BOOKING_SCRIPT, session_id="first")
        clock.advance(minutes=6)
        response = await _run(orchestrator, BOOKING_SCRIPT, session_id="second")
        assert response.booking_state == BookingState.AWAITING_CONFIRMATION

        response = await orchestrator.handle_message("yes", "first")
        assert response.booking_state == BookingState.AWAITING_DATE_TIME

    @pytest.mark.asyncio
    async def test_same_session_messages_serialized(self, orchestrator):
        await orchestrator.handle_message("I want to book an appointment", "s1")
        await asyncio.gather(
            orchestrator.handle_message("Jane Doe", "s1"),
            orchestrator.handle_message("Rex", "s1"),
        )
        session = await orchestrator.get_conversation("s1")
        assert session.booking_state == BookingState.AWAITING_PHONE
        assert len(session.messages) == 6


class TestQuestions:
    @pytest.mark.asyncio
    async def test_generated_answer_cached(self, orchestrator, generator):
        first = await orchestrator.handle_message("How much exercise does my dog need?", "s1")
        second = await orchestrator.handle_message("How much exercise does my dog need?", "s2")
        assert first.message == generator.answer
        assert second.message == generator.answer
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_canned_answer_skips_generator(self, orchestrator, generator):
        response = await orchestrator.handle_message("What's the vaccination schedule?", "s1")
        assert response.message == CANNED_ANSWERS["vaccination schedule"]
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_topic_answer_reused(self, orchestrator, generator):
        await orchestrator.handle_message("My cat has fleas, what should I do?", "s1")
        response = await orchestrator.handle_message("Which tick treatment works on puppies?", "s2")
        assert response.message == generator.answer
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_unrelated_question_sharing_a_loose_word_is_generated(self, orchestrator, generator):
        await orchestrator.handle_message("When should I get my puppy spayed?", "s1")
        await orchestrator.handle_message("How do I fix my dog's diet?", "s2")
        assert len(generator.calls) == 2

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, orchestrator, generator):
        await orchestrator.handle_message("Hello there", "s1")
        await orchestrator.handle_message("Is my rabbit too quiet today?", "s1")
        history = generator.calls[-1]["history"]
        assert [m.text for m in history][0] == "Hello there"
        assert history[-1].role == Role.BOT

    @pytest.mark.asyncio
    async def test_context_passed_to_generator(self, orchestrator, generator):
        context = {"userProfile": {"petName": "Milo"}}
        await orchestrator.handle_message("Does Milo need a bath?", "s1", context)
        assert generator.calls[0]["context"] == context

    @pytest.mark.asyncio
    async def test_generator_failure_falls_back(self, orchestrator, analytics):
        broken = _with(orchestrator, generator=failing_generator())
        response = await broken.handle_message("Why is my parrot sneezing?", "s1")
        assert response.message == GENERATION_FALLBACK_MESSAGE
        assert response.booking_state == BookingState.NONE
        assert analytics.get_statistics().generation_failures == 1

    @pytest.mark.asyncio
    async def test_generator_timeout_falls_back(self, orchestrator):
        config = replace(AppConfig(), model=replace(ModelConfig(), request_timeout_sec=0.05))
        slow = _with(orchestrator, generator=FakeGenerator(delay=1.0), config=config)
        response = await slow.handle_message("Why is my parrot sneezing?", "s1")
        assert response.message == GENERATION_FALLBACK_MESSAGE
