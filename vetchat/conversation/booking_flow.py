"""
Turn-by-turn appointment booking dialogue.

Collects owner name, pet name, phone and preferred date/time, one field
per user message. A field is only stored, and the state only advances,
once the message validates. The date/time step additionally has to pass
a slot availability check and place a reservation hold before the
confirmation summary is shown.

Usage:
    flow = BookingFlow(slot_manager)
    reply = flow.start(session)
    reply = flow.process_booking_response(session, "Jane Doe")
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from vetchat.config import ClinicConfig, settings
from vetchat.conversation.field_validation import (
    FieldValidationError,
    validate_date_time,
    validate_owner_name,
    validate_pet_name,
    validate_phone,
)
from vetchat.conversation.recovery import RecoveryAction, detect_recovery
from vetchat.conversation.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)
from vetchat.prompts.prompt_templates import (
    BOOKING_CANCELLED_MESSAGE,
    BOOKING_DECLINED_MESSAGE,
    BOOKING_RESTART_MESSAGE,
    CLARIFICATION_EXAMPLES,
    CONFIRMATION_REPROMPT,
    DATE_TIME_QUESTION,
    OWNER_NAME_QUESTION,
    PET_NAME_QUESTION,
    PHONE_QUESTION,
    RESERVATION_LOST_MESSAGE,
    build_alternatives_message,
    build_confirmation_summary,
)
from vetchat.schemas.conversation_schema import BookingDraft, BookingState, ConversationSession
from vetchat.tools.slot_manager import SlotManager, SlotUnavailableError
from vetchat.utils import format_phone

logger = logging.getLogger(__name__)

# Draft field cleared when stepping back into each state
_FIELD_FOR_STATE: dict[BookingState, tuple[str, ...]] = {
    BookingState.AWAITING_OWNER_NAME: ("owner_name",),
    BookingState.AWAITING_PET_NAME: ("pet_name",),
    BookingState.AWAITING_PHONE: ("phone",),
    BookingState.AWAITING_DATE_TIME: ("preferred_date_time", "appointment_date", "slot_key"),
}

_CLARIFY_KEY: dict[BookingState, str] = {
    BookingState.AWAITING_OWNER_NAME: "owner_name",
    BookingState.AWAITING_PET_NAME: "pet_name",
    BookingState.AWAITING_PHONE: "phone",
    BookingState.AWAITING_DATE_TIME: "date_time",
    BookingState.AWAITING_CONFIRMATION: "confirmation",
}


@dataclass
class FlowReply:
    """Bot reply for one booking turn."""
    message: str
    state: BookingState
    accepted: bool = True


class BookingFlow:
    """Drives one session's booking state through the field sequence."""

    def __init__(
        self,
        slot_manager: SlotManager,
        config: Optional[ClinicConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._slots = slot_manager
        self._config = config or settings.clinic
        self._clock = clock

    # --- State plumbing ---

    @staticmethod
    def _advance(session: ConversationSession, trigger: BookingTrigger) -> BookingState:
        machine = BookingStateMachine(session.booking_state)
        session.booking_state = machine.transition(trigger)
        return session.booking_state

    def _release_hold(self, session: ConversationSession) -> None:
        slot_key = session.booking_draft.slot_key
        if slot_key:
            self._slots.release_reservation(slot_key, session.session_id)
            session.booking_draft.slot_key = None

    def current_question(self, session: ConversationSession) -> str:
        state = session.booking_state
        if state == BookingState.AWAITING_CONFIRMATION:
            return self._summary(session)
        return {
            BookingState.AWAITING_OWNER_NAME: OWNER_NAME_QUESTION,
            BookingState.AWAITING_PET_NAME: PET_NAME_QUESTION,
            BookingState.AWAITING_PHONE: PHONE_QUESTION,
            BookingState.AWAITING_DATE_TIME: DATE_TIME_QUESTION,
        }.get(state, "")

    def _summary(self, session: ConversationSession) -> str:
        draft = session.booking_draft
        vet = None
        if draft.appointment_date is not None:
            vet = self._slots.assign_veterinarian(draft.appointment_date)
        return build_confirmation_summary(
            owner_name=draft.owner_name or "",
            pet_name=draft.pet_name or "",
            phone=format_phone(draft.phone or ""),
            preferred_date_time=draft.preferred_date_time or "",
            veterinarian=vet,
        )

    # --- Lifecycle ---

    def start(self, session: ConversationSession) -> FlowReply:
        """Enter the flow from NONE and ask for the owner's name."""
        session.booking_draft = BookingDraft()
        state = self._advance(session, BookingTrigger.BOOKING_REQUESTED)
        logger.info("Booking started for session %s", session.session_id)
        return FlowReply(OWNER_NAME_QUESTION, state)

    def cancel(self, session: ConversationSession) -> FlowReply:
        """Abandon the booking from any in-progress state, freeing held slots now."""
        self._release_hold(session)
        state = self._advance(session, BookingTrigger.CANCELLED)
        session.booking_draft = BookingDraft()
        logger.info("Booking cancelled for session %s", session.session_id)
        return FlowReply(BOOKING_CANCELLED_MESSAGE, state)

    def decline(self, session: ConversationSession) -> FlowReply:
        """User answered "no" at the confirmation gate."""
        self._release_hold(session)
        state = self._advance(session, BookingTrigger.BOOKING_DECLINED)
        session.booking_draft = BookingDraft()
        return FlowReply(BOOKING_DECLINED_MESSAGE, state)

    def complete(self, session: ConversationSession) -> BookingDraft:
        """Leave the flow after a confirmed booking, returning the finished draft."""
        draft = session.booking_draft
        self._advance(session, BookingTrigger.BOOKING_CONFIRMED)
        session.booking_draft = BookingDraft()
        return draft

    def reservation_lost(self, session: ConversationSession) -> FlowReply:
        """The held slot could not be confirmed; ask for a new date/time."""
        state = self._advance(session, BookingTrigger.RESERVATION_LOST)
        self._clear_fields(session, BookingState.AWAITING_DATE_TIME)
        return FlowReply(f"{RESERVATION_LOST_MESSAGE}\n\n{DATE_TIME_QUESTION}", state, accepted=False)

    def restart(self, session: ConversationSession) -> FlowReply:
        self._release_hold(session)
        state = self._advance(session, BookingTrigger.RESTARTED)
        session.booking_draft = BookingDraft()
        return FlowReply(BOOKING_RESTART_MESSAGE, state)

    def step_back(self, session: ConversationSession) -> FlowReply:
        """Return to the previous question, forgetting that answer."""
        machine = BookingStateMachine(session.booking_state)
        if not machine.can_transition(BookingTrigger.STEPPED_BACK):
            return FlowReply(
                f"This is the first question.\n\n{self.current_question(session)}",
                session.booking_state,
                accepted=False,
            )
        if session.booking_state == BookingState.AWAITING_CONFIRMATION:
            self._release_hold(session)
        state = machine.transition(BookingTrigger.STEPPED_BACK)
        session.booking_state = state
        self._clear_fields(session, state)
        return FlowReply(f"Sure, let's go back.\n\n{self.current_question(session)}", state)

    @staticmethod
    def _clear_fields(session: ConversationSession, state: BookingState) -> None:
        for name in _FIELD_FOR_STATE.get(state, ()):
            setattr(session.booking_draft, name, None)

    def recover(self, session: ConversationSession, message: str) -> Optional[FlowReply]:
        """Handle go-back, restart and clarification requests; None when not one."""
        action = detect_recovery(message)
        if action is None:
            return None
        if action == RecoveryAction.RESTART:
            return self.restart(session)
        if action == RecoveryAction.GO_BACK:
            return self.step_back(session)
        example = CLARIFICATION_EXAMPLES.get(_CLARIFY_KEY.get(session.booking_state, ""), "")
        if session.booking_state == BookingState.AWAITING_CONFIRMATION:
            return FlowReply(CONFIRMATION_REPROMPT, session.booking_state, accepted=False)
        return FlowReply(
            f"{example}\n\n{self.current_question(session)}", session.booking_state, accepted=False
        )

    # --- Field collection ---

    def process_booking_response(self, session: ConversationSession, message: str) -> FlowReply:
        """
        Validate ``message`` as the field the current state is waiting for.

        On success the field is stored and the next question returned. On
        failure the state is unchanged and the reply explains what to fix.

        Raises:
            InvalidTransitionError: If the session is not collecting a field.
        """
        recovered = self.recover(session, message)
        if recovered is not None:
            return recovered

        handlers = {
            BookingState.AWAITING_OWNER_NAME: self._accept_owner_name,
            BookingState.AWAITING_PET_NAME: self._accept_pet_name,
            BookingState.AWAITING_PHONE: self._accept_phone,
            BookingState.AWAITING_DATE_TIME: self._accept_date_time,
        }
        handler = handlers.get(session.booking_state)
        if handler is None:
            raise InvalidTransitionError(
                f"Session {session.session_id} is not collecting a booking field "
                f"(state '{session.booking_state.value}')"
            )
        try:
            return handler(session, message)
        except FieldValidationError as exc:
            logger.debug("Rejected %s input: %s", session.booking_state.value, exc.message)
            return FlowReply(exc.message, session.booking_state, accepted=False)

    def _accept_owner_name(self, session: ConversationSession, message: str) -> FlowReply:
        session.booking_draft.owner_name = validate_owner_name(message)
        state = self._advance(session, BookingTrigger.OWNER_NAME_ACCEPTED)
        return FlowReply(PET_NAME_QUESTION, state)

    def _accept_pet_name(self, session: ConversationSession, message: str) -> FlowReply:
        session.booking_draft.pet_name = validate_pet_name(message)
        state = self._advance(session, BookingTrigger.PET_NAME_ACCEPTED)
        return FlowReply(PHONE_QUESTION, state)

    def _accept_phone(self, session: ConversationSession, message: str) -> FlowReply:
        session.booking_draft.phone = validate_phone(message)
        state = self._advance(session, BookingTrigger.PHONE_ACCEPTED)
        return FlowReply(DATE_TIME_QUESTION, state)

    def _accept_date_time(self, session: ConversationSession, message: str) -> FlowReply:
        parsed = validate_date_time(
            message, now=self._clock(), max_months_ahead=self._config.max_months_ahead
        )

        availability = self._slots.check_availability(parsed.instant)
        if not availability.available:
            return FlowReply(
                build_alternatives_message(availability.message, availability.suggested_times),
                session.booking_state,
                accepted=False,
            )

        self._release_hold(session)
        try:
            slot_key = self._slots.reserve_slot(parsed.instant, session.session_id)
        except SlotUnavailableError:
            # Another session took the slot between the check and the hold
            availability = self._slots.check_availability(parsed.instant)
            return FlowReply(
                build_alternatives_message(availability.message, availability.suggested_times),
                session.booking_state,
                accepted=False,
            )

        draft = session.booking_draft
        draft.preferred_date_time = parsed.display
        draft.appointment_date = parsed.instant
        draft.slot_key = slot_key
        state = self._advance(session, BookingTrigger.SLOT_RESERVED)
        return FlowReply(self._summary(session), state)
