"""
Finite state machine for the appointment booking dialogue.

Each state names the booking field the next user message is expected to
carry. Transitions are explicit and triggered only after a field
validates, so a booking always collects owner name, pet name, phone and
date/time in that order before the confirmation gate.

Usage:
    sm = BookingStateMachine()
    sm.transition(BookingTrigger.BOOKING_REQUESTED)
    assert sm.current_state == BookingState.AWAITING_OWNER_NAME
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from vetchat.schemas.conversation_schema import BookingState

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that cause booking state transitions."""
    BOOKING_REQUESTED = "booking_requested"
    OWNER_NAME_ACCEPTED = "owner_name_accepted"
    PET_NAME_ACCEPTED = "pet_name_accepted"
    PHONE_ACCEPTED = "phone_accepted"
    SLOT_RESERVED = "slot_reserved"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_DECLINED = "booking_declined"
    RESERVATION_LOST = "reservation_lost"
    STEPPED_BACK = "stepped_back"
    RESTARTED = "restarted"
    CANCELLED = "cancelled"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: BookingState
    to_state: BookingState
    trigger: BookingTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: BookingState
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


# Linear collection order; index + 1 is the next field
FIELD_ORDER: tuple[BookingState, ...] = (
    BookingState.AWAITING_OWNER_NAME,
    BookingState.AWAITING_PET_NAME,
    BookingState.AWAITING_PHONE,
    BookingState.AWAITING_DATE_TIME,
    BookingState.AWAITING_CONFIRMATION,
)

IN_PROGRESS_STATES = frozenset(FIELD_ORDER)


def _build_transitions() -> list[Transition]:
    s = BookingState
    t = BookingTrigger
    table = [
        # --- Entry ---
        Transition(s.NONE, s.AWAITING_OWNER_NAME, t.BOOKING_REQUESTED),

        # --- Field collection ---
        Transition(s.AWAITING_OWNER_NAME, s.AWAITING_PET_NAME, t.OWNER_NAME_ACCEPTED),
        Transition(s.AWAITING_PET_NAME, s.AWAITING_PHONE, t.PET_NAME_ACCEPTED),
        Transition(s.AWAITING_PHONE, s.AWAITING_DATE_TIME, t.PHONE_ACCEPTED),
        Transition(s.AWAITING_DATE_TIME, s.AWAITING_CONFIRMATION, t.SLOT_RESERVED),

        # --- Confirmation gate ---
        Transition(s.AWAITING_CONFIRMATION, s.NONE, t.BOOKING_CONFIRMED),
        Transition(s.AWAITING_CONFIRMATION, s.NONE, t.BOOKING_DECLINED),
        Transition(s.AWAITING_CONFIRMATION, s.AWAITING_DATE_TIME, t.RESERVATION_LOST),

        # --- Recovery ---
        Transition(s.AWAITING_PET_NAME, s.AWAITING_OWNER_NAME, t.STEPPED_BACK),
        Transition(s.AWAITING_PHONE, s.AWAITING_PET_NAME, t.STEPPED_BACK),
        Transition(s.AWAITING_DATE_TIME, s.AWAITING_PHONE, t.STEPPED_BACK),
        Transition(s.AWAITING_CONFIRMATION, s.AWAITING_DATE_TIME, t.STEPPED_BACK),
    ]
    # Cancel and restart are valid from every in-progress state
    for state in FIELD_ORDER:
        table.append(Transition(state, s.NONE, t.CANCELLED))
        table.append(Transition(state, s.AWAITING_OWNER_NAME, t.RESTARTED))
    return table


class BookingStateMachine:
    """
    Deterministic state machine controlling the booking dialogue.

    Every transition must be explicitly defined. A trigger without a
    matching transition from the current state is rejected with a clear
    error listing the triggers that are allowed.
    """

    TRANSITIONS: list[Transition] = _build_transitions()

    def __init__(self, initial_state: BookingState = BookingState.NONE) -> None:
        self._current_state = initial_state
        self._history: list[StateEntry] = [
            StateEntry(state=initial_state, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> BookingState:
        return self._current_state

    def transition(self, trigger: BookingTrigger) -> BookingState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new booking state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can_transition(self, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        """Return the full state transition history."""
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_in_progress(self) -> bool:
        return self._current_state in IN_PROGRESS_STATES
