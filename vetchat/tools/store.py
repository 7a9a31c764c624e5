"""
Persistence for conversations and appointments.

The orchestrator depends only on the ConversationStore protocol. The
in-memory store copies models on the way in and out so callers never
share mutable state with it, the way a database round-trip behaves.
"""

import logging
from typing import Optional, Protocol

from vetchat.schemas.appointment_schema import Appointment, AppointmentStatus
from vetchat.schemas.conversation_schema import ConversationSession

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a session or appointment cannot be read or written."""


class ConversationStore(Protocol):
    async def find_session(self, session_id: str) -> Optional[ConversationSession]: ...

    async def save_session(self, session: ConversationSession) -> None: ...

    async def create_appointment(self, appointment: Appointment) -> str: ...

    async def find_appointments(self, session_id: str) -> list[Appointment]: ...

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]: ...

    async def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Optional[Appointment]: ...


class InMemoryStore:
    """Process-local ConversationStore."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}
        self._appointments: dict[str, Appointment] = {}

    async def find_session(self, session_id: str) -> Optional[ConversationSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session is not None else None

    async def save_session(self, session: ConversationSession) -> None:
        self._sessions[session.session_id] = session.model_copy(deep=True)

    async def create_appointment(self, appointment: Appointment) -> str:
        if appointment.id in self._appointments:
            raise PersistenceError(f"Appointment {appointment.id} already exists")
        self._appointments[appointment.id] = appointment.model_copy(deep=True)
        logger.info(
            "Appointment %s created for %s (%s)",
            appointment.id, appointment.pet_name, appointment.preferred_date_time,
        )
        return appointment.id

    async def find_appointments(self, session_id: str) -> list[Appointment]:
        """Appointments for a session, newest first."""
        matches = [a for a in self._appointments.values() if a.session_id == session_id]
        matches.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in matches]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        return appointment.model_copy(deep=True) if appointment is not None else None

    async def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return None
        appointment.status = status
        logger.info("Appointment %s status -> %s", appointment_id, status.value)
        return appointment.model_copy(deep=True)

    def reset(self) -> None:
        """Clear all stored data. Used in tests."""
        self._sessions.clear()
        self._appointments.clear()
