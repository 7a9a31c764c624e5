"""Conversation session schemas shared by the booking flow and the store."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    BOT = "bot"


class BookingState(str, Enum):
    """Which booking field the next user message is expected to carry."""
    NONE = "none"
    AWAITING_OWNER_NAME = "awaiting_owner_name"
    AWAITING_PET_NAME = "awaiting_pet_name"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_DATE_TIME = "awaiting_date_time"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class ChatMessage(BaseModel):
    """A single turn in a conversation."""

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)


class BookingDraft(BaseModel):
    """Partially collected appointment details."""

    owner_name: Optional[str] = None
    pet_name: Optional[str] = None
    phone: Optional[str] = None
    preferred_date_time: Optional[str] = None
    appointment_date: Optional[datetime] = None
    slot_key: Optional[str] = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class ConversationSession(BaseModel):
    """Full conversation record, mutated on every turn."""

    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    booking_state: BookingState = BookingState.NONE
    booking_draft: BookingDraft = Field(default_factory=BookingDraft)
    context: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def add_message(self, role: Role, text: str) -> ChatMessage:
        message = ChatMessage(role=role, text=text)
        self.messages.append(message)
        self.updated_at = message.timestamp
        return message

    def recent_history(self, limit: int, exclude_last: bool = False) -> list[ChatMessage]:
        """Return up to ``limit`` most recent turns, oldest first."""
        messages = self.messages[:-1] if exclude_last else self.messages
        if limit <= 0:
            return []
        return list(messages[-limit:])
