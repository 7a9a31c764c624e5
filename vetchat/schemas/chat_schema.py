"""Wire shapes for the chat and appointment HTTP routes."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vetchat.schemas.appointment_schema import AppointmentStatus
from vetchat.schemas.conversation_schema import BookingState, ChatMessage


class ChatRequest(BaseModel):
    """Inbound chat message."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    context: Optional[dict[str, Any]] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        return value.strip()


class ChatResponse(BaseModel):
    """Reply returned for every processed chat message."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    message: str
    booking_state: BookingState = Field(alias="bookingState")


class ConversationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    messages: list[ChatMessage]
    booking_state: BookingState = Field(alias="bookingState")
    created_at: datetime = Field(alias="createdAt")


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus
