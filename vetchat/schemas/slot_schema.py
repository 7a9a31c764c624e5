"""Slot availability data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SlotType(str, Enum):
    RESERVED = "reserved"
    CONFIRMED = "confirmed"


class UnavailableReason(str, Enum):
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    SLOT_TAKEN = "slot_taken"
    TOO_CLOSE_TO_EXISTING = "too_close_to_existing"
    DAY_FULLY_BOOKED = "day_fully_booked"


class SuggestedSlot(BaseModel):
    """Single alternative time offered to the user."""
    slot_key: str
    display_time: str


class AvailabilityResult(BaseModel):
    """Verdict of a slot availability check."""
    available: bool
    reason: Optional[UnavailableReason] = None
    message: str = ""
    slot_key: Optional[str] = None
    display_time: Optional[str] = None
    veterinarian: Optional[str] = None
    duration_minutes: int = 30
    suggested_times: list[SuggestedSlot] = Field(default_factory=list)
