"""Appointment records persisted once a booking is confirmed."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def new_appointment_id() -> str:
    return f"APT-{uuid.uuid4().hex[:8].upper()}"


class Appointment(BaseModel):
    """Finalized booking. Only ``status`` changes after creation."""

    id: str = Field(default_factory=new_appointment_id)
    session_id: str
    owner_name: str
    pet_name: str
    pet_type: str = "dog"
    phone: str
    preferred_date_time: str
    appointment_date: datetime
    slot_key: Optional[str] = None
    veterinarian: Optional[str] = None
    reason: str = "General consultation"
    urgency: str = "normal"
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
