"""
Keyword tables for routing messages.

Routing is plain phrase dispatch over fixed lists. Booking confirmation
never depends on a language model.
"""

from typing import Optional

BOOKING_PHRASES: tuple[str, ...] = (
    "book an appointment",
    "book appointment",
    "schedule appointment",
    "make appointment",
    "book a visit",
    "schedule a visit",
    "see a vet",
    "visit vet",
    "need appointment",
    "want appointment",
    "appointment please",
    "book consultation",
    "schedule consultation",
    "need to see vet",
    "want to see vet",
    "i want to book",
    "i need to book",
    "can i book",
    "like to book",
    "make a booking",
    "schedule vet",
)

CANCEL_PHRASES: tuple[str, ...] = ("cancel", "stop", "nevermind", "forget it", "exit")


def detect_booking_intent(message: str) -> Optional[str]:
    """Return the first booking phrase contained in ``message``, or None."""
    lowered = message.lower()
    for phrase in BOOKING_PHRASES:
        if phrase in lowered:
            return phrase
    return None


def detect_cancel_intent(message: str) -> Optional[str]:
    """Return the first cancellation phrase contained in ``message``, or None.

    Plain substring match, so "Cancelled" and "exiting" both cancel.
    """
    lowered = message.lower()
    for phrase in CANCEL_PHRASES:
        if phrase in lowered:
            return phrase
    return None
