"""User-facing message templates for the booking dialogue and Q&A fallback."""

from typing import Any, Optional

from vetchat.schemas.slot_schema import SuggestedSlot

DATE_TIME_EXAMPLES = '"tomorrow at 2pm", "next Monday at 10:30am", or "January 20, 2026 at 3pm"'

OWNER_NAME_QUESTION = "Great! I'll help you book an appointment. May I have your full name, please?"
PET_NAME_QUESTION = "Thank you! What's your pet's name?"
PHONE_QUESTION = "What's the best phone number to reach you at?"
DATE_TIME_QUESTION = (
    "When would you prefer to schedule the appointment? Please provide a future "
    f"date and time (e.g., {DATE_TIME_EXAMPLES})."
)

BOOKING_SUCCESS_MESSAGE = (
    "Your appointment has been successfully booked! We'll contact you shortly to "
    "confirm. Is there anything else I can help you with?"
)
BOOKING_CANCELLED_MESSAGE = (
    "Appointment booking cancelled. How else can I help you with your pet's needs?"
)
BOOKING_DECLINED_MESSAGE = "Appointment booking cancelled. How can I help you with your pet's needs?"
BOOKING_RESTART_MESSAGE = "No problem, let's start over. May I have your full name, please?"
CONFIRMATION_REPROMPT = 'Please type "yes" to confirm or "no" to start over.'
RESERVATION_LOST_MESSAGE = (
    "Sorry, the time slot we were holding for you is no longer available. "
    "Please choose another date and time."
)
APPOINTMENT_SAVE_FAILED_MESSAGE = (
    "We couldn't save your appointment right now. Please try booking again in a "
    "moment or call the clinic directly."
)
GENERATION_FALLBACK_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again later or contact your veterinarian directly for urgent matters."
)

# Example answers used when a user asks what a question means
CLARIFICATION_EXAMPLES: dict[str, str] = {
    "owner_name": 'Just your first and last name, for example "Jane Doe".',
    "pet_name": 'Just your pet\'s name, for example "Rex".',
    "phone": 'A 10-digit phone number, for example "555-123-4567".',
    "date_time": f"A future date and time, for example {DATE_TIME_EXAMPLES}.",
    "confirmation": CONFIRMATION_REPROMPT,
}


def build_confirmation_summary(
    owner_name: str,
    pet_name: str,
    phone: str,
    preferred_date_time: str,
    veterinarian: Optional[str] = None,
) -> str:
    """Read-back of the collected booking details."""
    lines = [
        "Perfect! Let me confirm your appointment details:",
        "",
        f"Owner Name: {owner_name}",
        f"Pet Name: {pet_name}",
        f"Phone: {phone}",
        f"Preferred Date/Time: {preferred_date_time}",
    ]
    if veterinarian:
        lines.append(f"Veterinarian: {veterinarian}")
    lines.extend(["", "Is this information correct? (Type 'yes' to confirm or 'no' to start over)"])
    return "\n".join(lines)


def build_alternatives_message(reason_message: str, alternatives: list[SuggestedSlot]) -> str:
    """Explain why a time is unavailable and list nearby options."""
    lines = [reason_message]
    if alternatives:
        lines.extend(["", "Available times nearby:"])
        lines.extend(f"- {slot.display_time}" for slot in alternatives)
        lines.extend(["", "Please choose one of these times or suggest another."])
    else:
        lines.extend(["", "Please suggest another date and time."])
    return "\n".join(lines)


def build_context_block(context: Optional[dict[str, Any]]) -> str:
    """Render optional user profile and appointment context for the model."""
    if not context:
        return ""

    parts: list[str] = []
    profile = context.get("userProfile") or context.get("user_profile")
    if isinstance(profile, dict):
        parts.append("User Profile:")
        for label, key in [
            ("Owner Name", "ownerName"),
            ("Pet Name", "petName"),
            ("Pet Type", "petType"),
            ("Phone", "phone"),
        ]:
            parts.append(f"- {label}: {profile.get(key) or 'Not provided'}")

    appointments = context.get("appointments")
    if isinstance(appointments, dict):
        parts.append("Appointment Information:")
        parts.append(f"- Total Appointments: {appointments.get('total', 0)}")
        parts.append(f"- Upcoming Appointments: {appointments.get('upcoming', 0)}")
        upcoming = appointments.get("next")
        if isinstance(upcoming, dict):
            parts.append(
                f"- Next Appointment: {upcoming.get('preferredDateTime', 'unknown')} "
                f"for {upcoming.get('petName', 'your pet')} ({upcoming.get('status', 'pending')})"
            )

    return "\n".join(parts)
