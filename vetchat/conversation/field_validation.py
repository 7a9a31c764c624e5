"""
Validation for each field collected by the booking flow.

Every validator returns the cleaned value or raises FieldValidationError
carrying the corrective message shown to the user.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta

from vetchat.config import settings
from vetchat.utils import collapse_whitespace, normalize_phone

logger = logging.getLogger(__name__)

# Validation thresholds
MIN_OWNER_NAME_LENGTH = 2
MIN_PET_NAME_LENGTH = 1
PHONE_DIGITS = 10
MIN_DATE_TIME_LENGTH = 3
DEFAULT_HOUR = 10

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_PATTERN = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)", re.IGNORECASE)

YES_WORDS = frozenset({"yes", "confirm", "y"})
NO_WORDS = frozenset({"no", "cancel", "n"})

UNPARSABLE_DATE_MESSAGE = (
    'Please provide a valid date and time (e.g., "tomorrow at 2pm", '
    '"next Monday at 10:30am", "January 20 at 3pm").'
)
PAST_DATE_MESSAGE = (
    "Please select a future date and time. Appointments cannot be booked "
    "for past dates or times."
)


class FieldValidationError(ValueError):
    """User input failed a field rule; ``message`` is safe to show the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class ParsedDateTime:
    """A validated appointment instant plus its display form."""
    instant: datetime
    display: str


def validate_owner_name(value: str) -> str:
    name = collapse_whitespace(value)
    if len(name) < MIN_OWNER_NAME_LENGTH:
        raise FieldValidationError("Please provide a valid name.")
    return name


def validate_pet_name(value: str) -> str:
    name = collapse_whitespace(value)
    if len(name) < MIN_PET_NAME_LENGTH:
        raise FieldValidationError("Please provide your pet's name.")
    return name


def validate_phone(value: str) -> str:
    """Return exactly 10 digits, whatever delimiters the user typed."""
    digits = normalize_phone(value)
    if len(digits) != PHONE_DIGITS:
        raise FieldValidationError("Please provide a valid 10-digit phone number.")
    return digits


def _extract_time(text: str) -> Optional[tuple[int, int]]:
    """Find an explicit 12-hour ``H(:MM) am/pm`` time in ``text``."""
    match = _TIME_PATTERN.search(text)
    if match is None:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    meridiem = match.group(3).lower()
    if hours < 1 or hours > 12 or minutes > 59:
        raise FieldValidationError(UNPARSABLE_DATE_MESSAGE)
    if meridiem == "pm" and hours != 12:
        hours += 12
    if meridiem == "am" and hours == 12:
        hours = 0
    return hours, minutes


def _at(day: datetime, clock: Optional[tuple[int, int]], default_hour: int) -> datetime:
    hours, minutes = clock if clock is not None else (default_hour, 0)
    return day.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def parse_date_time(text: str, now: datetime) -> datetime:
    """
    Resolve free-text like "tomorrow at 2pm" or "next friday" to an instant.

    Literals are tried first ("tomorrow", "next <weekday>", "today"), then
    a fuzzy generic parse. Missing times default to 10:00, except "today"
    which defaults to two hours from now on the hour.

    Raises:
        FieldValidationError: If the text cannot be resolved to a date.
    """
    lowered = text.lower().strip()

    if "tomorrow" in lowered:
        return _at(now + timedelta(days=1), _extract_time(lowered), DEFAULT_HOUR)

    if "next" in lowered:
        for index, day_name in enumerate(WEEKDAYS):
            if day_name in lowered:
                days_ahead = index - now.weekday()
                if days_ahead <= 0:
                    days_ahead += 7
                return _at(now + timedelta(days=days_ahead), _extract_time(lowered), DEFAULT_HOUR)

    if "today" in lowered:
        clock = _extract_time(lowered)
        if clock is not None:
            return _at(now, clock, DEFAULT_HOUR)
        return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=2)

    default = now.replace(hour=DEFAULT_HOUR, minute=0, second=0, microsecond=0)
    try:
        return dtparser.parse(text, default=default, fuzzy=True)
    except (ValueError, OverflowError):
        raise FieldValidationError(UNPARSABLE_DATE_MESSAGE) from None


def format_long_date(instant: datetime) -> str:
    """Long display form, e.g. ``Tuesday, October 20, 2026 at 2:00 PM``."""
    return (
        f"{instant:%A, %B} {instant.day}, {instant.year} at "
        f"{instant.hour % 12 or 12}:{instant:%M} {instant:%p}"
    )


def validate_date_time(
    value: str,
    now: Optional[datetime] = None,
    max_months_ahead: Optional[int] = None,
) -> ParsedDateTime:
    """Parse and bound-check a requested appointment time."""
    now = now or datetime.now()
    months = max_months_ahead if max_months_ahead is not None else settings.clinic.max_months_ahead

    if len(value.strip()) < MIN_DATE_TIME_LENGTH:
        raise FieldValidationError("Please provide a preferred date and time.")

    instant = parse_date_time(value, now)
    if instant.tzinfo is not None:
        instant = instant.astimezone().replace(tzinfo=None)

    if instant <= now:
        raise FieldValidationError(PAST_DATE_MESSAGE)
    if instant > now + relativedelta(months=months):
        raise FieldValidationError(
            f"Appointments can only be scheduled up to {months} months in advance. "
            "Please choose an earlier date."
        )

    logger.debug("Parsed date/time %r as %s", value, instant.isoformat())
    return ParsedDateTime(instant=instant, display=format_long_date(instant))


def parse_confirmation(value: str) -> Optional[bool]:
    """True for the yes family, False for the no family, None otherwise."""
    answer = value.strip().lower()
    if answer in YES_WORDS:
        return True
    if answer in NO_WORDS:
        return False
    return None
