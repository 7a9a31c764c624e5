"""
Appointment slot availability and reservation engine.

Arbitrates whether a requested instant is bookable and manages short
holds while a visitor confirms their booking. Slots are 30-minute
buckets keyed by the truncated ISO timestamp. Every live entry is either
a reservation owned by one session (expiring after the hold window) or a
confirmed booking.

Expiry is lazy: every read re-checks the hold deadline, so correctness
never depends on a timer firing. ``cleanup`` bounds memory.

Usage:
    slots = SlotManager()
    result = slots.check_availability(requested)
    if result.available:
        key = slots.reserve_slot(requested, session_id)
        # ... visitor says yes ...
        slots.confirm_reservation(key, session_id)
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from vetchat.config import ClinicConfig, settings
from vetchat.schemas.slot_schema import (
    AvailabilityResult,
    SlotType,
    SuggestedSlot,
    UnavailableReason,
)
from vetchat.tools.clinic_hours import ClinicCalendar

logger = logging.getLogger(__name__)

# Alternate after/before the requested time, then the same time on nearby days
NEARBY_OFFSETS_MINUTES = (30, -30, 60, -60, 90, -90, 120, -120, 1440, -1440, 2880, -2880)

# Upper bound on forward probing (two weeks of half-hour steps)
MAX_FORWARD_PROBES = 14 * 48


class SlotUnavailableError(Exception):
    """Raised when a reservation targets a slot another session already holds."""


class InvalidReservationError(Exception):
    """Raised when confirming a reservation that is missing, expired, or foreign."""


@dataclass
class SlotBooking:
    """A single reserved or confirmed slot."""

    slot_key: str
    start: datetime
    slot_type: SlotType
    session_id: str
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    def is_live(self, now: datetime) -> bool:
        if self.slot_type == SlotType.CONFIRMED:
            return True
        return self.expires_at is not None and now < self.expires_at


def _as_local(instant: datetime) -> datetime:
    """Convert aware datetimes to naive local time; naive ones pass through."""
    if instant.tzinfo is not None:
        return instant.astimezone().replace(tzinfo=None)
    return instant


def format_clock_time(instant: datetime) -> str:
    """12-hour clock time, e.g. ``2:30 PM``."""
    return f"{instant.hour % 12 or 12}:{instant:%M} {instant:%p}"


class SlotManager:
    """Shared, thread-safe owner of all slot reservations and bookings."""

    def __init__(
        self,
        config: Optional[ClinicConfig] = None,
        calendar: Optional[ClinicCalendar] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config or settings.clinic
        self._calendar = calendar or ClinicCalendar()
        self._clock = clock
        self._slot_duration = timedelta(minutes=self._config.slot_duration_minutes)
        self._buffer = timedelta(minutes=self._config.buffer_minutes)
        self._hold = timedelta(minutes=self._config.reservation_hold_minutes)
        self._retention = timedelta(hours=self._config.booking_retention_hours)
        self._bookings: dict[str, SlotBooking] = {}
        self._lock = threading.RLock()

    @property
    def calendar(self) -> ClinicCalendar:
        return self._calendar

    # --- Keys and formatting ---

    def find_slot_key(self, instant: datetime) -> str:
        """Canonical key of the slot bucket enclosing ``instant``."""
        instant = _as_local(instant)
        bucket = self._config.slot_duration_minutes
        truncated = instant.replace(
            minute=instant.minute - instant.minute % bucket, second=0, microsecond=0
        )
        return truncated.isoformat()

    def format_display_time(self, instant: datetime) -> str:
        """User-facing label relative to today, e.g. ``Tomorrow at 2:00 PM``."""
        today = self._clock().date()
        clock_time = format_clock_time(instant)
        if instant.date() == today:
            return f"Today at {clock_time}"
        if instant.date() == today + timedelta(days=1):
            return f"Tomorrow at {clock_time}"
        return f"{instant:%a, %b} {instant.day}, {clock_time}"

    def assign_veterinarian(self, instant: datetime) -> str:
        roster = self._config.veterinarians
        return roster[instant.day % len(roster)]

    # --- Availability ---

    def check_availability(self, instant: datetime) -> AvailabilityResult:
        """Decide whether ``instant`` can be booked, with alternatives when not."""
        instant = _as_local(instant)
        now = self._clock()
        count = self._config.suggestion_count

        with self._lock:
            reason = self._unavailable_reason(instant, now)

            if reason is None:
                vet = self.assign_veterinarian(instant)
                display = self.format_display_time(instant)
                return AvailabilityResult(
                    available=True,
                    message=f"{display} is available with {vet}.",
                    slot_key=self.find_slot_key(instant),
                    display_time=display,
                    veterinarian=vet,
                    duration_minutes=self._config.slot_duration_minutes,
                )

            if reason == UnavailableReason.OUTSIDE_BUSINESS_HOURS:
                message = f"We're closed at that time. {self._calendar.describe_hours(instant)}"
                suggestions = self._scan_forward(instant, count, now)
            elif reason == UnavailableReason.SLOT_TAKEN:
                message = "That time slot is already booked."
                suggestions = self._nearby_slots(instant, count, now)
            elif reason == UnavailableReason.TOO_CLOSE_TO_EXISTING:
                message = "This time is too close to another appointment."
                suggestions = self._nearby_slots(instant, count, now)
            else:
                message = "We're fully booked for that day."
                next_day = datetime.combine(
                    instant.date() + timedelta(days=1), datetime.min.time()
                ).replace(hour=self._config.next_day_opening_hour)
                suggestions = self._scan_forward(next_day, count, now)

        logger.debug("Slot %s unavailable: %s", instant.isoformat(), reason.value)
        return AvailabilityResult(
            available=False,
            reason=reason,
            message=message,
            slot_key=self.find_slot_key(instant),
            duration_minutes=self._config.slot_duration_minutes,
            suggested_times=suggestions,
        )

    def _unavailable_reason(
        self, instant: datetime, now: datetime
    ) -> Optional[UnavailableReason]:
        if not self._calendar.is_open(instant):
            return UnavailableReason.OUTSIDE_BUSINESS_HOURS
        if self._live_entry(self.find_slot_key(instant), now) is not None:
            return UnavailableReason.SLOT_TAKEN
        if self._has_buffer_conflict(instant, now):
            return UnavailableReason.TOO_CLOSE_TO_EXISTING
        if self._daily_count(instant.date(), now) >= self._config.max_daily_appointments:
            return UnavailableReason.DAY_FULLY_BOOKED
        return None

    def _live_entry(self, slot_key: str, now: datetime) -> Optional[SlotBooking]:
        """Return the live entry at ``slot_key``, dropping it if its hold lapsed."""
        entry = self._bookings.get(slot_key)
        if entry is None:
            return None
        if not entry.is_live(now):
            del self._bookings[slot_key]
            logger.debug("Reservation %s expired for session %s", slot_key, entry.session_id)
            return None
        return entry

    def _has_buffer_conflict(self, instant: datetime, now: datetime) -> bool:
        check_start = instant - self._buffer
        check_end = instant + self._slot_duration + self._buffer
        for entry in self._bookings.values():
            if not entry.is_live(now):
                continue
            booked_end = entry.start + self._slot_duration
            if check_start < booked_end and check_end > entry.start:
                return True
        return False

    def _daily_count(self, day: date, now: datetime) -> int:
        return sum(
            1 for entry in self._bookings.values()
            if entry.start.date() == day and entry.is_live(now)
        )

    def _suggestion(self, instant: datetime) -> SuggestedSlot:
        return SuggestedSlot(
            slot_key=self.find_slot_key(instant),
            display_time=self.format_display_time(instant),
        )

    def _nearby_slots(self, instant: datetime, count: int, now: datetime) -> list[SuggestedSlot]:
        slots: list[SuggestedSlot] = []
        for offset in NEARBY_OFFSETS_MINUTES:
            if len(slots) >= count:
                break
            candidate = instant + timedelta(minutes=offset)
            if candidate <= now:
                continue
            if self._unavailable_reason(candidate, now) is None:
                slots.append(self._suggestion(candidate))
        return slots

    def _scan_forward(self, start: datetime, count: int, now: datetime) -> list[SuggestedSlot]:
        """Probe forward in slot steps, jumping to next morning past closing."""
        slots: list[SuggestedSlot] = []
        latest_close = self._calendar.latest_close()
        if latest_close is None:
            return slots

        candidate = start
        for _ in range(MAX_FORWARD_PROBES):
            if len(slots) >= count:
                break
            if candidate.time() >= latest_close:
                candidate = datetime.combine(
                    candidate.date() + timedelta(days=1), datetime.min.time()
                ).replace(hour=self._config.next_day_opening_hour)
            if candidate > now and self._unavailable_reason(candidate, now) is None:
                slots.append(self._suggestion(candidate))
            candidate += self._slot_duration
        return slots

    # --- Reservations ---

    def reserve_slot(self, instant: datetime, session_id: str) -> str:
        """
        Place a temporary hold on the slot enclosing ``instant``.

        Re-reserving a slot the same session already holds refreshes the hold.

        Raises:
            SlotUnavailableError: If another session holds a live entry on the slot.
        """
        instant = _as_local(instant)
        slot_key = self.find_slot_key(instant)
        now = self._clock()

        with self._lock:
            existing = self._live_entry(slot_key, now)
            if existing is not None and (
                existing.session_id != session_id or existing.slot_type == SlotType.CONFIRMED
            ):
                raise SlotUnavailableError(f"Slot {slot_key} is already taken")
            self._bookings[slot_key] = SlotBooking(
                slot_key=slot_key,
                start=instant,
                slot_type=SlotType.RESERVED,
                session_id=session_id,
                expires_at=now + self._hold,
            )

        self._schedule_release(slot_key, session_id)
        logger.info("Reserved slot %s for session %s", slot_key, session_id)
        return slot_key

    def _schedule_release(self, slot_key: str, session_id: str) -> None:
        """Best-effort timer; lazy expiry covers runtimes without a loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self._hold.total_seconds(), self._release_if_expired, slot_key, session_id)

    def _release_if_expired(self, slot_key: str, session_id: str) -> None:
        with self._lock:
            entry = self._bookings.get(slot_key)
            if (
                entry is not None
                and entry.slot_type == SlotType.RESERVED
                and entry.session_id == session_id
                and not entry.is_live(self._clock())
            ):
                del self._bookings[slot_key]
                logger.debug("Auto-released expired reservation %s", slot_key)

    def confirm_reservation(self, slot_key: str, session_id: str) -> SlotBooking:
        """
        Turn a live reservation into a permanent booking.

        Raises:
            InvalidReservationError: If the reservation is missing, expired,
                or owned by a different session.
        """
        now = self._clock()
        with self._lock:
            entry = self._live_entry(slot_key, now)
            if entry is None or entry.session_id != session_id:
                raise InvalidReservationError(
                    f"Invalid or expired reservation for slot {slot_key}"
                )
            if entry.slot_type == SlotType.RESERVED:
                entry.slot_type = SlotType.CONFIRMED
                entry.expires_at = None
                entry.confirmed_at = now
                logger.info("Confirmed slot %s for session %s", slot_key, session_id)
            return entry

    def release_reservation(self, slot_key: str, session_id: str) -> bool:
        """Drop a reservation owned by ``session_id``. Confirmed slots are never touched."""
        with self._lock:
            entry = self._bookings.get(slot_key)
            if (
                entry is not None
                and entry.slot_type == SlotType.RESERVED
                and entry.session_id == session_id
            ):
                del self._bookings[slot_key]
                logger.info("Released slot %s for session %s", slot_key, session_id)
                return True
        return False

    def cancel_booking(self, slot_key: str) -> bool:
        """Free a slot whose appointment was cancelled outside the chat flow."""
        with self._lock:
            removed = self._bookings.pop(slot_key, None)
        if removed is not None:
            logger.info("Cancelled booking on slot %s", slot_key)
        return removed is not None

    def is_slot_booked(self, slot_key: str) -> bool:
        with self._lock:
            return self._live_entry(slot_key, self._clock()) is not None

    # --- Housekeeping ---

    def cleanup(self) -> int:
        """Remove bookings past the retention window and lapsed reservations."""
        now = self._clock()
        cutoff = now - self._retention
        with self._lock:
            stale = [
                key for key, entry in self._bookings.items()
                if entry.start < cutoff or not entry.is_live(now)
            ]
            for key in stale:
                del self._bookings[key]
        if stale:
            logger.info("Slot cleanup removed %d entries", len(stale))
        return len(stale)

    def get_statistics(self) -> dict[str, int]:
        now = self._clock()
        with self._lock:
            live = [entry for entry in self._bookings.values() if entry.is_live(now)]
        return {
            "total_slots": len(live),
            "confirmed": sum(1 for e in live if e.slot_type == SlotType.CONFIRMED),
            "reserved": sum(1 for e in live if e.slot_type == SlotType.RESERVED),
            "today_count": sum(1 for e in live if e.start.date() == now.date()),
        }
