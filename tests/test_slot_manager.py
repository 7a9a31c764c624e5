"""Tests for slot availability, reservation holds and bookings."""

from dataclasses import replace
from datetime import datetime

import pytest

from vetchat.config import ClinicConfig
from vetchat.schemas.slot_schema import SlotType, UnavailableReason
from vetchat.tools.clinic_hours import ClinicCalendar
from vetchat.tools.slot_manager import (
    InvalidReservationError,
    SlotManager,
    SlotUnavailableError,
    format_clock_time,
)
from tests.conftest import MONDAY_9AM, TUESDAY_2PM


class TestSlotKeys:
    def test_truncates_to_half_hour(self, slot_manager):
        assert slot_manager.find_slot_key(datetime(2026, 10, 20, 14, 17)) == "2026-10-20T14:00:00"
        assert slot_manager.find_slot_key(datetime(2026, 10, 20, 14, 45, 30)) == "2026-10-20T14:30:00"

    def test_same_bucket_same_key(self, slot_manager):
        assert slot_manager.find_slot_key(datetime(2026, 10, 20, 9, 1)) == slot_manager.find_slot_key(
            datetime(2026, 10, 20, 9, 29)
        )


class TestDisplayTime:
    def test_today(self, slot_manager):
        assert slot_manager.format_display_time(datetime(2026, 10, 19, 15, 0)) == "Today at 3:00 PM"

    def test_tomorrow(self, slot_manager):
        assert slot_manager.format_display_time(TUESDAY_2PM) == "Tomorrow at 2:00 PM"

    def test_later_date(self, slot_manager):
        assert slot_manager.format_display_time(datetime(2026, 10, 22, 9, 30)) == "Thu, Oct 22, 9:30 AM"

    def test_clock_time_noon(self):
        assert format_clock_time(datetime(2026, 10, 20, 12, 0)) == "12:00 PM"


class TestVeterinarianAssignment:
    def test_round_robin_by_day_of_month(self, slot_manager):
        roster = ClinicConfig().veterinarians
        assert slot_manager.assign_veterinarian(TUESDAY_2PM) == roster[20 % len(roster)]


class TestAvailability:
    def test_open_slot_available(self, slot_manager):
        result = slot_manager.check_availability(TUESDAY_2PM)
        assert result.available
        assert result.slot_key == "2026-10-20T14:00:00"
        assert result.display_time == "Tomorrow at 2:00 PM"
        assert result.veterinarian
        assert result.duration_minutes == 30

    def test_sunday_closed(self, slot_manager):
        result = slot_manager.check_availability(datetime(2026, 10, 25, 10, 0))
        assert not result.available
        assert result.reason == UnavailableReason.OUTSIDE_BUSINESS_HOURS
        assert result.message.startswith("We're closed at that time.")
        assert "Monday" in result.message
        assert [s.display_time for s in result.suggested_times] == [
            "Mon, Oct 26, 9:00 AM",
            "Mon, Oct 26, 9:30 AM",
            "Mon, Oct 26, 10:00 AM",
        ]

    def test_before_opening_suggests_same_morning(self, slot_manager):
        result = slot_manager.check_availability(datetime(2026, 10, 20, 8, 0))
        assert result.reason == UnavailableReason.OUTSIDE_BUSINESS_HOURS
        assert "Our hours are 09:00 to 18:00 on Tuesdays." in result.message
        assert result.suggested_times[0].display_time == "Tomorrow at 9:00 AM"

    def test_lunch_break_closed(self, slot_manager):
        result = slot_manager.check_availability(datetime(2026, 10, 20, 12, 30))
        assert result.reason == UnavailableReason.OUTSIDE_BUSINESS_HOURS

    def test_closing_time_is_exclusive(self, slot_manager):
        assert not slot_manager.check_availability(datetime(2026, 10, 20, 18, 0)).available
        assert slot_manager.check_availability(datetime(2026, 10, 20, 17, 30)).available

    def test_taken_slot_offers_nearby_times(self, slot_manager):
        slot_manager.reserve_slot(TUESDAY_2PM, "other-session")
        result = slot_manager.check_availability(TUESDAY_2PM)
        assert result.reason == UnavailableReason.SLOT_TAKEN
        assert result.message == "That time slot is already booked."
        assert [s.display_time for s in result.suggested_times] == [
            "Tomorrow at 3:00 PM",
            "Tomorrow at 1:00 PM",
            "Tomorrow at 3:30 PM",
        ]

    def test_buffer_conflict(self, slot_manager):
        slot_manager.reserve_slot(TUESDAY_2PM, "other-session")
        result = slot_manager.check_availability(datetime(2026, 10, 20, 14, 30))
        assert result.reason == UnavailableReason.TOO_CLOSE_TO_EXISTING
        assert result.message == "This time is too close to another appointment."

    def test_buffer_boundary_is_exclusive(self, slot_manager):
        slot_manager.reserve_slot(TUESDAY_2PM, "other-session")
        assert slot_manager.check_availability(datetime(2026, 10, 20, 14, 40)).available

    def test_day_fully_booked(self, clock):
        manager = SlotManager(config=replace(ClinicConfig(), max_daily_appointments=2), clock=clock)
        manager.reserve_slot(datetime(2026, 10, 20, 9, 0), "a")
        manager.reserve_slot(datetime(2026, 10, 20, 10, 0), "b")
        result = manager.check_availability(datetime(2026, 10, 20, 15, 0))
        assert result.reason == UnavailableReason.DAY_FULLY_BOOKED
        assert result.message == "We're fully booked for that day."
        assert result.suggested_times[0].display_time == "Wed, Oct 21, 9:00 AM"

    def test_suggestions_never_in_the_past(self, slot_manager):
        slot_manager.reserve_slot(datetime(2026, 10, 19, 9, 30), "other-session")
        result = slot_manager.check_availability(datetime(2026, 10, 19, 9, 30))
        assert result.suggested_times
        for suggestion in result.suggested_times:
            assert datetime.fromisoformat(suggestion.slot_key) > MONDAY_9AM

    def test_closed_week_has_no_suggestions(self, clock):
        manager = SlotManager(calendar=ClinicCalendar(weekly_hours={}), clock=clock)
        result = manager.check_availability(TUESDAY_2PM)
        assert not result.available
        assert result.suggested_times == []


class TestReservations:
    def test_reserve_returns_key(self, slot_manager):
        assert slot_manager.reserve_slot(TUESDAY_2PM, "s1") == "2026-10-20T14:00:00"
        assert slot_manager.is_slot_booked("2026-10-20T14:00:00")

    def test_other_session_cannot_reserve(self, slot_manager):
        slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        with pytest.raises(SlotUnavailableError):
            slot_manager.reserve_slot(TUESDAY_2PM, "s2")

    def test_same_session_refreshes_hold(self, slot_manager, clock):
        slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        clock.advance(minutes=4)
        slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        clock.advance(minutes=4)
        assert slot_manager.is_slot_booked("2026-10-20T14:00:00")

    def test_hold_expires_after_five_minutes(self, slot_manager, clock):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        clock.advance(minutes=5)
        assert not slot_manager.is_slot_booked(key)
        assert slot_manager.check_availability(TUESDAY_2PM).available

    def test_expired_hold_can_be_taken_by_another_session(self, slot_manager, clock):
        slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        clock.advance(minutes=6)
        assert slot_manager.reserve_slot(TUESDAY_2PM, "s2") == "2026-10-20T14:00:00"

    def test_release_own_hold(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        assert not slot_manager.release_reservation(key, "s2")
        assert slot_manager.release_reservation(key, "s1")
        assert not slot_manager.is_slot_booked(key)


class TestConfirmation:
    def test_confirm_makes_booking_permanent(self, slot_manager, clock):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        booking = slot_manager.confirm_reservation(key, "s1")
        assert booking.slot_type == SlotType.CONFIRMED
        clock.advance(minutes=30)
        assert slot_manager.is_slot_booked(key)

    def test_confirm_is_idempotent(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        first = slot_manager.confirm_reservation(key, "s1")
        assert slot_manager.confirm_reservation(key, "s1") is first

    def test_confirm_foreign_reservation_fails(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        with pytest.raises(InvalidReservationError):
            slot_manager.confirm_reservation(key, "s2")

    def test_confirm_expired_reservation_fails(self, slot_manager, clock):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        clock.advance(minutes=6)
        with pytest.raises(InvalidReservationError):
            slot_manager.confirm_reservation(key, "s1")

    def test_confirm_missing_slot_fails(self, slot_manager):
        with pytest.raises(InvalidReservationError):
            slot_manager.confirm_reservation("2026-10-20T14:00:00", "s1")

    def test_confirmed_slot_not_released(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        slot_manager.confirm_reservation(key, "s1")
        assert not slot_manager.release_reservation(key, "s1")

    def test_confirmed_slot_cannot_be_rereserved_by_owner(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        slot_manager.confirm_reservation(key, "s1")
        with pytest.raises(SlotUnavailableError):
            slot_manager.reserve_slot(TUESDAY_2PM, "s1")

    def test_cancel_booking_frees_slot(self, slot_manager):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        slot_manager.confirm_reservation(key, "s1")
        assert slot_manager.cancel_booking(key)
        assert not slot_manager.is_slot_booked(key)
        assert not slot_manager.cancel_booking(key)


class TestHousekeeping:
    def test_cleanup_drops_lapsed_holds(self, slot_manager, clock):
        slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        key = slot_manager.reserve_slot(datetime(2026, 10, 20, 15, 0), "s2")
        slot_manager.confirm_reservation(key, "s2")
        clock.advance(minutes=10)
        assert slot_manager.cleanup() == 1
        assert slot_manager.get_statistics()["confirmed"] == 1

    def test_cleanup_drops_bookings_past_retention(self, slot_manager, clock):
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s1")
        slot_manager.confirm_reservation(key, "s1")
        clock.advance(days=3)
        assert slot_manager.cleanup() == 1

    def test_statistics(self, slot_manager):
        slot_manager.reserve_slot(datetime(2026, 10, 19, 15, 0), "s1")
        key = slot_manager.reserve_slot(TUESDAY_2PM, "s2")
        slot_manager.confirm_reservation(key, "s2")
        assert slot_manager.get_statistics() == {
            "total_slots": 2,
            "confirmed": 1,
            "reserved": 1,
            "today_count": 1,
        }
