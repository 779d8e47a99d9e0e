"""Time slot generation tests"""
from datetime import date, datetime
from types import SimpleNamespace

from repaircoin.domain.service.slots import (
    OpeningHours,
    day_of_week,
    generate_time_slots,
    resolve_opening_hours,
)

MONDAY = date(2026, 3, 16)
SATURDAY = date(2026, 3, 21)
# Sunday evening before MONDAY, so the advance-notice rule never bites
NOW = datetime(2026, 3, 15, 18, 0)


def make_config(**kwargs):
    defaults = {
        "slot_duration_minutes": 60,
        "buffer_time_minutes": 15,
        "max_concurrent_bookings": 1,
        "booking_advance_days": 30,
        "min_booking_hours": 2,
        "allow_weekend_booking": True,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def weekly_row(open_time="09:00", close_time="17:00", break_start=None, break_end=None, is_open=True):
    return SimpleNamespace(
        is_open=is_open,
        open_time=open_time,
        close_time=close_time,
        break_start_time=break_start,
        break_end_time=break_end,
    )


class TestDayOfWeek:
    def test_sunday_is_zero(self):
        assert day_of_week(date(2026, 3, 15)) == 0
        assert day_of_week(MONDAY) == 1
        assert day_of_week(SATURDAY) == 6


class TestResolveOpeningHours:
    def test_weekly_schedule(self):
        hours = resolve_opening_hours(MONDAY, {1: weekly_row(break_start="12:00", break_end="13:00")})
        assert hours == OpeningHours("09:00", "17:00", "12:00", "13:00")

    def test_closed_when_no_schedule(self):
        assert resolve_opening_hours(MONDAY, {}) is None
        assert resolve_opening_hours(MONDAY, {1: weekly_row(is_open=False)}) is None

    def test_closed_override_wins(self):
        override = SimpleNamespace(is_closed=True, custom_open_time=None, custom_close_time=None)
        assert resolve_opening_hours(MONDAY, {1: weekly_row()}, override) is None

    def test_custom_hours_override_keeps_break(self):
        override = SimpleNamespace(is_closed=False, custom_open_time="10:00", custom_close_time="14:00")
        weekly = {1: weekly_row(break_start="12:00", break_end="12:30")}
        hours = resolve_opening_hours(MONDAY, weekly, override)
        assert hours == OpeningHours("10:00", "14:00", "12:00", "12:30")

    def test_custom_hours_open_a_closed_day(self):
        override = SimpleNamespace(is_closed=False, custom_open_time="10:00", custom_close_time="12:00")
        assert resolve_opening_hours(MONDAY, {}, override) == OpeningHours("10:00", "12:00")


class TestGenerateTimeSlots:
    def test_steps_by_duration_plus_buffer_and_skips_break(self):
        hours = OpeningHours("09:00", "17:00", "12:00", "13:00")
        slots = generate_time_slots(MONDAY, hours, make_config(), 60, {}, now=NOW)

        assert [s["time"] for s in slots] == ["09:00", "10:15", "14:00", "15:15"]
        assert all(s["available"] for s in slots)
        assert slots[0]["maxBookings"] == 1

    def test_service_must_fit_before_closing(self):
        hours = OpeningHours("09:00", "11:00")
        slots = generate_time_slots(MONDAY, hours, make_config(), 90, {}, now=NOW)
        assert [s["time"] for s in slots] == ["09:00"]

    def test_fully_booked_slot_unavailable(self):
        hours = OpeningHours("09:00", "12:00")
        config = make_config(max_concurrent_bookings=2)
        slots = generate_time_slots(MONDAY, hours, config, 60, {"09:00": 2, "10:15": 1}, now=NOW)

        by_time = {s["time"]: s for s in slots}
        assert by_time["09:00"]["available"] is False
        assert by_time["09:00"]["bookedCount"] == 2
        assert by_time["10:15"]["available"] is True

    def test_advance_notice(self):
        hours = OpeningHours("09:00", "17:00")
        now = datetime(2026, 3, 16, 9, 30)
        slots = generate_time_slots(MONDAY, hours, make_config(), 60, {}, now=now)

        by_time = {s["time"]: s["available"] for s in slots}
        assert by_time["09:00"] is False
        assert by_time["10:15"] is False
        assert by_time["11:30"] is True

    def test_past_date_has_no_slots(self):
        hours = OpeningHours("09:00", "17:00")
        assert generate_time_slots(date(2026, 3, 14), hours, make_config(), 60, {}, now=NOW) == []

    def test_beyond_advance_window_has_no_slots(self):
        hours = OpeningHours("09:00", "17:00")
        config = make_config(booking_advance_days=7)
        assert generate_time_slots(date(2026, 3, 23), hours, config, 60, {}, now=NOW) == []

    def test_weekend_booking_disabled(self):
        hours = OpeningHours("09:00", "17:00")
        config = make_config(allow_weekend_booking=False)
        assert generate_time_slots(SATURDAY, hours, config, 60, {}, now=NOW) == []
        assert generate_time_slots(SATURDAY, hours, make_config(), 60, {}, now=NOW) != []

    def test_closed_or_unconfigured(self):
        assert generate_time_slots(MONDAY, None, make_config(), 60, {}, now=NOW) == []
        assert generate_time_slots(MONDAY, OpeningHours("09:00", "17:00"), None, 60, {}, now=NOW) == []
