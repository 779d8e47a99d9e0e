"""
Time slot generation for service bookings.

Slots start at opening time and step by slot duration + buffer. A slot is
offered only when the whole service fits before closing time and it does not
overlap the break.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ...shared.validators import minutes_to_time, time_to_minutes


@dataclass
class OpeningHours:
    open_time: str
    close_time: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None


def resolve_opening_hours(day: date, availability_by_day: dict, override=None) -> Optional[OpeningHours]:
    """
    Opening hours for a date: the date override wins over the weekly schedule.

    availability_by_day maps day_of_week (0 = Sunday) to a ShopAvailability row.
    Returns None when the shop is closed.
    """
    weekly = availability_by_day.get(day_of_week(day))

    if override is not None:
        if override.is_closed:
            return None
        if override.custom_open_time and override.custom_close_time:
            return OpeningHours(
                override.custom_open_time,
                override.custom_close_time,
                weekly.break_start_time if weekly else None,
                weekly.break_end_time if weekly else None,
            )

    if not weekly or not weekly.is_open or not weekly.open_time or not weekly.close_time:
        return None
    return OpeningHours(
        weekly.open_time, weekly.close_time, weekly.break_start_time, weekly.break_end_time
    )


def day_of_week(day: date) -> int:
    """0 = Sunday .. 6 = Saturday"""
    return (day.weekday() + 1) % 7


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def generate_time_slots(
    day: date,
    hours: Optional[OpeningHours],
    config,
    service_duration: int,
    booked_counts: dict,
    now: Optional[datetime] = None,
) -> list[dict]:
    """
    Build the slot list for one day.

    Args:
        day: booking date
        hours: opening hours for that date, None when closed
        config: TimeSlotConfig row
        service_duration: minutes the service occupies
        booked_counts: {"HH:MM": active bookings starting at that time}
        now: reference time for the advance-notice rule
    """
    if hours is None or config is None:
        return []

    # Booking dates and times are in UTC, like every stored timestamp
    now = now or datetime.utcnow()
    today = now.date()
    if day < today or day > today + timedelta(days=config.booking_advance_days):
        return []
    if is_weekend(day) and not config.allow_weekend_booking:
        return []

    open_minutes = time_to_minutes(hours.open_time)
    close_minutes = time_to_minutes(hours.close_time)
    break_start = time_to_minutes(hours.break_start) if hours.break_start else None
    break_end = time_to_minutes(hours.break_end) if hours.break_end else None

    step = config.slot_duration_minutes + config.buffer_time_minutes
    earliest = now + timedelta(hours=config.min_booking_hours)

    slots = []
    start = open_minutes
    while start + service_duration <= close_minutes:
        end = start + service_duration
        overlaps_break = (
            break_start is not None
            and break_end is not None
            and start < break_end
            and end > break_start
        )
        if not overlaps_break:
            label = minutes_to_time(start)
            slot_start = datetime.combine(day, datetime.min.time()) + timedelta(minutes=start)
            booked = booked_counts.get(label, 0)
            slots.append(
                {
                    "time": label,
                    "available": slot_start >= earliest and booked < config.max_concurrent_bookings,
                    "bookedCount": booked,
                    "maxBookings": config.max_concurrent_bookings,
                }
            )
        start += step
    return slots
