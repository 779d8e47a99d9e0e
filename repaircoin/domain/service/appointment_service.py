"""Appointment service - weekly schedule, slot configuration, overrides and slots"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import DateOverride, ServiceDuration, ShopAvailability, ShopService, TimeSlotConfig
from .repository import AppointmentRepository, ServiceRepository
from .schemas import (
    AvailabilityUpdate,
    DateOverrideCreate,
    TimeSlotConfigUpdate,
    serialize_availability,
    serialize_config,
    serialize_order,
    serialize_override,
)
from .slots import generate_time_slots, resolve_opening_hours

logger = logging.getLogger(__name__)


class AppointmentService:
    """Service layer for booking availability"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ============================================================================
    # WEEKLY AVAILABILITY
    # ============================================================================

    def get_availability(self, shop_id: str) -> list[dict]:
        return [serialize_availability(a) for a in self.repo.get_availability(self.db, shop_id)]

    def update_availability(self, shop_id: str, data: AvailabilityUpdate) -> dict:
        """Upsert one day of the weekly schedule"""
        row = self.repo.get_day(self.db, shop_id, data.dayOfWeek)
        if not row:
            row = ShopAvailability(shop_id=shop_id, day_of_week=data.dayOfWeek)
            self.db.add(row)

        row.is_open = data.isOpen
        row.open_time = data.openTime
        row.close_time = data.closeTime
        row.break_start_time = data.breakStartTime
        row.break_end_time = data.breakEndTime

        self.db.commit()
        self.db.refresh(row)
        logger.info(f"📅 Availability updated for {shop_id} day {data.dayOfWeek}")
        return serialize_availability(row)

    # ============================================================================
    # SLOT CONFIGURATION
    # ============================================================================

    def get_config(self, shop_id: str) -> Optional[dict]:
        config = self.repo.get_config(self.db, shop_id)
        return serialize_config(config) if config else None

    def update_config(self, shop_id: str, data: TimeSlotConfigUpdate) -> dict:
        config = self.repo.get_config(self.db, shop_id)
        if not config:
            config = TimeSlotConfig(
                shop_id=shop_id,
                slot_duration_minutes=60,
                buffer_time_minutes=15,
                max_concurrent_bookings=1,
                booking_advance_days=30,
                min_booking_hours=2,
                allow_weekend_booking=True,
            )
            self.db.add(config)

        field_map = {
            "slotDurationMinutes": "slot_duration_minutes",
            "bufferTimeMinutes": "buffer_time_minutes",
            "maxConcurrentBookings": "max_concurrent_bookings",
            "bookingAdvanceDays": "booking_advance_days",
            "minBookingHours": "min_booking_hours",
            "allowWeekendBooking": "allow_weekend_booking",
        }
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(config, field_map[field], value)

        self.db.commit()
        self.db.refresh(config)
        return serialize_config(config)

    # ============================================================================
    # DATE OVERRIDES
    # ============================================================================

    def list_overrides(
        self, shop_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[dict]:
        return [serialize_override(o) for o in self.repo.list_overrides(self.db, shop_id, start, end)]

    def create_override(self, shop_id: str, data: DateOverrideCreate) -> dict:
        """Create or replace the override for a date"""
        override = self.repo.get_override(self.db, shop_id, data.overrideDate)
        if not override:
            override = DateOverride(shop_id=shop_id, override_date=data.overrideDate)
            self.db.add(override)

        override.is_closed = data.isClosed
        override.custom_open_time = None if data.isClosed else data.customOpenTime
        override.custom_close_time = None if data.isClosed else data.customCloseTime
        override.reason = data.reason

        self.db.commit()
        self.db.refresh(override)
        return serialize_override(override)

    def delete_override(self, shop_id: str, day: date) -> dict:
        override = self.repo.get_override(self.db, shop_id, day)
        if not override:
            raise HTTPException(status_code=404, detail="Date override not found")
        self.db.delete(override)
        self.db.commit()
        return {"overrideDate": day.isoformat(), "deleted": True}

    # ============================================================================
    # SERVICE DURATION
    # ============================================================================

    def set_service_duration(self, shop_id: str, service_id: str, minutes: int) -> dict:
        service = ServiceRepository.get(self.db, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        if service.shop_id != shop_id:
            raise HTTPException(status_code=403, detail="You can only manage your own services")

        row = self.repo.get_service_duration(self.db, service_id)
        if not row:
            row = ServiceDuration(service_id=service_id, duration_minutes=minutes)
            self.db.add(row)
        else:
            row.duration_minutes = minutes
        self.db.commit()
        return {"serviceId": service_id, "durationMinutes": minutes}

    def resolve_service_duration(self, service: ShopService, config: TimeSlotConfig) -> int:
        """Per-service override, then the listing's own duration, then slot length"""
        override = self.repo.get_service_duration(self.db, service.service_id)
        if override:
            return override.duration_minutes
        if service.duration_minutes:
            return service.duration_minutes
        return config.slot_duration_minutes

    # ============================================================================
    # TIME SLOTS
    # ============================================================================

    def slots_for(self, service: ShopService, day: date, now: Optional[datetime] = None) -> list[dict]:
        config = self.repo.get_config(self.db, service.shop_id)
        if not config:
            return []

        availability = {a.day_of_week: a for a in self.repo.get_availability(self.db, service.shop_id)}
        override = self.repo.get_override(self.db, service.shop_id, day)
        hours = resolve_opening_hours(day, availability, override)

        return generate_time_slots(
            day,
            hours,
            config,
            self.resolve_service_duration(service, config),
            self.repo.booked_counts(self.db, service.shop_id, day),
            now=now,
        )

    def available_slots(self, shop_id: str, service_id: str, day: date) -> list[dict]:
        service = ServiceRepository.get(self.db, service_id)
        if not service or service.shop_id != shop_id:
            raise HTTPException(status_code=404, detail="Service not found")
        return self.slots_for(service, day)

    def calendar(self, shop_id: str, start: date, end: date) -> list[dict]:
        if end < start:
            raise HTTPException(status_code=400, detail="endDate must not be before startDate")
        return [serialize_order(o) for o in self.repo.bookings_between(self.db, shop_id, start, end)]
