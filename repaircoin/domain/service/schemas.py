"""Service domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import (
    DateOverride,
    ServiceOrder,
    ShopAvailability,
    ShopService,
    TimeSlotConfig,
)
from ...shared.validators import time_to_minutes, validate_time


class ServiceCreate(BaseModel):
    """Schema for creating a service listing"""

    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    priceUsd: float = Field(..., gt=0)
    durationMinutes: Optional[int] = Field(None, gt=0)
    imageUrl: Optional[str] = None
    tags: list[str] = []


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    priceUsd: Optional[float] = Field(None, gt=0)
    durationMinutes: Optional[int] = Field(None, gt=0)
    imageUrl: Optional[str] = None
    tags: Optional[list[str]] = None
    active: Optional[bool] = None


class AvailabilityUpdate(BaseModel):
    """One day of the weekly schedule (0 = Sunday)"""

    dayOfWeek: int = Field(..., ge=0, le=6)
    isOpen: bool = True
    openTime: Optional[str] = None
    closeTime: Optional[str] = None
    breakStartTime: Optional[str] = None
    breakEndTime: Optional[str] = None

    @field_validator("openTime", "closeTime", "breakStartTime", "breakEndTime")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return validate_time(v)

    @model_validator(mode="after")
    def check_hours(self):
        if self.isOpen:
            if not self.openTime or not self.closeTime:
                raise ValueError("Open days need openTime and closeTime")
            if time_to_minutes(self.openTime) >= time_to_minutes(self.closeTime):
                raise ValueError("closeTime must be after openTime")
        if bool(self.breakStartTime) != bool(self.breakEndTime):
            raise ValueError("Break needs both breakStartTime and breakEndTime")
        if self.breakStartTime and time_to_minutes(self.breakStartTime) >= time_to_minutes(
            self.breakEndTime
        ):
            raise ValueError("breakEndTime must be after breakStartTime")
        return self


class TimeSlotConfigUpdate(BaseModel):
    slotDurationMinutes: Optional[int] = Field(None, gt=0)
    bufferTimeMinutes: Optional[int] = Field(None, ge=0)
    maxConcurrentBookings: Optional[int] = Field(None, ge=1)
    bookingAdvanceDays: Optional[int] = Field(None, ge=1)
    minBookingHours: Optional[int] = Field(None, ge=0)
    allowWeekendBooking: Optional[bool] = None


class DateOverrideCreate(BaseModel):
    overrideDate: date
    isClosed: bool = False
    customOpenTime: Optional[str] = None
    customCloseTime: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("customOpenTime", "customCloseTime")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return validate_time(v)

    @model_validator(mode="after")
    def check_hours(self):
        if self.isClosed:
            return self
        if not self.customOpenTime or not self.customCloseTime:
            raise ValueError("Provide customOpenTime and customCloseTime or set isClosed")
        if time_to_minutes(self.customOpenTime) >= time_to_minutes(self.customCloseTime):
            raise ValueError("customCloseTime must be after customOpenTime")
        return self


class ServiceDurationUpdate(BaseModel):
    durationMinutes: int = Field(..., gt=0)


class CreatePaymentIntentRequest(BaseModel):
    serviceId: str
    bookingDate: Optional[date] = None
    bookingTime: Optional[str] = None
    rcnToRedeem: float = Field(0, ge=0)
    notes: Optional[str] = None

    @field_validator("bookingTime")
    @classmethod
    def validate_booking_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time(v)

    @model_validator(mode="after")
    def check_booking(self):
        if self.bookingTime and not self.bookingDate:
            raise ValueError("bookingDate is required when bookingTime is given")
        return self


class ConfirmPaymentRequest(BaseModel):
    paymentIntentId: str


class OrderStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in ("paid", "completed", "cancelled", "no_show", "refunded"):
            raise ValueError("Invalid order status")
        return v


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = None


def serialize_service(s: ShopService) -> dict:
    return {
        "serviceId": s.service_id,
        "shopId": s.shop_id,
        "shopName": s.shop.name if s.shop else None,
        "name": s.name,
        "description": s.description,
        "category": s.category,
        "priceUsd": s.price_usd,
        "durationMinutes": s.duration_minutes,
        "imageUrl": s.image_url,
        "tags": s.tags or [],
        "active": s.active,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
    }


def serialize_availability(a: ShopAvailability) -> dict:
    return {
        "dayOfWeek": a.day_of_week,
        "isOpen": a.is_open,
        "openTime": a.open_time,
        "closeTime": a.close_time,
        "breakStartTime": a.break_start_time,
        "breakEndTime": a.break_end_time,
    }


def serialize_config(c: TimeSlotConfig) -> dict:
    return {
        "shopId": c.shop_id,
        "slotDurationMinutes": c.slot_duration_minutes,
        "bufferTimeMinutes": c.buffer_time_minutes,
        "maxConcurrentBookings": c.max_concurrent_bookings,
        "bookingAdvanceDays": c.booking_advance_days,
        "minBookingHours": c.min_booking_hours,
        "allowWeekendBooking": c.allow_weekend_booking,
    }


def serialize_override(o: DateOverride) -> dict:
    return {
        "id": o.id,
        "overrideDate": o.override_date.isoformat(),
        "isClosed": o.is_closed,
        "customOpenTime": o.custom_open_time,
        "customCloseTime": o.custom_close_time,
        "reason": o.reason,
    }


def serialize_order(o: ServiceOrder) -> dict:
    return {
        "orderId": o.order_id,
        "serviceId": o.service_id,
        "serviceName": o.service.name if o.service else None,
        "shopId": o.shop_id,
        "customerAddress": o.customer_address,
        "status": o.status,
        "totalAmount": o.total_amount,
        "rcnRedeemed": o.rcn_redeemed,
        "rcnDiscountUsd": o.rcn_discount_usd,
        "finalAmount": o.final_amount,
        "stripePaymentIntentId": o.stripe_payment_intent_id,
        "bookingDate": o.booking_date.isoformat() if o.booking_date else None,
        "bookingTime": o.booking_time,
        "bookingEndTime": o.booking_end_time,
        "notes": o.notes,
        "rcnEarned": o.rcn_earned,
        "paidAt": o.paid_at.isoformat() if o.paid_at else None,
        "completedAt": o.completed_at.isoformat() if o.completed_at else None,
        "cancelledAt": o.cancelled_at.isoformat() if o.cancelled_at else None,
        "cancellationReason": o.cancellation_reason,
        "stripeRefundId": o.stripe_refund_id,
        "refundedAt": o.refunded_at.isoformat() if o.refunded_at else None,
        "createdAt": o.created_at.isoformat() if o.created_at else None,
    }
