"""Service router - marketplace listings, appointments and booking orders"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import (
    Identity,
    get_current_identity,
    get_optional_identity,
    require_customer,
    require_shop,
    require_shop_or_admin,
)
from ...database import get_db
from .appointment_service import AppointmentService
from .listing_service import ListingService
from .order_service import OrderService
from .schemas import (
    AvailabilityUpdate,
    ConfirmPaymentRequest,
    CreatePaymentIntentRequest,
    DateOverrideCreate,
    OrderCancelRequest,
    OrderStatusUpdate,
    ServiceCreate,
    ServiceDurationUpdate,
    ServiceUpdate,
    TimeSlotConfigUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])


def get_listing_service(db: Session = Depends(get_db)) -> ListingService:
    """Dependency injection for ListingService"""
    return ListingService(db)


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    return OrderService(db)


# ============================================================================
# CATALOGUE
# ============================================================================


@router.post("", status_code=201)
async def create_service(
    data: ServiceCreate,
    identity: Identity = Depends(require_shop),
    service: ListingService = Depends(get_listing_service),
):
    return {"success": True, "data": service.create(identity.shop_id, data)}


@router.get("")
async def search_services(
    shopId: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    minPrice: Optional[float] = Query(None, ge=0),
    maxPrice: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: ListingService = Depends(get_listing_service),
):
    """Public marketplace search"""
    result = service.search(
        shop_id=shopId,
        category=category,
        search=search,
        min_price=minPrice,
        max_price=maxPrice,
        page=page,
        limit=limit,
    )
    return {"success": True, "data": result}


@router.get("/shop/{shop_id}")
async def shop_services(
    shop_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    service: ListingService = Depends(get_listing_service),
):
    owner = identity is not None and (
        identity.is_admin or (identity.role == "shop" and identity.shop_id == shop_id)
    )
    return {"success": True, "data": service.list_for_shop(shop_id, include_inactive=owner)}


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("/appointments/shop-availability/{shop_id}")
async def get_shop_availability(
    shop_id: str, service: AppointmentService = Depends(get_appointment_service)
):
    return {"success": True, "data": service.get_availability(shop_id)}


@router.put("/appointments/shop-availability")
async def update_shop_availability(
    data: AvailabilityUpdate,
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.update_availability(identity.shop_id, data)}


@router.get("/appointments/time-slot-config")
async def get_time_slot_config(
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.get_config(identity.shop_id)}


@router.put("/appointments/time-slot-config")
async def update_time_slot_config(
    data: TimeSlotConfigUpdate,
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.update_config(identity.shop_id, data)}


@router.get("/appointments/date-overrides")
async def list_date_overrides(
    startDate: Optional[date] = Query(None),
    endDate: Optional[date] = Query(None),
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.list_overrides(identity.shop_id, startDate, endDate)}


@router.post("/appointments/date-overrides", status_code=201)
async def create_date_override(
    data: DateOverrideCreate,
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.create_override(identity.shop_id, data)}


@router.delete("/appointments/date-overrides/{override_date}")
async def delete_date_override(
    override_date: date,
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.delete_override(identity.shop_id, override_date)}


@router.put("/appointments/service-duration/{service_id}")
async def update_service_duration(
    service_id: str,
    data: ServiceDurationUpdate,
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    result = service.set_service_duration(identity.shop_id, service_id, data.durationMinutes)
    return {"success": True, "data": result}


@router.get("/appointments/available-slots")
async def available_slots(
    shopId: str = Query(...),
    serviceId: str = Query(...),
    day: date = Query(..., alias="date"),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Bookable start times for a service on a date"""
    return {"success": True, "data": service.available_slots(shopId, serviceId, day)}


@router.get("/appointments/calendar")
async def booking_calendar(
    startDate: date = Query(...),
    endDate: date = Query(...),
    identity: Identity = Depends(require_shop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return {"success": True, "data": service.calendar(identity.shop_id, startDate, endDate)}


# ============================================================================
# ORDERS
# ============================================================================


@router.post("/orders/create-payment-intent", status_code=201)
async def create_payment_intent(
    data: CreatePaymentIntentRequest,
    identity: Identity = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return {"success": True, "data": service.create_payment_intent(identity.address, data)}


@router.post("/orders/confirm")
async def confirm_payment(
    data: ConfirmPaymentRequest,
    identity: Identity = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return {"success": True, "data": service.confirm(identity.address, data.paymentIntentId)}


@router.get("/orders/customer")
async def customer_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    result = service.list_orders(customer_address=identity.address, status=status, page=page, limit=limit)
    return {"success": True, "data": result}


@router.get("/orders/shop")
async def shop_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_shop),
    service: OrderService = Depends(get_order_service),
):
    result = service.list_orders(shop_id=identity.shop_id, status=status, page=page, limit=limit)
    return {"success": True, "data": result}


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    identity: Identity = Depends(get_current_identity),
    service: OrderService = Depends(get_order_service),
):
    return {"success": True, "data": service.get_for(order_id, identity)}


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    identity: Identity = Depends(require_shop_or_admin),
    service: OrderService = Depends(get_order_service),
):
    result = await service.update_status(
        order_id, data.status, shop_id=identity.shop_id, is_admin=identity.is_admin
    )
    return {"success": True, "data": result}


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    data: Optional[OrderCancelRequest] = None,
    identity: Identity = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    reason = data.reason if data else None
    return {"success": True, "data": service.cancel_by_customer(order_id, identity.address, reason)}


# ============================================================================
# ANALYTICS
# ============================================================================


@router.get("/analytics/shop")
async def shop_analytics(
    identity: Identity = Depends(require_shop),
    service: OrderService = Depends(get_order_service),
):
    return {"success": True, "data": service.analytics(identity.shop_id)}


# ============================================================================
# SINGLE LISTING
# ============================================================================


@router.get("/{service_id}")
async def get_service(service_id: str, service: ListingService = Depends(get_listing_service)):
    return {"success": True, "data": service.get(service_id)}


@router.put("/{service_id}")
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    identity: Identity = Depends(require_shop),
    service: ListingService = Depends(get_listing_service),
):
    return {"success": True, "data": service.update(service_id, identity.shop_id, data)}


@router.delete("/{service_id}")
async def delete_service(
    service_id: str,
    identity: Identity = Depends(require_shop),
    service: ListingService = Depends(get_listing_service),
):
    return {"success": True, "data": service.delete(service_id, identity.shop_id)}
