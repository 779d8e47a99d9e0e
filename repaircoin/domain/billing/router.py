"""Billing router - shop subscription endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import Identity, require_shop
from ...database import get_db
from .schemas import SubscriptionCancelRequest
from .subscription_service import SubscriptionService

router = APIRouter(prefix="/shops/subscription", tags=["Billing"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


@router.post("/subscribe", status_code=201)
async def subscribe(
    identity: Identity = Depends(require_shop),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Start the monthly plan via Stripe Checkout"""
    return {"success": True, "data": service.subscribe(identity.shop_id)}


@router.get("/status")
async def subscription_status(
    identity: Identity = Depends(require_shop),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return {"success": True, "data": service.status(identity.shop_id)}


@router.post("/cancel")
async def cancel_subscription(
    data: Optional[SubscriptionCancelRequest] = None,
    identity: Identity = Depends(require_shop),
    service: SubscriptionService = Depends(get_subscription_service),
):
    data = data or SubscriptionCancelRequest()
    result = service.cancel(identity.shop_id, reason=data.reason, immediate=data.immediate)
    return {"success": True, "data": result, "message": "Subscription cancelled"}


@router.post("/sync")
async def sync_subscription(
    identity: Identity = Depends(require_shop),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return {"success": True, "data": service.sync(identity.shop_id)}
