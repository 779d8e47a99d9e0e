"""Admin router - FastAPI endpoints for platform administration"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Identity, require_admin
from ...database import get_db
from ...shared.validators import address_param
from ..billing.schemas import AdminSubscriptionAction
from ..billing.subscription_service import SubscriptionService
from .schemas import AdminCreate, MintRequest, RcgBalanceUpdate, SuspendRequest
from .service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    """Dependency injection for AdminService"""
    return AdminService(db)


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


def _page(items: list, total: int, page: int, limit: int) -> dict:
    return {"items": items, "pagination": {"page": page, "limit": limit, "total": total}}


# ============================================================================
# PLATFORM
# ============================================================================


@router.get("/stats")
async def platform_stats(
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.platform_stats()}


@router.get("/treasury")
async def treasury(
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.treasury()}


@router.get("/analytics/activity")
async def activity(
    days: int = Query(30, ge=1, le=365),
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.activity(days)}


# ============================================================================
# SHOPS
# ============================================================================


@router.get("/shops")
async def list_shops(
    verified: Optional[bool] = Query(None),
    active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = service.list_shops(verified, active, limit, (page - 1) * limit)
    return {"success": True, "data": _page(result["shops"], result["total"], page, limit)}


@router.get("/shops/pending")
async def pending_shops(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Active shops waiting for verification"""
    result = service.list_shops(False, True, limit, (page - 1) * limit)
    return {"success": True, "data": _page(result["shops"], result["total"], page, limit)}


@router.post("/shops/{shop_id}/verify")
async def verify_shop(
    shop_id: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.verify_shop(shop_id, identity.address), "message": "Shop verified"}


@router.post("/shops/{shop_id}/suspend")
async def suspend_shop(
    shop_id: str,
    data: SuspendRequest,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.suspend_shop(shop_id, data.reason, identity.address)}


@router.post("/shops/{shop_id}/unsuspend")
async def unsuspend_shop(
    shop_id: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.unsuspend_shop(shop_id, identity.address)}


@router.put("/shops/{shop_id}/rcg-balance")
async def update_rcg_balance(
    shop_id: str,
    data: RcgBalanceUpdate,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.set_rcg_balance(shop_id, data.rcgBalance)}


@router.post("/shops/{shop_id}/pause")
async def pause_shop(
    shop_id: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.pause_shop(shop_id)}


@router.post("/shops/{shop_id}/resume")
async def resume_shop(
    shop_id: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.resume_shop(shop_id)}


@router.post("/shops/{shop_id}/mint-balance")
async def mint_shop_balance(
    shop_id: str,
    data: MintRequest,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = service.mint_shop_balance(shop_id, data.amount, data.reason, identity.address)
    return {"success": True, "data": result}


# ============================================================================
# CUSTOMERS
# ============================================================================


@router.get("/customers")
async def list_customers(
    tier: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = service.list_customers(tier, active, search, limit, (page - 1) * limit)
    return {"success": True, "data": _page(result["customers"], result["total"], page, limit)}


@router.post("/customers/{address}/suspend")
async def suspend_customer(
    address: str,
    data: SuspendRequest,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = service.suspend_customer(address_param(address), data.reason, identity.address)
    return {"success": True, "data": result}


@router.post("/customers/{address}/unsuspend")
async def unsuspend_customer(
    address: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.unsuspend_customer(address_param(address), identity.address)}


@router.post("/customers/{address}/mint")
async def mint_to_customer(
    address: str,
    data: MintRequest,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = await service.mint_to_customer(
        address_param(address), data.amount, data.reason, identity.address
    )
    return {"success": True, "data": result, "message": "Tokens minted"}


# ============================================================================
# ADMINS
# ============================================================================


@router.get("/admins")
async def list_admins(
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.list_admins()}


@router.post("/admins", status_code=201)
async def create_admin(
    data: AdminCreate,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.create_admin(data, identity)}


@router.delete("/admins/{address}")
async def remove_admin(
    address: str,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.remove_admin(address_param(address), identity)}


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


@router.get("/subscriptions")
async def list_subscriptions(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = service.list_all(status, limit, (page - 1) * limit)
    return {"success": True, "data": _page(result["subscriptions"], result["total"], page, limit)}


@router.post("/subscriptions/{subscription_id}/pause")
async def pause_subscription(
    subscription_id: int,
    identity: Identity = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return {"success": True, "data": service.admin_pause(subscription_id)}


@router.post("/subscriptions/{subscription_id}/resume")
async def resume_subscription(
    subscription_id: int,
    identity: Identity = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return {"success": True, "data": service.admin_resume(subscription_id)}


@router.post("/subscriptions/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: int,
    data: Optional[AdminSubscriptionAction] = None,
    identity: Identity = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    reason = data.reason if data else None
    return {"success": True, "data": service.admin_cancel(subscription_id, reason)}


# ============================================================================
# ALERTS
# ============================================================================


@router.get("/alerts")
async def list_alerts(
    resolved: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    result = service.list_alerts(resolved, limit, (page - 1) * limit)
    return {"success": True, "data": _page(result["alerts"], result["total"], page, limit)}


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(
    alert_id: int,
    identity: Identity = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return {"success": True, "data": service.resolve_alert(alert_id, identity.address)}
