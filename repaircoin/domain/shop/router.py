"""Shop router - FastAPI endpoints for shops, rewards, purchases and promo codes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import (
    Identity,
    ensure_shop_access,
    get_optional_identity,
    require_shop,
    require_shop_or_admin,
)
from ...database import get_db
from ...shared.validators import address_param
from .promo_service import PromoCodeService
from .purchase_service import PurchaseService
from .reward_service import RewardService
from .schemas import (
    IssueRewardRequest,
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeValidate,
    PurchaseComplete,
    PurchaseInitiate,
    RedeemRequest,
    ShopRegister,
    ShopUpdate,
    TierBonusPreviewRequest,
)
from .service import ShopService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shops", tags=["Shops"])


def get_shop_service(db: Session = Depends(get_db)) -> ShopService:
    """Dependency injection for ShopService"""
    return ShopService(db)


def get_reward_service(db: Session = Depends(get_db)) -> RewardService:
    """Dependency injection for RewardService"""
    return RewardService(db)


def get_purchase_service(db: Session = Depends(get_db)) -> PurchaseService:
    """Dependency injection for PurchaseService"""
    return PurchaseService(db)


def get_promo_service(db: Session = Depends(get_db)) -> PromoCodeService:
    """Dependency injection for PromoCodeService"""
    return PromoCodeService(db)


# ============================================================================
# REGISTRATION AND DIRECTORY
# ============================================================================


@router.post("/register", status_code=201)
async def register_shop(data: ShopRegister, service: ShopService = Depends(get_shop_service)):
    """Register a new shop (unverified until an admin approves it)"""
    return {"success": True, "data": service.register(data), "message": "Shop registered"}


@router.get("")
async def list_shops(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: ShopService = Depends(get_shop_service),
):
    """Verified, active shops"""
    result = service.list_public(limit=limit, offset=(page - 1) * limit)
    return {
        "success": True,
        "data": {
            "items": result["shops"],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        },
    }


@router.get("/customer-lookup/{address}")
async def customer_lookup(
    address: str,
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    """Customer tier, balance and earning capacity before issuing a reward"""
    return {"success": True, "data": service.customer_lookup(address_param(address))}


# ============================================================================
# RCN PURCHASES
# ============================================================================


@router.get("/purchase/pricing")
async def purchase_pricing(
    identity: Optional[Identity] = Depends(get_optional_identity),
    service: PurchaseService = Depends(get_purchase_service),
):
    shop_id = identity.shop_id if identity and identity.role == "shop" else None
    return {"success": True, "data": service.get_pricing(shop_id)}


@router.post("/purchase/initiate", status_code=201)
async def initiate_purchase(
    data: PurchaseInitiate,
    identity: Identity = Depends(require_shop),
    service: PurchaseService = Depends(get_purchase_service),
):
    purchase = service.initiate(identity.shop_id, data.amount, data.paymentMethod)
    return {"success": True, "data": purchase}


@router.post("/purchase/complete")
async def complete_purchase(
    data: PurchaseComplete,
    identity: Identity = Depends(require_shop_or_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    shop_id = None if identity.is_admin else identity.shop_id
    purchase = service.complete(data.purchaseId, data.paymentReference, shop_id=shop_id)
    return {"success": True, "data": purchase, "message": "Purchase completed"}


@router.get("/purchase/balance/{shop_id}")
async def purchase_balance(
    shop_id: str,
    identity: Identity = Depends(require_shop_or_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.get_balance(shop_id)}


@router.get("/purchase/history/{shop_id}")
async def purchase_history(
    shop_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_shop_or_admin),
    service: PurchaseService = Depends(get_purchase_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.get_history(shop_id, limit, (page - 1) * limit)}


# ============================================================================
# TIER BONUS
# ============================================================================


@router.post("/tier-bonus/preview")
async def tier_bonus_preview(
    data: TierBonusPreviewRequest,
    identity: Identity = Depends(require_shop_or_admin),
    service: RewardService = Depends(get_reward_service),
):
    return {"success": True, "data": service.preview(data.customerAddress, data.repairAmount)}


@router.get("/tier-bonus/stats/{shop_id}")
async def tier_bonus_stats(
    shop_id: str,
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.tier_bonus_stats(shop_id)}


# ============================================================================
# SHOP PROFILE
# ============================================================================


@router.get("/{shop_id}")
async def get_shop(
    shop_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    service: ShopService = Depends(get_shop_service),
):
    return {"success": True, "data": service.get_profile(shop_id, identity)}


@router.put("/{shop_id}")
async def update_shop(
    shop_id: str,
    data: ShopUpdate,
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.update(shop_id, data)}


@router.get("/{shop_id}/dashboard")
async def shop_dashboard(
    shop_id: str,
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.dashboard(shop_id)}


@router.get("/{shop_id}/transactions")
async def shop_transactions(
    shop_id: str,
    type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    ensure_shop_access(identity, shop_id)
    result = service.transactions(shop_id, type, limit, (page - 1) * limit)
    return {
        "success": True,
        "data": {
            "items": result["transactions"],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        },
    }


@router.get("/{shop_id}/customers")
async def shop_customers(
    shop_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(require_shop_or_admin),
    service: ShopService = Depends(get_shop_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.customers(shop_id, limit, (page - 1) * limit)}


# ============================================================================
# REWARDS AND REDEMPTIONS
# ============================================================================


@router.post("/{shop_id}/issue-reward")
async def issue_reward(
    shop_id: str,
    data: IssueRewardRequest,
    identity: Identity = Depends(require_shop_or_admin),
    service: RewardService = Depends(get_reward_service),
):
    """Reward a customer for a completed repair"""
    ensure_shop_access(identity, shop_id)
    result = await service.issue_reward(
        shop_id,
        data.customerAddress,
        data.repairAmount,
        skip_tier_bonus=data.skipTierBonus,
        promo_code=data.promoCode,
    )
    return {"success": True, "data": result, "message": "Reward issued"}


@router.post("/{shop_id}/redeem")
async def redeem(
    shop_id: str,
    data: RedeemRequest,
    identity: Identity = Depends(require_shop_or_admin),
    service: RewardService = Depends(get_reward_service),
):
    """Redeem customer RCN against an approved redemption session"""
    ensure_shop_access(identity, shop_id)
    result = service.redeem(shop_id, data.customerAddress, data.amount, data.sessionId)
    return {"success": True, "data": result, "message": "Redemption processed"}


# ============================================================================
# PROMO CODES
# ============================================================================


@router.get("/{shop_id}/promo-codes")
async def list_promo_codes(
    shop_id: str,
    identity: Identity = Depends(require_shop_or_admin),
    service: PromoCodeService = Depends(get_promo_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.list_codes(shop_id)}


@router.post("/{shop_id}/promo-codes", status_code=201)
async def create_promo_code(
    shop_id: str,
    data: PromoCodeCreate,
    identity: Identity = Depends(require_shop_or_admin),
    service: PromoCodeService = Depends(get_promo_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.create_code(shop_id, data)}


@router.post("/{shop_id}/promo-codes/validate")
async def validate_promo_code(
    shop_id: str,
    data: PromoCodeValidate,
    identity: Identity = Depends(require_shop_or_admin),
    service: PromoCodeService = Depends(get_promo_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.validate_code(shop_id, data.code, data.customerAddress)}


@router.put("/{shop_id}/promo-codes/{promo_id}")
async def update_promo_code(
    shop_id: str,
    promo_id: int,
    data: PromoCodeUpdate,
    identity: Identity = Depends(require_shop_or_admin),
    service: PromoCodeService = Depends(get_promo_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.update_code(shop_id, promo_id, data)}


@router.delete("/{shop_id}/promo-codes/{promo_id}")
async def deactivate_promo_code(
    shop_id: str,
    promo_id: int,
    identity: Identity = Depends(require_shop_or_admin),
    service: PromoCodeService = Depends(get_promo_service),
):
    ensure_shop_access(identity, shop_id)
    return {"success": True, "data": service.deactivate_code(shop_id, promo_id)}
