"""Token router - verification, redemption sessions, transfers and stats"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Identity, get_current_identity, require_customer, require_shop
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ...shared.validators import address_param
from .redemption_service import RedemptionSessionService
from .schemas import (
    CreateSessionRequest,
    RedemptionVerifyRequest,
    SessionActionRequest,
    TransferRequest,
)
from .service import TokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["Tokens"])

session_rate_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="redemption_session")


def get_token_service(db: Session = Depends(get_db)) -> TokenService:
    """Dependency injection for TokenService"""
    return TokenService(db)


def get_session_service(db: Session = Depends(get_db)) -> RedemptionSessionService:
    """Dependency injection for RedemptionSessionService"""
    return RedemptionSessionService(db)


# ============================================================================
# VERIFICATION
# ============================================================================


@router.get("/verification/balance/{address}")
async def verification_balance(address: str, service: TokenService = Depends(get_token_service)):
    """Redeemable balance and earning capacity for a wallet"""
    return {"success": True, "data": await service.get_verification_balance(address_param(address))}


@router.post("/verification/redemption")
async def verify_redemption(
    data: RedemptionVerifyRequest, service: TokenService = Depends(get_token_service)
):
    """Check whether a redemption would be allowed, without side effects"""
    return {
        "success": True,
        "data": service.verify_redemption(data.customerAddress, data.shopId, data.amount),
    }


@router.get("/verification/earning-sources/{address}")
async def earning_sources(address: str, service: TokenService = Depends(get_token_service)):
    """Earnings broken down per shop"""
    return {"success": True, "data": service.get_earning_sources(address_param(address))}


# ============================================================================
# REDEMPTION SESSIONS
# ============================================================================


@router.post("/redemption-session/create")
async def create_session(
    data: CreateSessionRequest,
    identity: Identity = Depends(require_shop),
    service: RedemptionSessionService = Depends(get_session_service),
    _: None = Depends(session_rate_limit),
):
    session = service.create_session(identity.shop_id, data.customerAddress, data.amount)
    return {"success": True, "data": session, "message": "Redemption session created"}


@router.post("/redemption-session/approve")
async def approve_session(
    data: SessionActionRequest,
    identity: Identity = Depends(require_customer),
    service: RedemptionSessionService = Depends(get_session_service),
):
    return {"success": True, "data": service.approve_session(data.sessionId, identity.address)}


@router.post("/redemption-session/reject")
async def reject_session(
    data: SessionActionRequest,
    identity: Identity = Depends(require_customer),
    service: RedemptionSessionService = Depends(get_session_service),
):
    return {"success": True, "data": service.reject_session(data.sessionId, identity.address)}


@router.post("/redemption-session/cancel")
async def cancel_session(
    data: SessionActionRequest,
    identity: Identity = Depends(require_shop),
    service: RedemptionSessionService = Depends(get_session_service),
):
    return {"success": True, "data": service.cancel_session(data.sessionId, identity.shop_id)}


@router.get("/redemption-session/status/{session_id}")
async def session_status(
    session_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RedemptionSessionService = Depends(get_session_service),
):
    return {"success": True, "data": service.get_status(session_id, identity)}


@router.get("/redemption-session/my-sessions")
async def my_sessions(
    identity: Identity = Depends(require_customer),
    service: RedemptionSessionService = Depends(get_session_service),
):
    return {"success": True, "data": service.my_sessions(identity.address)}


# ============================================================================
# TRANSFERS
# ============================================================================


@router.post("/transfer")
async def transfer(
    data: TransferRequest,
    identity: Identity = Depends(require_customer),
    service: TokenService = Depends(get_token_service),
):
    """Gift RCN to another registered customer"""
    result = service.transfer(identity.address, data.toAddress, data.amount, data.message)
    return {"success": True, "data": result, "message": "Transfer completed"}


@router.get("/transfer/history")
async def transfer_history(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(require_customer),
    service: TokenService = Depends(get_token_service),
):
    return {
        "success": True,
        "data": service.transfer_history(identity.address, limit=limit, offset=(page - 1) * limit),
    }


# ============================================================================
# STATS
# ============================================================================


@router.get("/stats")
async def token_stats(service: TokenService = Depends(get_token_service)):
    """Public token statistics"""
    return {"success": True, "data": service.get_stats()}
