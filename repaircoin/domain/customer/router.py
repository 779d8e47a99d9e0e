"""Customer router - FastAPI endpoints for customer operations"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import Identity, ensure_self_or_admin, get_current_identity, require_admin
from ...database import get_db
from ...shared.validators import address_param
from .schemas import CustomerRegister, CustomerUpdate
from .service import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db)


@router.post("/register", status_code=201)
async def register_customer(
    data: CustomerRegister, service: CustomerService = Depends(get_customer_service)
):
    return {"success": True, "data": service.register(data), "message": "Customer registered"}


@router.get("/tier/{tier}")
async def customers_by_tier(
    tier: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    return {"success": True, "data": service.list_by_tier(tier, limit, (page - 1) * limit)}


@router.get("/{address}")
async def get_customer(
    address: str,
    identity: Identity = Depends(get_current_identity),
    service: CustomerService = Depends(get_customer_service),
):
    """Profile, tier benefits and earning capacity (self, shops and admins)"""
    address = address_param(address)
    if identity.role == "customer" and identity.address != address:
        raise HTTPException(status_code=403, detail="You can only access your own account")
    return {"success": True, "data": service.get_profile(address)}


@router.put("/{address}")
async def update_customer(
    address: str,
    data: CustomerUpdate,
    identity: Identity = Depends(get_current_identity),
    service: CustomerService = Depends(get_customer_service),
):
    address = address_param(address)
    ensure_self_or_admin(identity, address)
    return {"success": True, "data": service.update(address, data)}


@router.get("/{address}/balance")
async def customer_balance(
    address: str,
    identity: Identity = Depends(get_current_identity),
    service: CustomerService = Depends(get_customer_service),
):
    address = address_param(address)
    ensure_self_or_admin(identity, address)
    return {"success": True, "data": service.balance(address)}


@router.get("/{address}/transactions")
async def customer_transactions(
    address: str,
    type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    service: CustomerService = Depends(get_customer_service),
):
    address = address_param(address)
    ensure_self_or_admin(identity, address)
    result = service.transactions(address, type, limit, (page - 1) * limit)
    return {
        "success": True,
        "data": {
            "items": result["transactions"],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        },
    }


@router.get("/{address}/referrals")
async def customer_referrals(
    address: str,
    identity: Identity = Depends(get_current_identity),
    service: CustomerService = Depends(get_customer_service),
):
    address = address_param(address)
    if identity.address != address:
        raise HTTPException(status_code=403, detail="You can only access your own referrals")
    return {"success": True, "data": service.referrals(address)}
