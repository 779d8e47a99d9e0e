"""Webhook router - Stripe endpoint and admin webhook log views"""

import json
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import Identity, require_admin
from ...database import get_db
from ..billing.stripe_service import StripeNotConfiguredError, stripe_service
from .service import WebhookProcessingError, WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    """Dependency injection for WebhookService"""
    return WebhookService(db)


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """
    Handle Stripe webhook events

    Events handled:
    - customer.subscription.created / updated / deleted
    - invoice.payment_succeeded / payment_failed
    - checkout.session.completed (RCN purchases and subscription checkouts)
    - payment_intent.succeeded / payment_failed / canceled (service bookings)
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        stripe_service.construct_event(body, signature)
    except StripeNotConfiguredError as e:
        logger.error("❌ Stripe webhook received but no webhook secret is configured")
        raise HTTPException(status_code=503, detail="Webhooks are not configured") from e
    except ValueError as e:
        logger.error("❌ Invalid Stripe webhook payload")
        raise HTTPException(status_code=400, detail="Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.error("❌ Invalid Stripe webhook signature")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    # Handlers work on plain dicts, so use the verified raw body
    try:
        event = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON") from e
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise HTTPException(status_code=400, detail="Event id and type are required")

    try:
        return service.process_event(event)
    except WebhookProcessingError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})


# ============================================================================
# ADMIN LOG VIEWS
# ============================================================================


@router.get("/admin/webhooks/logs")
async def webhook_logs(
    source: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    eventType: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    result = service.list_logs(source, status, eventType, limit, (page - 1) * limit)
    return {
        "success": True,
        "data": {
            "items": result["logs"],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        },
    }


@router.get("/admin/webhooks/stats")
async def webhook_stats(
    hours: int = Query(24, ge=1, le=720),
    identity: Identity = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return {"success": True, "data": service.stats(hours)}


@router.post("/admin/webhooks/logs/{log_id}/retry")
async def retry_webhook(
    log_id: int,
    identity: Identity = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    logger.info(f"🔁 Admin {identity.address} retrying webhook log {log_id}")
    return {"success": True, "data": service.retry(log_id)}
