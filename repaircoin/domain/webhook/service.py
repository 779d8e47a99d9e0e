"""
Stripe webhook processing

Every event is logged before dispatch so failures can be inspected and
retried from the admin API. Events already processed are acknowledged
without running the handlers again.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import WebhookLog
from ..admin.repository import AdminRepository
from ..billing.subscription_service import SubscriptionService
from ..service.order_service import OrderService
from ..shop.purchase_service import PurchaseService
from .repository import WebhookLogRepository

logger = logging.getLogger(__name__)


class WebhookProcessingError(Exception):
    """A handler failed; the event is stored as failed and Stripe should retry"""


def serialize_log(log: WebhookLog, include_payload: bool = False) -> dict:
    data = {
        "id": log.id,
        "eventId": log.event_id,
        "eventType": log.event_type,
        "source": log.source,
        "status": log.status,
        "errorMessage": log.error_message,
        "attempts": log.attempts,
        "processingTimeMs": log.processing_time_ms,
        "processedAt": log.processed_at.isoformat() if log.processed_at else None,
        "createdAt": log.created_at.isoformat() if log.created_at else None,
    }
    if include_payload:
        data["payload"] = log.payload
    return data


class WebhookService:
    """Logs, deduplicates and dispatches Stripe events"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookLogRepository()

    def _handler_for(self, event_type: str, obj: dict) -> Optional[Callable[[dict], dict]]:
        metadata = obj.get("metadata") or {}
        subscriptions = SubscriptionService(self.db)

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            return subscriptions.apply_stripe_subscription
        if event_type == "customer.subscription.deleted":
            return subscriptions.handle_subscription_deleted
        if event_type in ("invoice.payment_succeeded", "invoice.paid"):
            return subscriptions.handle_invoice_paid
        if event_type == "invoice.payment_failed":
            return subscriptions.handle_invoice_failed

        if event_type == "checkout.session.completed":
            if metadata.get("type") == "rcn_purchase":
                purchases = PurchaseService(self.db)
                return lambda session: {"handled": True, "completed": purchases.complete_from_checkout(session)}
            if metadata.get("type") == "shop_subscription" or obj.get("mode") == "subscription":
                return subscriptions.handle_checkout_completed
            return None

        if event_type.startswith("payment_intent.") and metadata.get("type") == "service_booking":
            orders = OrderService(self.db)
            if event_type == "payment_intent.succeeded":
                return orders.handle_payment_success
            if event_type in ("payment_intent.payment_failed", "payment_intent.canceled"):
                return orders.handle_payment_failure

        # Charges do not carry the PaymentIntent metadata; the order is found by intent id
        if event_type == "charge.refunded" and obj.get("payment_intent"):
            return OrderService(self.db).handle_refund
        return None

    def process_event(self, event: dict, source: str = "stripe") -> dict:
        event_id = event.get("id")
        event_type = event.get("type") or "unknown"
        obj = (event.get("data") or {}).get("object") or {}

        log = self.repo.get_by_event_id(self.db, event_id)
        if log and log.status == "processed":
            logger.info(f"ℹ️ Duplicate webhook {event_id} ({event_type}) ignored")
            return {"received": True, "duplicate": True}

        if log:
            log.attempts = (log.attempts or 0) + 1
            log.status = "received"
        else:
            log = WebhookLog(
                event_id=event_id,
                event_type=event_type,
                source=source,
                payload=event,
                status="received",
                attempts=1,
                created_at=datetime.utcnow(),
            )
            self.db.add(log)
        self.db.commit()
        log_id = log.id

        logger.info(f"📥 Received {source} webhook: {event_type} ({event_id})")
        return self._run(log_id, event_type, obj)

    def _run(self, log_id: int, event_type: str, obj: dict) -> dict:
        started = time.perf_counter()
        handler = self._handler_for(event_type, obj)

        if handler is None:
            log = self.repo.get(self.db, log_id)
            log.status = "ignored"
            log.processing_time_ms = int((time.perf_counter() - started) * 1000)
            log.processed_at = datetime.utcnow()
            self.db.commit()
            logger.info(f"ℹ️ Unhandled event type: {event_type}")
            return {"received": True, "ignored": True}

        try:
            result = handler(obj)
        except Exception as e:
            self.db.rollback()
            message = e.detail if isinstance(e, HTTPException) else str(e)
            log = self.repo.get(self.db, log_id)
            log.status = "failed"
            log.error_message = str(message)[:2000]
            log.processing_time_ms = int((time.perf_counter() - started) * 1000)
            AdminRepository.create_alert(
                self.db,
                "webhook_failure",
                f"Webhook {event_type} failed",
                str(message)[:500],
                severity="high",
                details={"eventId": log.event_id, "webhookLogId": log.id},
            )
            self.db.commit()
            logger.error(f"❌ Webhook {log.event_id} ({event_type}) failed: {message}")
            raise WebhookProcessingError(str(message)) from e

        log = self.repo.get(self.db, log_id)
        log.status = "processed"
        log.error_message = None
        log.processing_time_ms = int((time.perf_counter() - started) * 1000)
        log.processed_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"✅ Webhook {log.event_id} ({event_type}) processed")
        return {"received": True, "result": result}

    # ============================================================================
    # ADMIN
    # ============================================================================

    def list_logs(self, source, status, event_type, limit: int, offset: int) -> dict:
        rows, total = self.repo.list_logs(self.db, source, status, event_type, limit, offset)
        return {"logs": [serialize_log(log) for log in rows], "total": total}

    def stats(self, hours: int = 24) -> dict:
        return self.repo.stats(self.db, hours)

    def retry(self, log_id: int) -> dict:
        """Re-dispatch a stored event that previously failed"""
        log = self.repo.get(self.db, log_id)
        if not log:
            raise HTTPException(status_code=404, detail="Webhook log not found")
        if log.status != "failed":
            raise HTTPException(status_code=400, detail="Only failed webhooks can be retried")
        if not log.payload:
            raise HTTPException(status_code=400, detail="Webhook payload was not stored")

        log.attempts = (log.attempts or 0) + 1
        log.status = "received"
        self.db.commit()

        obj = (log.payload.get("data") or {}).get("object") or {}
        try:
            result = self._run(log.id, log.event_type, obj)
        except WebhookProcessingError as e:
            return {"retried": True, "success": False, "error": str(e)}
        return {"retried": True, "success": True, "result": result}
