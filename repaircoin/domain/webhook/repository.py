"""Webhook log repository"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import WebhookLog


class WebhookLogRepository:
    """Repository for received webhook events"""

    @staticmethod
    def get(db: Session, log_id: int) -> Optional[WebhookLog]:
        return db.query(WebhookLog).filter(WebhookLog.id == log_id).first()

    @staticmethod
    def get_by_event_id(db: Session, event_id: str) -> Optional[WebhookLog]:
        return db.query(WebhookLog).filter(WebhookLog.event_id == event_id).first()

    @staticmethod
    def list_logs(
        db: Session,
        source: Optional[str] = None,
        status: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[WebhookLog], int]:
        query = db.query(WebhookLog)
        if source:
            query = query.filter(WebhookLog.source == source)
        if status:
            query = query.filter(WebhookLog.status == status)
        if event_type:
            query = query.filter(WebhookLog.event_type == event_type)
        total = query.count()
        rows = query.order_by(WebhookLog.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def stats(db: Session, hours: int = 24) -> dict:
        since = datetime.utcnow() - timedelta(hours=hours)
        by_status = dict(
            db.query(WebhookLog.status, func.count(WebhookLog.id))
            .filter(WebhookLog.created_at >= since)
            .group_by(WebhookLog.status)
            .all()
        )
        by_type = dict(
            db.query(WebhookLog.event_type, func.count(WebhookLog.id))
            .filter(WebhookLog.created_at >= since)
            .group_by(WebhookLog.event_type)
            .all()
        )
        avg_ms = (
            db.query(func.avg(WebhookLog.processing_time_ms))
            .filter(WebhookLog.created_at >= since, WebhookLog.processing_time_ms.isnot(None))
            .scalar()
        )
        total = sum(by_status.values())
        return {
            "periodHours": hours,
            "total": total,
            "byStatus": by_status,
            "byType": by_type,
            "failureRate": round(by_status.get("failed", 0) / total * 100, 2) if total else 0,
            "avgProcessingTimeMs": round(float(avg_ms), 1) if avg_ms is not None else None,
        }
