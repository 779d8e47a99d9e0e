"""Notification repository - stored in-app notifications"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Notification


class NotificationRepository:
    """Repository for notification database operations"""

    @staticmethod
    def create(
        db: Session,
        receiver_address: str,
        notification_type: str,
        message: str,
        sender_address: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Notification:
        """Add a notification to the session (caller commits)"""
        notification = Notification(
            receiver_address=receiver_address.lower(),
            sender_address=sender_address.lower() if sender_address else None,
            notification_type=notification_type,
            message=message,
            details=details,
            created_at=datetime.utcnow(),
        )
        db.add(notification)
        return notification

    @staticmethod
    def list_for_receiver(
        db: Session,
        receiver_address: str,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Notification], int]:
        query = db.query(Notification).filter(Notification.receiver_address == receiver_address)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        total = query.count()
        rows = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @staticmethod
    def count_unread(db: Session, receiver_address: str) -> int:
        return (
            db.query(Notification)
            .filter(
                Notification.receiver_address == receiver_address,
                Notification.is_read.is_(False),
            )
            .count()
        )

    @staticmethod
    def get(db: Session, notification_id: int) -> Optional[Notification]:
        return db.query(Notification).filter(Notification.id == notification_id).first()

    @staticmethod
    def mark_all_read(db: Session, receiver_address: str) -> int:
        return (
            db.query(Notification)
            .filter(
                Notification.receiver_address == receiver_address,
                Notification.is_read.is_(False),
            )
            .update({Notification.is_read: True}, synchronize_session=False)
        )


def notify(
    db: Session,
    receiver_address: Optional[str],
    notification_type: str,
    message: str,
    sender_address: Optional[str] = None,
    details: Optional[dict] = None,
) -> Optional[Notification]:
    """Queue a notification in the current unit of work"""
    if not receiver_address:
        return None
    return NotificationRepository.create(
        db, receiver_address, notification_type, message, sender_address, details
    )
