"""Notification router - in-app notifications for the caller"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import Identity, get_current_identity
from ...database import get_db
from ...models import Notification
from .repository import NotificationRepository

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _serialize(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.notification_type,
        "message": n.message,
        "senderAddress": n.sender_address,
        "metadata": n.details or {},
        "isRead": n.is_read,
        "createdAt": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("")
async def list_notifications(
    unread: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """List the caller's notifications, newest first"""
    rows, total = NotificationRepository.list_for_receiver(
        db, identity.address, unread_only=unread, limit=limit, offset=(page - 1) * limit
    )
    return {
        "success": True,
        "data": {
            "items": [_serialize(n) for n in rows],
            "pagination": {"page": page, "limit": limit, "total": total},
        },
    }


@router.get("/unread-count")
async def unread_count(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return {
        "success": True,
        "data": {"count": NotificationRepository.count_unread(db, identity.address)},
    }


@router.patch("/read-all")
async def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    updated = NotificationRepository.mark_all_read(db, identity.address)
    db.commit()
    return {"success": True, "data": {"updated": updated}}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    notification = NotificationRepository.get(db, notification_id)
    if not notification or notification.receiver_address != identity.address:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification.is_read = True
    db.commit()
    return {"success": True, "data": _serialize(notification)}
