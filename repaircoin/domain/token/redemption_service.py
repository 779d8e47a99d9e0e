"""Redemption session service - customer consent for shop redemptions"""

import logging
from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import Identity
from ...models import RedemptionSession, generate_session_id
from ..notification.repository import notify
from .repository import RedemptionSessionRepository, TokenRepository
from .schemas import serialize_session
from .service import TokenService, shop_accepts_redemptions

logger = logging.getLogger(__name__)

SESSION_DURATION = timedelta(minutes=5)


class RedemptionSessionService:
    """A shop requests a redemption, the customer approves or rejects it"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RedemptionSessionRepository()
        self.token_repo = TokenRepository()

    def _get_session(self, session_id: str) -> RedemptionSession:
        session = self.repo.get(self.db, session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def create_session(self, shop_id: str, customer_address: str, amount: float) -> dict:
        """Shop opens a pending session the customer must approve"""
        customer = self.token_repo.get_customer(self.db, customer_address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        balance = customer.current_balance or 0
        if balance < amount:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Insufficient balance. Customer has {balance:.2f} RCN, "
                    f"but {amount} RCN requested for redemption"
                ),
            )

        shop = self.token_repo.get_shop(self.db, shop_id)
        if not shop_accepts_redemptions(shop):
            raise HTTPException(status_code=400, detail="Shop not found or not active")

        now = datetime.utcnow()
        if self.repo.get_pending_for_pair(self.db, customer.address, shop_id, now):
            raise HTTPException(
                status_code=409, detail="A pending redemption session already exists"
            )

        session = RedemptionSession(
            session_id=generate_session_id(),
            customer_address=customer.address,
            shop_id=shop_id,
            max_amount=amount,
            status="pending",
            expires_at=now + SESSION_DURATION,
            created_at=now,
        )
        self.db.add(session)
        notify(
            self.db,
            customer.address,
            "redemption_approval_request",
            f"{shop.name} requests to redeem {amount} RCN",
            sender_address=shop.wallet_address,
            details={"sessionId": session.session_id, "shopId": shop_id, "amount": amount},
        )
        self.db.commit()
        self.db.refresh(session)

        logger.info(f"📝 Redemption session {session.session_id} created by {shop_id} for {amount} RCN")
        return serialize_session(session)

    def approve_session(self, session_id: str, customer_address: str) -> dict:
        session = self._get_session(session_id)
        if session.customer_address != customer_address:
            raise HTTPException(status_code=403, detail="Session does not belong to this customer")
        if session.status != "pending":
            raise HTTPException(status_code=400, detail=f"Session is {session.status}, cannot approve")
        if session.expires_at < datetime.utcnow():
            session.status = "expired"
            self.db.commit()
            raise HTTPException(status_code=400, detail="Session has expired")

        verification = TokenService(self.db).verify_redemption(
            customer_address, session.shop_id, session.max_amount
        )
        if not verification["canRedeem"]:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot approve redemption: {verification['message']}",
            )

        session.status = "approved"
        session.approved_at = datetime.utcnow()
        shop = self.token_repo.get_shop(self.db, session.shop_id)
        notify(
            self.db,
            shop.wallet_address if shop else None,
            "redemption_approved",
            f"Customer approved redemption of {session.max_amount} RCN",
            sender_address=customer_address,
            details={"sessionId": session.session_id, "amount": session.max_amount},
        )
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"✅ Redemption session {session_id} approved")
        return serialize_session(session)

    def reject_session(self, session_id: str, customer_address: str) -> dict:
        session = self._get_session(session_id)
        if session.customer_address != customer_address:
            raise HTTPException(status_code=403, detail="Session does not belong to this customer")
        if session.status != "pending":
            raise HTTPException(status_code=400, detail=f"Session is {session.status}, cannot reject")

        session.status = "rejected"
        session.rejected_at = datetime.utcnow()
        shop = self.token_repo.get_shop(self.db, session.shop_id)
        notify(
            self.db,
            shop.wallet_address if shop else None,
            "redemption_rejected",
            f"Customer rejected redemption of {session.max_amount} RCN",
            sender_address=customer_address,
            details={"sessionId": session.session_id},
        )
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"🚫 Redemption session {session_id} rejected by customer")
        return serialize_session(session)

    def cancel_session(self, session_id: str, shop_id: str) -> dict:
        session = self._get_session(session_id)
        if session.shop_id != shop_id:
            raise HTTPException(status_code=403, detail="Session does not belong to this shop")
        if session.status != "pending":
            raise HTTPException(status_code=400, detail=f"Session is {session.status}, cannot cancel")

        session.status = "rejected"
        session.rejected_at = datetime.utcnow()
        session.cancelled_by_shop = True
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"🚫 Redemption session {session_id} cancelled by shop {shop_id}")
        return serialize_session(session)

    def get_status(self, session_id: str, identity: Identity) -> dict:
        session = self._get_session(session_id)
        if identity.role == "shop" and session.shop_id != identity.shop_id:
            raise HTTPException(status_code=403, detail="Session is for a different shop")
        if identity.role == "customer" and session.customer_address != identity.address:
            raise HTTPException(status_code=403, detail="Session does not belong to this customer")

        if session.status in ("pending", "approved") and session.expires_at < datetime.utcnow():
            session.status = "expired"
            self.db.commit()
            self.db.refresh(session)
        return serialize_session(session)

    def my_sessions(self, customer_address: str) -> dict:
        now = datetime.utcnow()
        sessions = self.repo.list_for_customer(self.db, customer_address)
        pending = [s for s in sessions if s.status == "pending" and s.expires_at > now]
        return {
            "pending": [serialize_session(s) for s in pending],
            "recent": [serialize_session(s) for s in sessions if s not in pending],
        }

    def consume_session(self, session_id: str, shop_id: str, amount: float) -> RedemptionSession:
        """
        Mark an approved session as used for a redemption. Does not commit.

        Raises:
            HTTPException 400 when the session cannot cover this redemption
        """
        session = self._get_session(session_id)
        now = datetime.utcnow()
        if session.shop_id != shop_id:
            raise HTTPException(status_code=400, detail="Session is for a different shop")
        if session.status == "used":
            raise HTTPException(status_code=400, detail="Session has already been used")
        if session.status != "approved":
            raise HTTPException(status_code=400, detail=f"Session is {session.status}, not approved")
        if session.expires_at < now:
            session.status = "expired"
            self.db.commit()
            raise HTTPException(status_code=400, detail="Session has expired")
        if amount > session.max_amount:
            raise HTTPException(
                status_code=400,
                detail=f"Requested amount {amount} exceeds session limit {session.max_amount}",
            )

        if not self.repo.mark_used(self.db, session_id, shop_id, amount, now):
            raise HTTPException(status_code=400, detail="Session has already been used")
        return session

    def expire_stale_sessions(self) -> int:
        expired = self.repo.expire_stale(self.db, datetime.utcnow())
        self.db.commit()
        if expired:
            logger.info(f"🧹 Expired {expired} redemption sessions")
        return expired
