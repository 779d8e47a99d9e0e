"""Order service - service bookings, Stripe payments and order lifecycle"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import stripe
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import (
    ORDER_CANCELLATION_WINDOW_HOURS,
    ORDER_PAYMENT_WINDOW_MINUTES,
    RCN_USD_VALUE,
)
from ...models import ServiceOrder
from ...shared.validators import minutes_to_time, time_to_minutes
from ..admin.repository import AdminRepository
from ..billing.stripe_service import StripeNotConfiguredError, stripe_service
from ..notification.repository import notify
from ..shop.repository import ShopRepository
from ..shop.reward_service import RewardService
from ..token.repository import TokenRepository
from .appointment_service import AppointmentService
from .repository import OrderRepository, ServiceRepository
from .schemas import CreatePaymentIntentRequest, serialize_order

logger = logging.getLogger(__name__)

# Shop-driven status changes; refunds are reserved for admins and webhooks
SHOP_TRANSITIONS = {
    "pending": {"cancelled"},
    "paid": {"completed", "cancelled", "no_show"},
}
ADMIN_TRANSITIONS = {
    "pending": {"cancelled"},
    "paid": {"completed", "cancelled", "no_show", "refunded"},
    "completed": {"refunded"},
    "cancelled": {"refunded"},
}

# Statuses in which the RCN discount has been debited from the customer
RCN_COLLECTED_STATUSES = ("paid", "completed", "no_show")

MIN_REWARD_REPAIR_AMOUNT = 50


class OrderService:
    """Service layer for booking orders"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository()
        self.token_repo = TokenRepository()

    def get_order_or_404(self, order_id: str) -> ServiceOrder:
        order = self.repo.get(self.db, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    # ============================================================================
    # CHECKOUT
    # ============================================================================

    def create_payment_intent(self, customer_address: str, data: CreatePaymentIntentRequest) -> dict:
        """Create a pending order and the Stripe PaymentIntent that pays for it"""
        service = ServiceRepository.get(self.db, data.serviceId)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        if not service.active:
            raise HTTPException(status_code=400, detail="Service is not available for booking")
        shop = ShopRepository.get(self.db, service.shop_id)
        if not shop or not shop.active or not shop.verified or shop.suspended_at is not None:
            raise HTTPException(status_code=400, detail="Shop is not accepting bookings")

        customer = self.token_repo.get_customer(self.db, customer_address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        booking_end_time = None
        if data.bookingTime:
            booking_end_time = self._check_slot(service, data.bookingDate, data.bookingTime)

        rcn_used = 0.0
        discount = 0.0
        if data.rcnToRedeem > 0:
            if (customer.current_balance or 0) < data.rcnToRedeem:
                raise HTTPException(status_code=400, detail="Insufficient RCN balance")
            discount = round(min(data.rcnToRedeem * RCN_USD_VALUE, service.price_usd), 2)
            rcn_used = round(discount / RCN_USD_VALUE, 2)

        final_amount = round(service.price_usd - discount, 2)

        order = ServiceOrder(
            service_id=service.service_id,
            shop_id=service.shop_id,
            customer_address=customer.address,
            status="pending",
            total_amount=service.price_usd,
            rcn_redeemed=rcn_used,
            rcn_discount_usd=discount,
            final_amount=final_amount,
            booking_date=data.bookingDate,
            booking_time=data.bookingTime,
            booking_end_time=booking_end_time,
            notes=data.notes,
            created_at=datetime.utcnow(),
        )
        self.db.add(order)
        self.db.flush()

        client_secret = None
        if final_amount > 0:
            try:
                intent = stripe_service.create_payment_intent(
                    int(round(final_amount * 100)),
                    metadata={
                        "type": "service_booking",
                        "orderId": order.order_id,
                        "serviceId": service.service_id,
                        "shopId": service.shop_id,
                        "customerAddress": customer.address,
                        "rcnRedeemed": str(rcn_used),
                    },
                )
            except StripeNotConfiguredError as e:
                self.db.rollback()
                raise HTTPException(status_code=503, detail="Card payments are not available") from e
            except stripe.StripeError as e:
                self.db.rollback()
                logger.error(f"❌ Stripe PaymentIntent for order failed: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e
            order.stripe_payment_intent_id = intent["id"]
            client_secret = intent["client_secret"]
            self.db.commit()
        else:
            # Fully covered by RCN, nothing to charge
            self.db.commit()
            self._apply_payment(order)
            self.db.commit()

        self.db.refresh(order)
        logger.info(
            f"🧾 Order {order.order_id} created by {customer.address} for {service.service_id} "
            f"(${final_amount}, {rcn_used} RCN)"
        )
        return {
            "order": serialize_order(order),
            "clientSecret": client_secret,
            "paymentIntentId": order.stripe_payment_intent_id,
            "amount": final_amount,
        }

    def _check_slot(self, service, booking_date, booking_time: str) -> str:
        """Reject a booking time the slot generator would not offer; returns end time"""
        appointments = AppointmentService(self.db)
        config = appointments.repo.get_config(self.db, service.shop_id)
        if not config:
            raise HTTPException(status_code=400, detail="This shop does not accept appointments yet")

        slot = next(
            (s for s in appointments.slots_for(service, booking_date) if s["time"] == booking_time),
            None,
        )
        if slot is None:
            raise HTTPException(status_code=400, detail="Selected time slot is not available")
        if not slot["available"]:
            if slot["bookedCount"] >= slot["maxBookings"]:
                raise HTTPException(status_code=400, detail="Selected time slot is fully booked")
            raise HTTPException(
                status_code=400,
                detail=f"Bookings require at least {config.min_booking_hours} hours advance notice",
            )

        duration = appointments.resolve_service_duration(service, config)
        return minutes_to_time(time_to_minutes(booking_time) + duration)

    # ============================================================================
    # PAYMENT RESULTS
    # ============================================================================

    def _apply_payment(self, order: ServiceOrder) -> bool:
        """pending -> paid, debiting redeemed RCN. False when already applied."""
        now = datetime.utcnow()
        if not self.repo.mark_paid(self.db, order.order_id, now):
            return False

        if order.rcn_redeemed:
            if self.token_repo.debit_customer(self.db, order.customer_address, order.rcn_redeemed):
                self.token_repo.record_transaction(
                    self.db,
                    "service_redemption",
                    order.rcn_redeemed,
                    customer_address=order.customer_address,
                    shop_id=order.shop_id,
                    reason=f"RCN discount on order {order.order_id}",
                    details={"orderId": order.order_id, "discountUsd": order.rcn_discount_usd},
                )
            else:
                logger.error(
                    f"❌ Order {order.order_id} paid but {order.customer_address} "
                    f"no longer holds {order.rcn_redeemed} RCN"
                )
                AdminRepository.create_alert(
                    self.db,
                    "order_rcn_shortfall",
                    "RCN discount could not be collected",
                    f"Order {order.order_id} was paid but the customer's RCN balance "
                    f"no longer covers the {order.rcn_redeemed} RCN discount",
                    severity="medium",
                    shop_id=order.shop_id,
                    details={"orderId": order.order_id, "rcnRedeemed": order.rcn_redeemed},
                )

        shop = ShopRepository.get(self.db, order.shop_id)
        notify(
            self.db,
            shop.wallet_address if shop else None,
            "order_paid",
            f"New paid booking {order.order_id}",
            sender_address=order.customer_address,
            details={"orderId": order.order_id, "amount": order.final_amount},
        )
        logger.info(f"💳 Order {order.order_id} paid")
        return True

    def confirm(self, customer_address: str, payment_intent_id: str) -> dict:
        """Client-side confirmation after Stripe.js completes the payment"""
        order = self.repo.get_by_payment_intent(self.db, payment_intent_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.customer_address != customer_address:
            raise HTTPException(status_code=403, detail="You can only confirm your own orders")

        try:
            intent = stripe_service.retrieve_payment_intent(payment_intent_id)
        except StripeNotConfiguredError as e:
            raise HTTPException(status_code=503, detail="Card payments are not available") from e
        except stripe.StripeError as e:
            logger.error(f"❌ Could not retrieve PaymentIntent {payment_intent_id}: {e}")
            raise HTTPException(status_code=503, detail="Payment provider error") from e

        if intent["status"] == "succeeded":
            if not self._apply_payment(order) and order.status == "cancelled":
                self._handle_late_payment(order)
            self.db.commit()
            self.db.refresh(order)
        return {"order": serialize_order(order), "paymentStatus": intent["status"]}

    def _order_for_intent(self, intent: dict) -> Optional[ServiceOrder]:
        order = self.repo.get_by_payment_intent(self.db, intent.get("id"))
        if order:
            return order
        order_id = (intent.get("metadata") or {}).get("orderId")
        return self.repo.get(self.db, order_id) if order_id else None

    def _handle_late_payment(self, order: ServiceOrder) -> Optional[str]:
        """Card payment captured for an order that was already cancelled"""
        logger.warning(f"⚠️ Payment captured for cancelled order {order.order_id}, refunding")
        refund_id = self._refund_card(order, f"Payment was captured after order {order.order_id} was cancelled")
        if refund_id:
            order.status = "refunded"
        return refund_id

    def handle_payment_success(self, intent: dict) -> dict:
        """payment_intent.succeeded webhook; safe to receive more than once"""
        order = self._order_for_intent(intent)
        if not order:
            logger.warning(f"⚠️ No order for PaymentIntent {intent.get('id')}")
            return {"handled": False, "reason": "order not found"}

        if self._apply_payment(order):
            self.db.commit()
            return {"handled": True, "orderId": order.order_id, "alreadyProcessed": False}

        if order.status == "cancelled":
            refund_id = self._handle_late_payment(order)
            self.db.commit()
            return {
                "handled": True,
                "orderId": order.order_id,
                "alreadyProcessed": False,
                "lateRefundId": refund_id,
            }
        return {"handled": True, "orderId": order.order_id, "alreadyProcessed": True}

    def handle_payment_failure(self, intent: dict) -> dict:
        order = self._order_for_intent(intent)
        if not order:
            logger.warning(f"⚠️ No order for failed PaymentIntent {intent.get('id')}")
            return {"handled": False, "reason": "order not found"}
        if order.status != "pending":
            return {"handled": True, "orderId": order.order_id, "alreadyProcessed": True}

        order.status = "cancelled"
        order.cancelled_at = datetime.utcnow()
        order.cancellation_reason = "Payment failed"
        self.db.commit()
        logger.info(f"🚫 Order {order.order_id} cancelled after payment failure")
        return {"handled": True, "orderId": order.order_id}

    # ============================================================================
    # QUERIES
    # ============================================================================

    def list_orders(
        self,
        customer_address: Optional[str] = None,
        shop_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        rows, total = self.repo.list_orders(
            self.db,
            customer_address=customer_address,
            shop_id=shop_id,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "items": [serialize_order(o) for o in rows],
            "pagination": {"page": page, "limit": limit, "total": total},
        }

    def get_for(self, order_id: str, identity) -> dict:
        order = self.get_order_or_404(order_id)
        allowed = (
            identity.is_admin
            or (identity.role == "customer" and order.customer_address == identity.address)
            or (identity.role == "shop" and order.shop_id == identity.shop_id)
        )
        if not allowed:
            raise HTTPException(status_code=403, detail="You do not have access to this order")
        return serialize_order(order)

    def analytics(self, shop_id: str) -> dict:
        return self.repo.shop_analytics(self.db, shop_id)

    # ============================================================================
    # LIFECYCLE
    # ============================================================================

    async def update_status(
        self, order_id: str, new_status: str, shop_id: Optional[str] = None, is_admin: bool = False
    ) -> dict:
        order = self.get_order_or_404(order_id)
        if not is_admin and order.shop_id != shop_id:
            raise HTTPException(status_code=403, detail="You can only manage your own orders")

        transitions = ADMIN_TRANSITIONS if is_admin else SHOP_TRANSITIONS
        if new_status not in transitions.get(order.status, set()):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot change order status from {order.status} to {new_status}",
            )

        if new_status == "cancelled":
            return self._cancel(order, "Cancelled by admin" if is_admin else "Cancelled by shop")
        if new_status == "refunded":
            return self._refund(order)

        now = datetime.utcnow()
        order.status = new_status
        reward = None
        reward_error = None

        if new_status == "completed":
            order.completed_at = now
            self.db.commit()
            reward, reward_error = await self._reward_completion(order)
            notify(
                self.db,
                order.customer_address,
                "order_completed",
                f"Your booking {order.order_id} is complete",
                details={"orderId": order.order_id, "rcnEarned": order.rcn_earned},
            )

        self.db.commit()
        self.db.refresh(order)
        logger.info(f"📦 Order {order.order_id} -> {new_status}")
        return {"order": serialize_order(order), "reward": reward, "rewardError": reward_error}

    async def _reward_completion(self, order: ServiceOrder) -> tuple[Optional[dict], Optional[str]]:
        """Issue the repair reward for a completed booking; failures never undo completion"""
        if order.total_amount < MIN_REWARD_REPAIR_AMOUNT:
            return None, None
        try:
            reward = await RewardService(self.db).issue_reward(
                order.shop_id,
                order.customer_address,
                order.total_amount,
                source="service_order",
            )
        except HTTPException as e:
            self.db.rollback()
            message = e.detail["error"] if isinstance(e.detail, dict) else e.detail
            logger.warning(f"⚠️ Reward for order {order.order_id} not issued: {message}")
            return None, message

        order = self.get_order_or_404(order.order_id)
        order.rcn_earned = reward["totalReward"]
        return reward, None

    def cancel_by_customer(self, order_id: str, customer_address: str, reason: Optional[str]) -> dict:
        order = self.get_order_or_404(order_id)
        if order.customer_address != customer_address:
            raise HTTPException(status_code=403, detail="You can only cancel your own orders")

        if order.status == "paid":
            if order.booking_date:
                # Booking dates and times are stored and compared in UTC
                booking_at = datetime.combine(order.booking_date, datetime.min.time())
                if order.booking_time:
                    booking_at += timedelta(minutes=time_to_minutes(order.booking_time))
                if booking_at - datetime.utcnow() <= timedelta(hours=ORDER_CANCELLATION_WINDOW_HOURS):
                    raise HTTPException(
                        status_code=400,
                        detail=(
                            f"Paid bookings can only be cancelled more than "
                            f"{ORDER_CANCELLATION_WINDOW_HOURS} hours in advance"
                        ),
                    )
        elif order.status != "pending":
            raise HTTPException(status_code=400, detail=f"Cannot cancel a {order.status} order")

        return self._cancel(order, reason or "Cancelled by customer")

    def _cancel(self, order: ServiceOrder, reason: str) -> dict:
        """Cancel, giving back collected RCN and refunding the card portion of a paid order"""
        rcn_refunded = 0.0
        refund_id = None
        if order.status == "paid":
            rcn_refunded = self._return_rcn(order, f"RCN refund for cancelled order {order.order_id}")
            if order.final_amount > 0:
                refund_id = self._refund_card(order, f"Paid order {order.order_id} was cancelled ({reason})")
        else:
            self._void_payment_intent(order)

        order.status = "refunded" if refund_id else "cancelled"
        order.cancelled_at = datetime.utcnow()
        order.cancellation_reason = reason
        self.db.commit()
        self.db.refresh(order)
        logger.info(
            f"🚫 Order {order.order_id} {order.status} ({reason}), returned {rcn_refunded} RCN"
        )
        return {"order": serialize_order(order), "rcnRefunded": rcn_refunded, "cardRefundId": refund_id}

    def _refund(self, order: ServiceOrder) -> dict:
        """Admin refund: card portion through Stripe, redeemed RCN back to the customer"""
        if order.final_amount > 0 and order.stripe_payment_intent_id and not order.stripe_refund_id:
            try:
                refund = stripe_service.refund_payment_intent(
                    order.stripe_payment_intent_id, metadata={"orderId": order.order_id}
                )
            except StripeNotConfiguredError as e:
                raise HTTPException(status_code=503, detail="Card payments are not available") from e
            except stripe.StripeError as e:
                logger.error(f"❌ Refund for order {order.order_id} failed: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e
            order.stripe_refund_id = refund["id"]

        rcn_refunded = 0.0
        if order.status in RCN_COLLECTED_STATUSES:
            rcn_refunded = self._return_rcn(order, f"RCN refund for refunded order {order.order_id}")

        order.status = "refunded"
        order.refunded_at = order.refunded_at or datetime.utcnow()
        notify(
            self.db,
            order.customer_address,
            "order_refunded",
            f"Your booking {order.order_id} has been refunded",
            details={"orderId": order.order_id, "amount": order.final_amount, "rcnRefunded": rcn_refunded},
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"💸 Order {order.order_id} refunded, returned {rcn_refunded} RCN")
        return {"order": serialize_order(order), "rcnRefunded": rcn_refunded, "cardRefundId": order.stripe_refund_id}

    def handle_refund(self, charge: dict) -> dict:
        """charge.refunded webhook, including refunds issued from the Stripe dashboard"""
        order = self.repo.get_by_payment_intent(self.db, charge.get("payment_intent"))
        if not order:
            return {"handled": False, "reason": "order not found"}
        if not charge.get("refunded"):
            logger.info(f"ℹ️ Partial refund on order {order.order_id} left for manual review")
            return {"handled": True, "orderId": order.order_id, "partial": True}
        if order.status == "refunded":
            return {"handled": True, "orderId": order.order_id, "alreadyProcessed": True}

        rcn_refunded = 0.0
        if order.status in RCN_COLLECTED_STATUSES:
            rcn_refunded = self._return_rcn(order, f"RCN refund for refunded order {order.order_id}")
        refunds = (charge.get("refunds") or {}).get("data") or []
        if refunds and not order.stripe_refund_id:
            order.stripe_refund_id = refunds[0].get("id")
        order.status = "refunded"
        order.refunded_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"💸 Order {order.order_id} refunded in Stripe, returned {rcn_refunded} RCN")
        return {"handled": True, "orderId": order.order_id, "rcnRefunded": rcn_refunded}

    def _return_rcn(self, order: ServiceOrder, reason: str) -> float:
        """Credit the redeemed RCN back with a service_refund ledger row"""
        if not order.rcn_redeemed:
            return 0.0
        customer = self.token_repo.get_customer(self.db, order.customer_address)
        if not customer:
            return 0.0
        amount = order.rcn_redeemed
        customer.current_balance = (customer.current_balance or 0) + amount
        customer.total_redemptions = max((customer.total_redemptions or 0) - amount, 0)
        self.token_repo.record_transaction(
            self.db,
            "service_refund",
            amount,
            customer_address=customer.address,
            shop_id=order.shop_id,
            reason=reason,
            details={"orderId": order.order_id},
        )
        return amount

    def _refund_card(self, order: ServiceOrder, context: str) -> Optional[str]:
        """Refund the card payment through Stripe; alerts admins when that is not possible"""
        if order.stripe_refund_id:
            return order.stripe_refund_id

        error = "no PaymentIntent recorded"
        if order.stripe_payment_intent_id:
            try:
                refund = stripe_service.refund_payment_intent(
                    order.stripe_payment_intent_id, metadata={"orderId": order.order_id}
                )
                order.stripe_refund_id = refund["id"]
                order.refunded_at = datetime.utcnow()
                return refund["id"]
            except StripeNotConfiguredError:
                error = "Stripe is not configured"
            except stripe.StripeError as e:
                logger.error(f"❌ Refund for order {order.order_id} failed: {e}")
                error = str(e)

        AdminRepository.create_alert(
            self.db,
            "order_refund_required",
            "Card refund needs manual action",
            f"{context}. The ${order.final_amount} card payment was not refunded: {error}",
            severity="high",
            shop_id=order.shop_id,
            details={
                "orderId": order.order_id,
                "paymentIntentId": order.stripe_payment_intent_id,
                "amount": order.final_amount,
            },
        )
        return None

    def _void_payment_intent(self, order: ServiceOrder) -> None:
        """Cancel the PaymentIntent of an unpaid order so it cannot be charged later"""
        if not order.stripe_payment_intent_id:
            return
        try:
            stripe_service.cancel_payment_intent(order.stripe_payment_intent_id)
        except StripeNotConfiguredError:
            logger.warning(f"⚠️ Stripe not configured, PaymentIntent {order.stripe_payment_intent_id} left open")
        except stripe.StripeError as e:
            # A payment that already went through is refunded by the payment webhook
            logger.warning(f"⚠️ Could not cancel PaymentIntent {order.stripe_payment_intent_id}: {e}")

    def cancel_unpaid_orders(self) -> int:
        """Cancel orders whose payment window has lapsed"""
        cutoff = datetime.utcnow() - timedelta(minutes=ORDER_PAYMENT_WINDOW_MINUTES)
        stale = self.repo.stale_pending(self.db, cutoff)
        for order in stale:
            self._void_payment_intent(order)
            order.status = "cancelled"
            order.cancelled_at = datetime.utcnow()
            order.cancellation_reason = "Payment window expired"
        if stale:
            self.db.commit()
            logger.info(f"⏰ Cancelled {len(stale)} unpaid orders")
        return len(stale)
