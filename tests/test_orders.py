"""Service booking order tests"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import stripe

from conftest import OTHER_CUSTOMER_ADDRESS, auth_headers, make_customer
from repaircoin.domain.billing.stripe_service import StripeNotConfiguredError, stripe_service
from repaircoin.domain.service.order_service import OrderService
from repaircoin.models import (
    Alert,
    Customer,
    ServiceOrder,
    ShopAvailability,
    ShopService,
    TimeSlotConfig,
    Transaction,
)

INTENT = {"id": "pi_test_1", "client_secret": "pi_test_1_secret", "status": "requires_payment_method"}
REFUND = {"id": "re_test_1", "status": "succeeded", "amount": 8000}


@pytest.fixture
def listing(db_session, shop):
    service = ShopService(shop_id=shop.shop_id, name="Screen Repair", price_usd=80, duration_minutes=60)
    db_session.add(service)
    db_session.commit()
    db_session.refresh(service)
    return service


def open_for_bookings(db_session, shop_id):
    for day in range(7):
        db_session.add(ShopAvailability(shop_id=shop_id, day_of_week=day, open_time="09:00", close_time="17:00"))
    db_session.add(TimeSlotConfig(shop_id=shop_id))
    db_session.commit()


def make_order(db_session, listing, customer_address, status="paid", **kwargs):
    order = ServiceOrder(
        service_id=listing.service_id,
        shop_id=listing.shop_id,
        customer_address=customer_address,
        status=status,
        total_amount=kwargs.pop("total_amount", listing.price_usd),
        final_amount=kwargs.pop("final_amount", listing.price_usd),
        created_at=kwargs.pop("created_at", datetime.utcnow()),
        **kwargs,
    )
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


def checkout(client, headers, service_id, **kwargs):
    return client.post(
        "/api/services/orders/create-payment-intent",
        json={"serviceId": service_id, **kwargs},
        headers=headers,
    )


class TestCreatePaymentIntent:
    def test_creates_pending_order_and_intent(self, client, listing, customer_headers):
        with patch.object(stripe_service, "create_payment_intent", return_value=INTENT) as mock_intent:
            response = checkout(client, customer_headers, listing.service_id)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["order"]["status"] == "pending"
        assert data["clientSecret"] == "pi_test_1_secret"
        assert data["amount"] == 80

        amount_cents = mock_intent.call_args.args[0]
        metadata = mock_intent.call_args.kwargs["metadata"]
        assert amount_cents == 8000
        assert metadata["type"] == "service_booking"
        assert metadata["orderId"] == data["order"]["orderId"]

    def test_rcn_discount(self, client, db_session, listing):
        customer = make_customer(db_session, balance=100)
        with patch.object(stripe_service, "create_payment_intent", return_value=INTENT) as mock_intent:
            response = checkout(
                client, auth_headers(customer.address, "customer"), listing.service_id, rcnToRedeem=100
            )

        order = response.json()["data"]["order"]
        assert order["rcnDiscountUsd"] == 10
        assert order["finalAmount"] == 70
        assert mock_intent.call_args.args[0] == 7000

        # RCN is only collected once payment succeeds
        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 100

    def test_fully_covered_by_rcn_is_paid_immediately(self, client, db_session, shop):
        listing = ShopService(shop_id=shop.shop_id, name="Quick Check", price_usd=5)
        db_session.add(listing)
        db_session.commit()
        customer = make_customer(db_session, balance=100)

        with patch.object(stripe_service, "create_payment_intent") as mock_intent:
            response = checkout(
                client, auth_headers(customer.address, "customer"), listing.service_id, rcnToRedeem=100
            )

        mock_intent.assert_not_called()
        data = response.json()["data"]
        assert data["order"]["status"] == "paid"
        assert data["order"]["rcnRedeemed"] == 50
        assert data["clientSecret"] is None

        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 50
        assert db_session.query(Transaction).filter_by(type="service_redemption").count() == 1

    def test_insufficient_rcn(self, client, listing, customer_headers):
        response = checkout(client, customer_headers, listing.service_id, rcnToRedeem=10)
        assert response.status_code == 400
        assert response.json()["error"] == "Insufficient RCN balance"

    def test_unknown_and_inactive_service(self, client, db_session, listing, customer_headers):
        assert checkout(client, customer_headers, "missing").status_code == 404

        listing.active = False
        db_session.commit()
        assert checkout(client, customer_headers, listing.service_id).status_code == 400

    def test_stripe_unavailable(self, client, db_session, listing, customer_headers):
        with patch.object(
            stripe_service, "create_payment_intent", side_effect=StripeNotConfiguredError("no key")
        ):
            response = checkout(client, customer_headers, listing.service_id)

        assert response.status_code == 503
        assert db_session.query(ServiceOrder).count() == 0

    def test_booking_time_requires_date(self, client, listing, customer_headers):
        response = checkout(client, customer_headers, listing.service_id, bookingTime="09:00")
        assert response.status_code == 400


class TestBookingSlots:
    def test_book_slot_then_fully_booked(self, client, db_session, listing, customer_headers):
        open_for_bookings(db_session, listing.shop_id)
        day = (datetime.utcnow().date() + timedelta(days=3)).isoformat()

        with patch.object(stripe_service, "create_payment_intent", return_value=INTENT):
            response = checkout(
                client, customer_headers, listing.service_id, bookingDate=day, bookingTime="09:00"
            )
        assert response.status_code == 201
        assert response.json()["data"]["order"]["bookingEndTime"] == "10:00"

        other = make_customer(db_session, address=OTHER_CUSTOMER_ADDRESS)
        response = checkout(
            client,
            auth_headers(other.address, "customer"),
            listing.service_id,
            bookingDate=day,
            bookingTime="09:00",
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Selected time slot is fully booked"

    def test_time_not_on_slot_grid(self, client, db_session, listing, customer_headers):
        open_for_bookings(db_session, listing.shop_id)
        day = (datetime.utcnow().date() + timedelta(days=3)).isoformat()
        response = checkout(client, customer_headers, listing.service_id, bookingDate=day, bookingTime="09:10")
        assert response.status_code == 400
        assert response.json()["error"] == "Selected time slot is not available"

    def test_shop_without_appointments(self, client, listing, customer_headers):
        day = (datetime.utcnow().date() + timedelta(days=3)).isoformat()
        response = checkout(client, customer_headers, listing.service_id, bookingDate=day, bookingTime="09:00")
        assert response.status_code == 400


class TestConfirm:
    def test_confirm_marks_paid_once(self, client, db_session, listing):
        customer = make_customer(db_session, balance=100)
        order = make_order(
            db_session,
            listing,
            customer.address,
            status="pending",
            rcn_redeemed=50,
            rcn_discount_usd=5,
            final_amount=75,
            stripe_payment_intent_id="pi_test_1",
        )
        headers = auth_headers(customer.address, "customer")
        succeeded = {**INTENT, "status": "succeeded"}

        with patch.object(stripe_service, "retrieve_payment_intent", return_value=succeeded):
            response = client.post("/api/services/orders/confirm", json={"paymentIntentId": "pi_test_1"}, headers=headers)
            assert response.json()["data"]["order"]["status"] == "paid"
            client.post("/api/services/orders/confirm", json={"paymentIntentId": "pi_test_1"}, headers=headers)

        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 50
        assert db_session.get(ServiceOrder, order.order_id).paid_at is not None

    def test_confirm_other_customers_order(self, client, db_session, listing, customer_headers):
        make_customer(db_session, address=OTHER_CUSTOMER_ADDRESS)
        make_order(
            db_session, listing, OTHER_CUSTOMER_ADDRESS, status="pending", stripe_payment_intent_id="pi_x"
        )
        response = client.post(
            "/api/services/orders/confirm", json={"paymentIntentId": "pi_x"}, headers=customer_headers
        )
        assert response.status_code == 403


class TestOrderStatus:
    def test_complete_issues_reward(self, client, db_session, listing, customer, shop_headers):
        order = make_order(db_session, listing, customer.address)

        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "completed"}, headers=shop_headers
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["order"]["status"] == "completed"
        assert data["order"]["rcnEarned"] == 20
        assert data["reward"]["totalReward"] == 20
        assert data["rewardError"] is None

        db_session.expire_all()
        mint = db_session.query(Transaction).filter_by(type="mint").one()
        assert mint.details["source"] == "service_order"

    def test_reward_failure_keeps_completion(self, client, db_session, listing, customer, shop, shop_headers):
        order = make_order(db_session, listing, customer.address)
        shop.purchased_rcn_balance = 0
        db_session.commit()

        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "completed"}, headers=shop_headers
        )

        data = response.json()["data"]
        assert data["order"]["status"] == "completed"
        assert data["reward"] is None
        assert data["rewardError"] == "Insufficient shop RCN balance"

    def test_small_order_earns_nothing(self, client, db_session, listing, customer, shop_headers):
        order = make_order(db_session, listing, customer.address, total_amount=30, final_amount=30)
        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "completed"}, headers=shop_headers
        )
        data = response.json()["data"]
        assert data["reward"] is None
        assert data["rewardError"] is None

    def test_invalid_transition(self, client, db_session, listing, customer, shop_headers):
        order = make_order(db_session, listing, customer.address, status="pending")
        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "completed"}, headers=shop_headers
        )
        assert response.status_code == 400

    def test_shop_cannot_refund_admin_can(self, client, db_session, listing, customer, shop_headers, admin_headers):
        order = make_order(db_session, listing, customer.address, status="completed")
        url = f"/api/services/orders/{order.order_id}/status"

        assert client.put(url, json={"status": "refunded"}, headers=shop_headers).status_code == 400
        response = client.put(url, json={"status": "refunded"}, headers=admin_headers)
        assert response.json()["data"]["order"]["status"] == "refunded"

    def test_admin_refund_returns_redeemed_rcn(self, client, db_session, listing, admin_headers):
        customer = make_customer(db_session, balance=0)
        order = make_order(
            db_session, listing, customer.address, status="completed", rcn_redeemed=30, rcn_discount_usd=3
        )

        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "refunded"}, headers=admin_headers
        )

        data = response.json()["data"]
        assert data["rcnRefunded"] == 30
        assert data["order"]["refundedAt"] is not None
        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 30
        assert db_session.query(Transaction).filter_by(type="service_refund").count() == 1

    def test_admin_refund_stripe_error(self, client, db_session, listing, customer, admin_headers):
        order = make_order(db_session, listing, customer.address, stripe_payment_intent_id="pi_paid")

        error = stripe.APIConnectionError("Network down")
        with patch.object(stripe_service, "refund_payment_intent", side_effect=error):
            response = client.put(
                f"/api/services/orders/{order.order_id}/status", json={"status": "refunded"}, headers=admin_headers
            )

        assert response.status_code == 503
        db_session.expire_all()
        assert db_session.get(ServiceOrder, order.order_id).status == "paid"

    def test_shop_cancel_refunds_rcn(self, client, db_session, listing, shop_headers):
        customer = make_customer(db_session, balance=10)
        order = make_order(db_session, listing, customer.address, rcn_redeemed=40, rcn_discount_usd=4)

        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "cancelled"}, headers=shop_headers
        )
        assert response.json()["data"]["rcnRefunded"] == 40

        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 50

    def test_unknown_status_value(self, client, db_session, listing, customer, shop_headers):
        order = make_order(db_session, listing, customer.address)
        response = client.put(
            f"/api/services/orders/{order.order_id}/status", json={"status": "shipped"}, headers=shop_headers
        )
        assert response.status_code == 400


class TestCustomerCancel:
    def test_cancel_pending(self, client, db_session, listing, customer, customer_headers):
        order = make_order(db_session, listing, customer.address, status="pending")
        response = client.post(
            f"/api/services/orders/{order.order_id}/cancel", json={"reason": "Changed plans"}, headers=customer_headers
        )
        data = response.json()["data"]
        assert data["order"]["status"] == "cancelled"
        assert data["order"]["cancellationReason"] == "Changed plans"

    def test_paid_booking_inside_window(self, client, db_session, listing, customer, customer_headers):
        order = make_order(
            db_session,
            listing,
            customer.address,
            booking_date=datetime.utcnow().date() + timedelta(days=1),
            booking_time="00:00",
        )
        response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)
        assert response.status_code == 400

    def test_paid_booking_outside_window(self, client, db_session, listing, customer, customer_headers):
        order = make_order(
            db_session,
            listing,
            customer.address,
            booking_date=datetime.utcnow().date() + timedelta(days=5),
            booking_time="10:00",
        )
        response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)
        assert response.json()["data"]["order"]["status"] == "cancelled"

        # No PaymentIntent on file, so the card refund is left to an admin
        alert = db_session.query(Alert).filter_by(alert_type="order_refund_required").one()
        assert alert.details["orderId"] == order.order_id

    def test_paid_card_order_refunded_through_stripe(self, client, db_session, listing, customer, customer_headers):
        order = make_order(
            db_session,
            listing,
            customer.address,
            rcn_redeemed=20,
            rcn_discount_usd=2,
            final_amount=78,
            stripe_payment_intent_id="pi_paid",
            booking_date=datetime.utcnow().date() + timedelta(days=5),
            booking_time="10:00",
        )

        with patch.object(stripe_service, "refund_payment_intent", return_value=REFUND) as refund:
            response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)

        data = response.json()["data"]
        assert data["order"]["status"] == "refunded"
        assert data["order"]["stripeRefundId"] == "re_test_1"
        assert data["cardRefundId"] == "re_test_1"
        assert data["rcnRefunded"] == 20
        refund.assert_called_once_with("pi_paid", metadata={"orderId": order.order_id})

        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 20
        assert db_session.query(Alert).count() == 0

    def test_failed_card_refund_can_be_finished_by_admin(
        self, client, db_session, listing, customer, customer_headers, admin_headers
    ):
        order = make_order(
            db_session,
            listing,
            customer.address,
            stripe_payment_intent_id="pi_paid",
            booking_date=datetime.utcnow().date() + timedelta(days=5),
            booking_time="10:00",
        )

        error = stripe.APIConnectionError("Network down")
        with patch.object(stripe_service, "refund_payment_intent", side_effect=error):
            response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["order"]["status"] == "cancelled"
        assert db_session.query(Alert).filter_by(alert_type="order_refund_required").count() == 1

        with patch.object(stripe_service, "refund_payment_intent", return_value=REFUND):
            response = client.put(
                f"/api/services/orders/{order.order_id}/status", json={"status": "refunded"}, headers=admin_headers
            )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["order"]["status"] == "refunded"
        assert data["cardRefundId"] == "re_test_1"
        assert data["rcnRefunded"] == 0

    def test_cancel_pending_voids_payment_intent(self, client, db_session, listing, customer, customer_headers):
        order = make_order(db_session, listing, customer.address, status="pending", stripe_payment_intent_id="pi_open")

        with patch.object(stripe_service, "cancel_payment_intent") as cancel:
            response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)

        assert response.json()["data"]["order"]["status"] == "cancelled"
        cancel.assert_called_once_with("pi_open")

    def test_completed_order_cannot_be_cancelled(self, client, db_session, listing, customer, customer_headers):
        order = make_order(db_session, listing, customer.address, status="completed")
        response = client.post(f"/api/services/orders/{order.order_id}/cancel", headers=customer_headers)
        assert response.status_code == 400


class TestOrderQueries:
    def test_lists_and_access(self, client, db_session, listing, customer, customer_headers, shop_headers):
        order = make_order(db_session, listing, customer.address)

        data = client.get("/api/services/orders/customer", headers=customer_headers).json()["data"]
        assert [o["orderId"] for o in data["items"]] == [order.order_id]

        data = client.get("/api/services/orders/shop?status=paid", headers=shop_headers).json()["data"]
        assert data["pagination"]["total"] == 1

        other = make_customer(db_session, address=OTHER_CUSTOMER_ADDRESS)
        response = client.get(
            f"/api/services/orders/{order.order_id}", headers=auth_headers(other.address, "customer")
        )
        assert response.status_code == 403

    def test_shop_analytics(self, client, db_session, listing, customer, shop_headers):
        make_order(db_session, listing, customer.address)
        make_order(db_session, listing, customer.address, status="cancelled")
        data = client.get("/api/services/analytics/shop", headers=shop_headers).json()["data"]
        assert data["totalOrders"] == 2
        assert data["revenueUsd"] == 80


class TestUnpaidSweep:
    def test_cancel_unpaid_orders(self, db_session, listing, customer):
        stale = make_order(
            db_session, listing, customer.address, status="pending", created_at=datetime.utcnow() - timedelta(hours=1)
        )
        fresh = make_order(db_session, listing, customer.address, status="pending")

        assert OrderService(db_session).cancel_unpaid_orders() == 1
        db_session.expire_all()
        assert db_session.get(ServiceOrder, stale.order_id).status == "cancelled"
        assert db_session.get(ServiceOrder, fresh.order_id).status == "pending"

    def test_sweep_cancels_payment_intent(self, db_session, listing, customer):
        make_order(
            db_session,
            listing,
            customer.address,
            status="pending",
            stripe_payment_intent_id="pi_late",
            created_at=datetime.utcnow() - timedelta(minutes=45),
        )

        with patch.object(stripe_service, "cancel_payment_intent") as cancel:
            assert OrderService(db_session).cancel_unpaid_orders() == 1
        cancel.assert_called_once_with("pi_late")

    def test_sweep_survives_stripe_error(self, db_session, listing, customer):
        order = make_order(
            db_session,
            listing,
            customer.address,
            status="pending",
            stripe_payment_intent_id="pi_late",
            created_at=datetime.utcnow() - timedelta(minutes=45),
        )

        error = stripe.InvalidRequestError("PaymentIntent already succeeded", "intent")
        with patch.object(stripe_service, "cancel_payment_intent", side_effect=error):
            assert OrderService(db_session).cancel_unpaid_orders() == 1
        db_session.expire_all()
        assert db_session.get(ServiceOrder, order.order_id).status == "cancelled"


class TestLatePayment:
    @pytest.fixture
    def swept_order(self, db_session, listing, customer):
        order = make_order(
            db_session,
            listing,
            customer.address,
            status="pending",
            stripe_payment_intent_id="pi_late",
            created_at=datetime.utcnow() - timedelta(minutes=45),
        )
        OrderService(db_session).cancel_unpaid_orders()
        return order

    def test_payment_after_cancellation_is_refunded(self, db_session, swept_order):
        intent = {"id": "pi_late", "metadata": {"type": "service_booking", "orderId": swept_order.order_id}}

        with patch.object(stripe_service, "refund_payment_intent", return_value=REFUND) as refund:
            result = OrderService(db_session).handle_payment_success(intent)

        assert result["alreadyProcessed"] is False
        assert result["lateRefundId"] == "re_test_1"
        refund.assert_called_once_with("pi_late", metadata={"orderId": swept_order.order_id})
        db_session.expire_all()
        stored = db_session.get(ServiceOrder, swept_order.order_id)
        assert stored.status == "refunded"
        assert stored.stripe_refund_id == "re_test_1"

        # Redelivery of the same payment is now a duplicate
        result = OrderService(db_session).handle_payment_success(intent)
        assert result["alreadyProcessed"] is True

    def test_payment_after_cancellation_alerts_when_refund_fails(self, db_session, swept_order):
        result = OrderService(db_session).handle_payment_success({"id": "pi_late", "metadata": {}})

        assert result["alreadyProcessed"] is False
        assert result["lateRefundId"] is None
        db_session.expire_all()
        assert db_session.get(ServiceOrder, swept_order.order_id).status == "cancelled"
        alert = db_session.query(Alert).one()
        assert alert.alert_type == "order_refund_required"
        assert alert.severity == "high"
        assert alert.details["paymentIntentId"] == "pi_late"

    def test_confirm_after_cancellation_refunds(self, client, db_session, swept_order, customer_headers):
        succeeded = {**INTENT, "id": "pi_late", "status": "succeeded"}
        with patch.object(stripe_service, "retrieve_payment_intent", return_value=succeeded), patch.object(
            stripe_service, "refund_payment_intent", return_value=REFUND
        ):
            response = client.post(
                "/api/services/orders/confirm", json={"paymentIntentId": "pi_late"}, headers=customer_headers
            )

        data = response.json()["data"]
        assert data["paymentStatus"] == "succeeded"
        assert data["order"]["status"] == "refunded"
