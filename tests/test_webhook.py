"""Stripe webhook endpoint tests"""
import json
from unittest.mock import patch

import stripe

from conftest import CUSTOMER_ADDRESS, make_customer
from repaircoin.domain.billing.stripe_service import stripe_service
from repaircoin.models import Alert, Customer, ServiceOrder, Shop, ShopService, WebhookLog


def send_event(client, event):
    with patch.object(stripe_service, "construct_event", return_value=event):
        return client.post(
            "/api/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=test"},
        )


def event_for(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def bank_purchase(client, shop_headers, amount=500):
    return client.post(
        "/api/shops/purchase/initiate",
        json={"amount": amount, "paymentMethod": "bank_transfer"},
        headers=shop_headers,
    ).json()["data"]["id"]


class TestWebhookVerification:
    def test_missing_webhook_secret(self, client):
        response = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "x"})
        assert response.status_code == 503

    def test_bad_signature(self, client):
        error = stripe.SignatureVerificationError("No signatures found", "x")
        with patch.object(stripe_service, "construct_event", side_effect=error):
            response = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "x"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid signature"

    def test_event_needs_id_and_type(self, client):
        with patch.object(stripe_service, "construct_event", return_value={}):
            response = client.post("/api/webhooks/stripe", content=b'{"type": "x"}', headers={"stripe-signature": "x"})
        assert response.status_code == 400


class TestWebhookProcessing:
    def test_rcn_purchase_checkout(self, client, db_session, shop, shop_headers):
        purchase_id = bank_purchase(client, shop_headers)
        event = event_for(
            "evt_1",
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_intent": "pi_1",
                "metadata": {"type": "rcn_purchase", "purchaseId": str(purchase_id), "shopId": "fixit-shop"},
            },
        )

        response = send_event(client, event)
        assert response.status_code == 200
        assert response.json()["result"] == {"handled": True, "completed": True}

        db_session.expire_all()
        assert db_session.get(Shop, "fixit-shop").purchased_rcn_balance == 1500
        log = db_session.query(WebhookLog).filter_by(event_id="evt_1").one()
        assert log.status == "processed"
        assert log.attempts == 1

    def test_duplicate_event_not_reapplied(self, client, db_session, shop, shop_headers):
        purchase_id = bank_purchase(client, shop_headers)
        event = event_for(
            "evt_2",
            "checkout.session.completed",
            {"id": "cs_2", "metadata": {"type": "rcn_purchase", "purchaseId": str(purchase_id)}},
        )
        send_event(client, event)
        response = send_event(client, event)

        assert response.json() == {"received": True, "duplicate": True}
        db_session.expire_all()
        assert db_session.get(Shop, "fixit-shop").purchased_rcn_balance == 1500

    def test_unhandled_event_is_ignored(self, client, db_session):
        response = send_event(client, event_for("evt_3", "customer.created", {"id": "cus_1"}))

        assert response.json() == {"received": True, "ignored": True}
        assert db_session.query(WebhookLog).one().status == "ignored"

    def test_handler_failure_returns_500_and_alerts(self, client, db_session, shop):
        event = event_for(
            "evt_4",
            "checkout.session.completed",
            {"id": "cs_missing", "metadata": {"type": "rcn_purchase", "purchaseId": "999"}},
        )
        response = send_event(client, event)

        assert response.status_code == 500
        assert response.json()["success"] is False
        log = db_session.query(WebhookLog).one()
        assert log.status == "failed"
        assert "not found" in log.error_message
        assert db_session.query(Alert).filter_by(alert_type="webhook_failure").count() == 1

    def test_failed_event_redelivery_is_retried(self, client, db_session, shop):
        event = event_for(
            "evt_5",
            "checkout.session.completed",
            {"id": "cs_missing", "metadata": {"type": "rcn_purchase", "purchaseId": "999"}},
        )
        send_event(client, event)
        send_event(client, event)

        db_session.expire_all()
        assert db_session.query(WebhookLog).one().attempts == 2

    def test_service_booking_payment(self, client, db_session, shop, customer):
        service = ShopService(shop_id=shop.shop_id, name="Screen Repair", price_usd=80, duration_minutes=60)
        db_session.add(service)
        db_session.commit()
        order = ServiceOrder(
            service_id=service.service_id,
            shop_id=shop.shop_id,
            customer_address=CUSTOMER_ADDRESS,
            total_amount=80,
            final_amount=80,
            stripe_payment_intent_id="pi_book_1",
        )
        db_session.add(order)
        db_session.commit()

        event = event_for(
            "evt_6",
            "payment_intent.succeeded",
            {"id": "pi_book_1", "metadata": {"type": "service_booking", "orderId": order.order_id}},
        )
        response = send_event(client, event)

        assert response.json()["result"]["handled"] is True
        db_session.expire_all()
        assert db_session.get(ServiceOrder, order.order_id).status == "paid"

    def test_service_booking_payment_failed(self, client, db_session, shop, customer):
        service = ShopService(shop_id=shop.shop_id, name="Screen Repair", price_usd=80, duration_minutes=60)
        db_session.add(service)
        db_session.commit()
        order = ServiceOrder(
            service_id=service.service_id,
            shop_id=shop.shop_id,
            customer_address=CUSTOMER_ADDRESS,
            total_amount=80,
            final_amount=80,
            stripe_payment_intent_id="pi_book_2",
        )
        db_session.add(order)
        db_session.commit()

        event = event_for(
            "evt_7",
            "payment_intent.payment_failed",
            {"id": "pi_book_2", "metadata": {"type": "service_booking"}},
        )
        send_event(client, event)

        db_session.expire_all()
        stored = db_session.get(ServiceOrder, order.order_id)
        assert stored.status == "cancelled"
        assert stored.cancellation_reason == "Payment failed"

    def test_charge_refunded_in_dashboard(self, client, db_session, shop):
        customer = make_customer(db_session, balance=0)
        service = ShopService(shop_id=shop.shop_id, name="Screen Repair", price_usd=80, duration_minutes=60)
        db_session.add(service)
        db_session.commit()
        order = ServiceOrder(
            service_id=service.service_id,
            shop_id=shop.shop_id,
            customer_address=customer.address,
            status="paid",
            total_amount=80,
            rcn_redeemed=50,
            rcn_discount_usd=5,
            final_amount=75,
            stripe_payment_intent_id="pi_ref",
        )
        db_session.add(order)
        db_session.commit()

        charge = {
            "id": "ch_1",
            "payment_intent": "pi_ref",
            "refunded": True,
            "refunds": {"data": [{"id": "re_dash"}]},
        }
        response = send_event(client, event_for("evt_8", "charge.refunded", charge))

        assert response.json()["result"] == {"handled": True, "orderId": order.order_id, "rcnRefunded": 50}
        db_session.expire_all()
        stored = db_session.get(ServiceOrder, order.order_id)
        assert stored.status == "refunded"
        assert stored.stripe_refund_id == "re_dash"
        assert db_session.get(Customer, customer.address).current_balance == 50

        # A second refund event for the same charge gives nothing back twice
        response = send_event(client, event_for("evt_9", "charge.refunded", charge))
        assert response.json()["result"]["alreadyProcessed"] is True
        db_session.expire_all()
        assert db_session.get(Customer, customer.address).current_balance == 50

    def test_partial_refund_leaves_order(self, client, db_session, shop, customer):
        service = ShopService(shop_id=shop.shop_id, name="Screen Repair", price_usd=80, duration_minutes=60)
        db_session.add(service)
        db_session.commit()
        order = ServiceOrder(
            service_id=service.service_id,
            shop_id=shop.shop_id,
            customer_address=CUSTOMER_ADDRESS,
            status="paid",
            total_amount=80,
            final_amount=80,
            stripe_payment_intent_id="pi_part",
        )
        db_session.add(order)
        db_session.commit()

        charge = {"id": "ch_2", "payment_intent": "pi_part", "refunded": False, "amount_refunded": 1000}
        response = send_event(client, event_for("evt_14", "charge.refunded", charge))

        assert response.json()["result"]["partial"] is True
        db_session.expire_all()
        assert db_session.get(ServiceOrder, order.order_id).status == "paid"


class TestWebhookAdmin:
    def test_logs_and_stats(self, client, admin_headers):
        send_event(client, event_for("evt_10", "customer.created", {}))
        send_event(client, event_for("evt_11", "customer.updated", {}))

        data = client.get("/api/admin/webhooks/logs", headers=admin_headers).json()["data"]
        assert data["pagination"]["total"] == 2
        assert data["items"][0]["eventId"] == "evt_11"

        data = client.get("/api/admin/webhooks/logs?eventType=customer.created", headers=admin_headers).json()["data"]
        assert [log["eventId"] for log in data["items"]] == ["evt_10"]

        stats = client.get("/api/admin/webhooks/stats", headers=admin_headers).json()["data"]
        assert stats["total"] == 2
        assert stats["byStatus"] == {"ignored": 2}
        assert stats["failureRate"] == 0

    def test_retry_failed_log(self, client, db_session, shop, admin_headers):
        send_event(
            client,
            event_for(
                "evt_12",
                "checkout.session.completed",
                {"id": "cs_missing", "metadata": {"type": "rcn_purchase", "purchaseId": "999"}},
            ),
        )
        log_id = db_session.query(WebhookLog).one().id

        response = client.post(f"/api/admin/webhooks/logs/{log_id}/retry", headers=admin_headers)
        data = response.json()["data"]
        assert data["retried"] is True
        assert data["success"] is False

    def test_retry_requires_failed_status(self, client, db_session, admin_headers):
        send_event(client, event_for("evt_13", "customer.created", {}))
        log_id = db_session.query(WebhookLog).one().id

        response = client.post(f"/api/admin/webhooks/logs/{log_id}/retry", headers=admin_headers)
        assert response.status_code == 400

        response = client.post("/api/admin/webhooks/logs/999/retry", headers=admin_headers)
        assert response.status_code == 404

    def test_logs_require_admin(self, client, shop_headers):
        response = client.get("/api/admin/webhooks/logs", headers=shop_headers)
        assert response.status_code == 403
