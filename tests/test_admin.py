"""Admin endpoint tests"""
from datetime import datetime

from conftest import ADMIN_ADDRESS, CUSTOMER_ADDRESS, auth_headers, make_customer, make_shop
from repaircoin.domain.admin.repository import AdminRepository
from repaircoin.models import Admin, Notification, Shop, Transaction

NEW_ADMIN = "0x" + "9" * 40


class TestPlatform:
    def test_stats(self, client, db_session, shop, admin_headers):
        make_customer(db_session, balance=40, lifetime=40)
        make_shop(db_session, shop_id="new-shop", wallet="0x" + "e" * 40, verified=False)

        data = client.get("/api/admin/stats", headers=admin_headers).json()["data"]
        assert data["customers"] == {"total": 1, "active": 1}
        assert data["shops"]["total"] == 2
        assert data["shops"]["pending"] == 1
        assert data["tokens"]["circulating"] == 40

    def test_treasury(self, client, shop, admin_headers):
        data = client.get("/api/admin/treasury", headers=admin_headers).json()["data"]
        assert data["tokensInShopBalances"] == 1000
        assert len(data["pricingTiers"]) == 3

    def test_activity(self, client, db_session, admin_headers):
        now = datetime.utcnow()
        db_session.add_all(
            [
                Transaction(type="mint", customer_address=CUSTOMER_ADDRESS, amount=25, created_at=now),
                Transaction(type="redeem", customer_address=CUSTOMER_ADDRESS, amount=10, created_at=now),
            ]
        )
        db_session.commit()

        data = client.get("/api/admin/analytics/activity?days=7", headers=admin_headers).json()["data"]
        assert len(data) == 7
        assert data[-1]["date"] == now.date().isoformat()
        assert data[-1]["tokensMinted"] == 25
        assert data[-1]["tokensRedeemed"] == 10

    def test_requires_admin(self, client, customer_headers):
        assert client.get("/api/admin/stats", headers=customer_headers).status_code == 403
        assert client.get("/api/admin/stats").status_code == 401


class TestShopManagement:
    def test_verify_shop(self, client, db_session, admin_headers):
        make_shop(db_session, verified=False, operational_status="not_qualified")

        response = client.post("/api/admin/shops/fixit-shop/verify", headers=admin_headers)
        data = response.json()["data"]
        assert data["verified"] is True
        assert data["operationalStatus"] == "rcg_qualified"
        assert db_session.query(Notification).filter_by(notification_type="shop_verified").count() == 1

        response = client.post("/api/admin/shops/fixit-shop/verify", headers=admin_headers)
        assert response.status_code == 400

    def test_pending_list(self, client, db_session, shop, admin_headers):
        make_shop(db_session, shop_id="new-shop", wallet="0x" + "e" * 40, verified=False)
        data = client.get("/api/admin/shops/pending", headers=admin_headers).json()["data"]
        assert [s["shopId"] for s in data["items"]] == ["new-shop"]

    def test_suspend_blocks_shop_token(self, client, shop, shop_headers, admin_headers):
        response = client.post(
            "/api/admin/shops/fixit-shop/suspend", json={"reason": "Fraud review"}, headers=admin_headers
        )
        assert response.json()["data"]["active"] is False

        assert client.get("/api/shops/fixit-shop/dashboard", headers=shop_headers).status_code == 403

        response = client.post("/api/admin/shops/fixit-shop/unsuspend", headers=admin_headers)
        assert response.status_code == 200
        assert client.get("/api/shops/fixit-shop/dashboard", headers=shop_headers).status_code == 200

    def test_suspend_requires_reason(self, client, shop, admin_headers):
        response = client.post("/api/admin/shops/fixit-shop/suspend", json={"reason": ""}, headers=admin_headers)
        assert response.status_code == 400

    def test_rcg_balance_drives_operational_status(self, client, shop, admin_headers):
        response = client.put(
            "/api/admin/shops/fixit-shop/rcg-balance", json={"rcgBalance": 0}, headers=admin_headers
        )
        assert response.json()["data"]["operationalStatus"] == "not_qualified"

    def test_pause_and_resume(self, client, shop, admin_headers):
        response = client.post("/api/admin/shops/fixit-shop/pause", headers=admin_headers)
        assert response.json()["data"]["operationalStatus"] == "paused"

        response = client.post("/api/admin/shops/fixit-shop/resume", headers=admin_headers)
        assert response.json()["data"]["operationalStatus"] == "rcg_qualified"

        response = client.post("/api/admin/shops/fixit-shop/resume", headers=admin_headers)
        assert response.status_code == 400

    def test_mint_shop_balance(self, client, db_session, shop, admin_headers):
        response = client.post(
            "/api/admin/shops/fixit-shop/mint-balance",
            json={"amount": 250, "reason": "Launch credit"},
            headers=admin_headers,
        )
        assert response.status_code == 200

        db_session.expire_all()
        assert db_session.get(Shop, "fixit-shop").purchased_rcn_balance == 1250
        tx = db_session.query(Transaction).one()
        assert tx.type == "shop_purchase"
        assert tx.details == {"adminCredit": True}

    def test_unknown_shop(self, client, admin_headers):
        assert client.post("/api/admin/shops/nope/verify", headers=admin_headers).status_code == 404


class TestCustomerManagement:
    def test_suspend_and_unsuspend(self, client, customer, customer_headers, admin_headers):
        response = client.post(
            f"/api/admin/customers/{CUSTOMER_ADDRESS}/suspend", json={"reason": "Abuse"}, headers=admin_headers
        )
        assert response.json()["data"]["suspended"] is True
        assert client.get(f"/api/customers/{CUSTOMER_ADDRESS}", headers=customer_headers).status_code == 403

        response = client.post(
            f"/api/admin/customers/{CUSTOMER_ADDRESS}/suspend", json={"reason": "Again"}, headers=admin_headers
        )
        assert response.status_code == 400

        response = client.post(f"/api/admin/customers/{CUSTOMER_ADDRESS}/unsuspend", headers=admin_headers)
        assert response.json()["data"]["suspended"] is False

    def test_mint_counts_toward_tier(self, client, db_session, admin_headers):
        make_customer(db_session, balance=150, lifetime=150)
        response = client.post(
            f"/api/admin/customers/{CUSTOMER_ADDRESS}/mint",
            json={"amount": 100, "reason": "Goodwill"},
            headers=admin_headers,
        )

        data = response.json()["data"]
        assert data["minted"] == 100
        assert data["currentBalance"] == 250
        assert data["lifetimeEarnings"] == 250
        assert data["tier"] == "SILVER"
        assert data["txHash"] is None
        assert db_session.query(Transaction).filter_by(type="admin_mint").count() == 1

    def test_list_customers_by_tier(self, client, db_session, admin_headers):
        make_customer(db_session)
        make_customer(db_session, address="0x" + "d" * 40, lifetime=1200, tier="GOLD")

        data = client.get("/api/admin/customers?tier=GOLD", headers=admin_headers).json()["data"]
        assert [c["tier"] for c in data["items"]] == ["GOLD"]

    def test_bad_address(self, client, admin_headers):
        response = client.post("/api/admin/customers/0x123/unsuspend", headers=admin_headers)
        assert response.status_code == 400


class TestAdminAccounts:
    def test_create_and_remove(self, client, db_session, admin_headers):
        response = client.post(
            "/api/admin/admins", json={"walletAddress": NEW_ADMIN, "name": "Ops"}, headers=admin_headers
        )
        assert response.status_code == 201
        assert response.json()["data"]["createdBy"] == ADMIN_ADDRESS

        response = client.post(
            "/api/admin/admins", json={"walletAddress": NEW_ADMIN, "name": "Ops"}, headers=admin_headers
        )
        assert response.status_code == 409

        response = client.delete(f"/api/admin/admins/{NEW_ADMIN}", headers=admin_headers)
        assert response.json()["data"] == {"walletAddress": NEW_ADMIN, "removed": True}
        db_session.expire_all()
        assert db_session.query(Admin).one().is_active is False

    def test_customer_wallet_cannot_become_admin(self, client, customer, admin_headers):
        response = client.post(
            "/api/admin/admins", json={"walletAddress": CUSTOMER_ADDRESS, "name": "Ops"}, headers=admin_headers
        )
        assert response.status_code == 409

    def test_cannot_remove_self(self, client, admin_headers):
        response = client.delete(f"/api/admin/admins/{ADMIN_ADDRESS}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "You cannot remove yourself"

    def test_regular_admin_cannot_manage_admins(self, client, db_session):
        db_session.add(Admin(wallet_address=NEW_ADMIN, name="Ops", is_super_admin=False))
        db_session.commit()

        response = client.post(
            "/api/admin/admins",
            json={"walletAddress": "0x" + "8" * 40, "name": "Another"},
            headers=auth_headers(NEW_ADMIN, "admin"),
        )
        assert response.status_code == 403

    def test_removed_admin_token_rejected(self, client, db_session, admin_headers):
        client.post("/api/admin/admins", json={"walletAddress": NEW_ADMIN, "name": "Ops"}, headers=admin_headers)
        headers = auth_headers(NEW_ADMIN, "admin")
        assert client.get("/api/admin/stats", headers=headers).status_code == 200

        client.delete(f"/api/admin/admins/{NEW_ADMIN}", headers=admin_headers)
        response = client.get("/api/admin/stats", headers=headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Admin access has been revoked"


class TestAlerts:
    def test_list_and_resolve(self, client, db_session, admin_headers):
        alert = AdminRepository.create_alert(db_session, "webhook_failure", "Webhook failed", "boom")
        db_session.commit()

        data = client.get("/api/admin/alerts?resolved=false", headers=admin_headers).json()["data"]
        assert data["pagination"]["total"] == 1

        response = client.post(f"/api/admin/alerts/{alert.id}/resolve", headers=admin_headers)
        data = response.json()["data"]
        assert data["resolved"] is True
        assert data["resolvedBy"] == ADMIN_ADDRESS

        data = client.get("/api/admin/alerts?resolved=false", headers=admin_headers).json()["data"]
        assert data["pagination"]["total"] == 0

    def test_unknown_alert(self, client, admin_headers):
        assert client.post("/api/admin/alerts/999/resolve", headers=admin_headers).status_code == 404
