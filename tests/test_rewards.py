"""Issue-reward, preview and redeem tests"""
from datetime import date, datetime, timedelta

from conftest import (
    OTHER_CUSTOMER_ADDRESS,
    SHOP_WALLET,
    auth_headers,
    make_customer,
    make_shop,
)
from repaircoin.models import (
    Customer,
    PromoCode,
    RedemptionSession,
    Referral,
    Shop,
    Transaction,
)


def issue(client, headers, address, amount, **extra):
    return client.post(
        "/api/shops/fixit-shop/issue-reward",
        json={"customerAddress": address, "repairAmount": amount, **extra},
        headers=headers,
    )


class TestIssueReward:
    def test_large_repair_with_tier_bonus(self, client, db_session, shop, customer, shop_headers):
        response = issue(client, shop_headers, customer.address, 120)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["baseReward"] == 25
        assert data["tierBonus"] == 10
        assert data["totalReward"] == 35
        assert data["shopBalance"] == 965

        db_session.expire_all()
        stored = db_session.get(Customer, customer.address)
        assert stored.current_balance == 35
        assert stored.lifetime_earnings == 35
        assert stored.daily_earnings == 25
        assert stored.home_shop_id == "fixit-shop"

        types = sorted(t.type for t in db_session.query(Transaction).all())
        assert types == ["mint", "tier_bonus"]

    def test_skip_tier_bonus(self, client, shop, customer, shop_headers):
        response = issue(client, shop_headers, customer.address, 60, skipTierBonus=True)
        data = response.json()["data"]
        assert data["baseReward"] == 10
        assert data["tierBonus"] == 0
        assert data["totalReward"] == 10

    def test_reaching_silver_upgrades_tier(self, client, db_session, shop, shop_headers):
        make_customer(db_session, lifetime=180, balance=0)
        response = issue(client, shop_headers, "0x" + "c" * 40, 100)
        assert response.json()["data"]["customerTier"] == "SILVER"

    def test_below_minimum_repair_amount(self, client, shop, customer, shop_headers):
        response = issue(client, shop_headers, customer.address, 30)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_daily_limit_exceeded(self, client, db_session, shop, shop_headers):
        make_customer(db_session, daily_earnings=25, monthly_earnings=25, last_earned_date=date.today())
        response = issue(client, shop_headers, "0x" + "c" * 40, 150)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Daily earning limit exceeded"
        assert body["limits"]["dailyRemaining"] == 15

    def test_insufficient_shop_balance(self, client, db_session, customer):
        make_shop(db_session, balance=20)
        headers = _shop_headers()
        response = issue(client, headers, customer.address, 150)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Insufficient shop RCN balance"
        assert body["required"] == 35
        assert body["available"] == 20

    def test_unverified_shop_cannot_issue(self, client, db_session, customer):
        make_shop(db_session, verified=False)
        response = issue(client, _shop_headers(), customer.address, 100)
        assert response.status_code == 403

    def test_unqualified_shop_cannot_issue(self, client, db_session, customer):
        make_shop(db_session, operational_status="not_qualified", rcg_balance=0)
        response = issue(client, _shop_headers(), customer.address, 100)
        assert response.status_code == 403
        assert "not operational" in response.json()["error"]

    def test_suspended_customer(self, client, db_session, shop, shop_headers):
        make_customer(db_session, suspended_at=datetime.utcnow())
        response = issue(client, shop_headers, "0x" + "c" * 40, 100)
        assert response.status_code == 400

    def test_unknown_customer(self, client, shop, shop_headers):
        response = issue(client, shop_headers, OTHER_CUSTOMER_ADDRESS, 100)
        assert response.status_code == 404

    def test_other_shop_forbidden(self, client, db_session, shop, customer):
        other = make_shop(db_session, shop_id="other-shop", wallet="0x" + "e" * 40, email="o@example.com")
        headers = auth_headers(other.wallet_address, "shop", other.shop_id)
        response = issue(client, headers, customer.address, 100)
        assert response.status_code == 403

    def test_customer_role_forbidden(self, client, shop, customer, customer_headers):
        response = issue(client, customer_headers, customer.address, 100)
        assert response.status_code == 403

    def test_promo_code_bonus(self, client, db_session, shop, customer, shop_headers):
        now = datetime.utcnow()
        db_session.add(
            PromoCode(
                shop_id=shop.shop_id,
                code="SPRING",
                name="Spring",
                bonus_type="percentage",
                bonus_value=50,
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=1),
            )
        )
        db_session.commit()

        response = issue(client, shop_headers, customer.address, 100, promoCode="SPRING")
        data = response.json()["data"]
        assert data["promoBonus"] == 12.5
        assert data["totalReward"] == 47.5

        db_session.expire_all()
        promo = db_session.query(PromoCode).filter_by(code="SPRING").one()
        assert promo.times_used == 1

        # per-customer limit defaults to one use
        response = issue(client, shop_headers, customer.address, 100, promoCode="SPRING")
        assert response.status_code == 400
        assert "Invalid promo code" in response.json()["error"]

    def test_first_repair_completes_referral(self, client, db_session, shop, shop_headers):
        referrer = make_customer(db_session, address=OTHER_CUSTOMER_ADDRESS)
        referee = make_customer(db_session, referred_by=referrer.address)
        db_session.add(
            Referral(
                referral_code=referrer.referral_code,
                referrer_address=referrer.address,
                referee_address=referee.address,
            )
        )
        db_session.commit()

        response = issue(client, shop_headers, referee.address, 100)
        data = response.json()["data"]
        assert data["referral"]["completed"] is True

        db_session.expire_all()
        assert db_session.get(Customer, referrer.address).current_balance == 25
        assert db_session.get(Customer, referee.address).current_balance == 35 + 10
        assert db_session.query(Referral).one().status == "completed"

        # Second repair does not pay the referral again
        response = issue(client, shop_headers, referee.address, 60)
        assert response.json()["data"]["referral"] is None


class TestPreview:
    def test_preview_has_no_side_effects(self, client, db_session, shop, customer, shop_headers):
        response = client.post(
            "/api/shops/tier-bonus/preview",
            json={"customerAddress": customer.address, "repairAmount": 75},
            headers=shop_headers,
        )
        data = response.json()["data"]
        assert data["eligible"] is True
        assert data["totalReward"] == 20
        assert db_session.query(Transaction).count() == 0

    def test_preview_ineligible_amount(self, client, shop, customer, shop_headers):
        response = client.post(
            "/api/shops/tier-bonus/preview",
            json={"customerAddress": customer.address, "repairAmount": 20},
            headers=shop_headers,
        )
        data = response.json()["data"]
        assert data["eligible"] is False
        assert data["totalReward"] == 0


class TestRedeem:
    def _approved_session(self, db_session, customer, amount=40, **kwargs):
        session = RedemptionSession(
            session_id="sess-1",
            customer_address=customer.address,
            shop_id="fixit-shop",
            max_amount=amount,
            status=kwargs.pop("status", "approved"),
            expires_at=kwargs.pop("expires_at", datetime.utcnow() + timedelta(minutes=5)),
            created_at=datetime.utcnow(),
        )
        db_session.add(session)
        db_session.commit()
        return session

    def _redeem(self, client, headers, address, amount, session_id="sess-1"):
        return client.post(
            "/api/shops/fixit-shop/redeem",
            json={"customerAddress": address, "amount": amount, "sessionId": session_id},
            headers=headers,
        )

    def test_redeem_with_approved_session(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100, lifetime=100)
        self._approved_session(db_session, customer)

        response = self._redeem(client, shop_headers, customer.address, 30)
        assert response.status_code == 200
        assert response.json()["data"]["newBalance"] == 70

        db_session.expire_all()
        stored = db_session.get(Customer, customer.address)
        assert stored.total_redemptions == 30
        assert stored.lifetime_earnings == 100
        assert db_session.get(RedemptionSession, "sess-1").status == "used"
        assert db_session.get(Shop, "fixit-shop").total_redemptions == 30

    def test_session_is_single_use(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100)
        self._approved_session(db_session, customer)

        assert self._redeem(client, shop_headers, customer.address, 10).status_code == 200
        response = self._redeem(client, shop_headers, customer.address, 10)
        assert response.status_code == 400
        assert response.json()["error"] == "Session has already been used"

    def test_amount_above_session_limit(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100)
        self._approved_session(db_session, customer, amount=20)
        response = self._redeem(client, shop_headers, customer.address, 30)
        assert response.status_code == 400
        assert "exceeds session limit" in response.json()["error"]

    def test_pending_session_rejected(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100)
        self._approved_session(db_session, customer, status="pending")
        response = self._redeem(client, shop_headers, customer.address, 10)
        assert response.status_code == 400
        assert "not approved" in response.json()["error"]

    def test_expired_session_rejected(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100)
        self._approved_session(db_session, customer, expires_at=datetime.utcnow() - timedelta(minutes=1))
        response = self._redeem(client, shop_headers, customer.address, 10)
        assert response.status_code == 400
        assert response.json()["error"] == "Session has expired"

    def test_insufficient_balance(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=5)
        self._approved_session(db_session, customer)
        response = self._redeem(client, shop_headers, customer.address, 10)
        assert response.status_code == 400
        assert "Insufficient balance" in response.json()["error"]

    def test_unknown_session(self, client, db_session, shop, shop_headers):
        customer = make_customer(db_session, balance=100)
        response = self._redeem(client, shop_headers, customer.address, 10, session_id="missing")
        assert response.status_code == 404


def _shop_headers():
    return auth_headers(SHOP_WALLET, "shop", "fixit-shop")
