"""Promo code tests"""
from datetime import datetime, timedelta
from types import SimpleNamespace

from repaircoin.domain.shop.promo_service import calculate_promo_bonus


def promo_payload(**kwargs):
    now = datetime.utcnow()
    payload = {
        "code": "summer-25",
        "name": "Summer",
        "bonusType": "fixed",
        "bonusValue": 5,
        "startDate": (now - timedelta(days=1)).isoformat(),
        "endDate": (now + timedelta(days=30)).isoformat(),
    }
    payload.update(kwargs)
    return payload


class TestCalculatePromoBonus:
    def test_fixed_bonus(self):
        promo = SimpleNamespace(bonus_type="fixed", bonus_value=5, max_bonus=None)
        assert calculate_promo_bonus(promo, 25) == 5

    def test_percentage_bonus(self):
        promo = SimpleNamespace(bonus_type="percentage", bonus_value=20, max_bonus=None)
        assert calculate_promo_bonus(promo, 25) == 5

    def test_percentage_bonus_capped(self):
        promo = SimpleNamespace(bonus_type="percentage", bonus_value=100, max_bonus=8)
        assert calculate_promo_bonus(promo, 25) == 8


class TestPromoCodeEndpoints:
    def test_create_and_list(self, client, shop, shop_headers):
        response = client.post("/api/shops/fixit-shop/promo-codes", json=promo_payload(), headers=shop_headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["code"] == "SUMMER-25"
        assert data["isActive"] is True
        assert data["perCustomerLimit"] == 1

        response = client.get("/api/shops/fixit-shop/promo-codes", headers=shop_headers)
        assert [p["code"] for p in response.json()["data"]] == ["SUMMER-25"]

    def test_duplicate_code(self, client, shop, shop_headers):
        client.post("/api/shops/fixit-shop/promo-codes", json=promo_payload(), headers=shop_headers)
        response = client.post("/api/shops/fixit-shop/promo-codes", json=promo_payload(), headers=shop_headers)
        assert response.status_code == 409

    def test_percentage_over_100_rejected(self, client, shop, shop_headers):
        response = client.post(
            "/api/shops/fixit-shop/promo-codes",
            json=promo_payload(bonusType="percentage", bonusValue=150),
            headers=shop_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Percentage bonus must be between 0 and 100"

    def test_end_before_start_rejected(self, client, shop, shop_headers):
        now = datetime.utcnow()
        response = client.post(
            "/api/shops/fixit-shop/promo-codes",
            json=promo_payload(startDate=now.isoformat(), endDate=(now - timedelta(days=1)).isoformat()),
            headers=shop_headers,
        )
        assert response.status_code == 400

    def test_validate(self, client, shop, customer, shop_headers):
        client.post("/api/shops/fixit-shop/promo-codes", json=promo_payload(), headers=shop_headers)

        response = client.post(
            "/api/shops/fixit-shop/promo-codes/validate",
            json={"code": "SUMMER-25", "customerAddress": customer.address},
            headers=shop_headers,
        )
        data = response.json()["data"]
        assert data["isValid"] is True
        assert data["promoCode"]["code"] == "SUMMER-25"

        response = client.post(
            "/api/shops/fixit-shop/promo-codes/validate",
            json={"code": "NOPE", "customerAddress": customer.address},
            headers=shop_headers,
        )
        assert response.json()["data"] == {"isValid": False, "error": "Promo code not found", "promoCode": None}

    def test_expired_code_invalid(self, client, shop, customer, shop_headers):
        now = datetime.utcnow()
        client.post(
            "/api/shops/fixit-shop/promo-codes",
            json=promo_payload(
                startDate=(now - timedelta(days=10)).isoformat(),
                endDate=(now - timedelta(days=1)).isoformat(),
            ),
            headers=shop_headers,
        )
        response = client.post(
            "/api/shops/fixit-shop/promo-codes/validate",
            json={"code": "SUMMER-25", "customerAddress": customer.address},
            headers=shop_headers,
        )
        assert response.json()["data"]["error"] == "Promo code has expired"

    def test_update_and_deactivate(self, client, shop, shop_headers):
        promo_id = client.post(
            "/api/shops/fixit-shop/promo-codes", json=promo_payload(), headers=shop_headers
        ).json()["data"]["id"]

        response = client.put(
            f"/api/shops/fixit-shop/promo-codes/{promo_id}", json={"bonusValue": 8}, headers=shop_headers
        )
        assert response.json()["data"]["bonusValue"] == 8

        response = client.put(
            f"/api/shops/fixit-shop/promo-codes/{promo_id}", json={"bonusValue": -1}, headers=shop_headers
        )
        assert response.status_code == 400

        response = client.delete(f"/api/shops/fixit-shop/promo-codes/{promo_id}", headers=shop_headers)
        assert response.json()["data"]["isActive"] is False

    def test_unknown_promo(self, client, shop, shop_headers):
        response = client.delete("/api/shops/fixit-shop/promo-codes/999", headers=shop_headers)
        assert response.status_code == 404
