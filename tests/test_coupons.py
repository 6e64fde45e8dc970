from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from conftest import bearer
from coupons import calculate_discount, check_coupon, dynamic_amount
from schemas import Coupon


def coupon(**overrides):
    data = {
        "code": "save10",
        "description": "ten percent off",
        "discount_type": "percentage",
        "discount_amount": 10,
        "minimum_amount": 50,
        "usage_limit": 100,
        "used_count": 0,
        "active": True,
        "expiry_date": datetime.now(timezone.utc) + timedelta(days=1),
    }
    data.update(overrides)
    return Coupon(**data)


def test_code_is_normalized():
    assert coupon(code="  flat150 ").code == "FLAT150"


def test_discount_amount_required_unless_dynamic():
    with pytest.raises(ValueError):
        coupon(discount_type="fixed", discount_amount=None)
    assert coupon(code="FLAT50", discount_type="dynamic", discount_amount=None).discount_amount is None


def test_valid_coupon():
    assert check_coupon(coupon(), 100).valid


def test_inactive_is_reported_first():
    result = check_coupon(coupon(active=False, used_count=100, minimum_amount=1000), 10)
    assert not result.valid
    assert result.message == "Coupon is inactive"


def test_expired():
    result = check_coupon(coupon(expiry_date=datetime.now(timezone.utc) - timedelta(minutes=1)), 100)
    assert result.message == "Coupon has expired"


def test_naive_expiry_is_treated_as_utc():
    naive = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(tzinfo=None)
    assert check_coupon(coupon(expiry_date=naive), 100).valid


def test_usage_limit_reached_is_invalid_regardless_of_amount():
    for amount in (0, 50, 10_000):
        result = check_coupon(coupon(usage_limit=3, used_count=3, minimum_amount=0), amount)
        assert not result.valid
        assert result.message == "Coupon usage limit reached"


def test_minimum_amount():
    result = check_coupon(coupon(minimum_amount=50), 49.99)
    assert not result.valid
    assert "at least 50" in result.message


def test_fixed_discount():
    assert calculate_discount(coupon(discount_type="fixed", discount_amount=30), 100) == 30


def test_percentage_discount():
    assert calculate_discount(coupon(), 200) == 20


def test_dynamic_discount_from_code():
    assert calculate_discount(coupon(code="FLAT150", discount_type="dynamic", discount_amount=None), 500) == 150


def test_dynamic_without_flat_prefix_is_zero():
    assert calculate_discount(coupon(code="WELCOME", discount_type="dynamic", discount_amount=None), 500) == 0
    assert dynamic_amount("FLATX") == 0
    assert dynamic_amount("FLAT20OFF") == 20


@pytest.mark.parametrize("discount_type,amount,code", [
    ("fixed", 500, "BIG"),
    ("percentage", 250, "HUGE"),
    ("dynamic", None, "FLAT9999"),
])
def test_discount_never_exceeds_order_amount(discount_type, amount, code):
    for order_amount in (0, 1, 99.5, 300):
        c = coupon(code=code, discount_type=discount_type, discount_amount=amount)
        discount = calculate_discount(c, order_amount)
        assert 0 <= discount <= order_amount


# API

def test_admin_creates_and_lists_coupons(client, admin):
    payload = {
        "code": "welcome5",
        "description": "five off",
        "discount_type": "fixed",
        "discount_amount": 5,
        "minimum_amount": 0,
        "usage_limit": 10,
        "used_count": 7,
        "expiry_date": "2099-01-01T00:00:00Z",
    }
    response = client.post("/api/coupons", json=payload, headers=admin["headers"])
    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "WELCOME5"
    assert body["used_count"] == 0

    duplicate = client.post("/api/coupons", json={**payload, "code": "WELCOME5"}, headers=admin["headers"])
    assert duplicate.status_code == 400

    listed = client.get("/api/coupons", headers=admin["headers"])
    assert [c["code"] for c in listed.json()] == ["WELCOME5"]


def test_coupon_management_requires_admin(client, user):
    assert client.get("/api/coupons", headers=user["headers"]).status_code == 403
    assert client.get("/api/coupons").status_code == 401


def test_update_and_delete_coupon(client, admin, make_coupon):
    coupon_id = make_coupon()
    response = client.put(f"/api/coupons/{coupon_id}", json={"discount_amount": 15}, headers=admin["headers"])
    assert response.status_code == 200
    assert response.json()["discount_amount"] == 15

    assert client.delete(f"/api/coupons/{coupon_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/coupons/{coupon_id}", headers=admin["headers"]).status_code == 404


def test_update_coupon_keeps_amount_rule(client, admin, make_coupon):
    coupon_id = make_coupon(code="FLAT20", discount_type="dynamic", discount_amount=None)
    response = client.put(f"/api/coupons/{coupon_id}", json={"discount_type": "fixed"}, headers=admin["headers"])
    assert response.status_code == 400


def test_delete_missing_coupon(client, admin, make_coupon):
    coupon_id = make_coupon()
    client.delete(f"/api/coupons/{coupon_id}", headers=admin["headers"])
    assert client.delete(f"/api/coupons/{coupon_id}", headers=admin["headers"]).status_code == 404


def test_update_coupon_rejects_code_clash(client, admin, make_coupon):
    make_coupon(code="TAKEN")
    coupon_id = make_coupon(code="OTHER")
    response = client.put(f"/api/coupons/{coupon_id}", json={"code": "taken"}, headers=admin["headers"])
    assert response.status_code == 400


def test_validate_coupon(client, user, make_coupon):
    make_coupon()
    response = client.post("/api/coupons/validate", json={"code": "save10", "order_amount": 200}, headers=user["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["discount_amount"] == 20
    assert body["final_amount"] == 180


def test_validate_reports_first_failure(client, user, make_coupon):
    make_coupon(minimum_amount=500)
    response = client.post("/api/coupons/validate", json={"code": "SAVE10", "order_amount": 100}, headers=user["headers"])
    assert response.status_code == 400
    assert "at least 500" in response.json()["detail"]


def test_validate_unknown_code(client, user):
    response = client.post("/api/coupons/validate", json={"code": "NOPE", "order_amount": 100}, headers=user["headers"])
    assert response.status_code == 404


def test_apply_increments_usage_until_limit(client, db, user, make_coupon):
    coupon_id = make_coupon(usage_limit=1)
    first = client.post("/api/coupons/apply", json={"code": "SAVE10"}, headers=user["headers"])
    assert first.status_code == 200
    assert first.json()["coupon"]["used_count"] == 1

    second = client.post("/api/coupons/apply", json={"code": "SAVE10"}, headers=user["headers"])
    assert second.status_code == 400
    assert db["coupon"].find_one({"_id": ObjectId(coupon_id)})["used_count"] == 1


def test_apply_requires_login(client, make_coupon):
    make_coupon()
    assert client.post("/api/coupons/apply", json={"code": "SAVE10"}).status_code == 401


def test_get_coupon_with_bad_id(client, admin):
    assert client.get("/api/coupons/not-an-id", headers=admin["headers"]).status_code == 400


def test_admin_token_for_unknown_user_still_checks_role(client):
    headers = bearer(str(ObjectId()), "user")
    assert client.get("/api/coupons", headers=headers).status_code == 403
