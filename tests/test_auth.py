from datetime import timedelta

from bson import ObjectId

from auth import create_access_token, decode_token, peek_role
from config import NEW_TOKEN_HEADER, SESSION_COOKIE
from conftest import PASSWORD, bearer


def test_token_round_trip():
    claims = decode_token(create_access_token("abc", "admin"))
    assert claims["user_id"] == "abc"
    assert claims["role"] == "admin"


def test_peek_role_ignores_bad_tokens():
    assert peek_role("garbage") is None
    assert peek_role(None) is None
    assert peek_role(create_access_token("abc", "admin", expires_delta=timedelta(seconds=-5))) is None


def test_signup_and_login(client, db):
    response = client.post("/api/auth/signup", json={"name": "Ann", "email": "Ann@Shop.com", "password": "hunter22"})
    assert response.status_code == 201
    stored = db["user"].find_one({"email": "ann@shop.com"})
    assert stored["role"] == "user"
    assert stored["password_hash"] != "hunter22"

    login = client.post("/api/auth/login", json={"email": "ann@shop.com", "password": "hunter22"})
    assert login.status_code == 200
    body = login.json()
    assert body["role"] == "user"
    assert body["token"]
    assert SESSION_COOKIE in login.cookies


def test_signup_duplicate_email(client, make_user):
    make_user(email="dup@shop.com")
    response = client.post("/api/auth/signup", json={"name": "Dup", "email": "dup@shop.com", "password": "hunter22"})
    assert response.status_code == 400


def test_signup_rejects_short_password(client):
    response = client.post("/api/auth/signup", json={"name": "Ann", "email": "ann@shop.com", "password": "123"})
    assert response.status_code == 422


def test_signup_disabled_by_settings(client, db):
    client.get("/api/settings")
    db["settings"].update_one({}, {"$set": {"enable_registration": False}})
    response = client.post("/api/auth/signup", json={"name": "Ann", "email": "ann@shop.com", "password": "hunter22"})
    assert response.status_code == 403


def test_login_failures(client, make_user):
    make_user(email="bob@shop.com")
    assert client.post("/api/auth/login", json={"email": "nobody@shop.com", "password": PASSWORD}).status_code == 400
    wrong = client.post("/api/auth/login", json={"email": "bob@shop.com", "password": "wrong-password"})
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Invalid credentials"


def test_me_with_cookie_from_login(client, make_user):
    make_user(email="carol@shop.com")
    client.post("/api/auth/login", json={"email": "carol@shop.com", "password": PASSWORD})
    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json()["email"] == "carol@shop.com"
    assert "password_hash" not in response.json()


def test_logout_clears_cookie(client, make_user):
    make_user(email="dave@shop.com")
    client.post("/api/auth/login", json={"email": "dave@shop.com", "password": PASSWORD})
    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401


def test_missing_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized: No token provided"


def test_invalid_and_expired_tokens(client, user):
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401
    expired = bearer(user["id"], expires_delta=timedelta(seconds=-1))
    response = client.get("/api/auth/me", headers=expired)
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_fresh_token_is_not_rotated(client, user):
    response = client.get("/api/auth/me", headers=user["headers"])
    assert response.status_code == 200
    assert NEW_TOKEN_HEADER not in response.headers


def test_token_near_expiry_is_rotated(client, user):
    headers = bearer(user["id"], expires_delta=timedelta(hours=2))
    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 200
    new_token = response.headers[NEW_TOKEN_HEADER]
    claims = decode_token(new_token)
    assert claims["user_id"] == user["id"]
    assert claims["role"] == "user"
    assert SESSION_COOKIE in response.cookies


def test_me_for_deleted_user(client):
    response = client.get("/api/auth/me", headers=bearer(str(ObjectId())))
    assert response.status_code == 404


def test_rotation_header_sent_whenever_bearer_is_used(client, user):
    near_expiry = create_access_token(user["id"], "user", expires_delta=timedelta(hours=2))
    client.cookies.set(SESSION_COOKIE, near_expiry)
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {near_expiry}"})
    assert response.status_code == 200
    assert decode_token(response.headers[NEW_TOKEN_HEADER])["user_id"] == user["id"]


def test_cookie_only_rotation_has_no_header(client, user):
    client.cookies.set(SESSION_COOKIE, create_access_token(user["id"], "user", expires_delta=timedelta(hours=2)))
    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert NEW_TOKEN_HEADER not in response.headers
    assert SESSION_COOKIE in response.cookies
