"""Tests d'authentification: domaine (hash, JWT, validation) et routes /v1/auth."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from content_analyzer.app.main import create_app
from content_analyzer.domain.auth import (
    create_access_token,
    decode_token,
    hash_password,
    normalize_email,
    validate_email,
    validate_password,
    verify_password,
)
from conftest import TEST_JWT_SECRET


def test_password_hash_roundtrip():
    h = hash_password("correct horse")
    assert h.startswith("$pbkdf2-sha256$")
    assert verify_password("correct horse", h)
    assert not verify_password("wrong horse", h)
    assert not verify_password("anything", "")


def test_token_roundtrip_and_expiry():
    token, expires_at = create_access_token(TEST_JWT_SECRET, "HS256", 5, {"sub": "u1", "email": "a@b.io"})
    assert expires_at > datetime.now(UTC)
    data = decode_token(token, TEST_JWT_SECRET, "HS256")
    assert (data.sub, data.email) == ("u1", "a@b.io")
    assert decode_token(token, "another-secret-of-at-least-32-chars!!", "HS256") is None

    expired = jwt.encode(
        {"sub": "u1", "exp": datetime.now(UTC) - timedelta(minutes=1)}, TEST_JWT_SECRET, algorithm="HS256"
    )
    assert decode_token(expired, TEST_JWT_SECRET, "HS256") is None
    no_sub = jwt.encode({"email": "x@y.io"}, TEST_JWT_SECRET, algorithm="HS256")
    assert decode_token(no_sub, TEST_JWT_SECRET, "HS256") is None


@pytest.mark.parametrize("email", ["", "plainaddress", "a@b", "a b@c.io", "@example.com"])
def test_validate_email_rejects(email):
    with pytest.raises(ValueError):
        validate_email(email)


def test_validate_email_and_password_accept():
    validate_email(normalize_email("  Alice.Smith+tag@Example.COM "))
    validate_password("12345678")
    with pytest.raises(ValueError):
        validate_password("1234567")
    with pytest.raises(ValueError):
        validate_password("")


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as c:
        yield c


def test_register_login_me(client):
    r = client.post("/v1/auth/register", json={"email": "Bob@Example.com", "password": "s3cretpass"})
    assert r.status_code == 201
    body = r.json()
    assert body["user"]["email"] == "bob@example.com"
    assert body["token"]["token_type"] == "bearer"

    r = client.post("/v1/auth/login", json={"email": "bob@example.com", "password": "s3cretpass"})
    assert r.status_code == 200
    token = r.json()["token"]["access_token"]

    me = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


def test_register_duplicate_email_conflicts(client):
    payload = {"email": "dup@example.com", "password": "s3cretpass"}
    assert client.post("/v1/auth/register", json=payload).status_code == 201
    r = client.post("/v1/auth/register", json={**payload, "email": "DUP@example.com"})
    assert r.status_code == 409
    assert r.json()["code"] == "EMAIL_EXISTS"


@pytest.mark.parametrize(
    "payload",
    [{"email": "nope", "password": "s3cretpass"}, {"email": "ok@example.com", "password": "short"}],
)
def test_register_validation_errors(client, payload):
    r = client.post("/v1/auth/register", json=payload)
    assert r.status_code == 400
    assert r.json()["code"] == "BAD_REQUEST"


def test_login_bad_credentials(client):
    client.post("/v1/auth/register", json={"email": "carol@example.com", "password": "s3cretpass"})
    for payload in (
        {"email": "carol@example.com", "password": "wrongpass"},
        {"email": "nobody@example.com", "password": "s3cretpass"},
    ):
        r = client.post("/v1/auth/login", json=payload)
        assert r.status_code == 401
        assert r.json()["message"] == "Invalid email or password"


def test_me_requires_valid_token(client):
    assert client.get("/v1/auth/me").status_code == 401
    r = client.get("/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"
    assert r.json()["code"] == "UNAUTHORIZED"
