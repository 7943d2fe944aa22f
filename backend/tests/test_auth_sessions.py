from datetime import datetime, timedelta
import os
import sys

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from passgate.api import deps
from passgate.api.auth import router as auth_router
from passgate.database import Base
from passgate.models.auth import RefreshToken

PASSWORD = "TestPass123!"


def _build_test_client():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(auth_router, prefix="/api")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    return TestClient(app), TestingSessionLocal


def _register(client: TestClient, username: str, email: str):
    response = client.post(
        "/api/auth/register",
        json={
            "full_name": username.title(),
            "email": email,
            "username": username,
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
    )
    assert response.status_code == 201
    return response.json()


def test_register_returns_token_pair_and_summary():
    client, _ = _build_test_client()

    data = _register(client, "alpha", "alpha@example.com")

    assert data["access_token"]
    assert data["refresh_token"]
    assert data["token_type"] == "bearer"
    expiry = datetime.fromisoformat(data["access_token_expiry"].replace("Z", "+00:00"))
    assert expiry.utcoffset() == timedelta(0)
    assert data["user"]["username"] == "alpha"
    assert data["user"]["full_name"] == "Alpha"
    assert "password_hash" not in data["user"]


def test_register_rejects_duplicate_email():
    client, _ = _build_test_client()
    _register(client, "alpha", "alpha@example.com")

    response = client.post(
        "/api/auth/register",
        json={
            "full_name": "Other",
            "email": "alpha@example.com",
            "username": "other",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered."


def test_register_validates_request_shape():
    client, _ = _build_test_client()

    response = client.post(
        "/api/auth/register",
        json={"full_name": "X", "email": "not-an-email", "username": "xy", "password": PASSWORD},
    )

    assert response.status_code == 422


def test_login_failures_look_the_same():
    client, _ = _build_test_client()
    _register(client, "beta", "beta@example.com")

    unknown = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    wrong = client.post("/api/auth/login", json={"email": "beta@example.com", "password": "Wrong1234"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "Invalid email or password."}


def test_refresh_rotates_session_and_rejects_replay():
    client, _ = _build_test_client()

    tokens = _register(client, "gamma", "gamma@example.com")

    refresh_response = client.post(
        "/api/auth/refresh-token",
        json={"access_token": tokens["access_token"], "refresh_token": tokens["refresh_token"]},
    )
    assert refresh_response.status_code == 200
    rotated = refresh_response.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    replay_response = client.post(
        "/api/auth/refresh-token",
        json={"access_token": tokens["access_token"], "refresh_token": tokens["refresh_token"]},
    )
    assert replay_response.status_code == 401
    assert replay_response.json() == {"detail": "Invalid or expired session."}


def test_logout_revokes_all_refresh_tokens():
    client, testing_session_local = _build_test_client()

    tokens = _register(client, "delta", "delta@example.com")

    logout_response = client.post(
        "/api/auth/logout",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert logout_response.status_code == 200
    assert logout_response.json() == {"message": "Successfully logged out"}

    refresh_after_logout = client.post(
        "/api/auth/refresh-token",
        json={"access_token": tokens["access_token"], "refresh_token": tokens["refresh_token"]},
    )
    assert refresh_after_logout.status_code == 401

    db = testing_session_local()
    try:
        active_tokens = db.query(RefreshToken).filter(RefreshToken.revoked_at.is_(None)).count()
        assert active_tokens == 0
    finally:
        db.close()


def test_logout_requires_bearer_token():
    client, _ = _build_test_client()

    assert client.post("/api/auth/logout").status_code == 401
    assert client.post(
        "/api/auth/logout",
        headers={"Authorization": "Bearer garbage"},
    ).status_code == 401
