from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from archetype_quiz.auth.jwt import create_admin_token
from archetype_quiz.auth.schemas import AuthenticatedAdmin
from archetype_quiz.config import jwt_settings
from archetype_quiz.middleware.auth import AdminAuthenticationMiddleware, require_admin

app = FastAPI()
app.add_middleware(
    AdminAuthenticationMiddleware,
    protected_prefixes=("/api/admin",),
    excluded_paths={"/api/admin/login"},
)


@app.get("/api/admin/whoami")
async def whoami(admin: AuthenticatedAdmin = Depends(require_admin)):
    return {"username": admin.username}


@app.post("/api/admin/login")
async def login():
    return {"ok": True}


@app.get("/api/quiz/questions")
async def questions():
    return []


@app.get("/unguarded")
async def unguarded(admin: AuthenticatedAdmin = Depends(require_admin)):
    return {"username": admin.username}


client = TestClient(app)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_valid_admin_token_passes():
    response = client.get("/api/admin/whoami", headers=bearer(create_admin_token(username="admin")))

    assert response.status_code == 200
    assert response.json() == {"username": "admin"}


def test_missing_token():
    response = client.get("/api/admin/whoami")

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_001"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_expired_token():
    expired = create_admin_token(username="admin", settings=jwt_settings.model_copy(update={"ttl_seconds": -120}))
    response = client.get("/api/admin/whoami", headers=bearer(expired))

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_002"
    assert 'error="invalid_token"' in response.headers["WWW-Authenticate"]


def test_garbage_token():
    response = client.get("/api/admin/whoami", headers=bearer("garbage"))

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "TOKEN_DECODE_ERROR"


def test_token_without_admin_claim():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "sub": "visitor",
            "exp": now + timedelta(hours=1),
            "iat": now,
            "iss": jwt_settings.issuer,
            "aud": jwt_settings.audience,
            "typ": "access",
        },
        jwt_settings.secret,
        algorithm=jwt_settings.algorithm,
    )
    response = client.get("/api/admin/whoami", headers=bearer(token))

    assert response.status_code == 401
    assert response.json()["detail"] == {"code": "AUTH_003", "message": "Unauthorized"}


@pytest.mark.parametrize("method, path", [("post", "/api/admin/login"), ("get", "/api/quiz/questions")])
def test_excluded_and_public_paths_pass_without_token(method, path):
    response = getattr(client, method)(path)

    assert response.status_code == 200


def test_require_admin_without_middleware_state_rejects():
    response = client.get("/unguarded", headers=bearer(create_admin_token(username="admin")))

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_003"
