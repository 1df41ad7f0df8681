from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.security import create_access_token, decode_token
from app.db.session import get_db
from app.main import app
from app.models.user import User

from conftest import FakeResult, entity_handler, make_user


def test_hs256_round_trip():
    token = create_access_token("user-1", token_version=2, org_id="default")
    payload = decode_token(token, expected_type="access")
    assert payload["sub"] == "user-1"
    assert payload["tv"] == 2
    assert payload["org"] == "default"


def test_rs256_round_trip(patch_jwt_keys):
    token = create_access_token("user-2")
    assert decode_token(token)["sub"] == "user-2"


def test_expired_token_rejected():
    token = create_access_token("user-3", expires_delta=timedelta(seconds=-5))
    with pytest.raises(ValueError):
        decode_token(token)


def test_wrong_token_type_rejected():
    token = create_access_token("user-4")
    with pytest.raises(ValueError, match="Unexpected token type"):
        decode_token(token, expected_type="refresh")


@pytest.fixture
def bearer_client(fake_db):
    async def _get_db():
        yield fake_db

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth_header(user: User, **kwargs) -> dict:
    token = create_access_token(str(user.id), token_version=user.token_version, **kwargs)
    return {"Authorization": f"Bearer {token}"}


def test_missing_token_is_401(bearer_client):
    response = bearer_client.get("/api/v1/notifications/unread-count")
    assert response.status_code == 401


def test_revoked_token_is_401(bearer_client, fake_db):
    user = make_user(token_version=3)
    fake_db.on_execute(entity_handler(User, FakeResult(scalar=user)))
    stale = create_access_token(str(user.id), token_version=2)

    response = bearer_client.get(
        "/api/v1/notifications/unread-count", headers={"Authorization": f"Bearer {stale}"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Token revoked"


def test_token_for_other_tenant_is_403(bearer_client, fake_db):
    user = make_user()
    response = bearer_client.get(
        "/api/v1/notifications/unread-count", headers=_auth_header(user, org_id="other")
    )
    assert response.status_code == 403


def test_valid_token_reaches_endpoint(bearer_client, fake_db):
    user = make_user(is_superuser=True)
    fake_db.on_execute(entity_handler(User, FakeResult(scalar=user)))
    fake_db.on_execute(lambda _stmt: FakeResult(scalar=0))

    response = bearer_client.get("/api/v1/notifications/unread-count", headers=_auth_header(user))

    assert response.status_code == 200
    assert response.json()["data"] == {"unread": 0}
    assert user.last_active_at is not None


def test_security_headers_present(bearer_client):
    response = bearer_client.get("/api/v1/health/live")
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-request-id"]
