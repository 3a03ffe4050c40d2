from datetime import timedelta

import pytest

from cxdesk.api.deps import get_current_context
from cxdesk.core.security import create_access_token, decode_caller_claims
from cxdesk.main import app


@pytest.fixture
def real_auth(client):
    """Use the real bearer-token dependency instead of the stubbed caller."""

    app.dependency_overrides.pop(get_current_context, None)
    return client


def test_token_round_trips_caller_claims():
    token = create_access_token(7, 3)

    assert decode_caller_claims(token) == (7, 3)
    assert decode_caller_claims("not-a-token") is None


def test_expired_token_is_rejected():
    token = create_access_token(7, 3, expires_delta=timedelta(minutes=-1))

    assert decode_caller_claims(token) is None


def test_missing_token_is_unauthorized(real_auth):
    resp = real_auth.post("/api/cx-sessions")

    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_bearer_token_resolves_caller(real_auth, seed):
    token = create_access_token(seed.user.id, seed.org.id)

    resp = real_auth.post("/api/cx-sessions", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 201, resp.text
    assert resp.json()["session"]["created_by_user_id"] == seed.user.id


def test_forwarded_authorization_header_is_accepted(real_auth, seed):
    token = create_access_token(seed.user.id, seed.org.id)

    resp = real_auth.post("/api/cx-sessions", headers={"X-Authorization": f"Bearer {token}"})

    assert resp.status_code == 201


def test_inactive_user_is_unauthorized(real_auth, db, seed):
    seed.user.active = False
    db.commit()
    token = create_access_token(seed.user.id, seed.org.id)

    resp = real_auth.post("/api/cx-sessions", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "User not found or inactive"


def test_unknown_organization_is_unauthorized(real_auth, seed):
    token = create_access_token(seed.user.id, seed.org.id + 100)

    resp = real_auth.post("/api/cx-sessions", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
