from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from app.core.security import create_principal_token, decode_access_token


def test_principal_token_round_trip():
    token = create_principal_token(
        subject="user-1",
        email="staff@example.com",
        org_id="org-1",
        roles=["STAFF"],
    )
    payload = decode_access_token(token)

    assert payload["sub"] == "user-1"
    assert payload["email"] == "staff@example.com"
    assert payload["org_id"] == "org-1"
    assert payload["roles"] == ["STAFF"]


def test_expired_token_is_rejected():
    expired = create_principal_token("user-1", "staff@example.com", "org-1", ["STAFF"], expires_minutes=-1)

    with pytest.raises(ValueError):
        decode_access_token(expired)


def test_token_signed_with_another_key_is_rejected():
    forged = jwt.encode(
        {
            "sub": "user-1",
            "email": "staff@example.com",
            "org_id": "org-1",
            "roles": ["ADMIN"],
            "exp": datetime.now(UTC) + timedelta(minutes=5),
        },
        "not-the-server-secret",
        algorithm="HS256",
    )

    with pytest.raises(ValueError):
        decode_access_token(forged)
