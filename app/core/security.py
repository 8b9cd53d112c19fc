from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings


def create_principal_token(
    subject: str,
    email: str,
    org_id: str,
    roles: list[str],
    expires_minutes: int = 30,
) -> str:
    """Issue a token in the shape the external auth layer hands to this service.

    Only used by local tooling and tests; production tokens come from the auth service.
    """
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    to_encode: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "org_id": org_id,
        "roles": roles,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
