from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.security import decode_access_token
from app.services.capacity_reconciler import CapacityReconciler, build_reconciler
from app.storage.base import StorageAdapter
from app.storage.factory import build_storage

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Role(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    CLIENT = "CLIENT"


@dataclass(frozen=True)
class Principal:
    subject: str
    email: str
    org_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & {Role.ADMIN.value, Role.STAFF.value})


@lru_cache
def _storage() -> StorageAdapter:
    return build_storage()


@lru_cache
def _reconciler_for(storage: StorageAdapter) -> CapacityReconciler:
    return build_reconciler(storage)


def get_storage() -> StorageAdapter:
    return _storage()


def get_reconciler(storage: StorageAdapter = Depends(get_storage)) -> CapacityReconciler:
    return _reconciler_for(storage)


def _principal_from_token(token: str) -> Principal:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
    except ValueError:
        raise unauthorized_exc

    subject = payload.get("sub")
    email = payload.get("email")
    org_id = payload.get("org_id")
    roles = payload.get("roles") or []
    if not subject or not email or not org_id or not isinstance(roles, list):
        raise unauthorized_exc
    return Principal(subject=str(subject), email=str(email).lower(), org_id=str(org_id), roles=frozenset(roles))


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    return _principal_from_token(token)


def get_optional_principal(token: str | None = Depends(optional_oauth2_scheme)) -> Principal | None:
    if token is None:
        return None
    return _principal_from_token(token)


def require_roles(*roles: Role | str) -> Callable[[Principal], Principal]:
    allowed_roles = {role.value if isinstance(role, Role) else role for role in roles}

    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.roles & allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return principal

    return checker
