import os
import sys
from dataclasses import dataclass
from datetime import date
from itertools import count
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(str(Path(__file__).resolve().parents[1]))

os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("STORAGE_BACKEND", "memory")

from app.api.deps import get_reconciler, get_storage
from app.core.rate_limiter import rate_limiter
from app.core.security import create_principal_token
from app.db.base import Base
from app.domain import AvailabilitySlot
from app.main import app
from app.schemas.booking import BookingCreateRequest
from app.schemas.slot import SlotCreateRequest
from app.services.capacity_reconciler import (
    CapacityReconciler,
    OptimisticCapacityReconciler,
    TransactionalCapacityReconciler,
)
from app.services.slot_service import create_slot
from app.storage.base import StorageAdapter
from app.storage.memory import InMemoryDocumentStore
from app.storage.sql import SqlStorageAdapter

ORG_ID = "org-1"
SITE_ID = "site-1"
SLOT_DATE = date(2030, 5, 6)

_email_counter = count(1)


@dataclass
class Backend:
    storage: StorageAdapter
    reconciler: CapacityReconciler


def build_sqlite_storage(db_file: Path) -> SqlStorageAdapter:
    engine = create_engine(f"sqlite+pysqlite:///{db_file}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return SqlStorageAdapter(sessionmaker(bind=engine, autocommit=False, autoflush=False))


def slot_request(**overrides) -> SlotCreateRequest:
    values = {
        "start_time": "09:00",
        "end_time": "10:00",
        "recurrence": "once",
        "specific_date": SLOT_DATE,
        "capacity": 1,
        "duration_minutes": 60,
    }
    values.update(overrides)
    return SlotCreateRequest(**values)


def booking_request(slot_id: str, email: str | None = None, **overrides) -> BookingCreateRequest:
    values = {
        "slot_id": slot_id,
        "client_name": "Test Client",
        "client_email": email or f"client{next(_email_counter)}@example.com",
    }
    values.update(overrides)
    return BookingCreateRequest(**values)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    rate_limiter.reset()


@pytest.fixture()
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def sql_store(tmp_path) -> SqlStorageAdapter:
    return build_sqlite_storage(tmp_path / "booking.db")


@pytest.fixture(params=["memory-optimistic", "sql-optimistic", "sql-transactional"])
def backend(request, tmp_path) -> Backend:
    if request.param == "memory-optimistic":
        storage = InMemoryDocumentStore()
        return Backend(storage, OptimisticCapacityReconciler(storage))
    storage = build_sqlite_storage(tmp_path / "booking.db")
    if request.param == "sql-optimistic":
        return Backend(storage, OptimisticCapacityReconciler(storage))
    return Backend(storage, TransactionalCapacityReconciler(storage))


@pytest.fixture()
def make_slot():
    def factory(storage: StorageAdapter, site_id: str = SITE_ID, **overrides) -> AvailabilitySlot:
        return create_slot(storage, org_id=ORG_ID, site_id=site_id, payload=slot_request(**overrides))

    return factory


@pytest.fixture()
def api_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def client(api_store) -> TestClient:
    app.dependency_overrides[get_storage] = lambda: api_store
    app.dependency_overrides[get_reconciler] = lambda: OptimisticCapacityReconciler(api_store)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def factory(role: str = "STAFF", email: str = "staff@example.com", org_id: str = ORG_ID) -> dict[str, str]:
        token = create_principal_token(subject=email, email=email, org_id=org_id, roles=[role])
        return {"Authorization": f"Bearer {token}"}

    return factory


@pytest.fixture()
def booking_payload():
    return booking_request
