import pytest

from app.core.config import Settings
from app.core.exceptions import (
    CapacityExceeded,
    ConcurrentModification,
    ConfigurationError,
    NotFound,
    SlotUnavailable,
)
from app.domain import AvailabilitySlot
from app.services.capacity_reconciler import (
    OptimisticCapacityReconciler,
    TransactionalCapacityReconciler,
    build_reconciler,
)
from app.services.slot_service import deactivate_slot
from app.storage.base import RevisionConflict
from app.storage.memory import InMemoryDocumentStore


class CountingStaleStore(InMemoryDocumentStore):
    """Every slot write loses the race."""

    def __init__(self) -> None:
        super().__init__()
        self.slot_writes = 0
        self.stale = False

    def upsert(self, entity):
        if self.stale and isinstance(entity, AvailabilitySlot):
            self.slot_writes += 1
            raise RevisionConflict(entity.kind, entity.id, entity.rev)
        return super().upsert(entity)


def test_optimistic_reconciler_requires_at_least_three_attempts(memory_store):
    with pytest.raises(ConfigurationError):
        OptimisticCapacityReconciler(memory_store, max_attempts=2)


def test_reserve_and_release_move_booked_count(backend, make_slot):
    slot = make_slot(backend.storage, capacity=2)

    assert backend.reconciler.reserve(slot.id).booked_count == 1
    assert backend.reconciler.reserve(slot.id).booked_count == 2
    with pytest.raises(CapacityExceeded):
        backend.reconciler.reserve(slot.id)

    assert backend.reconciler.release(slot.id).booked_count == 1
    assert backend.reconciler.release(slot.id).booked_count == 0
    assert backend.reconciler.release(slot.id).booked_count == 0


def test_reserve_on_inactive_or_missing_slot(backend, make_slot):
    slot = make_slot(backend.storage, capacity=2)
    deactivate_slot(backend.storage, slot.id)

    with pytest.raises(SlotUnavailable):
        backend.reconciler.reserve(slot.id)
    with pytest.raises(NotFound):
        backend.reconciler.reserve("slot:missing")
    assert backend.storage.get_by_id(AvailabilitySlot, slot.id).booked_count == 0


def test_reserve_gives_up_with_capacity_exceeded_after_retry_budget(make_slot):
    storage = CountingStaleStore()
    slot = make_slot(storage, capacity=5)
    storage.stale = True
    reconciler = OptimisticCapacityReconciler(storage, max_attempts=4)

    with pytest.raises(CapacityExceeded):
        reconciler.reserve(slot.id)

    assert storage.slot_writes == 4
    assert storage.get_by_id(AvailabilitySlot, slot.id).booked_count == 0


def test_release_gives_up_with_concurrent_modification_after_retry_budget(make_slot):
    storage = CountingStaleStore()
    slot = make_slot(storage, capacity=2)
    OptimisticCapacityReconciler(storage).reserve(slot.id)
    storage.stale = True
    reconciler = OptimisticCapacityReconciler(storage, max_attempts=3)

    with pytest.raises(ConcurrentModification):
        reconciler.release(slot.id)

    assert storage.slot_writes == 3
    assert storage.get_by_id(AvailabilitySlot, slot.id).booked_count == 1


def test_release_retries_after_losing_a_revision_race(make_slot):
    class LosesFirstWrite(InMemoryDocumentStore):
        armed = False
        lost = False

        def upsert(self, entity):
            if self.armed and isinstance(entity, AvailabilitySlot):
                self.armed = False
                self.lost = True
                # another writer takes a seat first
                current = self.get_by_id(AvailabilitySlot, entity.id)
                super().upsert(current.model_copy(update={"booked_count": current.booked_count + 1}))
                raise RevisionConflict(entity.kind, entity.id, entity.rev)
            return super().upsert(entity)

    storage = LosesFirstWrite()
    slot = make_slot(storage, capacity=3)
    reconciler = OptimisticCapacityReconciler(storage)
    reconciler.reserve(slot.id)
    reconciler.reserve(slot.id)
    storage.armed = True

    released = reconciler.release(slot.id)

    assert storage.lost
    assert released.booked_count == 2


def test_transactional_reconciler_needs_sql_storage(memory_store):
    with pytest.raises(ConfigurationError):
        TransactionalCapacityReconciler(memory_store)


def test_build_reconciler_selects_strategy(memory_store, sql_store):
    assert isinstance(
        build_reconciler(memory_store, Settings(capacity_strategy="optimistic")),
        OptimisticCapacityReconciler,
    )
    assert isinstance(
        build_reconciler(sql_store, Settings(capacity_strategy="Transactional")),
        TransactionalCapacityReconciler,
    )
    with pytest.raises(ConfigurationError):
        build_reconciler(memory_store, Settings(capacity_strategy="pessimistic"))
