"""Capacity accounting for availability slots.

``booked_count`` is the only shared counter in the booking core and it is only
ever changed here. Every change is a conditional write: the optimistic
reconciler re-reads the slot and retries when its revision went stale, the
transactional one pushes the capacity check into a single UPDATE statement.
Neither holds a lock across the read and the write.
"""

import logging
from abc import ABC, abstractmethod

from app.core.config import Settings, settings
from app.core.exceptions import (
    CapacityExceeded,
    ConcurrentModification,
    ConfigurationError,
    NotFound,
    SlotUnavailable,
)
from app.core.metrics import BOOKING_ADMISSIONS, CAPACITY_WRITE_CONFLICTS
from app.domain import AvailabilitySlot, SlotStatus
from app.domain.entity import utcnow
from app.storage.base import RevisionConflict, StorageAdapter
from app.storage.sql import SqlStorageAdapter

logger = logging.getLogger(__name__)

MIN_ATTEMPTS = 3
SLOT_NOT_FOUND_DETAIL = "Availability slot not found"
SLOT_INACTIVE_DETAIL = "This slot is not accepting bookings"
SLOT_FULL_DETAIL = "This slot is fully booked"


class CapacityReconciler(ABC):
    @abstractmethod
    def reserve(self, slot_id: str) -> AvailabilitySlot:
        """Take one seat. Raises ``CapacityExceeded`` rather than ever overbooking."""
        raise NotImplementedError

    @abstractmethod
    def release(self, slot_id: str) -> AvailabilitySlot:
        """Give one seat back, never going below zero."""
        raise NotImplementedError


def _reject_admission(slot: AvailabilitySlot | None) -> None:
    if slot is None:
        raise NotFound(SLOT_NOT_FOUND_DETAIL)
    if slot.status != SlotStatus.ACTIVE:
        BOOKING_ADMISSIONS.labels(outcome="inactive").inc()
        raise SlotUnavailable(SLOT_INACTIVE_DETAIL)
    if slot.booked_count >= slot.capacity:
        BOOKING_ADMISSIONS.labels(outcome="full").inc()
        raise CapacityExceeded(SLOT_FULL_DETAIL)


class OptimisticCapacityReconciler(CapacityReconciler):
    def __init__(self, storage: StorageAdapter, max_attempts: int | None = None) -> None:
        attempts = max_attempts if max_attempts is not None else settings.capacity_max_attempts
        if attempts < MIN_ATTEMPTS:
            raise ConfigurationError(f"capacity retry budget must be at least {MIN_ATTEMPTS}, got {attempts}")
        self._storage = storage
        self._max_attempts = attempts

    def reserve(self, slot_id: str) -> AvailabilitySlot:
        for attempt in range(1, self._max_attempts + 1):
            slot = self._storage.get_by_id(AvailabilitySlot, slot_id)
            _reject_admission(slot)
            try:
                updated = self._storage.upsert(
                    slot.model_copy(update={"booked_count": slot.booked_count + 1, "updated_at": utcnow()})
                )
            except RevisionConflict:
                CAPACITY_WRITE_CONFLICTS.labels(operation="reserve").inc()
                logger.debug("capacity_conflict op=reserve slot_id=%s attempt=%s", slot_id, attempt)
                continue
            BOOKING_ADMISSIONS.labels(outcome="admitted").inc()
            logger.info(
                "capacity_reserved slot_id=%s booked_count=%s capacity=%s attempt=%s",
                slot_id,
                updated.booked_count,
                updated.capacity,
                attempt,
            )
            return updated

        BOOKING_ADMISSIONS.labels(outcome="contention").inc()
        logger.warning("capacity_retries_exhausted op=reserve slot_id=%s attempts=%s", slot_id, self._max_attempts)
        raise CapacityExceeded(SLOT_FULL_DETAIL)

    def release(self, slot_id: str) -> AvailabilitySlot:
        for attempt in range(1, self._max_attempts + 1):
            slot = self._storage.get_by_id(AvailabilitySlot, slot_id)
            if slot is None:
                raise NotFound(SLOT_NOT_FOUND_DETAIL)
            try:
                updated = self._storage.upsert(
                    slot.model_copy(update={"booked_count": max(0, slot.booked_count - 1), "updated_at": utcnow()})
                )
            except RevisionConflict:
                CAPACITY_WRITE_CONFLICTS.labels(operation="release").inc()
                logger.debug("capacity_conflict op=release slot_id=%s attempt=%s", slot_id, attempt)
                continue
            logger.info("capacity_released slot_id=%s booked_count=%s", slot_id, updated.booked_count)
            return updated

        logger.warning("capacity_retries_exhausted op=release slot_id=%s attempts=%s", slot_id, self._max_attempts)
        raise ConcurrentModification("Slot is being modified concurrently. Retry the request.")


class TransactionalCapacityReconciler(CapacityReconciler):
    def __init__(self, storage: StorageAdapter) -> None:
        if not isinstance(storage, SqlStorageAdapter):
            raise ConfigurationError("transactional capacity strategy requires the sql storage backend")
        self._storage = storage

    def reserve(self, slot_id: str) -> AvailabilitySlot:
        updated = self._storage.try_adjust_booked_count(slot_id, 1)
        if updated is None:
            # nothing matched, find out why for the caller
            _reject_admission(self._storage.get_by_id(AvailabilitySlot, slot_id))
            BOOKING_ADMISSIONS.labels(outcome="full").inc()
            raise CapacityExceeded(SLOT_FULL_DETAIL)
        BOOKING_ADMISSIONS.labels(outcome="admitted").inc()
        logger.info(
            "capacity_reserved slot_id=%s booked_count=%s capacity=%s",
            slot_id,
            updated.booked_count,
            updated.capacity,
        )
        return updated

    def release(self, slot_id: str) -> AvailabilitySlot:
        updated = self._storage.try_adjust_booked_count(slot_id, -1)
        if updated is None:
            raise NotFound(SLOT_NOT_FOUND_DETAIL)
        logger.info("capacity_released slot_id=%s booked_count=%s", slot_id, updated.booked_count)
        return updated


def build_reconciler(storage: StorageAdapter, config: Settings = settings) -> CapacityReconciler:
    strategy = config.capacity_strategy.strip().lower()
    if strategy == "optimistic":
        return OptimisticCapacityReconciler(storage, max_attempts=config.capacity_max_attempts)
    if strategy == "transactional":
        return TransactionalCapacityReconciler(storage)
    raise ConfigurationError(f"Unknown capacity strategy {config.capacity_strategy!r}")
