import logging
from collections import Counter

from app.core.logging import setup_logging
from app.domain import AvailabilitySlot, Booking
from app.domain.booking import OCCUPYING_STATUSES
from app.storage.base import Predicate, StorageAdapter
from app.storage.factory import build_storage
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def audit_slot_occupancy(storage: StorageAdapter) -> dict[str, int]:
    """Compare every slot's ``booked_count`` with its occupying bookings.

    Drift is only reported. ``booked_count`` is owned by the capacity
    reconciler and this job never writes it.
    """
    occupying = Counter(
        booking.slot_id
        for booking in storage.query(Booking, Predicate(one_of={"status": OCCUPYING_STATUSES}))
    )
    slots = storage.query(AvailabilitySlot)

    drifted = 0
    for slot in slots:
        expected = occupying.get(slot.id, 0)
        if slot.booked_count != expected:
            drifted += 1
            logger.warning(
                "occupancy_drift slot_id=%s booked_count=%s occupying_bookings=%s",
                slot.id,
                slot.booked_count,
                expected,
            )

    logger.info("occupancy_audit_finished audited=%s drifted=%s", len(slots), drifted)
    return {"audited": len(slots), "drifted": drifted}


@celery_app.task(name="slots.audit_occupancy")
def audit_slot_occupancy_task() -> dict[str, int]:
    setup_logging()
    storage = build_storage()
    try:
        return audit_slot_occupancy(storage)
    finally:
        storage.close()
