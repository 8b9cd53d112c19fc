import logging
from datetime import datetime, timedelta
from uuid import uuid4

from app.core.config import settings
from app.core.exceptions import BookingConflict, ConcurrentModification, NotFound, SlotUnavailable
from app.core.metrics import BOOKING_TRANSITIONS
from app.domain import Booking, BookingStatus, SlotStatus
from app.domain.booking import BLOCKING_STATUSES, transition
from app.domain.entity import utcnow
from app.schemas.booking import BookingCreateRequest
from app.services.capacity_reconciler import CapacityReconciler
from app.services.slot_service import get_slot_for_site, occurrence_start
from app.storage.base import Predicate, RevisionConflict, StorageAdapter, where

logger = logging.getLogger(__name__)

BOOKING_NOT_FOUND_DETAIL = "Booking not found"
OVERLAP_DETAIL = "This time slot is no longer available"

# Fields a transition may change; restored together when releasing the seat fails.
CLAIM_FIELDS = ("status", "confirmed_at", "cancelled_at", "cancel_reason")


def find_conflicting_bookings(
    storage: StorageAdapter,
    slot_id: str,
    client_email: str,
    requested_start: datetime,
) -> list[Booking]:
    candidates = storage.query(
        Booking,
        Predicate(
            equals={"slot_id": slot_id, "client_email": client_email},
            one_of={"status": BLOCKING_STATUSES},
        ),
    )
    return [booking for booking in candidates if booking.covers(requested_start)]


def create_booking(
    storage: StorageAdapter,
    reconciler: CapacityReconciler,
    site_id: str,
    payload: BookingCreateRequest,
) -> Booking:
    slot = get_slot_for_site(storage, site_id, payload.slot_id)
    if slot.status != SlotStatus.ACTIVE:
        raise SlotUnavailable("This slot is not accepting bookings")

    client_email = payload.client_email.lower()
    start_at = occurrence_start(slot, payload.occurrence_date)
    end_at = start_at + timedelta(minutes=slot.duration_minutes)

    if find_conflicting_bookings(storage, slot.id, client_email, start_at):
        raise BookingConflict(OVERLAP_DETAIL)

    reconciler.reserve(slot.id)

    now = utcnow()
    booking = Booking(
        id=f"booking:{uuid4()}",
        org_id=slot.org_id,
        site_id=site_id,
        slot_id=slot.id,
        client_id=payload.client_id,
        client_name=payload.client_name,
        client_email=client_email,
        client_phone=payload.client_phone,
        notes=payload.notes,
        start_at=start_at,
        end_at=end_at,
        duration_minutes=slot.duration_minutes,
        status=BookingStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    try:
        created = storage.upsert(booking)
    except Exception:
        logger.warning("booking_persist_failed slot_id=%s compensating=release", slot.id)
        reconciler.release(slot.id)
        raise

    BOOKING_TRANSITIONS.labels(to_status=BookingStatus.PENDING.value).inc()
    logger.info("booking_created booking_id=%s slot_id=%s start_at=%s", created.id, slot.id, start_at.isoformat())
    return created


def get_booking(storage: StorageAdapter, booking_id: str) -> Booking:
    booking = storage.get_by_id(Booking, booking_id)
    if booking is None:
        raise NotFound(BOOKING_NOT_FOUND_DETAIL)
    return booking


def list_bookings_for_site(
    storage: StorageAdapter,
    site_id: str,
    status: BookingStatus | None = None,
) -> list[Booking]:
    predicate = where(site_id=site_id, status=status) if status else where(site_id=site_id)
    return storage.query(Booking, predicate)


def list_bookings_for_client(storage: StorageAdapter, client_email: str) -> list[Booking]:
    return storage.query(
        Booking,
        Predicate(equals={"client_email": client_email.lower()}, not_in={"status": [BookingStatus.CANCELLED]}),
    )


def list_bookings_for_slot(storage: StorageAdapter, slot_id: str) -> list[Booking]:
    return storage.query(
        Booking,
        Predicate(equals={"slot_id": slot_id}, not_in={"status": [BookingStatus.CANCELLED]}),
    )


def _apply_transition(
    storage: StorageAdapter,
    booking_id: str,
    target: BookingStatus,
    reason: str | None = None,
) -> tuple[Booking, Booking]:
    """Move a booking to ``target``; returns the (before, after) pair.

    Legality is re-evaluated against a fresh read whenever the write loses a
    revision race, so concurrent transitions cannot both succeed.
    """
    attempts = settings.slot_write_max_attempts
    for attempt in range(1, attempts + 1):
        current = get_booking(storage, booking_id)
        updated = transition(current, target, utcnow(), reason=reason)
        try:
            stored = storage.upsert(updated)
        except RevisionConflict:
            logger.debug("booking_transition_conflict booking_id=%s target=%s attempt=%s", booking_id, target.value, attempt)
            continue
        BOOKING_TRANSITIONS.labels(to_status=target.value).inc()
        logger.info("booking_transition booking_id=%s from=%s to=%s", booking_id, current.status, target.value)
        return current, stored

    logger.warning("booking_transition_exhausted booking_id=%s target=%s", booking_id, target.value)
    raise ConcurrentModification("Booking is being modified concurrently. Retry the request.")


def _restore_claim(storage: StorageAdapter, previous: Booking) -> Booking:
    """Put the lifecycle fields of ``previous`` back on the stored booking.

    Other fields keep their latest value, so a notes update made in between
    survives the restore.
    """
    lifecycle = {field: getattr(previous, field) for field in CLAIM_FIELDS}
    attempts = settings.slot_write_max_attempts
    for attempt in range(1, attempts + 1):
        current = get_booking(storage, previous.id)
        try:
            return storage.upsert(current.model_copy(update={**lifecycle, "updated_at": utcnow()}))
        except RevisionConflict:
            logger.debug("booking_restore_conflict booking_id=%s attempt=%s", previous.id, attempt)
    raise ConcurrentModification("Booking is being modified concurrently. Retry the request.")


def _end_claim(
    storage: StorageAdapter,
    reconciler: CapacityReconciler,
    booking_id: str,
    target: BookingStatus,
    reason: str | None = None,
) -> Booking:
    previous, ended = _apply_transition(storage, booking_id, target, reason=reason)
    try:
        reconciler.release(ended.slot_id)
    except Exception:
        logger.warning("booking_release_failed booking_id=%s restoring=%s", booking_id, previous.status)
        try:
            _restore_claim(storage, previous)
        except Exception:
            logger.exception("booking_restore_failed booking_id=%s slot_id=%s", booking_id, ended.slot_id)
        raise
    return ended


def confirm_booking(storage: StorageAdapter, booking_id: str) -> Booking:
    _, confirmed = _apply_transition(storage, booking_id, BookingStatus.CONFIRMED)
    return confirmed


def complete_booking(storage: StorageAdapter, booking_id: str) -> Booking:
    _, completed = _apply_transition(storage, booking_id, BookingStatus.COMPLETED)
    return completed


def cancel_booking(
    storage: StorageAdapter,
    reconciler: CapacityReconciler,
    booking_id: str,
    reason: str | None = None,
) -> Booking:
    return _end_claim(storage, reconciler, booking_id, BookingStatus.CANCELLED, reason=reason)


def mark_no_show(storage: StorageAdapter, reconciler: CapacityReconciler, booking_id: str) -> Booking:
    return _end_claim(storage, reconciler, booking_id, BookingStatus.NO_SHOW)


def update_notes(storage: StorageAdapter, booking_id: str, notes: str) -> Booking:
    attempts = settings.slot_write_max_attempts
    for _ in range(attempts):
        current = get_booking(storage, booking_id)
        try:
            return storage.upsert(current.model_copy(update={"staff_notes": notes, "updated_at": utcnow()}))
        except RevisionConflict:
            continue
    raise ConcurrentModification("Booking is being modified concurrently. Retry the request.")
