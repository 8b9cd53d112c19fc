import logging
import re
from datetime import UTC, date, datetime, time, timedelta
from uuid import uuid4

from app.core.config import settings
from app.core.exceptions import ConcurrentModification, NotFound, ValidationError
from app.domain import AvailabilitySlot, Recurrence, SlotStatus
from app.domain.entity import utcnow
from app.schemas.slot import SlotCreateRequest
from app.storage.base import RevisionConflict, StorageAdapter, where

logger = logging.getLogger(__name__)

SLOT_NOT_FOUND_DETAIL = "Availability slot not found"
MIN_DURATION_MINUTES = 15
_HHMM = re.compile(r"^(\d{2}):(\d{2})$")


def parse_minute_of_day(value: str, field: str) -> int:
    match = _HHMM.match(value)
    if not match:
        raise ValidationError(f"{field} must be in HH:MM format")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"{field} is not a valid time of day")
    return hours * 60 + minutes


def _validate_slot_input(payload: SlotCreateRequest) -> None:
    start_minutes = parse_minute_of_day(payload.start_time, "start_time")
    end_minutes = parse_minute_of_day(payload.end_time, "end_time")
    if end_minutes <= start_minutes:
        raise ValidationError("End time must be after start time")

    if payload.day_of_week is not None and not 0 <= payload.day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if payload.recurrence == Recurrence.WEEKLY and payload.day_of_week is None:
        raise ValidationError("dayOfWeek is required for weekly slots")
    if payload.recurrence == Recurrence.ONCE and payload.specific_date is None:
        raise ValidationError("specificDate is required for one-time slots")

    if payload.capacity < 1:
        raise ValidationError("capacity must be at least 1")
    if payload.duration_minutes < MIN_DURATION_MINUTES:
        raise ValidationError(f"duration_minutes must be at least {MIN_DURATION_MINUTES}")
    if payload.buffer is not None and payload.buffer < 0:
        raise ValidationError("buffer must not be negative")
    if (
        payload.recurrence_end_date is not None
        and payload.specific_date is not None
        and payload.recurrence_end_date < payload.specific_date
    ):
        raise ValidationError("recurrence_end_date must not be before specific_date")


def create_slot(storage: StorageAdapter, org_id: str, site_id: str, payload: SlotCreateRequest) -> AvailabilitySlot:
    _validate_slot_input(payload)
    now = utcnow()
    slot = AvailabilitySlot(
        id=f"slot:{uuid4()}",
        org_id=org_id,
        site_id=site_id,
        day_of_week=payload.day_of_week,
        start_time=payload.start_time,
        end_time=payload.end_time,
        recurrence=payload.recurrence,
        specific_date=payload.specific_date,
        recurrence_end_date=payload.recurrence_end_date,
        capacity=payload.capacity,
        booked_count=0,
        duration_minutes=payload.duration_minutes,
        buffer=payload.buffer or 0,
        title=payload.title,
        description=payload.description,
        notes_for_clients=payload.notes_for_clients,
        status=SlotStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
    created = storage.upsert(slot)
    logger.info(
        "slot_created slot_id=%s site_id=%s recurrence=%s capacity=%s",
        created.id,
        created.site_id,
        created.recurrence,
        created.capacity,
    )
    return created


def get_slot(storage: StorageAdapter, slot_id: str) -> AvailabilitySlot | None:
    return storage.get_by_id(AvailabilitySlot, slot_id)


def get_slot_for_site(storage: StorageAdapter, site_id: str, slot_id: str) -> AvailabilitySlot:
    slot = get_slot(storage, slot_id)
    if slot is None or slot.site_id != site_id:
        raise NotFound(SLOT_NOT_FOUND_DETAIL)
    return slot


def list_active_slots(storage: StorageAdapter, site_id: str) -> list[AvailabilitySlot]:
    return storage.query(AvailabilitySlot, where(site_id=site_id, status=SlotStatus.ACTIVE))


def list_slots_for_date_range(
    storage: StorageAdapter,
    site_id: str,
    start_date: date,
    end_date: date,
) -> list[AvailabilitySlot]:
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    slots = list_active_slots(storage, site_id)
    in_range = []
    for slot in slots:
        if slot.recurrence == Recurrence.ONCE:
            if slot.specific_date is not None and start_date <= slot.specific_date <= end_date:
                in_range.append(slot)
            continue
        if slot.recurrence_end_date is not None and slot.recurrence_end_date < start_date:
            continue
        in_range.append(slot)
    return in_range


def is_available(slot: AvailabilitySlot) -> bool:
    # advisory only, admission re-checks at write time
    return slot.remaining_capacity > 0 and slot.status == SlotStatus.ACTIVE


def deactivate_slot(
    storage: StorageAdapter,
    slot_id: str,
    max_attempts: int | None = None,
) -> AvailabilitySlot:
    attempts = max_attempts or settings.slot_write_max_attempts
    for attempt in range(1, attempts + 1):
        slot = get_slot(storage, slot_id)
        if slot is None:
            raise NotFound(SLOT_NOT_FOUND_DETAIL)
        if slot.status == SlotStatus.INACTIVE:
            return slot
        try:
            updated = storage.upsert(
                slot.model_copy(update={"status": SlotStatus.INACTIVE.value, "updated_at": utcnow()})
            )
        except RevisionConflict:
            logger.debug("slot_deactivate_conflict slot_id=%s attempt=%s", slot_id, attempt)
            continue
        logger.info("slot_deactivated slot_id=%s booked_count=%s", slot_id, updated.booked_count)
        return updated

    logger.warning("slot_deactivate_exhausted slot_id=%s attempts=%s", slot_id, attempts)
    raise ConcurrentModification("Slot is being modified concurrently. Retry the request.")


def _sunday_based_weekday(value: date) -> int:
    return (value.weekday() + 1) % 7


def _monthly_anchor_day(slot: AvailabilitySlot) -> int:
    return (slot.specific_date or slot.created_at.date()).day


def _next_monthly_date(day: int, today: date) -> date:
    year, month = today.year, today.month
    for _ in range(13):
        try:
            candidate = date(year, month, day)
        except ValueError:
            candidate = None
        if candidate is not None and candidate >= today:
            return candidate
        month += 1
        if month > 12:
            year, month = year + 1, 1
    raise ValidationError("Slot has no upcoming monthly occurrence")


def resolve_occurrence_date(slot: AvailabilitySlot, on_date: date | None, today: date | None = None) -> date:
    """Pick the calendar date a booking against ``slot`` falls on.

    One-time slots always resolve to their ``specific_date``. For recurring
    slots an explicit ``on_date`` must match the recurrence, otherwise the next
    matching date on or after ``today`` is used.
    """
    today = today or utcnow().date()

    if slot.recurrence == Recurrence.ONCE:
        if on_date is not None and on_date != slot.specific_date:
            raise ValidationError("One-time slot can only be booked on its specific date")
        return slot.specific_date

    if on_date is None:
        if slot.recurrence == Recurrence.WEEKLY:
            on_date = today + timedelta(days=(slot.day_of_week - _sunday_based_weekday(today)) % 7)
        elif slot.recurrence == Recurrence.MONTHLY:
            on_date = _next_monthly_date(_monthly_anchor_day(slot), today)
        else:
            on_date = today
    elif slot.recurrence == Recurrence.WEEKLY and _sunday_based_weekday(on_date) != slot.day_of_week:
        raise ValidationError("Requested date does not fall on the slot's day of week")
    elif slot.recurrence == Recurrence.MONTHLY and on_date.day != _monthly_anchor_day(slot):
        raise ValidationError("Requested date does not match the slot's monthly recurrence")

    if slot.recurrence_end_date is not None and on_date > slot.recurrence_end_date:
        raise ValidationError("Slot recurrence has ended")
    return on_date


def occurrence_start(slot: AvailabilitySlot, on_date: date | None, today: date | None = None) -> datetime:
    occurrence = resolve_occurrence_date(slot, on_date, today=today)
    minute_of_day = parse_minute_of_day(slot.start_time, "start_time")
    return datetime.combine(occurrence, time(minute_of_day // 60, minute_of_day % 60), tzinfo=UTC)
