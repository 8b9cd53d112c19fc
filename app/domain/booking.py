from datetime import datetime
from enum import Enum
from typing import ClassVar

from app.core.exceptions import InvalidState
from app.domain.entity import Entity, UtcDatetime


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# Bookings in these states count against the slot's booked_count.
OCCUPYING_STATUSES = frozenset(
    {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value}
)

# Bookings in these states block an overlapping booking by the same client.
BLOCKING_STATUSES = frozenset({BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING.value: frozenset(
        {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value}
    ),
    BookingStatus.CONFIRMED.value: frozenset(
        {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value}
    ),
}


class Booking(Entity):
    kind: ClassVar[str] = "booking"

    org_id: str
    site_id: str
    slot_id: str

    client_id: str | None = None
    client_name: str
    client_email: str
    client_phone: str | None = None
    notes: str | None = None
    staff_notes: str | None = None

    start_at: UtcDatetime
    end_at: UtcDatetime
    duration_minutes: int

    status: BookingStatus = BookingStatus.PENDING

    confirmed_at: UtcDatetime | None = None
    cancelled_at: UtcDatetime | None = None
    cancel_reason: str | None = None

    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    def covers(self, instant: datetime) -> bool:
        return self.start_at <= instant < self.end_at


def ensure_transition(booking: Booking, target: BookingStatus) -> None:
    allowed = ALLOWED_TRANSITIONS.get(booking.status, frozenset())
    if target.value not in allowed:
        raise InvalidState(f"Cannot move a {booking.status} booking to {target.value}")


def transition(booking: Booking, target: BookingStatus, now: datetime, reason: str | None = None) -> Booking:
    """Return a copy of ``booking`` moved to ``target``, stamped at ``now``.

    Raises ``InvalidState`` when the lifecycle does not allow the move.
    """
    ensure_transition(booking, target)
    changes: dict[str, object] = {"status": target.value, "updated_at": now}
    if target is BookingStatus.CONFIRMED:
        changes["confirmed_at"] = now
    elif target is BookingStatus.CANCELLED:
        changes["cancelled_at"] = now
        changes["cancel_reason"] = reason
    return booking.model_copy(update=changes)
