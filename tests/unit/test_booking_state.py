from datetime import UTC, datetime, timedelta

import pytest

from app.core.exceptions import InvalidState
from app.domain import OCCUPYING_STATUSES, Booking, BookingStatus
from app.domain.booking import transition

START = datetime(2030, 5, 6, 9, 0, tzinfo=UTC)
NOW = datetime(2030, 5, 1, 12, 0, tzinfo=UTC)


def _booking(status: BookingStatus = BookingStatus.PENDING) -> Booking:
    return Booking(
        id="booking:1",
        rev="1",
        org_id="org-1",
        site_id="site-1",
        slot_id="slot:1",
        client_name="Client",
        client_email="client@example.com",
        start_at=START,
        end_at=START + timedelta(minutes=30),
        duration_minutes=30,
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.parametrize(
    "source, target",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.PENDING, BookingStatus.NO_SHOW),
        (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.NO_SHOW),
    ],
)
def test_allowed_transitions(source, target):
    moved = transition(_booking(source), target, NOW)

    assert moved.status == target.value
    assert moved.updated_at == NOW
    assert moved.rev == "1"


@pytest.mark.parametrize(
    "source, target",
    [
        (BookingStatus.PENDING, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingStatus.PENDING),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
        (BookingStatus.CANCELLED, BookingStatus.CANCELLED),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        (BookingStatus.NO_SHOW, BookingStatus.CONFIRMED),
    ],
)
def test_rejected_transitions(source, target):
    with pytest.raises(InvalidState):
        transition(_booking(source), target, NOW)


def test_transition_stamps_confirmation_and_cancellation():
    confirmed = transition(_booking(), BookingStatus.CONFIRMED, NOW)
    cancelled = transition(confirmed, BookingStatus.CANCELLED, NOW + timedelta(hours=1), reason="sick")

    assert confirmed.confirmed_at == NOW
    assert cancelled.cancelled_at == NOW + timedelta(hours=1)
    assert cancelled.cancel_reason == "sick"
    assert cancelled.confirmed_at == NOW


def test_occupying_states():
    assert _booking(BookingStatus.COMPLETED).is_occupying
    assert not _booking(BookingStatus.CANCELLED).is_occupying
    assert not _booking(BookingStatus.NO_SHOW).is_occupying
    assert OCCUPYING_STATUSES == {"pending", "confirmed", "completed"}


def test_covers_is_half_open():
    booking = _booking()

    assert booking.covers(START)
    assert booking.covers(START + timedelta(minutes=29))
    assert not booking.covers(START + timedelta(minutes=30))
