from app.domain.booking import OCCUPYING_STATUSES, Booking, BookingStatus
from app.domain.entity import Entity
from app.domain.slot import AvailabilitySlot, Recurrence, SlotStatus

__all__ = [
    "Entity",
    "AvailabilitySlot",
    "Recurrence",
    "SlotStatus",
    "Booking",
    "BookingStatus",
    "OCCUPYING_STATUSES",
]
