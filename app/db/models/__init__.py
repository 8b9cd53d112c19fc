from app.db.models.availability_slot import AvailabilitySlotRow
from app.db.models.booking import BookingRow

__all__ = [
    "AvailabilitySlotRow",
    "BookingRow",
]
