from datetime import date
from enum import Enum
from typing import ClassVar

from app.domain.entity import Entity, UtcDatetime


class SlotStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


class Recurrence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONCE = "once"


class AvailabilitySlot(Entity):
    kind: ClassVar[str] = "availability"

    org_id: str
    site_id: str

    # 0-6, Sunday first
    day_of_week: int | None = None
    start_time: str
    end_time: str
    recurrence: Recurrence
    specific_date: date | None = None
    recurrence_end_date: date | None = None

    capacity: int
    booked_count: int = 0
    duration_minutes: int
    buffer: int = 0

    title: str | None = None
    description: str | None = None
    notes_for_clients: str | None = None

    status: SlotStatus = SlotStatus.ACTIVE
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.capacity - self.booked_count)
