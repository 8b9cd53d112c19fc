from datetime import date, datetime

from pydantic import BaseModel, Field

from app.domain.slot import Recurrence, SlotStatus


class SlotCreateRequest(BaseModel):
    day_of_week: int | None = None
    start_time: str
    end_time: str
    recurrence: Recurrence
    recurrence_end_date: date | None = None
    specific_date: date | None = None
    capacity: int
    duration_minutes: int
    buffer: int | None = None
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    notes_for_clients: str | None = Field(default=None, max_length=2000)


class SlotResponse(BaseModel):
    id: str
    org_id: str
    site_id: str
    day_of_week: int | None
    start_time: str
    end_time: str
    recurrence: Recurrence
    specific_date: date | None
    recurrence_end_date: date | None
    capacity: int
    booked_count: int
    remaining_capacity: int
    duration_minutes: int
    buffer: int
    title: str | None
    description: str | None
    notes_for_clients: str | None
    status: SlotStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SlotListResponse(BaseModel):
    data: list[SlotResponse]
    total: int
