from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field

from app.domain.booking import BookingStatus


class BookingCreateRequest(BaseModel):
    slot_id: str
    client_name: str = Field(min_length=2, max_length=200)
    client_email: EmailStr
    client_phone: str | None = Field(default=None, max_length=40)
    client_id: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=2000)
    occurrence_date: date | None = None


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class BookingNotesRequest(BaseModel):
    notes: str = Field(max_length=2000)


class BookingResponse(BaseModel):
    id: str
    org_id: str
    site_id: str
    slot_id: str
    client_id: str | None
    client_name: str
    client_email: str
    client_phone: str | None
    notes: str | None
    staff_notes: str | None
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    status: BookingStatus
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    data: list[BookingResponse]
    total: int
