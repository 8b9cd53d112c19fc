from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import Principal, Role, get_current_principal, get_storage, require_roles
from app.api.pagination import LimitParam, OffsetParam, paginate
from app.domain import AvailabilitySlot
from app.schemas.slot import SlotCreateRequest, SlotListResponse, SlotResponse
from app.services.slot_service import (
    create_slot,
    deactivate_slot,
    get_slot_for_site,
    is_available,
    list_active_slots,
    list_slots_for_date_range,
)
from app.storage.base import StorageAdapter

router = APIRouter(prefix="/api/v1/sites/{site_id}/availability", tags=["availability"])


def _ensure_same_org(principal: Principal, slot: AvailabilitySlot) -> None:
    if slot.org_id != principal.org_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")


def _page(slots: list[AvailabilitySlot], limit: int, offset: int) -> SlotListResponse:
    page, total = paginate(slots, limit, offset)
    return SlotListResponse(data=[SlotResponse.model_validate(slot) for slot in page], total=total)


@router.post("", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_availability(
    site_id: str,
    payload: SlotCreateRequest,
    principal: Principal = Depends(require_roles(Role.STAFF, Role.ADMIN)),
    storage: StorageAdapter = Depends(get_storage),
) -> SlotResponse:
    slot = create_slot(storage, org_id=principal.org_id, site_id=site_id, payload=payload)
    return SlotResponse.model_validate(slot)


@router.get("", response_model=SlotListResponse, status_code=status.HTTP_200_OK)
def list_availability(
    site_id: str,
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    principal: Principal = Depends(get_current_principal),
    storage: StorageAdapter = Depends(get_storage),
) -> SlotListResponse:
    slots = [slot for slot in list_active_slots(storage, site_id) if slot.org_id == principal.org_id]
    return _page(slots, limit, offset)


@router.get("/available", response_model=SlotListResponse, status_code=status.HTTP_200_OK)
def list_bookable_availability(
    site_id: str,
    start_date: date = Query(),
    end_date: date = Query(),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    storage: StorageAdapter = Depends(get_storage),
) -> SlotListResponse:
    slots = [slot for slot in list_slots_for_date_range(storage, site_id, start_date, end_date) if is_available(slot)]
    return _page(slots, limit, offset)


@router.get("/{slot_id}", response_model=SlotResponse, status_code=status.HTTP_200_OK)
def get_availability(
    site_id: str,
    slot_id: str,
    storage: StorageAdapter = Depends(get_storage),
) -> SlotResponse:
    return SlotResponse.model_validate(get_slot_for_site(storage, site_id, slot_id))


@router.delete("/{slot_id}", response_model=SlotResponse, status_code=status.HTTP_200_OK)
def deactivate_availability(
    site_id: str,
    slot_id: str,
    principal: Principal = Depends(require_roles(Role.STAFF, Role.ADMIN)),
    storage: StorageAdapter = Depends(get_storage),
) -> SlotResponse:
    slot = get_slot_for_site(storage, site_id, slot_id)
    _ensure_same_org(principal, slot)
    return SlotResponse.model_validate(deactivate_slot(storage, slot.id))
