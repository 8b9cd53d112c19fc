from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from app.api.deps import (
    Principal,
    Role,
    get_current_principal,
    get_optional_principal,
    get_reconciler,
    get_storage,
    require_roles,
)
from app.api.pagination import LimitParam, OffsetParam, paginate
from app.core.config import settings
from app.core.rate_limiter import rate_limiter
from app.domain import Booking, BookingStatus
from app.schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingNotesRequest,
    BookingResponse,
)
from app.services import booking_service
from app.services.capacity_reconciler import CapacityReconciler
from app.storage.base import StorageAdapter

site_router = APIRouter(prefix="/api/v1/sites/{site_id}/bookings", tags=["bookings"])
router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])

StaffPrincipal = Depends(require_roles(Role.STAFF, Role.ADMIN))


def _rate_limit_or_raise(request: Request, response: Response) -> None:
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = rate_limiter.allow(
        key=f"booking_create:{client_ip}",
        limit=settings.booking_create_max_attempts,
        window_seconds=settings.booking_rate_limit_window_seconds,
    )
    if not allowed:
        response.headers["Retry-After"] = str(retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )


def _ensure_staff_of_org(principal: Principal, booking: Booking) -> None:
    if not (principal.is_staff and principal.org_id == booking.org_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")


def _ensure_owner_or_staff(principal: Principal, booking: Booking) -> None:
    if booking.client_email == principal.email:
        return
    _ensure_staff_of_org(principal, booking)


def _page(bookings: list[Booking], limit: int, offset: int) -> BookingListResponse:
    page, total = paginate(bookings, limit, offset)
    return BookingListResponse(data=[BookingResponse.model_validate(booking) for booking in page], total=total)


@site_router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    site_id: str,
    payload: BookingCreateRequest,
    request: Request,
    response: Response,
    principal: Principal | None = Depends(get_optional_principal),
    storage: StorageAdapter = Depends(get_storage),
    reconciler: CapacityReconciler = Depends(get_reconciler),
) -> BookingResponse:
    _rate_limit_or_raise(request, response)
    if principal is not None and payload.client_id is None:
        payload = payload.model_copy(update={"client_id": principal.subject})
    booking = booking_service.create_booking(storage, reconciler, site_id, payload)
    return BookingResponse.model_validate(booking)


@site_router.get("", response_model=BookingListResponse, status_code=status.HTTP_200_OK)
def list_site_bookings(
    site_id: str,
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    principal: Principal = StaffPrincipal,
    storage: StorageAdapter = Depends(get_storage),
) -> BookingListResponse:
    bookings = [
        booking
        for booking in booking_service.list_bookings_for_site(storage, site_id, status=status_filter)
        if booking.org_id == principal.org_id
    ]
    return _page(bookings, limit, offset)


@router.get("/me", response_model=BookingListResponse, status_code=status.HTTP_200_OK)
def list_my_bookings(
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    principal: Principal = Depends(get_current_principal),
    storage: StorageAdapter = Depends(get_storage),
) -> BookingListResponse:
    return _page(booking_service.list_bookings_for_client(storage, principal.email), limit, offset)


@router.get("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def get_booking_by_id(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    storage: StorageAdapter = Depends(get_storage),
) -> BookingResponse:
    booking = booking_service.get_booking(storage, booking_id)
    _ensure_owner_or_staff(principal, booking)
    return BookingResponse.model_validate(booking)


@router.put("/{booking_id}/confirm", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def confirm_booking(
    booking_id: str,
    principal: Principal = StaffPrincipal,
    storage: StorageAdapter = Depends(get_storage),
) -> BookingResponse:
    _ensure_staff_of_org(principal, booking_service.get_booking(storage, booking_id))
    return BookingResponse.model_validate(booking_service.confirm_booking(storage, booking_id))


@router.put("/{booking_id}/complete", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def complete_booking(
    booking_id: str,
    principal: Principal = StaffPrincipal,
    storage: StorageAdapter = Depends(get_storage),
) -> BookingResponse:
    _ensure_staff_of_org(principal, booking_service.get_booking(storage, booking_id))
    return BookingResponse.model_validate(booking_service.complete_booking(storage, booking_id))


@router.put("/{booking_id}/no-show", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def mark_no_show(
    booking_id: str,
    principal: Principal = StaffPrincipal,
    storage: StorageAdapter = Depends(get_storage),
    reconciler: CapacityReconciler = Depends(get_reconciler),
) -> BookingResponse:
    _ensure_staff_of_org(principal, booking_service.get_booking(storage, booking_id))
    return BookingResponse.model_validate(booking_service.mark_no_show(storage, reconciler, booking_id))


@router.put("/{booking_id}/notes", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def update_booking_notes(
    booking_id: str,
    payload: BookingNotesRequest,
    principal: Principal = StaffPrincipal,
    storage: StorageAdapter = Depends(get_storage),
) -> BookingResponse:
    _ensure_staff_of_org(principal, booking_service.get_booking(storage, booking_id))
    return BookingResponse.model_validate(booking_service.update_notes(storage, booking_id, payload.notes))


@router.put("/{booking_id}/cancel", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def cancel_booking(
    booking_id: str,
    payload: BookingCancelRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    storage: StorageAdapter = Depends(get_storage),
    reconciler: CapacityReconciler = Depends(get_reconciler),
) -> BookingResponse:
    _ensure_owner_or_staff(principal, booking_service.get_booking(storage, booking_id))
    reason = payload.reason if payload else None
    return BookingResponse.model_validate(booking_service.cancel_booking(storage, reconciler, booking_id, reason=reason))
