"""Bookings API endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from boxoffice.api.v1.dependencies import (
    CurrentOwner,
    OptionalUser,
    OrchestratorDep,
    SessionId,
    unwrap,
)
from boxoffice.models.booking import Booking, BookingStatus
from boxoffice.schemas.booking import (
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
)
from boxoffice.schemas.common import PaginatedResponse

router = APIRouter()


def _owned(booking: Booking | None, owner: str) -> Booking:
    if booking is None or booking.lease_owner != owner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


@router.post(
    "",
    response_model=BookingDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create booking",
)
async def create_booking(
    booking_data: BookingCreate,
    owner: CurrentOwner,
    user_id: OptionalUser,
    session_id: SessionId,
    orchestrator: OrchestratorDep,
) -> BookingDetailResponse:
    """
    Price the selected seats and hold them in a Pending booking.

    The booking must be paid before `hold_expires_at`, otherwise it expires
    and the seats are released. A seat already in another pending or
    confirmed booking yields 409.
    """
    result = await orchestrator.create_reservation(
        booking_data.showing_id,
        booking_data.seat_ids,
        owner_id=user_id,
        session_id=session_id,
        customer=booking_data.customer,
    )
    return BookingDetailResponse.model_validate(unwrap(result))


@router.get(
    "",
    response_model=PaginatedResponse[BookingResponse],
    summary="List my bookings",
)
async def list_bookings(
    owner: CurrentOwner,
    orchestrator: OrchestratorDep,
    status_filter: BookingStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[BookingResponse]:
    """List the caller's bookings, newest first."""
    bookings, total = await orchestrator.list_bookings(
        owner,
        status=status_filter,
        page=page,
        page_size=page_size,
    )

    total_pages = (total + page_size - 1) // page_size

    return PaginatedResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get(
    "/code/{code}",
    response_model=BookingDetailResponse,
    summary="Get booking by code",
)
async def get_booking_by_code(
    code: str,
    owner: CurrentOwner,
    orchestrator: OrchestratorDep,
) -> BookingDetailResponse:
    """Look up one of the caller's bookings by its short code."""
    booking = _owned(await orchestrator.get_booking_by_code(code), owner)
    return BookingDetailResponse.model_validate(booking)


@router.get(
    "/{booking_id}",
    response_model=BookingDetailResponse,
    summary="Get booking",
)
async def get_booking(
    booking_id: str,
    owner: CurrentOwner,
    orchestrator: OrchestratorDep,
) -> BookingDetailResponse:
    """Get booking details with tickets."""
    booking = _owned(await orchestrator.get_booking(booking_id), owner)
    return BookingDetailResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingDetailResponse,
    summary="Cancel booking",
)
async def cancel_booking(
    booking_id: str,
    owner: CurrentOwner,
    orchestrator: OrchestratorDep,
) -> BookingDetailResponse:
    """
    Cancel a Pending booking and release its seats.

    Confirmed, canceled or expired bookings cannot be canceled (409).
    """
    result = await orchestrator.cancel(booking_id, owner)
    return BookingDetailResponse.model_validate(unwrap(result))
