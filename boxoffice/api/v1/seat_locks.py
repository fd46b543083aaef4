"""Seat lock API endpoints."""

from fastapi import APIRouter, HTTPException, status

from boxoffice.api.v1.dependencies import (
    CatalogServiceDep,
    CurrentOwner,
    OptionalOwner,
    SeatLockManagerDep,
)
from boxoffice.schemas.seat import (
    LockedSeatsResponse,
    SeatLockExtendRequest,
    SeatLockRequest,
    SeatLockResponse,
    SeatUnlockResponse,
)
from boxoffice.services.catalog_service import CatalogService
from boxoffice.services.seat_lock_service import SeatLockResult

router = APIRouter()


async def _check_seats(catalog: CatalogService, showing_id: str, seat_ids: list[str]) -> None:
    showing = await catalog.get_showing(showing_id)
    if not showing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Showing not found",
        )
    seats = {seat.seat_id: seat for seat in await catalog.get_seats(seat_ids)}
    for seat_id in seat_ids:
        seat = seats.get(seat_id)
        if seat is None or seat.room_id != showing.room_id or not seat.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Seat {seat_id} cannot be selected for this showing",
            )


def _to_response(result: SeatLockResult) -> SeatLockResponse:
    return SeatLockResponse(
        showing_id=result.showing_id,
        seat_ids=result.seat_ids,
        skipped_seat_ids=result.skipped_seat_ids,
        expires_at=result.expires_at,
        success=result.success,
    )


@router.post(
    "",
    response_model=SeatLockResponse,
    summary="Lock seats",
)
async def lock_seats(
    request: SeatLockRequest,
    owner: CurrentOwner,
    catalog: CatalogServiceDep,
    seat_locks: SeatLockManagerDep,
) -> SeatLockResponse:
    """
    Lock seats for the caller.

    Seats held by someone else are skipped and listed in `skipped_seat_ids`.
    If none of the seats could be locked the request fails with 409.
    """
    await _check_seats(catalog, request.showing_id, request.seat_ids)
    result = await seat_locks.lock_seats(request.showing_id, owner, request.seat_ids)
    if not result.seat_ids:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="All requested seats are held by other customers",
        )
    return _to_response(result)


@router.post(
    "/unlock",
    response_model=SeatUnlockResponse,
    summary="Unlock seats",
)
async def unlock_seats(
    request: SeatLockRequest,
    owner: CurrentOwner,
    seat_locks: SeatLockManagerDep,
) -> SeatUnlockResponse:
    """Release the caller's locks on the given seats."""
    released = await seat_locks.unlock_seats(request.showing_id, owner, request.seat_ids)
    return SeatUnlockResponse(showing_id=request.showing_id, seat_ids=released)


@router.post(
    "/extend",
    response_model=SeatLockResponse,
    summary="Extend seat locks",
)
async def extend_seat_locks(
    request: SeatLockExtendRequest,
    owner: CurrentOwner,
    seat_locks: SeatLockManagerDep,
) -> SeatLockResponse:
    """Extend the caller's locks; seats the caller does not hold are skipped."""
    result = await seat_locks.extend_seats(
        request.showing_id, owner, request.seat_ids, request.ttl_seconds
    )
    return _to_response(result)


@router.get(
    "/{showing_id}",
    response_model=LockedSeatsResponse,
    summary="List locked seats",
)
async def list_locked_seats(
    showing_id: str,
    owner: OptionalOwner,
    seat_locks: SeatLockManagerDep,
) -> LockedSeatsResponse:
    """List seats currently locked for a showing, and which are the caller's."""
    locked = await seat_locks.list_locked(showing_id)
    mine = await seat_locks.locks_of(showing_id, owner) if owner else {}
    return LockedSeatsResponse(
        showing_id=showing_id,
        locked_seat_ids=sorted(locked),
        my_seat_ids=list(mine),
        my_expires_at=min((lease.expires_at for lease in mine.values()), default=None),
    )
