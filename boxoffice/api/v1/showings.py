"""Showings API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status

from boxoffice.api.v1.dependencies import (
    CatalogServiceDep,
    OptionalOwner,
    SeatLockManagerDep,
)
from boxoffice.errors import TransientInfrastructureError
from boxoffice.schemas.seat import SeatMapEntry, SeatMapResponse, SeatResponse, SeatState
from boxoffice.schemas.showing import CinemaSummary, ShowingResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/{showing_id}",
    response_model=ShowingResponse,
    summary="Get showing details",
)
async def get_showing(
    showing_id: str,
    catalog: CatalogServiceDep,
) -> ShowingResponse:
    """Get showing details with seat availability."""
    showing = await catalog.get_showing(showing_id)
    if not showing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Showing not found",
        )

    seats = await catalog.get_room_seats(showing.room_id, active_only=True)
    booked = await catalog.get_booked_seat_ids(showing_id)

    return ShowingResponse(
        showing_id=showing.showing_id,
        room_id=showing.room_id,
        room_name=showing.room.name,
        cinema=CinemaSummary.model_validate(showing.room.cinema),
        movie_title=showing.movie_title,
        start_at=showing.start_at,
        end_at=showing.end_at,
        base_price=showing.base_price,
        total_seats=len(seats),
        available_seats=sum(1 for seat in seats if seat.seat_id not in booked),
    )


@router.get(
    "/{showing_id}/seats",
    response_model=SeatMapResponse,
    summary="Get seat map",
)
async def get_seat_map(
    showing_id: str,
    catalog: CatalogServiceDep,
    seat_locks: SeatLockManagerDep,
    owner: OptionalOwner,
) -> SeatMapResponse:
    """
    Get every seat of the showing's room with its current state.

    Booked seats come from the database; locked seats are a live view of
    seat leases and may lag by a few seconds.
    """
    showing = await catalog.get_showing(showing_id)
    if not showing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Showing not found",
        )

    seats = await catalog.get_room_seats(showing.room_id)
    booked = await catalog.get_booked_seat_ids(showing_id)
    locked: set[str] = set()
    mine: set[str] = set()
    try:
        locked = await seat_locks.list_locked(showing_id)
        if owner:
            mine = set(await seat_locks.locks_of(showing_id, owner))
    except TransientInfrastructureError as e:
        logger.warning(f"Seat map for {showing_id} served without lock state: {e}")

    entries = []
    for seat in seats:
        if not seat.is_active:
            state = SeatState.INACTIVE
        elif seat.seat_id in booked:
            state = SeatState.BOOKED
        elif seat.seat_id in locked:
            state = SeatState.LOCKED
        else:
            state = SeatState.AVAILABLE
        entries.append(
            SeatMapEntry(
                **SeatResponse.model_validate(seat).model_dump(),
                state=state,
                locked_by_me=seat.seat_id in mine,
            )
        )

    return SeatMapResponse(showing_id=showing_id, seats=entries)
