"""Read-only catalog lookups: showings, seats and which seats are taken."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from boxoffice.models.booking import SeatClaim
from boxoffice.models.catalog import Room, Seat, Showing


class CatalogService:
    """Service for catalog lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_showing(self, showing_id: str) -> Showing | None:
        """Get showing by ID with its room and cinema loaded."""
        result = await self.db.execute(
            select(Showing)
            .options(selectinload(Showing.room).selectinload(Room.cinema))
            .where(Showing.showing_id == showing_id)
        )
        return result.scalar_one_or_none()

    async def get_seats(self, seat_ids: list[str]) -> list[Seat]:
        """Get multiple seats by IDs."""
        result = await self.db.execute(select(Seat).where(Seat.seat_id.in_(seat_ids)))
        return list(result.scalars().all())

    async def get_room_seats(self, room_id: str, active_only: bool = False) -> list[Seat]:
        """Get the seats of a room in row/number order."""
        query = select(Seat).where(Seat.room_id == room_id)
        if active_only:
            query = query.where(Seat.is_active.is_(True))
        query = query.order_by(Seat.row_label, Seat.seat_number)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_booked_seat_ids(self, showing_id: str) -> set[str]:
        """Seats held by a pending or confirmed booking for the showing."""
        result = await self.db.execute(
            select(SeatClaim.seat_id).where(SeatClaim.showing_id == showing_id)
        )
        return set(result.scalars().all())
