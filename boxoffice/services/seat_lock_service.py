"""Seat lock service: per-(showing, seat) leases with live seat-map updates."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from boxoffice.clock import Clock, utcnow
from boxoffice.config import get_settings
from boxoffice.leases import Lease, LeaseStore
from boxoffice.notifications import SeatEventBroadcaster

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class SeatLockResult:
    """Seats affected by a lock or extend call and their common expiry."""

    showing_id: str
    seat_ids: list[str]
    expires_at: datetime | None
    skipped_seat_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.seat_ids) and not self.skipped_seat_ids


def _unique(seat_ids: list[str]) -> list[str]:
    return list(dict.fromkeys(seat_ids))


class SeatLockManager:
    """
    One owner per seat per showing, held as a lease in the shared store.

    Each seat is attempted independently, so a call may lock a subset. The
    seat map shown to other viewers is refreshed through the broadcaster after
    every successful lock or unlock.
    """

    def __init__(
        self,
        lease_store: LeaseStore,
        broadcaster: SeatEventBroadcaster | None = None,
        clock: Clock = utcnow,
    ):
        self.leases = lease_store
        self.broadcaster = broadcaster
        self.clock = clock

    @staticmethod
    def seat_key(showing_id: str, seat_id: str) -> str:
        return f"showing:{showing_id}:seat:{seat_id}"

    @staticmethod
    def showing_prefix(showing_id: str) -> str:
        return f"showing:{showing_id}:seat:"

    async def lock_seats(
        self,
        showing_id: str,
        owner: str,
        seat_ids: list[str],
        ttl_seconds: int | None = None,
    ) -> SeatLockResult:
        """
        Lease every requested seat that is free or already ours.

        Seats held by a different owner are skipped and reported in
        ``skipped_seat_ids``; they never fail the whole call.
        """
        ttl = ttl_seconds or settings.SEAT_LOCK_TTL_SECONDS
        expires_at = self.clock() + timedelta(seconds=ttl)

        locked: list[str] = []
        skipped: list[str] = []
        for seat_id in _unique(seat_ids):
            if await self.leases.acquire(self.seat_key(showing_id, seat_id), owner, ttl):
                locked.append(seat_id)
            else:
                skipped.append(seat_id)

        if skipped:
            logger.info(
                f"Seats {skipped} for showing {showing_id} are held by another owner"
            )
        if locked:
            self._broadcast(showing_id, "lock", locked, expires_at)

        return SeatLockResult(
            showing_id=showing_id,
            seat_ids=locked,
            expires_at=expires_at if locked else None,
            skipped_seat_ids=skipped,
        )

    async def unlock_seats(
        self,
        showing_id: str,
        owner: str,
        seat_ids: list[str],
    ) -> list[str]:
        """Release the caller's leases; returns the seats actually released."""
        released = [
            seat_id
            for seat_id in _unique(seat_ids)
            if await self.leases.release(self.seat_key(showing_id, seat_id), owner)
        ]
        if released:
            self._broadcast(showing_id, "unlock", released, None)
        return released

    async def extend_seats(
        self,
        showing_id: str,
        owner: str,
        seat_ids: list[str],
        ttl_seconds: int,
    ) -> SeatLockResult:
        """Bump the TTL of the caller's leases; seats it does not own are skipped."""
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        extended: list[str] = []
        skipped: list[str] = []
        for seat_id in _unique(seat_ids):
            if await self.leases.extend(
                self.seat_key(showing_id, seat_id), owner, ttl_seconds
            ):
                extended.append(seat_id)
            else:
                skipped.append(seat_id)

        return SeatLockResult(
            showing_id=showing_id,
            seat_ids=extended,
            expires_at=expires_at if extended else None,
            skipped_seat_ids=skipped,
        )

    async def list_locked(self, showing_id: str) -> set[str]:
        """Seat ids currently leased for a showing. Display only."""
        prefix = self.showing_prefix(showing_id)
        keys = await self.leases.list_active(prefix)
        return {key[len(prefix):] for key in keys}

    async def locks_of(self, showing_id: str, owner: str) -> dict[str, Lease]:
        """Leases a given owner holds for a showing, keyed by seat id."""
        leases = {}
        for seat_id in sorted(await self.list_locked(showing_id)):
            lease = await self.leases.get(self.seat_key(showing_id, seat_id))
            if lease is not None and lease.owner == owner:
                leases[seat_id] = lease
        return leases

    async def held_by_others(
        self,
        showing_id: str,
        owner: str,
        seat_ids: list[str],
    ) -> list[str]:
        """Seats among ``seat_ids`` currently leased by someone other than ``owner``."""
        held = []
        for seat_id in _unique(seat_ids):
            lease = await self.leases.get(self.seat_key(showing_id, seat_id))
            if lease is not None and lease.owner != owner:
                held.append(seat_id)
        return held

    def _broadcast(
        self,
        showing_id: str,
        action: str,
        seat_ids: list[str],
        expires_at: datetime | None,
    ) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.fire(
                showing_id,
                {
                    "action": action,
                    "showing_id": showing_id,
                    "seat_ids": seat_ids,
                    "expires_at": expires_at.isoformat() if expires_at else None,
                },
            )
        except Exception as e:
            logger.warning(f"Could not schedule seat {action} broadcast: {e}")
