"""API dependencies."""

from typing import Annotated, TypeVar

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.config import get_settings
from boxoffice.database import get_db
from boxoffice.drafts import DraftStore
from boxoffice.errors import ErrorKind, ReservationError, Result
from boxoffice.gateways.vnpay import VnPayClient
from boxoffice.leases import LeaseStore
from boxoffice.notifications import SeatEventBroadcaster
from boxoffice.redis_client import get_redis
from boxoffice.services.booking_service import ReservationOrchestrator, lease_owner_for
from boxoffice.services.catalog_service import CatalogService
from boxoffice.services.payment_service import PaymentReconciler, PaymentService
from boxoffice.services.pricing_service import PriceResolver, PriceRuleService
from boxoffice.services.seat_lock_service import SeatLockManager

T = TypeVar("T")

# Type aliases
DBSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[redis.Redis, Depends(get_redis)]

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def http_error(error: ReservationError) -> HTTPException:
    """Translate a reservation error into an HTTP error."""
    return HTTPException(status_code=ERROR_STATUS[error.kind], detail=error.message)


def unwrap(result: Result[T]) -> T:
    """Return the result value or raise the matching HTTP error."""
    if not result.is_ok:
        raise http_error(result.error)
    return result.value


async def get_optional_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str | None:
    """
    Get current user ID from header, if any.
    In a real application, this would verify JWT tokens, etc.
    """
    return x_user_id or None


async def get_session_id(
    x_session_id: Annotated[str | None, Header()] = None,
) -> str | None:
    """Anonymous browser session, used when there is no user."""
    return x_session_id or None


OptionalUser = Annotated[str | None, Depends(get_optional_user_id)]
SessionId = Annotated[str | None, Depends(get_session_id)]


async def get_optional_owner(user_id: OptionalUser, session_id: SessionId) -> str | None:
    """Lease owner for the caller, or None for an unidentified caller."""
    if not user_id and not session_id:
        return None
    return lease_owner_for(user_id, session_id)


async def get_current_owner(owner: Annotated[str | None, Depends(get_optional_owner)]) -> str:
    """Lease owner for the caller; an identity header is required."""
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID or X-Session-ID header is required",
        )
    return owner


OptionalOwner = Annotated[str | None, Depends(get_optional_owner)]
CurrentOwner = Annotated[str, Depends(get_current_owner)]


def get_lease_store(redis_client: RedisClient) -> LeaseStore:
    """Get lease store."""
    return LeaseStore(redis_client)


def get_draft_store(redis_client: RedisClient) -> DraftStore:
    """Get draft store."""
    return DraftStore(redis_client)


def get_broadcaster(redis_client: RedisClient) -> SeatEventBroadcaster:
    """Get seat event broadcaster."""
    return SeatEventBroadcaster(redis_client)


def get_vnpay_client() -> VnPayClient:
    """Get VNPay client."""
    return VnPayClient.from_settings(get_settings())


LeaseStoreDep = Annotated[LeaseStore, Depends(get_lease_store)]
DraftStoreDep = Annotated[DraftStore, Depends(get_draft_store)]
BroadcasterDep = Annotated[SeatEventBroadcaster, Depends(get_broadcaster)]
VnPayDep = Annotated[VnPayClient, Depends(get_vnpay_client)]


def get_catalog_service(db: DBSession) -> CatalogService:
    """Get catalog service."""
    return CatalogService(db)


def get_price_resolver(db: DBSession) -> PriceResolver:
    """Get price resolver."""
    return PriceResolver(db)


def get_price_rule_service(db: DBSession) -> PriceRuleService:
    """Get price rule service."""
    return PriceRuleService(db)


def get_seat_lock_manager(
    lease_store: LeaseStoreDep,
    broadcaster: BroadcasterDep,
) -> SeatLockManager:
    """Get seat lock manager."""
    return SeatLockManager(lease_store, broadcaster)


SeatLockManagerDep = Annotated[SeatLockManager, Depends(get_seat_lock_manager)]


def get_orchestrator(
    db: DBSession,
    seat_locks: SeatLockManagerDep,
    drafts: DraftStoreDep,
    broadcaster: BroadcasterDep,
) -> ReservationOrchestrator:
    """Get reservation orchestrator."""
    return ReservationOrchestrator(db, seat_locks, drafts, broadcaster)


OrchestratorDep = Annotated[ReservationOrchestrator, Depends(get_orchestrator)]


def get_payment_service(
    db: DBSession,
    orchestrator: OrchestratorDep,
    gateway: VnPayDep,
) -> PaymentService:
    """Get payment service."""
    return PaymentService(db, orchestrator, gateway)


def get_payment_reconciler(
    db: DBSession,
    orchestrator: OrchestratorDep,
    gateway: VnPayDep,
) -> PaymentReconciler:
    """Get payment reconciler."""
    return PaymentReconciler(db, orchestrator, gateway)


# Annotated dependencies
CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]
PriceResolverDep = Annotated[PriceResolver, Depends(get_price_resolver)]
PriceRuleServiceDep = Annotated[PriceRuleService, Depends(get_price_rule_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
PaymentReconcilerDep = Annotated[PaymentReconciler, Depends(get_payment_reconciler)]
