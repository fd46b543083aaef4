"""API v1 main router."""

from fastapi import APIRouter

from boxoffice.api.v1.bookings import router as bookings_router
from boxoffice.api.v1.payments import router as payments_router
from boxoffice.api.v1.price_rules import router as price_rules_router
from boxoffice.api.v1.seat_locks import router as seat_locks_router
from boxoffice.api.v1.showings import router as showings_router
from boxoffice.api.v1.websocket import router as websocket_router

router = APIRouter(prefix="/v1")

router.include_router(showings_router, prefix="/showings", tags=["Showings"])
router.include_router(seat_locks_router, prefix="/seat-locks", tags=["Seat Locks"])
router.include_router(bookings_router, prefix="/bookings", tags=["Bookings"])
router.include_router(payments_router, prefix="/payments", tags=["Payments"])
router.include_router(price_rules_router, prefix="/price-rules", tags=["Price Rules"])
router.include_router(websocket_router, tags=["WebSocket"])
