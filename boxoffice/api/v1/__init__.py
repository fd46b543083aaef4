"""API v1 routers package."""

from boxoffice.api.v1.bookings import router as bookings_router
from boxoffice.api.v1.payments import router as payments_router
from boxoffice.api.v1.price_rules import router as price_rules_router
from boxoffice.api.v1.seat_locks import router as seat_locks_router
from boxoffice.api.v1.showings import router as showings_router

__all__ = [
    "showings_router",
    "seat_locks_router",
    "bookings_router",
    "payments_router",
    "price_rules_router",
]
