"""Services package."""

from boxoffice.services.booking_service import ReservationOrchestrator
from boxoffice.services.catalog_service import CatalogService
from boxoffice.services.payment_service import PaymentReconciler, PaymentService
from boxoffice.services.pricing_service import PriceResolver, PriceRuleService
from boxoffice.services.seat_lock_service import SeatLockManager

__all__ = [
    "CatalogService",
    "SeatLockManager",
    "PriceResolver",
    "PriceRuleService",
    "ReservationOrchestrator",
    "PaymentService",
    "PaymentReconciler",
]
