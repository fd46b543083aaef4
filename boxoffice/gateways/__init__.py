"""Payment gateway clients."""

from boxoffice.gateways.vnpay import VnPayClient

__all__ = ["VnPayClient"]
