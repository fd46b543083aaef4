"""VNPay redirect-payment client: URL signing and callback verification."""

import hashlib
import hmac
from datetime import datetime
from typing import Mapping
from urllib.parse import quote_plus

from boxoffice.clock import Clock, utcnow
from boxoffice.config import Settings

SUCCESS_CODE = "00"
SIGNATURE_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")


class VnPayClient:
    """Builds signed payment URLs and verifies VNPay callbacks."""

    VERSION = "2.1.0"

    def __init__(
        self,
        tmn_code: str,
        hash_secret: str,
        payment_url: str,
        return_url: str,
        locale: str = "vn",
        currency: str = "VND",
        clock: Clock = utcnow,
    ):
        self.tmn_code = tmn_code
        self.hash_secret = hash_secret
        self.payment_url = payment_url
        self.return_url = return_url
        self.locale = locale
        self.currency = currency
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "VnPayClient":
        return cls(
            tmn_code=settings.VNPAY_TMN_CODE,
            hash_secret=settings.VNPAY_HASH_SECRET,
            payment_url=settings.VNPAY_URL,
            return_url=settings.VNPAY_RETURN_URL,
            locale=settings.VNPAY_LOCALE,
            currency=settings.CURRENCY,
        )

    @staticmethod
    def canonical_query(params: Mapping[str, str]) -> str:
        """Sorted, empty-dropped, form-encoded ``k=v`` pairs joined by ``&``."""
        return "&".join(
            f"{quote_plus(key)}={quote_plus(str(value))}"
            for key, value in sorted(params.items())
            if value not in (None, "")
        )

    def sign(self, params: Mapping[str, str]) -> str:
        """HMAC-SHA512 hex digest of the canonical query."""
        return hmac.new(
            self.hash_secret.encode("utf-8"),
            self.canonical_query(params).encode("utf-8"),
            hashlib.sha512,
        ).hexdigest()

    def build_redirect_url(
        self,
        reference: str,
        amount_minor: int,
        description: str,
        client_ip: str,
        return_url: str | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """
        Build the signed URL the customer is redirected to.

        Args:
            reference: Merchant transaction reference (the payment id)
            amount_minor: Amount in the currency's smallest unit
            description: Order description shown by the gateway
            client_ip: Customer IP address
            return_url: Override for the configured return URL
        """
        params = {
            "vnp_Version": self.VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": str(amount_minor),
            "vnp_CurrCode": self.currency,
            "vnp_TxnRef": reference,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Locale": self.locale,
            "vnp_ReturnUrl": return_url or self.return_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": (created_at or self.clock()).strftime("%Y%m%d%H%M%S"),
        }
        query = self.canonical_query(params)
        return f"{self.payment_url}?{query}&vnp_SecureHash={self.sign(params)}"

    @staticmethod
    def response_data(params: Mapping[str, str]) -> dict[str, str]:
        """Callback parameters without empty values."""
        return {key: str(value) for key, value in params.items() if value not in (None, "")}

    def verify(self, params: Mapping[str, str]) -> bool:
        """Check the callback signature over every field except the signature."""
        received = params.get("vnp_SecureHash")
        if not received:
            return False
        signed = {k: v for k, v in params.items() if k not in SIGNATURE_FIELDS}
        return hmac.compare_digest(self.sign(signed).lower(), str(received).lower())

    @staticmethod
    def is_success(params: Mapping[str, str]) -> bool:
        """VNPay reports success with response code ``00``."""
        return params.get("vnp_ResponseCode") == SUCCESS_CODE and params.get(
            "vnp_TransactionStatus", SUCCESS_CODE
        ) == SUCCESS_CODE
