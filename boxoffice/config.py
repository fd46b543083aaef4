"""Application configuration settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Box Office Reservation API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = "password"
    DB_NAME: str = "boxoffice"
    DATABASE_URL: str | None = None

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0
    REDIS_CONNECT_TIMEOUT_SECONDS: float = 2.0

    # Reservation settings
    SEAT_LOCK_TTL_SECONDS: int = 180  # 3 minutes
    DRAFT_TTL_SECONDS: int = 180
    PAYMENT_HOLD_TTL_SECONDS: int = 600  # 10 minutes
    MAX_SEATS_PER_BOOKING: int = 10
    CURRENCY: str = "VND"
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 30

    # VNPay
    VNPAY_TMN_CODE: str = "DEMO0001"
    VNPAY_HASH_SECRET: str = "change-me"
    VNPAY_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_RETURN_URL: str = "http://localhost:8000/api/v1/payments/vnpay-return"
    VNPAY_LOCALE: str = "vn"

    # Frontend redirects after the gateway returns the user
    PAYMENT_SUCCESS_URL: str = "http://localhost:3000/booking/payment/success"
    PAYMENT_FAILURE_URL: str = "http://localhost:3000/booking/payment/failed"

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def redis_url(self) -> str:
        """Get Redis URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
