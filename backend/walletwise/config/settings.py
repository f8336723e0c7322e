"""
Application Settings for WalletWise

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup; payment gateway
credentials are optional here and checked when a gateway is first used.
"""

from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import quote_plus

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Card payments go through Stripe Checkout; regional payment methods
    (VA, e-wallet, QRIS, invoice) go through Xendit invoices.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: Optional[str] = None
    db_name: str = "walletwise"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Auth (access tokens are issued by the auth service)
    jwt_secret: Optional[str] = None
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"

    # Stripe (card gateway)
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_pro_monthly: Optional[str] = None
    stripe_price_pro_yearly: Optional[str] = None
    stripe_price_pro_plus_monthly: Optional[str] = None
    stripe_price_pro_plus_yearly: Optional[str] = None

    # Xendit (regional gateway)
    xendit_secret_key: Optional[str] = None
    xendit_webhook_token: Optional[str] = None
    xendit_api_base_url: str = "https://api.xendit.co"
    xendit_invoice_duration_seconds: int = 86400 * 2
    usd_to_idr_rate: int = 16000

    # Outbound gateway calls are interactive (user waits on checkout)
    gateway_timeout_seconds: float = 10.0

    # Subscription rules
    pro_trial_days: int = 7

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_gateway_settings(self) -> "Settings":
        """Reject settings combinations that can never work."""
        if self.gateway_timeout_seconds <= 0:
            raise ValueError("GATEWAY_TIMEOUT_SECONDS must be positive")

        if self.usd_to_idr_rate <= 0:
            raise ValueError("USD_TO_IDR_RATE must be positive")

        if self.is_production and not self.xendit_webhook_token:
            import logging
            logging.getLogger(__name__).warning(
                "XENDIT_WEBHOOK_TOKEN not set: Xendit callbacks are NOT verified"
            )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def async_database_url(self) -> str:
        """
        Get the async SQLAlchemy URL.

        Uses DATABASE_URL if provided, otherwise builds one from DB_* parts.
        """
        if self.database_url:
            url = self.database_url
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            elif url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            return url

        creds = self.db_user
        if self.db_password:
            creds = f"{self.db_user}:{quote_plus(self.db_password)}"
        return f"postgresql+asyncpg://{creds}@{self.db_host}:{self.db_port}/{self.db_name}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
