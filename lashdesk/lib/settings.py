"""
Application settings loaded from environment variables.
Uses pydantic-settings for validation and .env file support.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LASHDESK_",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./lashdesk.db",
        description="SQLAlchemy connection string (postgresql+psycopg://... in production)"
    )

    # Application
    app_name: str = Field(default="LashDesk Engine", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    # Currency
    base_currency: str = Field(default="KES", description="Currency all ledgers are kept in")
    usd_to_kes_rate: float = Field(
        default=130.0,
        gt=0,
        description="Exchange rate: 1 USD = X KES"
    )

    # Booking policy
    cancellation_window_hours: int = Field(
        default=10,
        ge=1,
        description="Hours before the appointment after which a cancellation is late"
    )
    fine_amount: float = Field(
        default=500.0,
        ge=0,
        description="Default fine for ignoring pre-appointment guidelines"
    )
    max_additional_services: int = Field(
        default=2,
        ge=0,
        description="Additional services allowed on a single booking"
    )

    # Labs checkout
    minimum_cart_value: float = Field(default=20000.0, ge=0, description="Minimum order value (KES)")
    full_payment_threshold: float = Field(default=50000.0, ge=0)
    partial_payment_threshold: float = Field(default=50000.0, ge=0)
    partial_payment_percentage: float = Field(default=80.0, gt=0, le=100)
    tax_percentage: float = Field(default=0.0, ge=0, le=100, description="VAT percentage")
    priority_fee: float = Field(default=0.0, ge=0, description="Fee for urgent timelines")
    high_value_order_limit: Optional[float] = Field(
        default=None,
        description="Orders above this total must go through a consultation"
    )
    domain_setup_fee: float = Field(default=4000.0, ge=0)
    domain_annual_price: float = Field(default=2000.0, ge=0)

    # Labs catalog
    labs_catalog_path: Optional[str] = Field(
        default=None,
        description="JSON file with the Labs service catalog and guide scenarios"
    )


# Global settings instance
settings = Settings()
