"""Process configuration for the invoice builder.

Every setting can be supplied through an ``INVOICE_BUILDER_`` environment
variable or a local ``.env`` file::

    INVOICE_BUILDER_DATA_DIR=/var/lib/invoices
    INVOICE_BUILDER_STRIPE_API_KEY=sk_test_...

User preferences (currency, invoice prefix) are not configuration; they live
in the store as :class:`~invoice_builder.schemas.AppSettings`.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="INVOICE_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(default=Path("./data"), description="Directory holding the JSON store")
    log_level: str = Field(default="INFO")

    stripe_api_key: Optional[str] = Field(default=None, description="Secret key for Stripe Checkout")
    stripe_api_base: str = Field(default="https://api.stripe.com/v1")
    checkout_currency: str = Field(default="usd")
    http_timeout: float = Field(default=30.0, gt=0, description="Seconds before a network call gives up")

    public_base_url: str = Field(default="http://localhost:8000", description="Origin used in payment links")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}")
        return level

    @field_validator("checkout_currency")
    @classmethod
    def lower_currency(cls, v: str) -> str:
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    return Settings()
