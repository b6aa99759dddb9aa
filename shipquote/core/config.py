"""
Application configuration

Defaults are safe for production:
- DEBUG defaults to False
- DATABASE_URL has no default (will fail if not set)
- The fallback mechanism defaults to DISABLED, so an empty carrier response
  surfaces as ShippingRateUnavailableError rather than a made-up price
"""
import json
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Carriers queried when SHIPPING_ENABLED_PROVIDERS is not set.
# FALLBACK is never listed here; it is only reached through the fallback engine.
DEFAULT_ENABLED_PROVIDERS = ["FEDEX", "UPS", "DHL", "SHIPPO"]

FALLBACK_MECHANISMS = ("DISABLED", "FLAT_RATE", "CACHED_RATES")


def _parse_json_or_none(v):
    if isinstance(v, str) and v.strip().startswith(("[", "{")):
        try:
            return json.loads(v)
        except json.JSONDecodeError:
            return None
    return None


class Settings(BaseSettings):
    # App
    APP_NAME: str = "shipquote"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Database - NO DEFAULT (will fail if not set)
    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v):
        """Convert postgres:// URLs to the asyncpg driver form."""
        if not v:
            return v
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://") and "+asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600

    # Redis (rate quote redemption + cached fallback rates)
    # Empty = in-process store, only suitable for a single instance
    REDIS_URL: str = ""

    # Carriers - accepts JSON array or comma-separated string
    SHIPPING_ENABLED_PROVIDERS: Union[str, List[str]] = DEFAULT_ENABLED_PROVIDERS

    @field_validator("SHIPPING_ENABLED_PROVIDERS", mode="before")
    @classmethod
    def parse_enabled_providers(cls, v):
        if isinstance(v, list):
            return [str(code).strip().upper() for code in v if str(code).strip()]
        if isinstance(v, str):
            if not v.strip():
                return DEFAULT_ENABLED_PROVIDERS
            parsed = _parse_json_or_none(v)
            if isinstance(parsed, list):
                return [str(code).strip().upper() for code in parsed]
            return [code.strip().upper() for code in v.split(",") if code.strip()]
        return v

    # Per-call carrier timeout, with optional per-carrier overrides
    # e.g. SHIPPING_PROVIDER_TIMEOUTS='{"UPS": 5, "DHL": 12.5}'
    SHIPPING_PROVIDER_TIMEOUT_SECONDS: float = 10.0
    SHIPPING_PROVIDER_TIMEOUTS: Union[str, Dict[str, float]] = {}

    # Base URL overrides, e.g. '{"DHL": "https://express.api.dhl.com/mydhlapi"}'
    SHIPPING_PROVIDER_API_URLS: Union[str, Dict[str, str]] = {}

    @field_validator("SHIPPING_PROVIDER_TIMEOUTS", "SHIPPING_PROVIDER_API_URLS", mode="before")
    @classmethod
    def parse_carrier_mapping(cls, v):
        if isinstance(v, dict):
            return {str(k).upper(): val for k, val in v.items()}
        if isinstance(v, str):
            parsed = _parse_json_or_none(v)
            if isinstance(parsed, dict):
                return {str(k).upper(): val for k, val in parsed.items()}
            if v.strip():
                logger.warning(f"Ignoring unparseable carrier mapping: {v!r}")
            return {}
        return v

    # Fallback used when no carrier returns a usable rate
    DEFAULT_FALLBACK_MECHANISM: str = "DISABLED"
    DEFAULT_FALLBACK_FLAT_RATE_AMOUNT: Optional[Decimal] = None
    DEFAULT_FALLBACK_FLAT_RATE_CURRENCY: str = "USD"
    DEFAULT_FALLBACK_CACHE_TTL_SECONDS: int = 3600

    @field_validator("DEFAULT_FALLBACK_MECHANISM", mode="before")
    @classmethod
    def validate_fallback_mechanism(cls, v):
        value = (v or "DISABLED").strip().upper()
        if value not in FALLBACK_MECHANISMS:
            raise ValueError(
                f"DEFAULT_FALLBACK_MECHANISM must be one of {', '.join(FALLBACK_MECHANISMS)}"
            )
        return value

    @field_validator("DEFAULT_FALLBACK_FLAT_RATE_AMOUNT", mode="before")
    @classmethod
    def empty_amount_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # How long a quoted rate stays redeemable for a label (UPS quotes hold 30 min)
    RATE_QUOTE_TTL_SECONDS: int = 1800

    # Default origin, used when a shipment arrives without one
    DEFAULT_SHIPPING_ORIGIN_STREET1: str = ""
    DEFAULT_SHIPPING_ORIGIN_STREET2: str = ""
    DEFAULT_SHIPPING_ORIGIN_CITY: str = ""
    DEFAULT_SHIPPING_ORIGIN_STATE: str = ""
    DEFAULT_SHIPPING_ORIGIN_POSTAL_CODE: str = ""
    DEFAULT_SHIPPING_ORIGIN_COUNTRY_CODE: str = "US"
    DEFAULT_SHIPPING_ORIGIN_COMPANY: str = ""
    DEFAULT_SHIPPING_ORIGIN_PHONE: str = ""

    # Carrier credentials are resolved from env vars named
    # <prefix><CREDENTIALS_REF> holding a JSON object
    SHIPPING_CREDENTIALS_ENV_PREFIX: str = "SHIPQUOTE_CREDENTIALS_"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def provider_timeout(self, carrier_code: str) -> float:
        """Timeout in seconds for one carrier's rate call."""
        override = self.SHIPPING_PROVIDER_TIMEOUTS.get(carrier_code.upper())
        if override is None:
            return self.SHIPPING_PROVIDER_TIMEOUT_SECONDS
        return float(override)

    def provider_api_url(self, carrier_code: str, default: str) -> str:
        return self.SHIPPING_PROVIDER_API_URLS.get(carrier_code.upper()) or default


settings = Settings()
