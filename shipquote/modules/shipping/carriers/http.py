"""
Shared HTTP plumbing for carrier APIs.

Each carrier subclass supplies its base URL, auth headers and wire mapping;
this module owns the httpx client lifecycle and turns transport failures and
4xx/5xx responses into CarrierAPIError, which the carrier then re-raises as
the operation-specific shipping error.
"""
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from shipquote.core.config import settings
from shipquote.core.exceptions import (
    CarrierRateError,
    LabelGenerationFailedError,
    ProviderConfigurationError,
    TrackingInfoUnavailableError,
)
from shipquote.modules.shipping.carriers.base import BaseCarrier, RateQuote

logger = logging.getLogger(__name__)

# Upper bound for label/tracking calls. Rate calls are additionally bounded by
# the aggregator's per-carrier timeout.
HTTP_TIMEOUT_SECONDS = 30.0


class CarrierAPIError(Exception):
    """Carrier API returned an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class HttpCarrier(BaseCarrier):
    """Base for carriers reached over JSON/HTTP."""

    DEFAULT_BASE_URL: str = ""

    def __init__(self, secret_store=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(secret_store)
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return settings.provider_api_url(self.carrier_code.value, self.DEFAULT_BASE_URL).rstrip("/")

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=HTTP_TIMEOUT_SECONDS,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _extract_error_message(self, data: Dict[str, Any]) -> Optional[str]:
        """Pull a human-readable message out of an error body. Carriers override."""
        for key in ("message", "detail", "error"):
            value = data.get(key)
            if isinstance(value, str):
                return value
        return None

    async def _request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        expected_status: Sequence[int] = (200, 201),
    ) -> Dict[str, Any]:
        """Make an API request and return the decoded JSON body."""
        client = await self._get_http_client()
        url = f"{self.base_url}{path}"

        try:
            response = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.RequestError as e:
            logger.error(f"{self.carrier_name} request failed: {method} {path}: {e}")
            raise CarrierAPIError(f"Network error calling {self.carrier_name}: {e}")

        logger.debug(f"{self.carrier_name} API {method} {path} -> {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text[:500]}

        if response.status_code not in expected_status:
            message = None
            if isinstance(data, dict):
                message = self._extract_error_message(data)
            message = message or f"{self.carrier_name} API error"
            logger.error(f"{self.carrier_name} API error: {response.status_code} - {message}")
            raise CarrierAPIError(message, status_code=response.status_code, details=data)

        if not isinstance(data, dict):
            raise CarrierAPIError(f"Unexpected {self.carrier_name} response body", status_code=response.status_code)
        return data

    # ----- Error translation -----

    def _rate_error(self, e: Exception) -> CarrierRateError:
        if isinstance(e, CarrierAPIError):
            return CarrierRateError(
                f"{self.carrier_name} rate request failed: {e.message}",
                carrier_code=self.carrier_code.value,
                status_code=e.status_code,
            )
        return CarrierRateError(
            f"{self.carrier_name} rate response could not be read: {e}",
            carrier_code=self.carrier_code.value,
        )

    def _label_error(self, e: Exception, selected_rate: RateQuote) -> LabelGenerationFailedError:
        message = e.message if isinstance(e, CarrierAPIError) else str(e)
        return LabelGenerationFailedError(
            f"{self.carrier_name} label generation failed: {message}",
            carrier_code=self.carrier_code.value,
            rate_id=selected_rate.id,
        )

    def _tracking_error(self, e: Exception, tracking_number: str) -> TrackingInfoUnavailableError:
        message = e.message if isinstance(e, CarrierAPIError) else str(e)
        return TrackingInfoUnavailableError(
            f"{self.carrier_name} tracking unavailable: {message}",
            tracking_number=tracking_number,
            carrier_code=self.carrier_code.value,
        )

    def _require_account_number(self, merchant_config, credentials: Dict[str, Any]) -> str:
        account_number = merchant_config.account_number or credentials.get("account_number")
        if not account_number:
            raise ProviderConfigurationError(
                f"{self.carrier_name} account number missing for merchant {merchant_config.merchant_id}",
                carrier_code=self.carrier_code.value,
                config_key="account_number",
            )
        return account_number
