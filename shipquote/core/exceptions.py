"""
shipquote Exception Hierarchy

Structured exception classes for rate aggregation, label generation and
tracking. All exceptions include code, message, and details so they can be
logged and returned to API callers unchanged.

Exception Hierarchy:
    ShipquoteError
    └── ShippingError
        ├── ProviderConfigurationError
        ├── CarrierRateError
        ├── ShippingRateUnavailableError
        ├── LabelGenerationFailedError
        ├── TrackingInfoUnavailableError
        ├── OperationNotSupportedError
        └── SelectedRateInvalidError
"""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ShipquoteError(Exception):
    """
    Base exception for all shipquote errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        http_status: Status code used when the error reaches the API layer
    """

    default_code: str = "SHIPQUOTE_ERROR"
    default_severity: str = "P2"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# SHIPPING ERRORS
# =============================================================================

class ShippingError(ShipquoteError):
    """Base exception for shipping errors."""
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"


class ProviderConfigurationError(ShippingError):
    """Provider is unknown, disabled, or missing credentials for a merchant."""
    default_code = "PROVIDER_CONFIGURATION_ERROR"
    default_severity = "P1"
    http_status = 500

    def __init__(
        self,
        message: str,
        carrier_code: Optional[str] = None,
        config_key: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "carrier_code": carrier_code,
            "config_key": config_key,
        })
        super().__init__(message, details=details, **kwargs)
        self.carrier_code = carrier_code
        self.config_key = config_key


class CarrierRateError(ShippingError):
    """A carrier rate call failed. Recovered locally during aggregation."""
    default_code = "CARRIER_RATE_ERROR"
    default_severity = "P2"
    http_status = 503

    def __init__(
        self,
        message: str,
        carrier_code: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "carrier_code": carrier_code,
            "status_code": status_code,
        })
        super().__init__(message, details=details, **kwargs)
        self.carrier_code = carrier_code


class ShippingRateUnavailableError(ShippingError):
    """No carrier, rule fallback, or global fallback produced a rate."""
    default_code = "SHIPPING_RATE_UNAVAILABLE"
    default_severity = "P1"
    http_status = 503

    def __init__(self, message: str = "No shipping rates are available for this shipment.", **kwargs):
        super().__init__(message, **kwargs)


class LabelGenerationFailedError(ShippingError):
    """The provider failed to produce a label for a redeemed quote."""
    default_code = "LABEL_GENERATION_FAILED"
    default_severity = "P1"
    http_status = 500

    def __init__(
        self,
        message: str,
        carrier_code: Optional[str] = None,
        rate_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "carrier_code": carrier_code,
            "rate_id": rate_id,
        })
        super().__init__(message, details=details, **kwargs)
        self.carrier_code = carrier_code


class TrackingInfoUnavailableError(ShippingError):
    """No carrier returned tracking details for a tracking number."""
    default_code = "TRACKING_INFO_UNAVAILABLE"
    default_severity = "P2"
    http_status = 503

    def __init__(
        self,
        message: str,
        tracking_number: Optional[str] = None,
        carrier_code: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "tracking_number": tracking_number,
            "carrier_code": carrier_code,
        })
        super().__init__(message, details=details, **kwargs)


class OperationNotSupportedError(ShippingError):
    """Provider does not implement the requested operation."""
    default_code = "OPERATION_NOT_SUPPORTED"
    default_severity = "P3"
    http_status = 501

    def __init__(self, operation: str, carrier_code: str, **kwargs):
        details = kwargs.pop("details", {})
        details.update({
            "operation": operation,
            "carrier_code": carrier_code,
        })
        message = f'Operation "{operation}" is not supported by provider "{carrier_code}".'
        super().__init__(message, details=details, **kwargs)
        self.operation = operation
        self.carrier_code = carrier_code


class SelectedRateInvalidError(ShippingError):
    """Quote id is unknown, expired, or unreadable."""
    default_code = "SELECTED_RATE_INVALID"
    default_severity = "P3"
    http_status = 400

    def __init__(self, rate_id: str, reason: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"rate_id": rate_id})
        message = f"Selected rate {rate_id} is invalid or has expired."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message, details=details, **kwargs)
        self.rate_id = rate_id


# =============================================================================
# EXCEPTION CATALOG
# =============================================================================

EXCEPTION_CATALOG = {
    "PROVIDER_CONFIGURATION_ERROR": {
        "class": ProviderConfigurationError,
        "severity": "P1",
        "description": "Carrier is not registered, not enabled, or has no merchant credentials",
    },
    "CARRIER_RATE_ERROR": {
        "class": CarrierRateError,
        "severity": "P2",
        "description": "Carrier rate request failed; other carriers still answer",
    },
    "SHIPPING_RATE_UNAVAILABLE": {
        "class": ShippingRateUnavailableError,
        "severity": "P1",
        "description": "No carrier or fallback produced a rate",
    },
    "LABEL_GENERATION_FAILED": {
        "class": LabelGenerationFailedError,
        "severity": "P1",
        "description": "Carrier failed to create a label",
    },
    "TRACKING_INFO_UNAVAILABLE": {
        "class": TrackingInfoUnavailableError,
        "severity": "P2",
        "description": "No carrier returned tracking for the number",
    },
    "OPERATION_NOT_SUPPORTED": {
        "class": OperationNotSupportedError,
        "severity": "P3",
        "description": "Provider does not support the operation",
    },
    "SELECTED_RATE_INVALID": {
        "class": SelectedRateInvalidError,
        "severity": "P3",
        "description": "Quote id expired or was never issued",
    },
}


def get_exception_info(code: str) -> Optional[Dict[str, Any]]:
    """Get exception catalog entry by code."""
    return EXCEPTION_CATALOG.get(code)
