"""
Base Provider Interface

- Every carrier (and the synthetic FALLBACK provider) implements BaseCarrier
- Data classes here are carrier-agnostic; each carrier maps its own wire
  format into them and never leaks it beyond original_provider_rate
- Money is Decimal, quantized to cents
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from shipquote.core.exceptions import ProviderConfigurationError
from shipquote.models.carrier import CarrierCode

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

FALLBACK_ID_PREFIX = "fallback_"


def to_money(value: Any) -> Decimal:
    """Coerce a number/string to a Decimal rounded to cents."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def new_quote_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4()}"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (trailing Z allowed). Unparseable values give None."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


# =============================================================================
# Shipment Data Classes
# =============================================================================

@dataclass(frozen=True)
class Address:
    street1: str
    city: str
    state_province: str
    postal_code: str
    country_code: str = "US"
    street2: Optional[str] = None
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_residential: bool = False


@dataclass(frozen=True)
class Parcel:
    """
    One package. Units are declared per parcel and never converted:
    a rule written in pounds only makes sense against parcels in pounds.
    """
    weight: Decimal
    length: Decimal = ZERO
    width: Decimal = ZERO
    height: Decimal = ZERO
    weight_unit: str = "LB"
    dimension_unit: str = "IN"

    @property
    def volume(self) -> Decimal:
        return Decimal(self.length) * Decimal(self.width) * Decimal(self.height)


@dataclass(frozen=True)
class LineItem:
    sku: str
    quantity: int = 1
    unit_price: Decimal = ZERO
    product_type: Optional[str] = None


@dataclass(frozen=True)
class ShipmentDetails:
    """
    Everything a carrier needs to quote a shipment.

    Frozen: the same instance is handed to every provider call of one
    aggregation, concurrently.
    """
    destination: Address
    parcels: List[Parcel]
    line_items: List[LineItem] = field(default_factory=list)
    total_order_value: Decimal = ZERO
    currency: str = "USD"
    origin: Optional[Address] = None
    ship_date: Optional[date] = None

    @property
    def total_weight(self) -> Decimal:
        return sum((Decimal(p.weight) for p in self.parcels), Decimal("0"))

    @property
    def total_volume(self) -> Decimal:
        return sum((p.volume for p in self.parcels), Decimal("0"))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.line_items)

    @property
    def item_count(self) -> int:
        return len(self.line_items)

    @property
    def product_types(self) -> List[str]:
        """Distinct product types, in first-seen order."""
        seen: List[str] = []
        for item in self.line_items:
            if item.product_type and item.product_type not in seen:
                seen.append(item.product_type)
        return seen

    def with_origin(self, origin: Address) -> "ShipmentDetails":
        return replace(self, origin=origin)


@dataclass(frozen=True)
class MerchantProviderConfig:
    """A merchant's settings for one carrier. Loaded per request, read-only."""
    merchant_id: str
    carrier_code: CarrierCode
    credentials_ref: str
    account_number: Optional[str] = None
    custom_properties: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass(frozen=True)
class Surcharge:
    type: str
    amount: Decimal
    currency: str
    description: Optional[str] = None


@dataclass(frozen=True)
class RateQuote:
    """
    A priced shipping option.

    `id` is unique per aggregation response and is the handle used to redeem
    the quote for a label. Any transformation of a quote produces a new id.
    """
    id: str
    carrier_code: CarrierCode
    service_code: str
    service_name: str
    amount: Decimal
    currency: str
    delivery_days: Optional[int] = None
    estimated_delivery_min: Optional[datetime] = None
    estimated_delivery_max: Optional[datetime] = None
    surcharges: List[Surcharge] = field(default_factory=list)
    description: Optional[str] = None
    display_message: Optional[str] = None
    is_negotiated_rate: bool = False
    guaranteed: bool = False
    original_provider_rate: Optional[Dict[str, Any]] = None

    def derive(self, id_prefix: str = "", **changes) -> "RateQuote":
        """Copy with changes applied and a fresh id."""
        return replace(self, id=new_quote_id(id_prefix), **changes)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form, used for storage and API responses."""
        return {
            "id": self.id,
            "carrier_code": self.carrier_code.value,
            "service_code": self.service_code,
            "service_name": self.service_name,
            "amount": str(self.amount),
            "currency": self.currency,
            "delivery_days": self.delivery_days,
            "estimated_delivery_min": (
                self.estimated_delivery_min.isoformat() if self.estimated_delivery_min else None
            ),
            "estimated_delivery_max": (
                self.estimated_delivery_max.isoformat() if self.estimated_delivery_max else None
            ),
            "surcharges": [
                {
                    "type": s.type,
                    "amount": str(s.amount),
                    "currency": s.currency,
                    "description": s.description,
                }
                for s in self.surcharges
            ],
            "description": self.description,
            "display_message": self.display_message,
            "is_negotiated_rate": self.is_negotiated_rate,
            "guaranteed": self.guaranteed,
            "original_provider_rate": self.original_provider_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateQuote":
        return cls(
            id=data["id"],
            carrier_code=CarrierCode(data["carrier_code"]),
            service_code=data["service_code"],
            service_name=data["service_name"],
            amount=to_money(data["amount"]),
            currency=data["currency"],
            delivery_days=data.get("delivery_days"),
            estimated_delivery_min=parse_timestamp(data.get("estimated_delivery_min")),
            estimated_delivery_max=parse_timestamp(data.get("estimated_delivery_max")),
            surcharges=[
                Surcharge(
                    type=s["type"],
                    amount=to_money(s["amount"]),
                    currency=s["currency"],
                    description=s.get("description"),
                )
                for s in data.get("surcharges") or []
            ],
            description=data.get("description"),
            display_message=data.get("display_message"),
            is_negotiated_rate=data.get("is_negotiated_rate", False),
            guaranteed=data.get("guaranteed", False),
            original_provider_rate=data.get("original_provider_rate"),
        )


@dataclass
class ShippingLabel:
    tracking_number: str
    carrier_code: CarrierCode
    service_code: str
    rate_id: str
    label_data: Optional[str] = None  # base64
    label_format: str = "PDF"
    label_url: Optional[str] = None
    cost: Optional[Decimal] = None
    currency: Optional[str] = None
    provider_reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracking_number": self.tracking_number,
            "carrier_code": self.carrier_code.value,
            "service_code": self.service_code,
            "rate_id": self.rate_id,
            "label_data": self.label_data,
            "label_format": self.label_format,
            "label_url": self.label_url,
            "cost": str(self.cost) if self.cost is not None else None,
            "currency": self.currency,
            "provider_reference": self.provider_reference,
        }


@dataclass
class TrackingEvent:
    status: str
    description: Optional[str] = None
    timestamp: Optional[datetime] = None
    location: Optional[str] = None


def sort_events(events: List["TrackingEvent"]) -> List["TrackingEvent"]:
    """Oldest first; events without a timestamp sort to the start."""
    return sorted(events, key=lambda e: e.timestamp.timestamp() if e.timestamp else 0.0)


@dataclass
class TrackingDetails:
    tracking_number: str
    carrier_code: CarrierCode
    status: Optional[str] = None
    status_description: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    events: List[TrackingEvent] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.status and not self.events

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracking_number": self.tracking_number,
            "carrier_code": self.carrier_code.value,
            "status": self.status,
            "status_description": self.status_description,
            "estimated_delivery": (
                self.estimated_delivery.isoformat() if self.estimated_delivery else None
            ),
            "events": [
                {
                    "status": e.status,
                    "description": e.description,
                    "timestamp": e.timestamp.isoformat() if e.timestamp else None,
                    "location": e.location,
                }
                for e in self.events
            ],
        }


# =============================================================================
# Base Provider Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for all shipping providers.

    Providers are stateless with respect to merchants: every call receives
    the merchant's config, and credentials are resolved per call through
    the secret store.
    """

    def __init__(self, secret_store=None):
        """
        Initialize the provider.

        Args:
            secret_store: Resolves MerchantProviderConfig.credentials_ref
                to a credentials dict. Optional for providers without
                credentials.
        """
        self._secrets = secret_store

    @property
    @abstractmethod
    def carrier_code(self) -> CarrierCode:
        """Return the carrier code enum value."""
        pass

    @property
    @abstractmethod
    def carrier_name(self) -> str:
        """Return the human-readable carrier name."""
        pass

    @abstractmethod
    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        """
        Quote a shipment.

        Raises:
            CarrierRateError: the carrier call failed
            ProviderConfigurationError: credentials missing or invalid
        """
        pass

    @abstractmethod
    async def create_label(
        self,
        shipment: ShipmentDetails,
        selected_rate: RateQuote,
        merchant_config: MerchantProviderConfig,
    ) -> ShippingLabel:
        """
        Purchase a label for a previously quoted rate.

        Raises:
            LabelGenerationFailedError, OperationNotSupportedError
        """
        pass

    @abstractmethod
    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> Optional[TrackingDetails]:
        """
        Look up a tracking number.

        Raises:
            TrackingInfoUnavailableError, OperationNotSupportedError
        """
        pass

    async def close(self) -> None:
        """Release any client resources. Called once on shutdown."""
        return None

    def get_credentials(self, merchant_config: MerchantProviderConfig, *required: str) -> Dict[str, Any]:
        """
        Resolve the merchant's credentials for this carrier.

        Raises ProviderConfigurationError if the secret store is missing,
        the reference does not resolve, or a required key is absent.
        """
        if self._secrets is None:
            raise ProviderConfigurationError(
                f"No secret store configured for {self.carrier_name}",
                carrier_code=self.carrier_code.value,
            )
        credentials = self._secrets.get_credentials(merchant_config.credentials_ref)
        if not credentials:
            raise ProviderConfigurationError(
                f"Credentials '{merchant_config.credentials_ref}' not found for {self.carrier_name}",
                carrier_code=self.carrier_code.value,
                config_key=merchant_config.credentials_ref,
            )
        for key in required:
            if not credentials.get(key):
                raise ProviderConfigurationError(
                    f"{self.carrier_name} credentials missing '{key}'",
                    carrier_code=self.carrier_code.value,
                    config_key=key,
                )
        return credentials
