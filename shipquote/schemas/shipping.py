"""
Shipping API schemas

Request bodies are validated here and converted to the frozen domain types
in modules.shipping.carriers.base before anything else sees them.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers.base import (
    Address,
    LineItem,
    Parcel,
    ShipmentDetails,
)


# ==================== Shipment Schemas ====================


class AddressIn(BaseModel):
    street1: str = Field(..., min_length=1, max_length=100)
    street2: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    state_province: str = Field("", max_length=50)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country_code: str = Field("US", min_length=2, max_length=2)
    company_name: Optional[str] = Field(None, max_length=100)
    contact_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)
    is_residential: bool = False

    @field_validator("country_code")
    @classmethod
    def validate_country_code(cls, v):
        return v.upper()

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class ParcelIn(BaseModel):
    weight: Decimal = Field(..., gt=0)
    length: Decimal = Field(Decimal("0"), ge=0)
    width: Decimal = Field(Decimal("0"), ge=0)
    height: Decimal = Field(Decimal("0"), ge=0)
    weight_unit: str = "LB"
    dimension_unit: str = "IN"

    @field_validator("weight_unit", "dimension_unit")
    @classmethod
    def upper_unit(cls, v):
        return v.upper()

    def to_domain(self) -> Parcel:
        return Parcel(**self.model_dump())


class LineItemIn(BaseModel):
    sku: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    product_type: Optional[str] = None

    def to_domain(self) -> LineItem:
        return LineItem(**self.model_dump())


class ShipmentIn(BaseModel):
    destination: AddressIn
    origin: Optional[AddressIn] = None
    parcels: List[ParcelIn] = Field(..., min_length=1)
    line_items: List[LineItemIn] = []
    total_order_value: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    ship_date: Optional[date] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v):
        return v.upper()

    def to_domain(self) -> ShipmentDetails:
        return ShipmentDetails(
            destination=self.destination.to_domain(),
            origin=self.origin.to_domain() if self.origin else None,
            parcels=[parcel.to_domain() for parcel in self.parcels],
            line_items=[item.to_domain() for item in self.line_items],
            total_order_value=self.total_order_value,
            currency=self.currency,
            ship_date=self.ship_date,
        )


# ==================== Request Schemas ====================


class RateRequest(BaseModel):
    """Quote a shipment. fallback_mechanism overrides the configured default."""
    merchant_id: str = Field(..., min_length=1, max_length=64)
    shipment: ShipmentIn
    fallback_mechanism: Optional[str] = None
    fallback_flat_rate_amount: Optional[Decimal] = Field(None, ge=0)
    fallback_flat_rate_currency: Optional[str] = None
    fallback_cache_ttl_seconds: Optional[int] = Field(None, ge=0)

    @field_validator("fallback_mechanism")
    @classmethod
    def validate_mechanism(cls, v):
        if v is None:
            return v
        v = v.upper()
        if v not in ("DISABLED", "FLAT_RATE", "CACHED_RATES"):
            raise ValueError("fallback_mechanism must be DISABLED, FLAT_RATE or CACHED_RATES")
        return v


class LabelRequest(BaseModel):
    merchant_id: str = Field(..., min_length=1, max_length=64)
    rate_id: str = Field(..., min_length=1)
    shipment: ShipmentIn


# ==================== Response Schemas ====================


class SurchargeResponse(BaseModel):
    type: str
    amount: Decimal
    currency: str
    description: Optional[str] = None


class RateResponse(BaseModel):
    id: str
    carrier_code: CarrierCode
    service_code: str
    service_name: str
    amount: Decimal
    currency: str
    delivery_days: Optional[int] = None
    estimated_delivery_min: Optional[datetime] = None
    estimated_delivery_max: Optional[datetime] = None
    surcharges: List[SurchargeResponse] = []
    description: Optional[str] = None
    display_message: Optional[str] = None
    is_negotiated_rate: bool = False
    guaranteed: bool = False


class RateListResponse(BaseModel):
    merchant_id: str
    rates: List[RateResponse]


class LabelResponse(BaseModel):
    tracking_number: str
    carrier_code: CarrierCode
    service_code: str
    rate_id: str
    label_data: Optional[str] = None
    label_format: str = "PDF"
    label_url: Optional[str] = None
    cost: Optional[Decimal] = None
    currency: Optional[str] = None
    provider_reference: Optional[str] = None


class TrackingEventResponse(BaseModel):
    status: str
    description: Optional[str] = None
    timestamp: Optional[datetime] = None
    location: Optional[str] = None


class TrackingResponse(BaseModel):
    tracking_number: str
    carrier_code: CarrierCode
    status: Optional[str] = None
    status_description: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    events: List[TrackingEventResponse] = []


class ErrorResponse(BaseModel):
    error: Dict[str, Any]
