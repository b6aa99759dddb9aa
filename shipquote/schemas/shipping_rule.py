"""
Shipping rule schemas

Rules are validated here when loaded from storage. A rule that passes
validation can always be evaluated: every condition carries the operands its
operator needs and every cost adjustment carries the currency it needs.
"""
import enum
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from shipquote.models.carrier import CarrierCode


# ==================== Conditions ====================


class ConditionType(str, enum.Enum):
    """Shipment fact a condition inspects."""
    WEIGHT = "WEIGHT"
    VOLUME = "VOLUME"
    DESTINATION_COUNTRY = "DESTINATION_COUNTRY"
    DESTINATION_STATE = "DESTINATION_STATE"
    DESTINATION_POSTAL_CODE = "DESTINATION_POSTAL_CODE"
    ORDER_VALUE = "ORDER_VALUE"
    PRODUCT_TYPE = "PRODUCT_TYPE"
    ITEM_QUANTITY = "ITEM_QUANTITY"
    ITEM_COUNT = "ITEM_COUNT"


class ConditionOperator(str, enum.Enum):
    EQ = "EQ"
    NE = "NE"
    GT = "GT"
    LT = "LT"
    GTE = "GTE"
    LTE = "LTE"
    BETWEEN = "BETWEEN"
    IN = "IN"
    NOT_IN = "NOT_IN"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"


LIST_OPERATORS = {ConditionOperator.IN, ConditionOperator.NOT_IN}
CONTAINMENT_OPERATORS = {ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS}


class RuleCondition(BaseModel):
    """
    One predicate over a shipment.

    Operand shape depends on the operator:
    - BETWEEN: min_value and max_value (inclusive)
    - IN / NOT_IN: values
    - CONTAINS / NOT_CONTAINS: values, or a single value
    - everything else: value
    """
    type: ConditionType
    operator: ConditionOperator
    value: Optional[Any] = None
    values: Optional[List[Any]] = None
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None

    @model_validator(mode="after")
    def check_operands(self):
        op = self.operator
        if op == ConditionOperator.BETWEEN:
            if self.min_value is None or self.max_value is None:
                raise ValueError("BETWEEN requires min_value and max_value")
            try:
                low = Decimal(str(self.min_value))
                high = Decimal(str(self.max_value))
            except InvalidOperation:
                raise ValueError("BETWEEN bounds must be numeric")
            if low > high:
                raise ValueError("BETWEEN min_value must not exceed max_value")
        elif op in LIST_OPERATORS:
            if not self.values:
                raise ValueError(f"{op.value} requires a non-empty values list")
        elif op in CONTAINMENT_OPERATORS:
            if not self.values and self.value is None:
                raise ValueError(f"{op.value} requires value or values")
        elif self.value is None:
            raise ValueError(f"{op.value} requires value")
        return self


# ==================== Actions ====================


class CostAdjustmentType(str, enum.Enum):
    FIXED_ADD = "FIXED_ADD"
    FIXED_SUBTRACT = "FIXED_SUBTRACT"
    PERCENTAGE_ADD = "PERCENTAGE_ADD"
    PERCENTAGE_SUBTRACT = "PERCENTAGE_SUBTRACT"
    OVERRIDE = "OVERRIDE"


class _AdjustmentBase(BaseModel):
    amount: Decimal = Field(..., ge=0)


class FixedAdjustment(_AdjustmentBase):
    """Add or subtract a fixed amount. Only applies to quotes in `currency`."""
    type: Literal["FIXED_ADD", "FIXED_SUBTRACT"]
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class PercentageAdjustment(_AdjustmentBase):
    """Add or subtract a percentage of the quote. Currency independent."""
    type: Literal["PERCENTAGE_ADD", "PERCENTAGE_SUBTRACT"]


class OverrideAdjustment(_AdjustmentBase):
    """Replace the quote amount. Only applies to quotes in `currency`."""
    type: Literal["OVERRIDE"]
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


CostAdjustment = Annotated[
    Union[FixedAdjustment, PercentageAdjustment, OverrideAdjustment],
    Field(discriminator="type"),
]


class RuleAction(BaseModel):
    """
    What a matched rule does.

    carriers/services restrict which carriers are queried and which of their
    services survive. None means "no restriction". offer_free_shipping wins
    over cost_adjustment. is_rule_fallback actions are held back and only
    used when no carrier rate survives.
    """
    carriers: Optional[List[CarrierCode]] = None
    services: Optional[List[str]] = None
    cost_adjustment: Optional[CostAdjustment] = None
    is_exclusive: bool = False
    is_rule_fallback: bool = False
    offer_free_shipping: bool = False
    override_delivery_days: Optional[int] = Field(None, ge=0)
    display_message: Optional[str] = Field(None, max_length=500)

    @field_validator("carriers", "services", mode="before")
    @classmethod
    def empty_list_is_unrestricted(cls, v):
        if isinstance(v, (list, tuple)) and not v:
            return None
        return v

    @field_validator("carriers")
    @classmethod
    def no_fallback_carrier(cls, v):
        if v and CarrierCode.FALLBACK in v:
            raise ValueError("FALLBACK cannot be targeted by a rule")
        return v

    @property
    def produces_fixed_price(self) -> bool:
        """True if the action yields a price without needing a carrier quote."""
        if self.offer_free_shipping:
            return True
        return isinstance(self.cost_adjustment, OverrideAdjustment)


# ==================== Rules ====================


class ShippingRule(BaseModel):
    id: str
    merchant_id: str
    name: str
    description: Optional[str] = None
    conditions: List[RuleCondition] = Field(default_factory=list)
    action: RuleAction
    priority: int = 0
    is_active: bool = True

    class Config:
        from_attributes = True
