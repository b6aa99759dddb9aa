"""
Shipping API Routes

- POST /shipping/rates: quote a shipment across the merchant's carriers
- POST /shipping/labels: redeem a quote id for a label
- GET /shipping/tracking/{tracking_number}: track a shipment

Shipping errors propagate to the app's exception handler, which renders
{"error": {...}} with the error's status code.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from shipquote.core.exceptions import ShippingError
from shipquote.models.carrier import CarrierCode
from shipquote.schemas.shipping import (
    ErrorResponse,
    LabelRequest,
    LabelResponse,
    RateListResponse,
    RateRequest,
    RateResponse,
    TrackingResponse,
)
from shipquote.api.deps import get_label_resolver, get_rate_aggregator, get_tracking_resolver
from shipquote.services.fallback_engine import FallbackMechanism, FallbackPolicy
from shipquote.services.label_resolver import LabelResolver
from shipquote.services.rate_aggregator import RateAggregator
from shipquote.services.tracking_resolver import TrackingResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    501: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ==================== Helper Functions ====================


def policy_from_request(request: RateRequest, default: FallbackPolicy) -> Optional[FallbackPolicy]:
    """Per-request fallback override, or None to use the configured default."""
    if request.fallback_mechanism is None:
        return None

    mechanism = FallbackMechanism(request.fallback_mechanism)
    if mechanism == FallbackMechanism.FLAT_RATE:
        amount = request.fallback_flat_rate_amount
        if amount is None:
            amount = default.flat_rate_amount
        currency = request.fallback_flat_rate_currency or default.flat_rate_currency
        return FallbackPolicy.flat_rate(amount, currency)
    if mechanism == FallbackMechanism.CACHED_RATES:
        ttl = request.fallback_cache_ttl_seconds
        return FallbackPolicy.cached_rates(ttl if ttl is not None else default.cache_ttl_seconds)
    return FallbackPolicy.disabled()


# ==================== Rate Endpoints ====================


@router.post("/rates", response_model=RateListResponse, responses=ERROR_RESPONSES)
async def get_rates(
    request: RateRequest,
    aggregator: RateAggregator = Depends(get_rate_aggregator),
):
    """
    Quote a shipment.

    Rates are sorted cheapest first. Each rate id can be redeemed at
    POST /shipping/labels until it expires.
    """
    try:
        policy = policy_from_request(request, aggregator.fallback_engine.default_policy)
        quotes = await aggregator.get_rates(
            request.merchant_id, request.shipment.to_domain(), fallback_policy=policy
        )
    except ShippingError:
        raise
    except Exception as e:
        logger.error(f"Failed to get rates for merchant {request.merchant_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get shipping rates")

    return RateListResponse(
        merchant_id=request.merchant_id,
        rates=[RateResponse(**quote.to_dict()) for quote in quotes],
    )


# ==================== Label Endpoints ====================


@router.post(
    "/labels",
    response_model=LabelResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_label(
    request: LabelRequest,
    resolver: LabelResolver = Depends(get_label_resolver),
):
    """Buy a label for a rate returned by POST /shipping/rates."""
    try:
        label = await resolver.create_label(
            request.merchant_id, request.shipment.to_domain(), request.rate_id
        )
    except ShippingError:
        raise
    except Exception as e:
        logger.error(f"Failed to create label for rate {request.rate_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create label")

    return LabelResponse(**label.to_dict())


# ==================== Tracking Endpoints ====================


@router.get("/tracking/{tracking_number}", response_model=TrackingResponse, responses=ERROR_RESPONSES)
async def get_tracking(
    tracking_number: str,
    merchant_id: str = Query(..., min_length=1),
    carrier: Optional[CarrierCode] = Query(None, description="Carrier to ask first"),
    resolver: TrackingResolver = Depends(get_tracking_resolver),
):
    """Track a shipment. Other configured carriers are tried if the hint has nothing."""
    try:
        details = await resolver.get_tracking(merchant_id, tracking_number, carrier_hint=carrier)
    except ShippingError:
        raise
    except Exception as e:
        logger.error(f"Failed to track {tracking_number}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get tracking information")

    return TrackingResponse(**details.to_dict())
