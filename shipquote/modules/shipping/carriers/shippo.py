"""
Shippo Carrier Implementation

Shippo is a multi-carrier aggregator. Its quotes keep carrier_code SHIPPO so
that label purchase and tracking go back through Shippo; the underlying
carrier (usps, ups, ...) is kept in the service name and original_provider_rate.

- Rates: POST /shipments/ (201) -> rates[]
- Labels: POST /transactions/ with the Shippo rate object_id
- Tracking: GET /tracks/{carrier}/{tracking_number}
- Auth: "ShippoToken <api_key>"
"""
import logging
from typing import Any, Dict, List, Optional

from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers import register_carrier
from shipquote.modules.shipping.carriers.base import (
    Address,
    MerchantProviderConfig,
    Parcel,
    RateQuote,
    ShipmentDetails,
    ShippingLabel,
    TrackingDetails,
    TrackingEvent,
    new_quote_id,
    parse_timestamp,
    sort_events,
    to_money,
)
from shipquote.modules.shipping.carriers.http import CarrierAPIError, HttpCarrier

logger = logging.getLogger(__name__)

SHIPPO_DEFAULT_URL = "https://api.goshippo.com"

SHIPPO_SUCCESS = "SUCCESS"
SHIPPO_ERROR = "ERROR"


@register_carrier(CarrierCode.SHIPPO)
class ShippoCarrier(HttpCarrier):
    """Shippo aggregator."""

    DEFAULT_BASE_URL = SHIPPO_DEFAULT_URL

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.SHIPPO

    @property
    def carrier_name(self) -> str:
        return "Shippo"

    def _headers(self, credentials: Dict[str, Any]) -> Dict[str, str]:
        return {"Authorization": f"ShippoToken {credentials['api_key']}"}

    def _extract_error_message(self, data: Dict[str, Any]) -> Optional[str]:
        messages = data.get("messages") or []
        if messages and isinstance(messages[0], dict):
            return messages[0].get("text")
        return super()._extract_error_message(data)

    def _address(self, address: Address) -> Dict[str, Any]:
        return {
            "name": address.contact_name or address.company_name or "",
            "company": address.company_name,
            "street1": address.street1,
            "street2": address.street2,
            "city": address.city,
            "state": address.state_province,
            "zip": address.postal_code,
            "country": address.country_code,
            "phone": address.phone,
            "email": address.email,
            "is_residential": address.is_residential,
        }

    def _parcel(self, parcel: Parcel) -> Dict[str, Any]:
        return {
            "length": str(parcel.length),
            "width": str(parcel.width),
            "height": str(parcel.height),
            "distance_unit": parcel.dimension_unit.lower(),
            "weight": str(parcel.weight),
            "mass_unit": parcel.weight_unit.lower(),
        }

    # ----- Operations -----

    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        credentials = self.get_credentials(merchant_config, "api_key")

        body = {
            "address_from": self._address(shipment.origin),
            "address_to": self._address(shipment.destination),
            "parcels": [self._parcel(parcel) for parcel in shipment.parcels],
            "async": False,
        }
        carrier_accounts = merchant_config.custom_properties.get("carrier_accounts")
        if carrier_accounts:
            body["carrier_accounts"] = carrier_accounts
        if shipment.ship_date:
            body["shipment_date"] = shipment.ship_date.isoformat()

        try:
            data = await self._request(
                "POST", "/shipments/", headers=self._headers(credentials), json=body, expected_status=(201,),
            )
            if data.get("object_status") == SHIPPO_ERROR or data.get("rates") is None:
                raise CarrierAPIError(
                    self._extract_error_message(data) or "Shippo shipment returned no rates", details=data
                )
            return self._parse_rates(data["rates"])
        except (CarrierAPIError, KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"Shippo get rates error: {e}")
            raise self._rate_error(e)

    def _parse_rates(self, rates: List[Dict[str, Any]]) -> List[RateQuote]:
        quotes = []
        for rate in rates:
            servicelevel = rate.get("servicelevel") or {}
            if not rate.get("object_id") or not servicelevel.get("name") or rate.get("amount") is None:
                continue
            provider = rate.get("provider") or ""
            messages = [m.get("text") for m in rate.get("messages") or [] if m.get("text")]
            quotes.append(RateQuote(
                id=new_quote_id(),
                carrier_code=CarrierCode.SHIPPO,
                service_code=servicelevel.get("token") or servicelevel["name"],
                service_name=f"{provider} {servicelevel['name']}".strip(),
                amount=to_money(rate["amount"]),
                currency=rate["currency"],
                delivery_days=rate.get("estimated_days"),
                estimated_delivery_max=parse_timestamp(rate.get("estimated_delivery_date")),
                description="; ".join(messages) or None,
                original_provider_rate={"object_id": rate["object_id"], "provider": provider},
            ))
        return quotes

    async def create_label(
        self,
        shipment: ShipmentDetails,
        selected_rate: RateQuote,
        merchant_config: MerchantProviderConfig,
    ) -> ShippingLabel:
        credentials = self.get_credentials(merchant_config, "api_key")
        shippo_rate_id = (selected_rate.original_provider_rate or {}).get("object_id")
        if not shippo_rate_id:
            raise self._label_error(CarrierAPIError("Quote has no Shippo rate object_id"), selected_rate)

        label_format = merchant_config.custom_properties.get("label_format", "PDF")
        body = {"rate": shippo_rate_id, "label_file_type": label_format, "async": False}

        try:
            data = await self._request(
                "POST", "/transactions/", headers=self._headers(credentials), json=body, expected_status=(201,),
            )
            if data.get("status", data.get("object_status")) != SHIPPO_SUCCESS or not data.get("tracking_number"):
                raise CarrierAPIError(
                    self._extract_error_message(data) or f"Shippo transaction not completed: {data.get('status')}",
                    details=data,
                )
        except CarrierAPIError as e:
            logger.error(f"Shippo create label error: {e}")
            raise self._label_error(e, selected_rate)

        return ShippingLabel(
            tracking_number=data["tracking_number"],
            carrier_code=CarrierCode.SHIPPO,
            service_code=selected_rate.service_code,
            rate_id=selected_rate.id,
            label_url=data.get("label_url"),
            label_format=label_format,
            cost=selected_rate.amount,
            currency=selected_rate.currency,
            provider_reference=data.get("object_id"),
        )

    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> Optional[TrackingDetails]:
        credentials = self.get_credentials(merchant_config, "api_key")
        carrier = merchant_config.custom_properties.get("tracking_carrier", "shippo")

        try:
            data = await self._request(
                "GET", f"/tracks/{carrier}/{tracking_number}",
                headers=self._headers(credentials), expected_status=(200,),
            )
        except CarrierAPIError as e:
            logger.error(f"Shippo tracking error for {tracking_number}: {e}")
            raise self._tracking_error(e, tracking_number)

        if not data.get("tracking_number"):
            return None
        status = data.get("tracking_status") or {}

        events = [
            TrackingEvent(
                status=event.get("status") or "UNKNOWN",
                description=event.get("status_details"),
                timestamp=parse_timestamp(event.get("status_date") or event.get("object_created")),
                location=(event.get("location") or {}).get("city"),
            )
            for event in data.get("tracking_history") or []
        ]

        return TrackingDetails(
            tracking_number=data["tracking_number"],
            carrier_code=CarrierCode.SHIPPO,
            status=status.get("status"),
            status_description=status.get("status_details"),
            estimated_delivery=parse_timestamp(data.get("eta")),
            events=sort_events(events),
        )
