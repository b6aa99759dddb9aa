"""
FedEx Carrier Implementation

- Rates: POST /rate/v1/rates/quotes
- Labels: POST /ship/v1/shipments
- Tracking: POST /track/v1/trackingnumbers
- Auth: bearer token from the merchant's credentials ("api_key")
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
    Surcharge,
    TrackingDetails,
    TrackingEvent,
    new_quote_id,
    parse_timestamp,
    sort_events,
    to_money,
)
from shipquote.modules.shipping.carriers.http import CarrierAPIError, HttpCarrier

logger = logging.getLogger(__name__)

FEDEX_DEFAULT_URL = "https://apis.fedex.com"


@register_carrier(CarrierCode.FEDEX)
class FedExCarrier(HttpCarrier):
    """FedEx REST API carrier."""

    DEFAULT_BASE_URL = FEDEX_DEFAULT_URL

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.FEDEX

    @property
    def carrier_name(self) -> str:
        return "FedEx"

    def _headers(self, credentials: Dict[str, Any]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credentials['api_key']}"}

    def _extract_error_message(self, data: Dict[str, Any]) -> Optional[str]:
        errors = data.get("errors") or []
        if errors and isinstance(errors[0], dict):
            return errors[0].get("message") or errors[0].get("code")
        return super()._extract_error_message(data)

    # ----- Request mapping -----

    def _address(self, address: Address) -> Dict[str, Any]:
        return {
            "streetLines": [line for line in (address.street1, address.street2) if line],
            "city": address.city,
            "stateOrProvinceCode": address.state_province,
            "postalCode": address.postal_code,
            "countryCode": address.country_code,
            "residential": address.is_residential,
        }

    def _contact(self, address: Address) -> Dict[str, Any]:
        return {
            "personName": address.contact_name,
            "companyName": address.company_name,
            "phoneNumber": address.phone,
        }

    def _package(self, parcel: Parcel, sequence: int) -> Dict[str, Any]:
        return {
            "sequenceNumber": sequence,
            "weight": {
                "value": float(parcel.weight),
                "units": "KG" if parcel.weight_unit.upper() == "KG" else "LB",
            },
            "dimensions": {
                "length": float(parcel.length),
                "width": float(parcel.width),
                "height": float(parcel.height),
                "units": "CM" if parcel.dimension_unit.upper() == "CM" else "IN",
            },
        }

    def _requested_shipment(self, shipment: ShipmentDetails) -> Dict[str, Any]:
        return {
            "shipper": {"address": self._address(shipment.origin), "contact": self._contact(shipment.origin)},
            "recipient": {
                "address": self._address(shipment.destination),
                "contact": self._contact(shipment.destination),
            },
            "requestedPackageLineItems": [
                self._package(parcel, i) for i, parcel in enumerate(shipment.parcels, start=1)
            ],
        }

    # ----- Operations -----

    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        credentials = self.get_credentials(merchant_config, "api_key")
        account_number = self._require_account_number(merchant_config, credentials)

        body = {
            "accountNumber": {"value": account_number},
            "requestedShipment": self._requested_shipment(shipment),
        }
        if shipment.ship_date:
            body["requestedShipment"]["shipDateStamp"] = shipment.ship_date.isoformat()

        try:
            data = await self._request(
                "POST", "/rate/v1/rates/quotes",
                headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            return self._parse_rates(data)
        except (CarrierAPIError, KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"FedEx get rates error: {e}")
            raise self._rate_error(e)

    def _parse_rates(self, data: Dict[str, Any]) -> List[RateQuote]:
        details = (data.get("output") or {}).get("rateReplyDetails")
        if details is None:
            raise CarrierAPIError("FedEx rate response missing rateReplyDetails", details=data)

        quotes = []
        for reply in details:
            rated = reply.get("ratedShipmentDetails") or []
            rate_detail = rated[0].get("shipmentRateDetail") if rated else None
            if not rate_detail or not rate_detail.get("totalNetCharge"):
                continue
            charge = rate_detail["totalNetCharge"]
            commit = reply.get("commitDetails") or {}
            quotes.append(RateQuote(
                id=new_quote_id(),
                carrier_code=CarrierCode.FEDEX,
                service_code=reply["serviceType"],
                service_name=reply.get("serviceName") or reply["serviceType"],
                amount=to_money(charge["amount"]),
                currency=charge["currency"],
                estimated_delivery_max=parse_timestamp(commit.get("estimatedDeliveryTimestamp")),
                surcharges=[
                    Surcharge(
                        type=s.get("type", "SURCHARGE"),
                        amount=to_money(s["amount"]["amount"]),
                        currency=s["amount"]["currency"],
                        description=s.get("description"),
                    )
                    for s in rate_detail.get("surcharges") or []
                ],
                is_negotiated_rate=rated[0].get("rateType") == "ACCOUNT",
                original_provider_rate={"serviceType": reply["serviceType"], "rateType": rated[0].get("rateType")},
            ))
        return quotes

    async def create_label(
        self,
        shipment: ShipmentDetails,
        selected_rate: RateQuote,
        merchant_config: MerchantProviderConfig,
    ) -> ShippingLabel:
        credentials = self.get_credentials(merchant_config, "api_key")
        account_number = self._require_account_number(merchant_config, credentials)

        requested = self._requested_shipment(shipment)
        requested["packages"] = requested.pop("requestedPackageLineItems")
        requested.update({
            "serviceType": selected_rate.service_code,
            "labelSpecification": {
                "imageType": merchant_config.custom_properties.get("label_format", "PDF"),
                "labelStockType": "PAPER_85X11_LABEL_CENTERED",
            },
            "shippingChargesPayment": {
                "paymentType": "SENDER",
                "payor": {"accountNumber": {"value": account_number}},
            },
        })
        body = {"accountNumber": {"value": account_number}, "requestedShipment": requested}

        try:
            data = await self._request(
                "POST", "/ship/v1/shipments",
                headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            shipment_result = data["output"]["transactionShipments"][0]
            piece = shipment_result["pieceResponses"][0]
            label = piece["label"]
            if not label.get("image") or not shipment_result.get("masterTrackingNumber"):
                raise CarrierAPIError("FedEx label response missing label data or tracking number")
        except (CarrierAPIError, KeyError, IndexError, TypeError) as e:
            logger.error(f"FedEx create label error: {e}")
            raise self._label_error(e, selected_rate)

        return ShippingLabel(
            tracking_number=shipment_result["masterTrackingNumber"],
            carrier_code=CarrierCode.FEDEX,
            service_code=selected_rate.service_code,
            rate_id=selected_rate.id,
            label_data=label["image"],
            label_format=label.get("type", "PDF"),
            cost=selected_rate.amount,
            currency=selected_rate.currency,
        )

    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> Optional[TrackingDetails]:
        credentials = self.get_credentials(merchant_config, "api_key")
        body = {"trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}]}

        try:
            data = await self._request(
                "POST", "/track/v1/trackingnumbers",
                headers=self._headers(credentials), json=body, expected_status=(200,),
            )
        except CarrierAPIError as e:
            logger.error(f"FedEx tracking error for {tracking_number}: {e}")
            raise self._tracking_error(e, tracking_number)

        results = (data.get("output") or {}).get("completeTrackResults") or []
        if not results or not results[0].get("trackingNumber"):
            return None
        result = results[0]
        shipment = result.get("shipment") or {}
        latest = shipment.get("latestStatusDetail") or {}

        events = [
            TrackingEvent(
                status=event.get("eventType", "UNKNOWN"),
                description=event.get("eventDescription"),
                timestamp=parse_timestamp(event.get("timestamp")),
                location=(event.get("address") or {}).get("city"),
            )
            for event in result.get("trackingEvents") or []
        ]

        return TrackingDetails(
            tracking_number=result["trackingNumber"],
            carrier_code=CarrierCode.FEDEX,
            status=latest.get("code"),
            status_description=latest.get("description"),
            estimated_delivery=parse_timestamp(shipment.get("estimatedDeliveryTimestamp")),
            events=sort_events(events),
        )
