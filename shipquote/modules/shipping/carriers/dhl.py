"""
DHL Express Carrier Implementation (MyDHL API)

- Rates: POST /rates
- Labels: POST /shipments (201 Created)
- Tracking: GET /track/shipments?trackingNumber=
- Auth: HTTP Basic (api_key:api_secret); tracking uses the DHL-API-Key header
"""
import base64
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

DHL_DEFAULT_URL = "https://api-mock.dhl.com/mydhlapi"

# Item types that make up the base price rather than a surcharge
DHL_BASE_PRICE_TYPES = {"BASE_PRICE", "SPRQN"}


@register_carrier(CarrierCode.DHL)
class DHLCarrier(HttpCarrier):
    """DHL Express carrier."""

    DEFAULT_BASE_URL = DHL_DEFAULT_URL

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.DHL

    @property
    def carrier_name(self) -> str:
        return "DHL"

    def _headers(self, credentials: Dict[str, Any]) -> Dict[str, str]:
        auth_string = f"{credentials['api_key']}:{credentials['api_secret']}"
        return {"Authorization": f"Basic {base64.b64encode(auth_string.encode()).decode()}"}

    def _credentials(self, merchant_config: MerchantProviderConfig) -> Dict[str, Any]:
        return self.get_credentials(merchant_config, "api_key", "api_secret")

    def _extract_error_message(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("detail") or data.get("title") or super()._extract_error_message(data)

    # ----- Request mapping -----

    def _address(self, address: Address) -> Dict[str, Any]:
        return {
            "StreetLines": address.street1,
            "StreetLines2": address.street2,
            "City": address.city,
            "StateOrProvinceCode": address.state_province,
            "PostalCode": address.postal_code,
            "CountryCode": address.country_code,
        }

    def _package(self, parcel: Parcel, number: int) -> Dict[str, Any]:
        return {
            "@number": number,
            "Weight": {"Value": float(parcel.weight)},
            "Dimensions": {
                "Length": float(parcel.length),
                "Width": float(parcel.width),
                "Height": float(parcel.height),
            },
        }

    def _unit_system(self, shipment: ShipmentDetails) -> str:
        # DHL takes one unit system per request: SI (KG/CM) or SU (LB/IN)
        first = shipment.parcels[0] if shipment.parcels else None
        if first and first.dimension_unit.upper() == "CM":
            return "SI"
        return "SU"

    # ----- Operations -----

    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        credentials = self._credentials(merchant_config)
        account_number = self._require_account_number(merchant_config, credentials)

        requested = {
            "DropOffType": "REGULAR_PICKUP",
            "UnitOfMeasurement": self._unit_system(shipment),
            "Content": "NON_DOCUMENTS",
            "Account": account_number,
            "Ship": {
                "Shipper": self._address(shipment.origin),
                "Recipient": self._address(shipment.destination),
            },
            "Packages": {
                "RequestedPackages": [
                    self._package(parcel, i) for i, parcel in enumerate(shipment.parcels, start=1)
                ],
            },
        }
        if shipment.ship_date:
            requested["ShipTimestamp"] = f"{shipment.ship_date.isoformat()}T12:00:00GMT+00:00"
        body = {"RateRequest": {"RequestedShipment": requested}}

        try:
            data = await self._request(
                "POST", "/rates", headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            return self._parse_rates(data)
        except (CarrierAPIError, KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"DHL get rates error: {e}")
            raise self._rate_error(e)

    def _parse_rates(self, data: Dict[str, Any]) -> List[RateQuote]:
        providers = (data.get("GetRateResponse") or {}).get("Provider") or []
        if not providers:
            raise CarrierAPIError("DHL rate response missing Provider", details=data)

        quotes = []
        for service in providers[0].get("Service") or []:
            if not service.get("Type") or service.get("ChargeValue") is None or not service.get("ChargeCurrency"):
                continue
            flags = (service.get("ServiceFlags") or {}).get("ProductAndServiceDirectIndirectUsage") or {}
            quotes.append(RateQuote(
                id=new_quote_id(),
                carrier_code=CarrierCode.DHL,
                service_code=service["Type"],
                service_name=service.get("ProductName") or service["Type"],
                amount=to_money(service["ChargeValue"]),
                currency=service["ChargeCurrency"],
                delivery_days=service.get("TotalTransitDays"),
                estimated_delivery_max=parse_timestamp(service.get("DeliveryDate")),
                surcharges=[
                    Surcharge(
                        type=item["Type"],
                        amount=to_money(item["Price"]),
                        currency=item.get("Currency") or service["ChargeCurrency"],
                        description=item.get("Description"),
                    )
                    for item in service.get("Items") or []
                    if item.get("Type") not in DHL_BASE_PRICE_TYPES
                ],
                is_negotiated_rate=flags.get("IsNegotiated") == "Y",
                original_provider_rate={"Type": service["Type"]},
            ))
        return quotes

    async def create_label(
        self,
        shipment: ShipmentDetails,
        selected_rate: RateQuote,
        merchant_config: MerchantProviderConfig,
    ) -> ShippingLabel:
        credentials = self._credentials(merchant_config)
        account_number = self._require_account_number(merchant_config, credentials)
        label_format = merchant_config.custom_properties.get("label_format", "PDF")

        body = {
            "ShipmentRequest": {
                "RequestedShipment": {
                    "ServiceType": selected_rate.service_code,
                    "Account": account_number,
                    "UnitOfMeasurement": self._unit_system(shipment),
                    "LabelType": label_format,
                    "Ship": {
                        "Shipper": self._address(shipment.origin),
                        "Recipient": self._address(shipment.destination),
                    },
                    "Packages": {
                        "RequestedPackages": [
                            self._package(parcel, i) for i, parcel in enumerate(shipment.parcels, start=1)
                        ],
                    },
                }
            }
        }

        try:
            data = await self._request(
                "POST", "/shipments", headers=self._headers(credentials), json=body, expected_status=(201,),
            )
            response = data["ShipmentResponse"]
            image = response["LabelImage"][0]["OutputImage"]
            airway_bill = response["AirwayBillNumber"]
            if not image or not airway_bill:
                raise CarrierAPIError("DHL label response missing label data or airway bill")
        except (CarrierAPIError, KeyError, IndexError, TypeError) as e:
            logger.error(f"DHL create label error: {e}")
            raise self._label_error(e, selected_rate)

        return ShippingLabel(
            tracking_number=airway_bill,
            carrier_code=CarrierCode.DHL,
            service_code=selected_rate.service_code,
            rate_id=selected_rate.id,
            label_data=image,
            label_format=label_format,
            cost=selected_rate.amount,
            currency=selected_rate.currency,
            provider_reference=response.get("ShipmentIdentificationNumber"),
        )

    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> Optional[TrackingDetails]:
        credentials = self.get_credentials(merchant_config, "api_key")

        try:
            data = await self._request(
                "GET", "/track/shipments",
                headers={"DHL-API-Key": credentials["api_key"]},
                params={"trackingNumber": tracking_number},
                expected_status=(200,),
            )
        except CarrierAPIError as e:
            logger.error(f"DHL tracking error for {tracking_number}: {e}")
            raise self._tracking_error(e, tracking_number)

        shipments = data.get("shipments") or []
        if not shipments or not shipments[0].get("id", shipments[0].get("trackingNumber")):
            return None
        shipment = shipments[0]
        status = shipment.get("status") or {}

        events = [
            TrackingEvent(
                status=event.get("statusCode") or event.get("status") or "UNKNOWN",
                description=event.get("description") or event.get("status"),
                timestamp=parse_timestamp(event.get("timestamp")),
                location=((event.get("location") or {}).get("address") or {}).get("addressLocality"),
            )
            for event in shipment.get("events") or []
        ]

        return TrackingDetails(
            tracking_number=shipment.get("id") or shipment.get("trackingNumber") or tracking_number,
            carrier_code=CarrierCode.DHL,
            status=status.get("statusCode") if isinstance(status, dict) else status,
            status_description=status.get("description") if isinstance(status, dict) else shipment.get("statusText"),
            estimated_delivery=parse_timestamp(shipment.get("estimatedTimeOfDelivery")),
            events=sort_events(events),
        )
