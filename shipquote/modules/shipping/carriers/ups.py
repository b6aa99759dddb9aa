"""
UPS Carrier Implementation

- Rates: POST /Rate (RequestOption "Shop" returns every service)
- Labels: POST /Ship
- Tracking: POST /Track
- Auth: AccessLicenseNumber / Username / Password headers
"""
import logging
from datetime import datetime, timezone
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
    sort_events,
    to_money,
)
from shipquote.modules.shipping.carriers.http import CarrierAPIError, HttpCarrier

logger = logging.getLogger(__name__)

UPS_DEFAULT_URL = "https://onlinetools.ups.com/rest"

UPS_SUCCESS_CODE = "1"

UPS_SERVICE_NAMES = {
    "01": "UPS Next Day Air",
    "02": "UPS 2nd Day Air",
    "03": "UPS Ground",
    "07": "UPS Worldwide Express",
    "08": "UPS Worldwide Expedited",
    "11": "UPS Standard",
    "12": "UPS 3 Day Select",
    "13": "UPS Next Day Air Saver",
    "14": "UPS Next Day Air Early",
    "54": "UPS Worldwide Express Plus",
    "59": "UPS 2nd Day Air A.M.",
    "65": "UPS Saver",
}

# Customer Supplied Package
UPS_PACKAGE_TYPE = "02"


def _as_list(value: Any) -> List[Any]:
    """UPS returns a bare object when a collection has one element."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _parse_ups_datetime(date_str: Optional[str], time_str: Optional[str] = None) -> Optional[datetime]:
    if not date_str:
        return None
    try:
        if time_str:
            return datetime.strptime(f"{date_str}{time_str}", "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
        return datetime.strptime(date_str, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug(f"Unparseable UPS date: {date_str} {time_str}")
        return None


@register_carrier(CarrierCode.UPS)
class UPSCarrier(HttpCarrier):
    """UPS JSON API carrier."""

    DEFAULT_BASE_URL = UPS_DEFAULT_URL

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.UPS

    @property
    def carrier_name(self) -> str:
        return "UPS"

    def _headers(self, credentials: Dict[str, Any]) -> Dict[str, str]:
        return {
            "AccessLicenseNumber": credentials["access_license_number"],
            "Username": credentials["username"],
            "Password": credentials["password"],
        }

    def _credentials(self, merchant_config: MerchantProviderConfig) -> Dict[str, Any]:
        return self.get_credentials(merchant_config, "access_license_number", "username", "password")

    def _extract_error_message(self, data: Dict[str, Any]) -> Optional[str]:
        fault = (data.get("Fault") or {}).get("detail", {}).get("Errors", {}).get("ErrorDetail", {})
        primary = fault.get("PrimaryErrorCode") if isinstance(fault, dict) else None
        if primary:
            return primary.get("Description")
        return super()._extract_error_message(data)

    def _check_response_status(self, body: Dict[str, Any]) -> None:
        status = (body.get("Response") or {}).get("ResponseStatus") or {}
        if status.get("Code") != UPS_SUCCESS_CODE:
            raise CarrierAPIError(
                f"UPS response status {status.get('Code')}: {status.get('Description')}",
                details=body,
            )

    # ----- Request mapping -----

    def _address(self, address: Address, name: Optional[str] = None) -> Dict[str, Any]:
        return {
            "Name": name or address.company_name or address.contact_name or "",
            "Address": {
                "AddressLine": [line for line in (address.street1, address.street2) if line],
                "City": address.city,
                "StateProvinceCode": address.state_province,
                "PostalCode": address.postal_code,
                "CountryCode": address.country_code,
            },
        }

    def _package(self, parcel: Parcel) -> Dict[str, Any]:
        return {
            "PackagingType": {"Code": UPS_PACKAGE_TYPE},
            "Dimensions": {
                "UnitOfMeasurement": {"Code": "CM" if parcel.dimension_unit.upper() == "CM" else "IN"},
                "Length": str(parcel.length),
                "Width": str(parcel.width),
                "Height": str(parcel.height),
            },
            "PackageWeight": {
                "UnitOfMeasurement": {"Code": "KGS" if parcel.weight_unit.upper() == "KG" else "LBS"},
                "Weight": str(parcel.weight),
            },
        }

    def _shipment(self, shipment: ShipmentDetails, account_number: str) -> Dict[str, Any]:
        shipper = self._address(shipment.origin)
        shipper["ShipperNumber"] = account_number
        return {
            "Shipper": shipper,
            "ShipFrom": self._address(shipment.origin),
            "ShipTo": self._address(shipment.destination),
            "Package": [self._package(parcel) for parcel in shipment.parcels],
        }

    # ----- Operations -----

    async def get_rates(
        self,
        shipment: ShipmentDetails,
        merchant_config: MerchantProviderConfig,
    ) -> List[RateQuote]:
        credentials = self._credentials(merchant_config)
        account_number = self._require_account_number(merchant_config, credentials)

        ups_shipment = self._shipment(shipment, account_number)
        ups_shipment["ShipmentRatingOptions"] = {"NegotiatedRatesIndicator": ""}
        body = {"RateRequest": {"Request": {"RequestOption": "Shop"}, "Shipment": ups_shipment}}

        try:
            data = await self._request(
                "POST", "/Rate", headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            rate_response = data.get("RateResponse") or {}
            self._check_response_status(rate_response)
            return self._parse_rates(rate_response)
        except (CarrierAPIError, KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"UPS get rates error: {e}")
            raise self._rate_error(e)

    def _parse_rates(self, rate_response: Dict[str, Any]) -> List[RateQuote]:
        quotes = []
        for rated in _as_list(rate_response.get("RatedShipment")):
            negotiated = (rated.get("NegotiatedRateCharges") or {}).get("TotalCharge")
            charge = negotiated or rated.get("TotalCharges")
            if not charge:
                continue

            service = rated.get("Service") or {}
            service_code = service.get("Code") or "UNKNOWN"
            guaranteed = rated.get("GuaranteedDelivery") or {}
            days = guaranteed.get("BusinessDaysInTransit")

            quotes.append(RateQuote(
                id=new_quote_id(),
                carrier_code=CarrierCode.UPS,
                service_code=service_code,
                service_name=UPS_SERVICE_NAMES.get(
                    service_code, service.get("Description") or f"UPS Service {service_code}"
                ),
                amount=to_money(charge["MonetaryValue"]),
                currency=charge["CurrencyCode"],
                delivery_days=int(days) if days else None,
                estimated_delivery_max=_parse_ups_datetime(guaranteed.get("DeliveryByDate")),
                is_negotiated_rate=negotiated is not None,
                guaranteed=bool(guaranteed),
                original_provider_rate={"service_code": service_code, "negotiated": negotiated is not None},
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
        label_format = merchant_config.custom_properties.get("label_format", "GIF")

        ups_shipment = self._shipment(shipment, account_number)
        ups_shipment.update({
            "Service": {"Code": selected_rate.service_code},
            "PaymentInformation": {
                "ShipmentCharge": {"Type": "01", "BillShipper": {"AccountNumber": account_number}},
            },
        })
        body = {
            "ShipmentRequest": {
                "Request": {"RequestOption": "nonvalidate"},
                "Shipment": ups_shipment,
                "LabelSpecification": {"LabelImageFormat": {"Code": label_format}},
            }
        }

        try:
            data = await self._request(
                "POST", "/Ship", headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            shipment_response = data.get("ShipmentResponse") or {}
            self._check_response_status(shipment_response)
            results = shipment_response["ShipmentResults"]
            package = _as_list(results.get("PackageResults"))[0]
            image = package["ShippingLabel"]["GraphicImage"]
        except (CarrierAPIError, KeyError, IndexError, TypeError) as e:
            logger.error(f"UPS create label error: {e}")
            raise self._label_error(e, selected_rate)

        total = (results.get("ShipmentCharges") or {}).get("TotalCharges") or {}
        return ShippingLabel(
            tracking_number=package.get("TrackingNumber") or results["ShipmentIdentificationNumber"],
            carrier_code=CarrierCode.UPS,
            service_code=selected_rate.service_code,
            rate_id=selected_rate.id,
            label_data=image,
            label_format=label_format,
            cost=to_money(total["MonetaryValue"]) if total.get("MonetaryValue") else selected_rate.amount,
            currency=total.get("CurrencyCode") or selected_rate.currency,
            provider_reference=results.get("ShipmentIdentificationNumber"),
        )

    async def get_tracking_details(
        self,
        tracking_number: str,
        merchant_config: MerchantProviderConfig,
    ) -> Optional[TrackingDetails]:
        credentials = self._credentials(merchant_config)
        body = {"TrackRequest": {"Request": {"RequestOption": "1"}, "InquiryNumber": tracking_number}}

        try:
            data = await self._request(
                "POST", "/Track", headers=self._headers(credentials), json=body, expected_status=(200,),
            )
            track_response = data.get("TrackResponse") or {}
            self._check_response_status(track_response)
        except CarrierAPIError as e:
            logger.error(f"UPS tracking error for {tracking_number}: {e}")
            raise self._tracking_error(e, tracking_number)

        shipments = _as_list(track_response.get("Shipment"))
        if not shipments:
            return None
        shipment = shipments[0]
        package = (_as_list(shipment.get("Package")) or [{}])[0]
        activities = _as_list(package.get("Activity") or shipment.get("Activity"))

        events = []
        for activity in activities:
            status = activity.get("Status") or {}
            location = ((activity.get("ActivityLocation") or {}).get("Address") or {}).get("City")
            events.append(TrackingEvent(
                status=status.get("Type") or status.get("Code") or "UNKNOWN",
                description=status.get("Description"),
                timestamp=_parse_ups_datetime(activity.get("Date"), activity.get("Time")),
                location=location,
            ))
        events = sort_events(events)
        latest = events[-1] if events else None

        return TrackingDetails(
            tracking_number=package.get("TrackingNumber") or tracking_number,
            carrier_code=CarrierCode.UPS,
            status=latest.status if latest else None,
            status_description=latest.description if latest else None,
            events=events,
        )
