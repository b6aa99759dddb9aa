"""
Provider Registry

- Carrier classes register themselves with @register_carrier
- ProviderRegistry is built once at startup and passed to the services that
  need it; nothing looks providers up through globals at request time
- Globally enabled carriers come from SHIPPING_ENABLED_PROVIDERS; FALLBACK is
  registered but never enabled, so it is only reached via the fallback engine
"""
from typing import Dict, Iterable, List, Optional, Type
import logging

from shipquote.core.config import settings
from shipquote.models.carrier import CarrierCode
from shipquote.modules.shipping.carriers.base import BaseCarrier

logger = logging.getLogger(__name__)

# Registry of carrier implementations
_CARRIER_REGISTRY: Dict[CarrierCode, Type[BaseCarrier]] = {}


def register_carrier(carrier_code: CarrierCode):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier(CarrierCode.UPS)
        class UPSCarrier(HttpCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        _CARRIER_REGISTRY[carrier_code] = cls
        logger.debug(f"Registered carrier: {carrier_code.value} -> {cls.__name__}")
        return cls
    return decorator


def get_registered_carrier_classes() -> Dict[CarrierCode, Type[BaseCarrier]]:
    return dict(_CARRIER_REGISTRY)


def parse_enabled_codes(codes: Iterable[str]) -> List[CarrierCode]:
    """Turn configured carrier names into codes, dropping unknown names and FALLBACK."""
    enabled: List[CarrierCode] = []
    for raw in codes:
        try:
            code = CarrierCode(str(raw).strip().upper())
        except ValueError:
            logger.warning(f"Ignoring unknown carrier in SHIPPING_ENABLED_PROVIDERS: {raw}")
            continue
        if code == CarrierCode.FALLBACK:
            logger.warning("FALLBACK cannot be enabled as a carrier; ignoring")
            continue
        if code not in enabled:
            enabled.append(code)
    return enabled


class ProviderRegistry:
    """
    Immutable map of carrier code -> provider instance.

    Iteration order (used for tracking lookups) is the order providers were
    given, which for build_provider_registry is CarrierCode declaration order.
    """

    def __init__(
        self,
        providers: Dict[CarrierCode, BaseCarrier],
        enabled: Optional[Iterable[CarrierCode]] = None,
    ):
        self._providers = dict(providers)
        if enabled is None:
            enabled = [code for code in self._providers if code != CarrierCode.FALLBACK]
        self._enabled = [
            code for code in enabled
            if code != CarrierCode.FALLBACK and code in self._providers
        ]

    def get(self, carrier_code: CarrierCode) -> Optional[BaseCarrier]:
        return self._providers.get(carrier_code)

    def is_registered(self, carrier_code: CarrierCode) -> bool:
        return carrier_code in self._providers

    def is_enabled(self, carrier_code: CarrierCode) -> bool:
        return carrier_code in self._enabled

    @property
    def enabled_codes(self) -> List[CarrierCode]:
        return list(self._enabled)

    @property
    def registered_codes(self) -> List[CarrierCode]:
        return list(self._providers)

    async def close(self) -> None:
        for code, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {code.value}: {e}")


def build_provider_registry(
    secret_store,
    fallback_engine,
    enabled_codes: Optional[Iterable[str]] = None,
) -> ProviderRegistry:
    """
    Instantiate every registered provider. Called once from the app lifespan.

    Args:
        secret_store: Passed to carriers that need credentials
        fallback_engine: Backs the FALLBACK provider's rate calls
        enabled_codes: Overrides settings.SHIPPING_ENABLED_PROVIDERS
    """
    if enabled_codes is None:
        enabled_codes = settings.SHIPPING_ENABLED_PROVIDERS

    carrier_classes = get_registered_carrier_classes()
    providers: Dict[CarrierCode, BaseCarrier] = {}
    for code in CarrierCode:
        carrier_cls = carrier_classes.get(code)
        if not carrier_cls:
            logger.warning(f"No implementation registered for carrier: {code.value}")
            continue
        if code == CarrierCode.FALLBACK:
            providers[code] = carrier_cls(fallback_engine)
        else:
            providers[code] = carrier_cls(secret_store)

    enabled = parse_enabled_codes(enabled_codes)
    logger.info(f"Provider registry built: enabled={[c.value for c in enabled]}")
    return ProviderRegistry(providers, enabled)


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from shipquote.modules.shipping.carriers.fedex import FedExCarrier  # noqa: E402, F401
from shipquote.modules.shipping.carriers.ups import UPSCarrier  # noqa: E402, F401
from shipquote.modules.shipping.carriers.dhl import DHLCarrier  # noqa: E402, F401
from shipquote.modules.shipping.carriers.shippo import ShippoCarrier  # noqa: E402, F401
from shipquote.modules.shipping.carriers.fallback import FallbackCarrier  # noqa: E402, F401
