from shipquote.models.carrier import CarrierCode, MerchantCarrierConfigRecord
from shipquote.models.shipping_rule import ShippingRuleRecord
