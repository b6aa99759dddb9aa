from shipquote.core.config import settings
from shipquote.core.database import get_db, Base
from shipquote.core.exceptions import ShipquoteError, ShippingError
