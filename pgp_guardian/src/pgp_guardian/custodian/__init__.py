from .client import CustodianClient, CustodianConfigError, CustodianProtocolError
from .models import CustodianKey

__all__ = ["CustodianClient", "CustodianConfigError", "CustodianKey", "CustodianProtocolError"]
