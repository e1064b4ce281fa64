"""Bearer token authentication for API requests and webhook notifications."""

from corpbank.auth.bearer_token import BearerToken, sign
from corpbank.auth.credentials import Credentials
from corpbank.auth.signer import OutboundRequest, sign_request

__all__ = [
    "BearerToken",
    "Credentials",
    "OutboundRequest",
    "sign",
    "sign_request",
]
