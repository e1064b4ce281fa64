"""Error taxonomy for token handling and API calls."""

from __future__ import annotations

import json


class CorpBankError(Exception):
    """Base class for all corpbank errors."""


class MalformedCredentials(CorpBankError):
    """API key id or secret could not be parsed."""


# === Bearer token errors ===


class TokenError(CorpBankError):
    """Error raised while handling a bearer token."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UnpackError(TokenError):
    """Packed token could not be parsed."""


class MalformedToken(UnpackError):
    """Packed token is not valid base64, JSON or field syntax."""


class UnrecognizedAlgorithm(UnpackError):
    """Token declares a signing algorithm other than HMAC-SHA256."""


class OversizedInput(UnpackError):
    """Packed token exceeds the maximum allowed length."""


class VerificationError(TokenError):
    """Token failed cryptographic or freshness verification."""


class SignatureMismatch(VerificationError):
    """Token signature does not match the signed content."""


class StaleOrFutureTimestamp(VerificationError):
    """Token timestamp is outside the allowed clock-skew window."""


# === API errors ===


class CorpBankClientError(CorpBankError):
    """Error communicating with the CorpBank API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnexpectedStatusError(CorpBankClientError):
    """Remote service answered with an unexpected status code."""

    def __init__(self, status_code: int, body: bytes) -> None:
        text = body.decode("utf-8", errors="replace")
        super().__init__(f"HTTP {status_code}: {text}", status_code)
        self.body = body


class APIError(CorpBankClientError):
    """Structured error returned by the API."""

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"APIErr {code}: {message}", status_code)
        self.code = code
        self.api_message = message


class CurrencyMismatchError(APIError):
    """payment error: currency mismatch"""


class IncorrectRecipientDataError(APIError):
    """payment error: incorrect recipient data"""


class InsufficientBalanceError(APIError):
    """payment error: insufficient balance"""


class InvalidRecipientIDError(APIError):
    """payment error: recipient id"""


class OutOfEFTHoursError(APIError):
    """payment error: out of eft hours"""


class ErrorCode:
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"
    INCORRECT_RECIPIENT_DATA = "INCORRECT_RECIPIENT_DATA"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_RECIPIENT_ID = "INVALID_RECIPIENT_ID"
    OUT_OF_EFT_HOURS = "OUT_OF_EFT_HOURS"


_API_ERRORS: dict[str, type[APIError]] = {
    ErrorCode.CURRENCY_MISMATCH: CurrencyMismatchError,
    ErrorCode.INCORRECT_RECIPIENT_DATA: IncorrectRecipientDataError,
    ErrorCode.INSUFFICIENT_BALANCE: InsufficientBalanceError,
    ErrorCode.INVALID_RECIPIENT_ID: InvalidRecipientIDError,
    ErrorCode.OUT_OF_EFT_HOURS: OutOfEFTHoursError,
}


def error_from_response(status_code: int, body: bytes) -> CorpBankClientError:
    """
    Map an unexpected HTTP response to the most specific error.

    Args:
        status_code: HTTP status of the response
        body: (possibly truncated) response body

    Returns:
        An APIError subclass for known error codes, a plain APIError for
        other structured errors, or UnexpectedStatusError otherwise.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return UnexpectedStatusError(status_code, body)

    if not isinstance(payload, dict) or not isinstance(payload.get("code"), str):
        return UnexpectedStatusError(status_code, body)

    code = payload["code"]
    message = str(payload.get("message", ""))
    error_cls = _API_ERRORS.get(code, APIError)
    return error_cls(code, message, status_code)
