"""HMAC-SHA256 bearer tokens: signing, verification and wire format.

A token asserts "the holder of API key ``key_id`` produced this body at
``timestamp``". The signature is an HMAC-SHA256 over the RFC 3339 UTC
timestamp immediately followed by the raw body bytes. On the wire the token
travels as URL-safe base64 of a small JSON envelope::

    {"apiKeyID": "...", "timestamp": "...", "algo": "HMAC-SHA256", "signature": "<hex>"}
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from corpbank.common.errors import (
    MalformedToken,
    OversizedInput,
    SignatureMismatch,
    StaleOrFutureTimestamp,
    UnrecognizedAlgorithm,
)

SIGNING_ALGORITHM = "HMAC-SHA256"
MAX_PACKED_LENGTH = 1024
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_PACKED_ALPHABET = re.compile(r"[A-Za-z0-9_-]*={0,2}")
_HEX_SIGNATURE = re.compile(r"(?:[0-9a-f]{2})*")
_RFC3339 = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})(?:\.\d+)?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})"
)


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(timestamp: datetime) -> str:
    """Render a timestamp as RFC 3339 in UTC with second precision."""
    if timestamp.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    return timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp with explicit offset into UTC.

    Fractional seconds are accepted and dropped; tokens carry whole seconds.
    """
    match = _RFC3339.fullmatch(value)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")
    offset = match["offset"]
    if offset in ("Z", "z"):
        offset = "+00:00"
    parsed = datetime.fromisoformat(f"{match['date']}T{match['time']}{offset}")
    return parsed.astimezone(timezone.utc)


def sign(secret: bytes, body: bytes, timestamp: datetime) -> bytes:
    """
    Compute the token signature for a body at a given time.

    The fixed-width timestamp needs no separator from the body; changing the
    timestamp format must keep that property.

    Args:
        secret: Decoded API key secret
        body: Exact request or response body bytes (empty if none)
        timestamp: Signing time (timezone-aware)

    Returns:
        Raw 32-byte HMAC-SHA256 digest
    """
    mac = hmac.new(secret, digestmod=hashlib.sha256)
    mac.update(format_timestamp(timestamp).encode("utf-8"))
    mac.update(body)
    return mac.digest()


@dataclass(frozen=True)
class BearerToken:
    """A signed assertion of API key identity and time."""

    key_id: uuid.UUID
    timestamp: datetime
    signature: bytes

    def __post_init__(self) -> None:
        # Timestamps are held exactly as they travel: UTC, whole seconds.
        if self.timestamp.tzinfo is None:
            raise ValueError("token timestamp must be timezone-aware")
        object.__setattr__(
            self,
            "timestamp",
            self.timestamp.astimezone(timezone.utc).replace(microsecond=0),
        )

    @classmethod
    def create(
        cls,
        key_id: uuid.UUID,
        secret: bytes,
        body: bytes = b"",
        now: datetime | None = None,
    ) -> BearerToken:
        """Sign ``body`` for ``key_id`` at ``now`` (default: current second)."""
        now = now or utc_now()
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        timestamp = now.astimezone(timezone.utc).replace(microsecond=0)
        return cls(key_id=key_id, timestamp=timestamp, signature=sign(secret, body, timestamp))

    def verify(
        self,
        secret: bytes,
        body: bytes,
        max_skew: timedelta,
        now: datetime | None = None,
    ) -> None:
        """
        Verify signature and freshness of the token.

        The key id is not checked here; callers bind identity themselves.

        Args:
            secret: Decoded API key secret expected to have signed the token
            body: Body bytes the token is claimed to cover
            max_skew: Allowed distance between token timestamp and ``now``
            now: Reference time (default: current UTC time)

        Raises:
            SignatureMismatch: If the signature does not match
            StaleOrFutureTimestamp: If the timestamp is outside the window
            ValueError: If ``now`` is a naive datetime
        """
        if now is not None and now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        expected = sign(secret, body, self.timestamp)
        if not hmac.compare_digest(expected, self.signature):
            raise SignatureMismatch("illegal signature")

        reference = now or datetime.now(timezone.utc)
        timestamp = self.timestamp
        if timestamp < reference - max_skew or timestamp > reference + max_skew:
            raise StaleOrFutureTimestamp("illegal timestamp")

    def pack(self) -> str:
        """Serialize the token into its URL-safe transport form."""
        envelope = {
            "apiKeyID": str(self.key_id),
            "timestamp": format_timestamp(self.timestamp),
            "algo": SIGNING_ALGORITHM,
            "signature": self.signature.hex(),
        }
        data = json.dumps(envelope, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(data).decode("ascii")

    @classmethod
    def unpack(cls, packed: str) -> BearerToken:
        """
        Parse a packed token from untrusted input without verifying it.

        Raises:
            OversizedInput: If the input exceeds MAX_PACKED_LENGTH
            MalformedToken: If the encoding, JSON or a field is invalid
            UnrecognizedAlgorithm: If the algorithm tag is missing or unknown
        """
        if len(packed) > MAX_PACKED_LENGTH:
            raise OversizedInput(
                f"bearer token string is too long: {len(packed)} "
                f"(allowed max: {MAX_PACKED_LENGTH})"
            )

        # b64decode with altchars still admits '+' and '/'.
        if not _PACKED_ALPHABET.fullmatch(packed):
            raise MalformedToken(
                "unable to parse the bearer token: "
                "characters outside the URL-safe base64 alphabet"
            )

        try:
            content = base64.b64decode(packed, altchars=b"-_", validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedToken(f"unable to parse the bearer token: {exc}") from exc

        try:
            envelope = json.loads(content.decode("utf-8"), object_pairs_hook=_unique_keys)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedToken(
                f"unable to parse the JSON content of the bearer token: {exc}"
            ) from exc

        if not isinstance(envelope, dict):
            raise MalformedToken("bearer token content is not a JSON object")

        algo = envelope.get("algo")
        if not isinstance(algo, str) or algo.strip().upper() != SIGNING_ALGORITHM:
            raise UnrecognizedAlgorithm(f"unsupported signing algorithm: `{algo}`")

        raw_key_id = _string_field(envelope, "apiKeyID")
        try:
            key_id = uuid.UUID(raw_key_id)
        except ValueError as exc:
            raise MalformedToken(f"unable to parse the API key ID: `{raw_key_id}`") from exc

        raw_timestamp = _string_field(envelope, "timestamp")
        try:
            timestamp = parse_timestamp(raw_timestamp)
        except ValueError as exc:
            raise MalformedToken(
                f"unable to parse the timestamp value: `{raw_timestamp}`"
            ) from exc

        raw_signature = _string_field(envelope, "signature")
        if not _HEX_SIGNATURE.fullmatch(raw_signature):
            raise MalformedToken(f"unable to parse the signature value: `{raw_signature}`")
        signature = bytes.fromhex(raw_signature)

        return cls(key_id=key_id, timestamp=timestamp, signature=signature)


def _unique_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key `{key}`")
        result[key] = value
    return result


def _string_field(envelope: dict[str, Any], name: str) -> str:
    value = envelope.get(name)
    if not isinstance(value, str):
        raise MalformedToken(f"missing or non-string `{name}` field")
    return value
