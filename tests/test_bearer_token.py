"""Tests for bearer token signing, verification and wire format."""

import base64
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from corpbank.auth.bearer_token import (
    MAX_PACKED_LENGTH,
    BearerToken,
    format_timestamp,
    parse_timestamp,
    sign,
)
from corpbank.common.errors import (
    MalformedToken,
    OversizedInput,
    SignatureMismatch,
    StaleOrFutureTimestamp,
    UnpackError,
    UnrecognizedAlgorithm,
)

SECRET = b"shared-secret"
KEY_ID = uuid.UUID("6f1c2d3e-4a5b-4c6d-8e7f-90a1b2c3d4e5")
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _pack_envelope(envelope: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")


def _envelope(**overrides) -> dict:
    token = BearerToken.create(KEY_ID, SECRET, b"body", now=T0)
    envelope = {
        "apiKeyID": str(token.key_id),
        "timestamp": format_timestamp(token.timestamp),
        "algo": "HMAC-SHA256",
        "signature": token.signature.hex(),
    }
    envelope.update(overrides)
    return envelope


class TestSign:
    """Tests for the signing function."""

    def test_signs_timestamp_then_body(self):
        """Signature is HMAC-SHA256 over the RFC 3339 timestamp followed by the body."""
        expected = hmac.new(
            SECRET, b"2024-01-01T12:00:00Z" + b'{"a":1}', hashlib.sha256
        ).digest()

        assert sign(SECRET, b'{"a":1}', T0) == expected
        assert len(expected) == 32

    def test_empty_body(self):
        """An absent body signs the timestamp alone."""
        expected = hmac.new(SECRET, b"2024-01-01T12:00:00Z", hashlib.sha256).digest()

        assert sign(SECRET, b"", T0) == expected

    def test_local_offset_normalized_to_utc(self):
        """Equal instants in different offsets produce equal signatures."""
        local = T0.astimezone(timezone(timedelta(hours=3)))

        assert sign(SECRET, b"x", local) == sign(SECRET, b"x", T0)

    def test_naive_timestamp_rejected(self):
        """Naive datetimes are ambiguous and refused."""
        with pytest.raises(ValueError):
            sign(SECRET, b"x", datetime(2024, 1, 1, 12, 0, 0))

    def test_empty_secret_allowed(self):
        """An empty secret still produces a signature."""
        assert len(sign(b"", b"x", T0)) == 32


class TestVerify:
    """Tests for token verification."""

    @pytest.mark.parametrize("body", [b"", b"{}", b'{"amount": "10.00"}', bytes(range(256))])
    def test_signed_token_verifies(self, body):
        """A token verifies against the body and secret it was signed with."""
        token = BearerToken.create(KEY_ID, SECRET, body, now=T0)

        token.verify(SECRET, body, timedelta(0), now=T0)
        token.verify(SECRET, body, timedelta(minutes=10), now=T0)

    def test_single_byte_mutation_rejected(self):
        """Flipping any single signature byte causes a signature mismatch."""
        token = BearerToken.create(KEY_ID, SECRET, b"payload", now=T0)

        for index in range(len(token.signature)):
            mutated = bytearray(token.signature)
            mutated[index] ^= 0x01
            forged = BearerToken(KEY_ID, token.timestamp, bytes(mutated))
            with pytest.raises(SignatureMismatch):
                forged.verify(SECRET, b"payload", timedelta(minutes=10), now=T0)

    def test_truncated_signature_rejected(self):
        """Signatures of the wrong length are rejected."""
        token = BearerToken.create(KEY_ID, SECRET, b"payload", now=T0)
        forged = BearerToken(KEY_ID, token.timestamp, token.signature[:-1])

        with pytest.raises(SignatureMismatch):
            forged.verify(SECRET, b"payload", timedelta(minutes=10), now=T0)

    def test_wrong_secret_rejected(self):
        """Verification with another secret fails."""
        token = BearerToken.create(KEY_ID, SECRET, b"payload", now=T0)

        with pytest.raises(SignatureMismatch):
            token.verify(b"other-secret", b"payload", timedelta(minutes=10), now=T0)

    def test_tampered_body_rejected(self):
        """Verification against a different body fails."""
        token = BearerToken.create(KEY_ID, SECRET, b'{"amount": "10.00"}', now=T0)

        with pytest.raises(SignatureMismatch):
            token.verify(SECRET, b'{"amount": "99.00"}', timedelta(minutes=10), now=T0)

    def test_signature_checked_before_timestamp(self):
        """A forged, stale token reports the signature failure."""
        token = BearerToken(KEY_ID, T0, b"\x00" * 32)

        with pytest.raises(SignatureMismatch):
            token.verify(SECRET, b"", timedelta(seconds=1), now=T0 + timedelta(days=1))

    def test_skew_boundary_is_inclusive(self):
        """Tokens exactly max_skew away are accepted, one second more is not."""
        token = BearerToken.create(KEY_ID, SECRET, b"body", now=T0)
        skew = timedelta(seconds=30)

        token.verify(SECRET, b"body", skew, now=T0 + skew)
        token.verify(SECRET, b"body", skew, now=T0 - skew)

        with pytest.raises(StaleOrFutureTimestamp):
            token.verify(SECRET, b"body", skew, now=T0 + skew + timedelta(seconds=1))

    def test_future_timestamp_rejected(self):
        """Tokens dated beyond the window in the future are rejected too."""
        token = BearerToken.create(KEY_ID, SECRET, b"body", now=T0)
        skew = timedelta(seconds=30)

        with pytest.raises(StaleOrFutureTimestamp):
            token.verify(SECRET, b"body", skew, now=T0 - skew - timedelta(seconds=1))

    def test_default_now_is_current_time(self):
        """Without an explicit reference time a fresh token verifies."""
        token = BearerToken.create(KEY_ID, SECRET, b"body")

        token.verify(SECRET, b"body", timedelta(minutes=1))

    def test_stale_against_current_time(self):
        """An hour-old token fails a ten-minute window."""
        token = BearerToken.create(
            KEY_ID, SECRET, b"body", now=datetime.now(timezone.utc) - timedelta(hours=1)
        )

        with pytest.raises(StaleOrFutureTimestamp):
            token.verify(SECRET, b"body", timedelta(minutes=10))

    def test_naive_reference_time_rejected(self):
        """A naive reference time is a caller error, not a comparison crash."""
        token = BearerToken.create(KEY_ID, SECRET, b"body", now=T0)

        with pytest.raises(ValueError, match="timezone-aware"):
            token.verify(SECRET, b"body", timedelta(minutes=1), now=datetime(2024, 1, 1, 12, 0, 0))

    def test_create_truncates_to_seconds(self):
        """Token timestamps carry second precision."""
        token = BearerToken.create(KEY_ID, SECRET, now=T0.replace(microsecond=987654))

        assert token.timestamp == T0


class TestPackUnpack:
    """Tests for the packed wire format."""

    def test_round_trip(self):
        """Unpacking a packed token reproduces it field for field."""
        token = BearerToken.create(uuid.uuid4(), SECRET, b"some body", now=T0)

        restored = BearerToken.unpack(token.pack())

        assert restored == token
        assert restored.key_id == token.key_id
        assert restored.timestamp == token.timestamp
        assert restored.signature == token.signature

    @pytest.mark.parametrize(
        "timestamp",
        [
            datetime(2024, 1, 1, 12, 0, 0, 500000, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 15, 0, 0, tzinfo=timezone(timedelta(hours=3))),
        ],
    )
    def test_round_trip_of_constructed_token(self, timestamp):
        """Tokens built directly hold the normalized timestamp and round-trip."""
        token = BearerToken(uuid.uuid4(), timestamp, b"\x01" * 32)

        assert token.timestamp == T0
        assert token.timestamp.utcoffset() == timedelta(0)
        assert BearerToken.unpack(token.pack()) == token

    def test_constructor_rejects_naive_timestamp(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            BearerToken(KEY_ID, datetime(2024, 1, 1, 12, 0, 0), b"\x01" * 32)

    def test_standard_alphabet_rejected(self):
        """Only the URL-safe base64 alphabet is accepted."""
        with pytest.raises(MalformedToken) as exc_info:
            BearerToken.unpack("ab+/" * 8)

        assert "URL-safe" in exc_info.value.reason

    @pytest.mark.parametrize(
        "signature",
        ["AB" * 32, "ab " * 32, "0x" + "ab" * 31],
    )
    def test_signature_must_be_lowercase_hex(self, signature):
        packed = _pack_envelope(_envelope(signature=signature))

        with pytest.raises(MalformedToken) as exc_info:
            BearerToken.unpack(packed)

        assert "signature" in exc_info.value.reason

    @pytest.mark.parametrize(
        "timestamp",
        ["2024-01-01 12:00:00Z", "2024-01-01T12:00Z", "20240101T120000Z", " 2024-01-01T12:00:00Z"],
    )
    def test_timestamp_must_be_rfc3339(self, timestamp):
        packed = _pack_envelope(_envelope(timestamp=timestamp))

        with pytest.raises(MalformedToken) as exc_info:
            BearerToken.unpack(packed)

        assert "timestamp" in exc_info.value.reason

    def test_fractional_seconds_dropped(self):
        """RFC 3339 fractions parse into the whole second that was signed."""
        token = BearerToken.unpack(_pack_envelope(_envelope(timestamp="2024-01-01T12:00:00.250Z")))

        assert token.timestamp == T0
        token.verify(SECRET, b"body", timedelta(0), now=T0)

    def test_envelope_layout(self):
        """Packed form is URL-safe base64 of the documented JSON envelope."""
        token = BearerToken.create(KEY_ID, SECRET, b"", now=T0)

        envelope = json.loads(base64.urlsafe_b64decode(token.pack()))

        assert envelope == {
            "apiKeyID": str(KEY_ID),
            "timestamp": "2024-01-01T12:00:00Z",
            "algo": "HMAC-SHA256",
            "signature": token.signature.hex(),
        }
        assert envelope["signature"] == envelope["signature"].lower()

    def test_packed_is_url_safe(self):
        """Packed tokens contain no characters outside the URL-safe alphabet."""
        for index in range(20):
            packed = BearerToken.create(uuid.uuid4(), SECRET, str(index).encode(), now=T0).pack()
            assert "+" not in packed
            assert "/" not in packed
            assert " " not in packed

    def test_oversized_rejected_before_decoding(self):
        """Inputs longer than the limit are rejected without decoding."""
        with patch("corpbank.auth.bearer_token.base64.b64decode") as mock_decode:
            with pytest.raises(OversizedInput):
                BearerToken.unpack("A" * (MAX_PACKED_LENGTH + 1))

        mock_decode.assert_not_called()

    def test_max_length_accepted_by_length_check(self):
        """Inputs at the limit pass the length check (and fail later on content)."""
        with pytest.raises(MalformedToken):
            BearerToken.unpack("A" * MAX_PACKED_LENGTH)

    def test_unrecognized_algorithm_rejected(self):
        """Unknown algorithm tags are rejected even with a valid signature."""
        packed = _pack_envelope(_envelope(algo="HMAC-SHA512"))

        with pytest.raises(UnrecognizedAlgorithm):
            BearerToken.unpack(packed)

    def test_missing_algorithm_rejected(self):
        """Envelopes without an algorithm tag are rejected."""
        envelope = _envelope()
        del envelope["algo"]

        with pytest.raises(UnrecognizedAlgorithm):
            BearerToken.unpack(_pack_envelope(envelope))

    def test_algorithm_tag_case_insensitive(self):
        """The algorithm tag is matched case-insensitively."""
        token = BearerToken.unpack(_pack_envelope(_envelope(algo=" hmac-sha256 ")))

        token.verify(SECRET, b"body", timedelta(0), now=T0)

    def test_duplicate_algorithm_rejected(self):
        """Envelopes repeating a field are rejected."""
        raw = (
            '{"apiKeyID": "%s", "timestamp": "2024-01-01T12:00:00Z", '
            '"algo": "HMAC-SHA256", "algo": "NONE", "signature": "00"}' % KEY_ID
        )
        packed = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

        with pytest.raises(MalformedToken):
            BearerToken.unpack(packed)

    @pytest.mark.parametrize(
        "field,value,fragment",
        [
            ("apiKeyID", "not-a-uuid", "API key ID"),
            ("timestamp", "yesterday", "timestamp"),
            ("timestamp", "2024-01-01T12:00:00", "timestamp"),
            ("signature", "zz", "signature"),
            ("signature", "abc", "signature"),
        ],
    )
    def test_field_parse_errors_are_distinct(self, field, value, fragment):
        """Each unparseable field is reported by name."""
        packed = _pack_envelope(_envelope(**{field: value}))

        with pytest.raises(MalformedToken) as exc_info:
            BearerToken.unpack(packed)

        assert fragment in exc_info.value.reason

    def test_invalid_base64_rejected(self):
        """Non base64 input is a malformed token."""
        with pytest.raises(MalformedToken):
            BearerToken.unpack("not base64!!")

    def test_invalid_json_rejected(self):
        """Base64 of non-JSON content is a malformed token."""
        packed = base64.urlsafe_b64encode(b"not json").decode("ascii")

        with pytest.raises(MalformedToken):
            BearerToken.unpack(packed)

    def test_non_object_json_rejected(self):
        """JSON that is not an object is a malformed token."""
        packed = base64.urlsafe_b64encode(b"[1, 2, 3]").decode("ascii")

        with pytest.raises(MalformedToken):
            BearerToken.unpack(packed)

    def test_unpack_errors_share_base_class(self):
        """All unpack failures derive from UnpackError."""
        for packed in ("A" * (MAX_PACKED_LENGTH + 1), "!!", _pack_envelope(_envelope(algo="x"))):
            with pytest.raises(UnpackError):
                BearerToken.unpack(packed)

    def test_offset_timestamp_normalized(self):
        """Timestamps with a non-UTC offset unpack into the same instant."""
        envelope = _envelope(timestamp="2024-01-01T15:00:00+03:00")

        token = BearerToken.unpack(_pack_envelope(envelope))

        assert token.timestamp == T0
        assert token.timestamp.utcoffset() == timedelta(0)
        token.verify(SECRET, b"body", timedelta(0), now=T0)


class TestTimestampFormat:
    """Tests for timestamp rendering and parsing."""

    def test_format(self):
        assert format_timestamp(T0) == "2024-01-01T12:00:00Z"

    def test_parse_zulu(self):
        assert parse_timestamp("2024-01-01T12:00:00Z") == T0

    def test_parse_requires_offset(self):
        with pytest.raises(ValueError):
            parse_timestamp("2024-01-01T12:00:00")
