"""Pytest configuration and fixtures."""

import base64
import json
import uuid
from typing import Any

import pytest

from corpbank.auth.credentials import Credentials
from corpbank.common.settings import Settings

TEST_KEY_ID = "0f8a4c3e-2b1d-4e5f-9a7b-6c5d4e3f2a1b"
TEST_SECRET = b"corpbank-test-secret-0123456789ab"
TEST_SECRET_B64 = base64.b64encode(TEST_SECRET).decode("ascii")


@pytest.fixture
def credentials() -> Credentials:
    """Local API key credentials."""
    return Credentials(key_id=uuid.UUID(TEST_KEY_ID), secret=TEST_SECRET)


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        api_key_id=TEST_KEY_ID,
        api_key_secret=TEST_SECRET_B64,
        api_base_url="https://api.test/v1",
        max_time_diff=600,
        webhook_path="/webhooks/corpbank",
        webhook_max_body_bytes=64 * 1024,
    )


@pytest.fixture
def sample_transaction() -> dict[str, Any]:
    """Sample transaction as pushed by the webhook."""
    return {
        "id": "5b0e3f0c-8a6d-4c1e-9f7a-2d3b4c5e6f70",
        "date": "2024-03-01T10:15:00Z",
        "account": {"bank_code": "0062", "iban": "TR330006100519786457841326"},
        "amount": "1250.75",
        "currency": "TRY",
        "direction": "INCOMING",
        "description": "Invoice 2024-031",
        "received_at": "2024-03-01T10:15:02Z",
        "reference_code": "REF-42",
        "transfer_type": "FAST",
        "sender": {
            "bank_code": "0046",
            "iban": "TR320010009999901234567890",
            "identity_number": "11111111110",
            "name": "Acme Ltd",
        },
        "recipient": None,
    }


@pytest.fixture
def sample_body(sample_transaction: dict[str, Any]) -> bytes:
    """Serialized sample transaction."""
    return json.dumps(sample_transaction).encode("utf-8")
