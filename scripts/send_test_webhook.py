#!/usr/bin/env python3
"""Send a signed sample transaction to a running webhook receiver."""

import argparse
import asyncio
import json
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiohttp

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from corpbank.auth.bearer_token import BearerToken
from corpbank.common.settings import Settings


def sample_transaction() -> dict:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return {
        "id": str(uuid.uuid4()),
        "date": now,
        "account": {"bank_code": "0062", "iban": "TR330006100519786457841326"},
        "amount": "125.50",
        "currency": "TRY",
        "direction": "INCOMING",
        "description": "Sample webhook notification",
        "received_at": now,
        "reference_code": "REF-SAMPLE",
        "transfer_type": "FAST",
        "sender": {
            "bank_code": "0046",
            "iban": "TR320010009999901234567890",
            "identity_number": "11111111110",
            "name": "Sample Sender",
        },
        "recipient": None,
    }


async def send(url: str, body: bytes, authorization: str) -> None:
    async with aiohttp.ClientSession() as session:
        async with session.post(
            url,
            data=body,
            headers={"Authorization": authorization, "Content-Type": "application/json"},
        ) as response:
            text = await response.text()
            print(f"HTTP {response.status}: {text}")


def main():
    parser = argparse.ArgumentParser(description="Send a signed sample webhook notification")
    parser.add_argument(
        "--url", "-u",
        default=None,
        help="Webhook URL (default: http://localhost:<webhook_port><webhook_path>)"
    )
    parser.add_argument(
        "--body-file", "-b",
        help="JSON file to send instead of the built-in sample transaction"
    )
    parser.add_argument(
        "--foreign-key",
        action="store_true",
        help="Sign with a random key id to exercise the identity check"
    )

    args = parser.parse_args()

    settings = Settings()
    credentials = settings.credentials()

    if args.body_file:
        body = Path(args.body_file).read_bytes()
    else:
        body = json.dumps(sample_transaction()).encode("utf-8")

    key_id = uuid.uuid4() if args.foreign_key else credentials.key_id
    token = BearerToken.create(key_id, credentials.secret, body)

    url = args.url or f"http://localhost:{settings.webhook_port}{settings.webhook_path}"
    asyncio.run(send(url, body, f"Bearer {token.pack()}"))


if __name__ == "__main__":
    main()
