#!/usr/bin/env python3
"""Generate a throwaway API key id and secret for local webhook testing."""

import argparse
import base64
import secrets
import sys
import uuid
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from corpbank.auth.credentials import Credentials


def main():
    parser = argparse.ArgumentParser(description="Generate test API credentials")
    parser.add_argument(
        "--output", "-o",
        default=".env",
        help="Env file to write (default: .env)"
    )
    parser.add_argument(
        "--secret-bytes",
        type=int,
        default=32,
        help="Length of the raw secret in bytes (default: 32)"
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite an existing env file"
    )

    args = parser.parse_args()

    output_path = Path(args.output)
    if output_path.exists() and not args.force:
        print(f"Error: {output_path} already exists. Use --force to overwrite.")
        sys.exit(1)

    key_id = str(uuid.uuid4())
    secret = base64.b64encode(secrets.token_bytes(args.secret_bytes)).decode("ascii")

    # Round-trip through the parser used at runtime
    Credentials.parse(key_id, secret)

    output_path.write_text(
        f"CORPBANK_API_KEY_ID={key_id}\n"
        f"CORPBANK_API_KEY_SECRET={secret}\n"
    )
    output_path.chmod(0o600)

    print(f"Credentials for key {key_id} saved to: {output_path}")
    print("\n⚠️  These are local test credentials; never commit the env file!")


if __name__ == "__main__":
    main()
