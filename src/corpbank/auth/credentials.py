"""API key credentials."""

from __future__ import annotations

import base64
import binascii
import uuid
from dataclasses import dataclass, field

from corpbank.common.errors import MalformedCredentials


@dataclass(frozen=True)
class Credentials:
    """API key identifier and decoded secret; the secret is kept out of repr."""

    key_id: uuid.UUID
    secret: bytes = field(repr=False)

    @classmethod
    def parse(cls, api_key_id: str, api_key_secret: str) -> Credentials:
        """
        Parse textual credentials as issued by the API.

        Args:
            api_key_id: Key identifier in UUID form
            api_key_secret: Standard base64 encoded secret

        Returns:
            Credentials with the decoded secret

        Raises:
            MalformedCredentials: If either value cannot be parsed
        """
        try:
            key_id = uuid.UUID(api_key_id.strip())
        except (ValueError, AttributeError) as exc:
            raise MalformedCredentials(f"unable to parse API key ID: `{api_key_id}`") from exc

        try:
            secret = base64.b64decode(api_key_secret.strip(), validate=True)
        except (binascii.Error, ValueError, AttributeError):
            # chained exception text may echo the secret
            raise MalformedCredentials("unable to parse API secret") from None

        return cls(key_id=key_id, secret=secret)
