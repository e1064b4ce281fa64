"""Outbound request signing."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Union

from multidict import CIMultiDict
from yarl import URL

from corpbank.auth.bearer_token import BearerToken
from corpbank.auth.credentials import Credentials

AUTHORIZATION_HEADER = "Authorization"
BEARER_SCHEME = "Bearer"

RequestBody = Union[bytes, BinaryIO, None]


@dataclass
class OutboundRequest:
    """An API request assembled before dispatch.

    Request options mutate ``url``, ``headers`` and ``body`` in place; the
    request is signed last, right before it is sent.
    """

    method: str
    url: URL
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    body: RequestBody = None

    def read_body(self) -> bytes:
        """Return the body bytes, replacing a consumed stream with a fresh one."""
        if self.body is None:
            return b""
        if isinstance(self.body, (bytes, bytearray)):
            return bytes(self.body)

        data = self.body.read()
        self.body.close()
        self.body = io.BytesIO(data)
        return data


def sign_request(
    request: OutboundRequest,
    credentials: Credentials,
    now: datetime | None = None,
) -> BearerToken:
    """
    Attach a freshly signed bearer token to ``request``.

    The token covers the exact body bytes that will be transmitted and
    becomes the only ``Authorization`` header value.

    Args:
        request: Request to sign
        credentials: API key used for signing
        now: Signing time (default: current second)

    Returns:
        The token that was attached
    """
    body = request.read_body()
    token = BearerToken.create(credentials.key_id, credentials.secret, body, now=now)
    request.headers[AUTHORIZATION_HEADER] = f"{BEARER_SCHEME} {token.pack()}"
    return token
