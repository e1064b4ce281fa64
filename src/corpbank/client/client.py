"""HTTP client for the CorpBank AIS/PIS API."""

from __future__ import annotations

import asyncio
import json
import re
import time
import uuid
from typing import Any, TypeVar

import aiohttp
from multidict import CIMultiDict
from pydantic import BaseModel, ValidationError
from yarl import URL

from corpbank.auth.credentials import Credentials
from corpbank.auth.signer import OutboundRequest, RequestBody, sign_request
from corpbank.client.models import (
    AccountBalance,
    APIKey,
    APIKeysResponse,
    AuthUser,
    MeResponse,
    NewAPIKeyResponse,
    PageInfo,
    PaymentOrder,
    PaymentResult,
    Transaction,
    TransactionsResponse,
    build_payment_request,
)
from corpbank.client.options import RequestOption
from corpbank.common.errors import CorpBankClientError, error_from_response
from corpbank.common.logging import get_logger
from corpbank.common.metrics import record_api_request
from corpbank.common.settings import Settings

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_READ_CHUNK = 64 * 1024

_ID_SEGMENT = re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


def _endpoint_label(path: str) -> str:
    """Collapse resource ids so metric labels stay bounded."""
    return _ID_SEGMENT.sub("/{id}", path)


class CorpBankClient:
    """
    Async client for CorpBank account, API-key, transaction and payment endpoints.

    Every request is signed with a fresh bearer token derived from the
    client's credentials.
    """

    def __init__(
        self,
        credentials: Credentials,
        settings: Settings | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Initialize the client.

        Args:
            credentials: API key used to sign every request
            settings: Application settings (defaults are used if omitted)
            session: Externally managed session; it is not closed by the client
        """
        settings = settings or Settings()
        self._credentials = credentials
        self._base_url = URL(settings.api_base_url.rstrip("/"))
        self._timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
        self._max_response_bytes = settings.max_response_bytes
        self._max_error_bytes = settings.max_error_response_bytes
        self._payment_callback_url = settings.payment_callback_url
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings) -> CorpBankClient:
        """Build a client with credentials taken from settings."""
        return cls(settings.credentials(), settings)

    async def __aenter__(self) -> CorpBankClient:
        """Enter async context."""
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        await self.close()

    async def close(self) -> None:
        """Close the owned session, if any."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _url(self, *segments: str) -> URL:
        url = self._base_url
        for segment in segments:
            url = url / segment
        return url

    def _new_request(
        self,
        method: str,
        *segments: str,
        json_body: Any = None,
        options: tuple[RequestOption, ...] = (),
    ) -> OutboundRequest:
        body: RequestBody = None
        headers: CIMultiDict[str] = CIMultiDict()
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = OutboundRequest(method=method, url=self._url(*segments), headers=headers, body=body)
        for option in options:
            option(request)
        return request

    async def _read_limited(self, response: aiohttp.ClientResponse, limit: int) -> tuple[bytes, bool]:
        data = bytearray()
        async for chunk in response.content.iter_chunked(_READ_CHUNK):
            data.extend(chunk)
            if len(data) > limit:
                return bytes(data[:limit]), True
        return bytes(data), False

    async def _do(
        self,
        request: OutboundRequest,
        expected_status: int,
        model: type[ModelT] | None = None,
    ) -> ModelT | None:
        """
        Sign and send a request, then decode the expected response.

        Args:
            request: Assembled request (options already applied)
            expected_status: The only status treated as success
            model: Response model to decode, or None to ignore the body

        Raises:
            CorpBankClientError: On transport failure, unexpected status or
                undecodable response
        """
        sign_request(request, self._credentials)
        session = self._ensure_session()
        endpoint = _endpoint_label(request.url.path)

        logger.debug("Sending API request", method=request.method, url=str(request.url))

        start = time.perf_counter()
        try:
            response = await session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
            )

            async with response:
                record_api_request(request.method, endpoint, response.status, time.perf_counter() - start)

                if response.status != expected_status:
                    body, _ = await self._read_limited(response, self._max_error_bytes)
                    logger.warning(
                        "Unexpected API response",
                        method=request.method,
                        endpoint=endpoint,
                        status=response.status,
                        expected=expected_status,
                    )
                    raise error_from_response(response.status, body)

                if model is None:
                    return None

                body, truncated = await self._read_limited(response, self._max_response_bytes)
                if truncated:
                    raise CorpBankClientError(
                        f"response exceeds {self._max_response_bytes} bytes",
                        response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # The total timeout surfaces as asyncio.TimeoutError, not ClientError.
            raise CorpBankClientError(f"Request failed: {str(e) or type(e).__name__}") from e

        try:
            return model.model_validate_json(body)
        except ValidationError as e:
            raise CorpBankClientError(
                f"unable to parse JSON response of the remote service: {e}",
                expected_status,
            ) from e

    # === Account Operations ===

    async def me(self) -> AuthUser | None:
        """Return the authenticated user details."""
        request = self._new_request("GET", "me")
        data = await self._do(request, 200, MeResponse)
        assert data is not None
        return data.account

    async def account_balance(self, account_id: uuid.UUID) -> AccountBalance:
        """Return the balance of the given account."""
        request = self._new_request("GET", "accounts", str(account_id), "balance")
        data = await self._do(request, 200, AccountBalance)
        assert data is not None
        return data

    # === API Key Operations ===

    async def api_keys(self, *options: RequestOption) -> tuple[PageInfo, list[APIKey]]:
        """List API keys; pagination options apply."""
        request = self._new_request("GET", "api-keys", options=options)
        data = await self._do(request, 200, APIKeysResponse)
        assert data is not None
        return data.page_info(), data.api_keys

    async def new_api_key(self) -> APIKey | None:
        """Create an API key; the response carries its secret once."""
        request = self._new_request("POST", "api-keys", json_body={"permission": {}})
        data = await self._do(request, 201, NewAPIKeyResponse)
        assert data is not None
        return data.api_key

    async def delete_api_key(self, api_key_id: uuid.UUID) -> None:
        """Delete an API key."""
        request = self._new_request("DELETE", "api-keys", str(api_key_id))
        await self._do(request, 204)

    async def enable_api_key(self, api_key_id: uuid.UUID) -> None:
        """Activate an API key."""
        await self._set_api_key_enabled(api_key_id, True)

    async def disable_api_key(self, api_key_id: uuid.UUID) -> None:
        """Deactivate an API key."""
        await self._set_api_key_enabled(api_key_id, False)

    async def _set_api_key_enabled(self, api_key_id: uuid.UUID, enabled: bool) -> None:
        request = self._new_request(
            "PUT",
            "api-keys",
            str(api_key_id),
            "enabled",
            json_body={"enabled": enabled},
        )
        await self._do(request, 200)

    # === Transactions ===

    async def transactions(self, *options: RequestOption) -> tuple[PageInfo, list[Transaction]]:
        """List bank transactions, filtered and paged by the given options."""
        request = self._new_request("GET", "bank-transactions", options=options)
        data = await self._do(request, 200, TransactionsResponse)
        assert data is not None
        return data.page_info(), data.transactions

    # === Payments ===

    async def make_payment(self, order: PaymentOrder) -> PaymentResult:
        """Submit a payment order and return the bank's acknowledgement."""
        request = self._new_request(
            "POST",
            "payments",
            json_body=build_payment_request(order, self._payment_callback_url),
        )
        if order.idempotency_key:
            request.headers["Idempotency-Key"] = order.idempotency_key

        data = await self._do(request, 202, PaymentResult)
        assert data is not None
        return data
