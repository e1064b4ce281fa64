"""Webhook notification verification.

Every notification pushed by CorpBank carries a bearer token signed with the
integrator's own API key. ``WebhookVerifier`` runs the gates below in order
and answers each failure with a distinct status and a plain-text reason:

1. exactly one ``Authorization`` header (none: 401, several: 400)
2. ``Bearer <token>`` syntax (400)
3. token unpacks (400)
4. body readable within the size limit (413 / 500)
5. signature and timestamp verify (403)
6. token key id is the configured key id (403)
7. body is a transaction (400)
8. business handler succeeds (500 on failure, 202 on success)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from corpbank.auth.bearer_token import BearerToken
from corpbank.auth.credentials import Credentials
from corpbank.client.models import Transaction
from corpbank.common.errors import (
    SignatureMismatch,
    UnpackError,
    VerificationError,
)
from corpbank.common.logging import get_logger
from corpbank.common.metrics import (
    MetricsMiddleware,
    metrics_endpoint,
    record_token_verification,
    record_webhook,
)
from corpbank.common.settings import Settings, get_settings

logger = get_logger(__name__)

WebhookHandler = Callable[[Request, Transaction], Awaitable[None]]

_BEARER_PREFIX = "bearer "


class BodyTooLarge(Exception):
    """Request body exceeded the configured limit."""


class WebhookVerifier:
    """Authenticates webhook notifications before invoking a handler."""

    def __init__(
        self,
        credentials: Credentials,
        handler: WebhookHandler,
        max_skew: timedelta = timedelta(minutes=10),
        max_body_bytes: int = 1024 * 1024,
        expose_errors: bool = True,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            credentials: Local API key; its secret verifies, its id binds identity
            handler: Business callback invoked with each verified transaction
            max_skew: Allowed clock skew for token timestamps
            max_body_bytes: Maximum accepted request body size
            expose_errors: Include failure reasons in response bodies
        """
        self._credentials = credentials
        self._handler = handler
        self._max_skew = max_skew
        self._max_body_bytes = max_body_bytes
        self._expose_errors = expose_errors

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        handler: WebhookHandler,
        credentials: Credentials | None = None,
    ) -> WebhookVerifier:
        """Build a verifier from application settings."""
        return cls(
            credentials=credentials or settings.credentials(),
            handler=handler,
            max_skew=timedelta(seconds=settings.max_time_diff),
            max_body_bytes=settings.webhook_max_body_bytes,
            expose_errors=settings.webhook_expose_errors,
        )

    def _reject(self, outcome: str, status_code: int, message: str, detail: str = "") -> Response:
        logger.warning("Webhook rejected", outcome=outcome, status=status_code, detail=detail)
        record_webhook(outcome, status_code)
        if detail and self._expose_errors:
            message = f"{message}: {detail}"
        return PlainTextResponse(message, status_code=status_code)

    async def _read_body(self, request: Request) -> bytes:
        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > self._max_body_bytes:
                raise BodyTooLarge(
                    f"request body exceeds {self._max_body_bytes} bytes"
                )
        return bytes(body)

    async def handle(self, request: Request) -> Response:
        """Starlette endpoint for webhook notifications."""
        headers = request.headers.getlist("authorization")
        if not headers:
            return self._reject("missing_auth", 401, "Missing `Authorization` header.")
        if len(headers) > 1:
            return self._reject("multiple_auth", 400, "Multiple `Authorization` header.")

        header = headers[0].strip()
        if len(header) < len(_BEARER_PREFIX):
            return self._reject("incomplete_auth", 400, "Incomplete `Authorization` header.")
        if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
            return self._reject("invalid_scheme", 400, "Invalid `Authorization` token type.")

        packed = header[len(_BEARER_PREFIX) :].strip()
        if not packed:
            return self._reject("missing_token", 400, "Missing bearer token.")

        try:
            token = BearerToken.unpack(packed)
        except UnpackError as exc:
            return self._reject("invalid_token", 400, "Invalid bearer token", exc.reason)

        try:
            body = await self._read_body(request)
        except BodyTooLarge as exc:
            return self._reject("body_too_large", 413, "Request body too large", str(exc))
        except ClientDisconnect:
            return self._reject("body_unreadable", 500, "Unable to read request body", "client disconnected")

        try:
            token.verify(self._credentials.secret, body, self._max_skew)
        except VerificationError as exc:
            if isinstance(exc, SignatureMismatch):
                record_token_verification("signature_mismatch")
            else:
                record_token_verification("stale_timestamp")
            return self._reject(
                "verification_failed",
                403,
                "Unable to verify the request signature",
                exc.reason,
            )
        record_token_verification("ok")

        if token.key_id != self._credentials.key_id:
            return self._reject("illegal_signer", 403, "Illegal signer", str(token.key_id))

        try:
            transaction = Transaction.model_validate_json(body)
        except ValidationError as exc:
            return self._reject("invalid_payload", 400, "Invalid request payload", str(exc))

        try:
            await self._handler(request, transaction)
        except Exception as exc:
            logger.exception("Webhook handler failed", transaction_id=str(transaction.id))
            record_webhook("handler_failed", 500)
            message = "An error occurred while processing the webhook notification"
            if self._expose_errors:
                message = f"{message}: {exc}"
            return PlainTextResponse(message, status_code=500)

        logger.info(
            "Webhook processed",
            transaction_id=str(transaction.id),
            key_id=str(token.key_id),
        )
        record_webhook("accepted", 202)
        return PlainTextResponse(
            "The webhook notification has been processed successfully.",
            status_code=202,
        )


async def handle_health(_request: Request) -> JSONResponse:
    """Health check."""
    return JSONResponse({"status": "healthy"})


def create_webhook_app(
    handler: WebhookHandler,
    settings: Settings | None = None,
    credentials: Credentials | None = None,
) -> Starlette:
    """Create the Starlette application receiving webhook notifications."""
    settings = settings or get_settings()
    credentials = credentials or settings.credentials()
    verifier = WebhookVerifier.from_settings(settings, handler, credentials)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            "Webhook receiver ready",
            path=settings.webhook_path,
            key_id=str(credentials.key_id),
        )
        yield

    routes = [
        Route(settings.webhook_path, verifier.handle, methods=["POST"]),
        Route("/health", handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=["/health", "/metrics"],
    )
    return app
