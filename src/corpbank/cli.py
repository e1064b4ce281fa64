"""corpbank CLI - API access, token tooling and webhook receiver."""

import asyncio
import sys
import uuid
from collections.abc import Callable, Coroutine
from datetime import timedelta, timezone
from decimal import Decimal, InvalidOperation
from functools import wraps
from pathlib import Path
from typing import Any, NoReturn, ParamSpec, TypeVar

import click
import uvicorn
from rich.console import Console
from rich.table import Table
from starlette.requests import Request

from corpbank.auth.bearer_token import BearerToken, format_timestamp
from corpbank.auth.credentials import Credentials
from corpbank.auth.webhook import create_webhook_app
from corpbank.client.client import CorpBankClient
from corpbank.client.models import PaymentOrder, Transaction
from corpbank.client.options import (
    RequestOption,
    with_filter_account_ids,
    with_filter_in_date_range,
    with_filter_incoming_transactions,
    with_filter_outgoing_transactions,
    with_page_num,
    with_page_size,
)
from corpbank.common.errors import CorpBankError, TokenError
from corpbank.common.logging import get_logger, setup_logging
from corpbank.common.settings import Settings

console = Console()
logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def async_command(f: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Decorator to run async commands."""

    @wraps(f)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def _credentials(ctx: click.Context) -> Credentials:
    settings: Settings = ctx.obj["settings"]
    try:
        return settings.credentials()
    except CorpBankError as exc:
        _fail(str(exc))


def _client(ctx: click.Context) -> CorpBankClient:
    return CorpBankClient(_credentials(ctx), ctx.obj["settings"])


def _read_body(body_file: str | None) -> bytes:
    if not body_file:
        return b""
    if body_file == "-":
        return sys.stdin.buffer.read()
    path = Path(body_file)
    if not path.exists():
        _fail(f"Body file not found: {body_file}")
    return path.read_bytes()


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        _fail(f"Invalid UUID: {value}")


@click.group()
@click.option("--base-url", default=None, help="CorpBank API base URL")
@click.option("--key-id", default=None, help="API key ID (default: CORPBANK_API_KEY_ID)")
@click.option(
    "--key-secret",
    default=None,
    help="Base64 API key secret (default: CORPBANK_API_KEY_SECRET)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    base_url: str | None,
    key_id: str | None,
    key_secret: str | None,
    verbose: bool,
) -> None:
    """corpbank CLI - Talk to the CorpBank API and debug bearer tokens."""
    overrides: dict[str, Any] = {}
    if base_url:
        overrides["api_base_url"] = base_url
    if key_id:
        overrides["api_key_id"] = key_id
    if key_secret:
        overrides["api_key_secret"] = key_secret

    settings = Settings(**overrides)
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_json)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


# === Account ===


@cli.command("me")
@click.pass_context
@async_command
async def show_me(ctx: click.Context) -> None:
    """Show the authenticated user."""
    async with _client(ctx) as client:
        try:
            user = await client.me()
        except CorpBankError as exc:
            _fail(str(exc))

    if user is None:
        console.print("[yellow]No user account returned[/yellow]")
        return

    console.print(f"[green]{user.first_name} {user.last_name}[/green] <{user.email}>")
    console.print(f"  Status: {user.status.value}")


@cli.command("balance")
@click.argument("account_id")
@click.pass_context
@async_command
async def show_balance(ctx: click.Context, account_id: str) -> None:
    """Show the balance of an account."""
    async with _client(ctx) as client:
        try:
            balance = await client.account_balance(_parse_uuid(account_id))
        except CorpBankError as exc:
            _fail(str(exc))

    console.print(f"Balance: [green]{balance.balance}[/green]")
    console.print(f"  Last updated: {balance.last_updated_at.isoformat()}")


# === Transactions ===


@cli.command("transactions")
@click.option("--page", type=int, help="Page number")
@click.option("--page-size", type=int, help="Page size")
@click.option("--start", type=click.DateTime(), help="Start of date range (UTC)")
@click.option("--end", type=click.DateTime(), help="End of date range (UTC)")
@click.option(
    "--direction",
    type=click.Choice(["incoming", "outgoing"]),
    help="Only incoming or outgoing transfers",
)
@click.option("--account", "accounts", multiple=True, help="Account ID filter (repeatable)")
@click.pass_context
@async_command
async def list_transactions(
    ctx: click.Context,
    page: int | None,
    page_size: int | None,
    start: Any,
    end: Any,
    direction: str | None,
    accounts: tuple[str, ...],
) -> None:
    """List bank transactions."""
    options: list[RequestOption] = []
    if page is not None:
        options.append(with_page_num(page))
    if page_size is not None:
        options.append(with_page_size(page_size))
    if start or end:
        if not (start and end):
            _fail("--start and --end must be given together")
        options.append(
            with_filter_in_date_range(
                start.replace(tzinfo=timezone.utc),
                end.replace(tzinfo=timezone.utc),
            )
        )
    if direction == "incoming":
        options.append(with_filter_incoming_transactions())
    elif direction == "outgoing":
        options.append(with_filter_outgoing_transactions())
    if accounts:
        options.append(with_filter_account_ids(*(_parse_uuid(a) for a in accounts)))

    async with _client(ctx) as client:
        try:
            page_info, transactions = await client.transactions(*options)
        except CorpBankError as exc:
            _fail(str(exc))

    if not transactions:
        console.print("[yellow]No transactions[/yellow]")
        return

    table = Table(
        title=(
            f"Transactions (page {page_info.current_page}/{page_info.total_pages}, "
            f"{page_info.total_records} total)"
        )
    )
    table.add_column("Date", style="cyan")
    table.add_column("Direction", style="magenta")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Currency")
    table.add_column("Reference")
    table.add_column("Description")

    for trx in transactions:
        table.add_row(
            trx.date.strftime("%Y-%m-%d %H:%M"),
            trx.direction.value,
            str(trx.amount),
            trx.currency,
            trx.ref_code,
            trx.description,
        )

    console.print(table)


# === API Keys ===


@cli.command("api-keys")
@click.option("--page", type=int, help="Page number")
@click.option("--page-size", type=int, help="Page size")
@click.pass_context
@async_command
async def list_api_keys(ctx: click.Context, page: int | None, page_size: int | None) -> None:
    """List API keys."""
    options: list[RequestOption] = []
    if page is not None:
        options.append(with_page_num(page))
    if page_size is not None:
        options.append(with_page_size(page_size))

    async with _client(ctx) as client:
        try:
            _, keys = await client.api_keys(*options)
        except CorpBankError as exc:
            _fail(str(exc))

    table = Table(title="API Keys")
    table.add_column("Key ID", style="cyan")
    table.add_column("Enabled")
    table.add_column("Created")

    for key in keys:
        table.add_row(
            str(key.id),
            "[green]yes[/green]" if key.enabled else "[red]no[/red]",
            key.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@cli.command("create-api-key")
@click.pass_context
@async_command
async def create_api_key(ctx: click.Context) -> None:
    """Create an API key and print its secret once."""
    async with _client(ctx) as client:
        try:
            key = await client.new_api_key()
        except CorpBankError as exc:
            _fail(str(exc))

    if key is None:
        _fail("API did not return the new key")

    console.print(f"[green]Created API key {key.id}[/green]")
    if key.secret:
        console.print(f"  Secret: {key.secret}")
        console.print("[yellow]The secret is shown only once. Store it securely![/yellow]")


def _api_key_command(name: str, help_text: str, action: str, done: str) -> None:
    @cli.command(name, help=help_text)
    @click.argument("key_id")
    @click.pass_context
    @async_command
    async def command(ctx: click.Context, key_id: str) -> None:
        api_key_id = _parse_uuid(key_id)
        async with _client(ctx) as client:
            try:
                await getattr(client, action)(api_key_id)
            except CorpBankError as exc:
                _fail(str(exc))
        console.print(f"[green]API key {api_key_id}: {done}[/green]")


_api_key_command("delete-api-key", "Delete an API key.", "delete_api_key", "deleted")
_api_key_command("enable-api-key", "Enable an API key.", "enable_api_key", "enabled")
_api_key_command("disable-api-key", "Disable an API key.", "disable_api_key", "disabled")


# === Payments ===


@cli.command("pay")
@click.option("--from-iban", required=True, help="Sender IBAN")
@click.option("--to-iban", required=True, help="Recipient IBAN")
@click.option("--to-name", required=True, help="Recipient name")
@click.option("--to-id", required=True, help="Recipient national identity number")
@click.option("--amount", required=True, help="Transfer amount")
@click.option("--ref", default="", help="Reference code")
@click.option("--description", default="", help="Payment description")
@click.option("--idempotency-key", default=None, help="Idempotency key")
@click.pass_context
@async_command
async def make_payment(
    ctx: click.Context,
    from_iban: str,
    to_iban: str,
    to_name: str,
    to_id: str,
    amount: str,
    ref: str,
    description: str,
    idempotency_key: str | None,
) -> None:
    """Submit a payment order."""
    try:
        transfer_amount = Decimal(amount)
    except InvalidOperation:
        _fail(f"Invalid amount: {amount}")

    order = PaymentOrder(
        sender_iban=from_iban,
        recipient_iban=to_iban,
        recipient_name=to_name,
        recipient_identity_num=to_id,
        transfer_amount=transfer_amount,
        ref_code=ref,
        description=description,
        idempotency_key=idempotency_key,
    )

    async with _client(ctx) as client:
        try:
            result = await client.make_payment(order)
        except CorpBankError as exc:
            _fail(str(exc))

    console.print(f"[green]Payment accepted: {result.payment_id}[/green]")


# === Token Tooling ===


@cli.command("token")
@click.option("--body-file", "-b", help="File with the exact body to sign ('-' for stdin)")
@click.pass_context
def create_token(ctx: click.Context, body_file: str | None) -> None:
    """Print an Authorization header value for a body."""
    credentials = _credentials(ctx)
    token = BearerToken.create(credentials.key_id, credentials.secret, _read_body(body_file))
    click.echo(f"Bearer {token.pack()}")


@cli.command("inspect-token")
@click.argument("packed")
@click.option("--body-file", "-b", help="Body the token should cover ('-' for stdin)")
@click.option("--verify", "do_verify", is_flag=True, help="Verify with the configured secret")
@click.pass_context
def inspect_token(ctx: click.Context, packed: str, body_file: str | None, do_verify: bool) -> None:
    """Decode a packed bearer token and optionally verify it."""
    if packed.lower().startswith("bearer "):
        packed = packed[len("bearer ") :].strip()

    try:
        token = BearerToken.unpack(packed)
    except TokenError as exc:
        _fail(f"Invalid bearer token: {exc.reason}")

    table = Table(title="Bearer Token")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("API key ID", str(token.key_id))
    table.add_row("Timestamp", format_timestamp(token.timestamp))
    table.add_row("Signature", token.signature.hex())
    console.print(table)

    if not do_verify:
        return

    settings: Settings = ctx.obj["settings"]
    credentials = _credentials(ctx)
    try:
        token.verify(
            credentials.secret,
            _read_body(body_file),
            timedelta(seconds=settings.max_time_diff),
        )
    except TokenError as exc:
        console.print(f"[red]✗ Verification failed: {exc.reason}[/red]")
        sys.exit(1)

    if token.key_id != credentials.key_id:
        console.print(f"[yellow]✓ Signature valid, but signed by foreign key {token.key_id}[/yellow]")
        sys.exit(1)

    console.print("[green]✓ Token is valid[/green]")


# === Webhook Receiver ===


async def log_transaction(_request: Request, transaction: Transaction) -> None:
    """Webhook handler that logs each verified transaction."""
    logger.info(
        "Transaction received",
        transaction_id=str(transaction.id),
        direction=transaction.direction.value,
        amount=str(transaction.amount),
        currency=transaction.currency,
        reference=transaction.ref_code,
    )


@cli.command("serve-webhook")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.pass_context
def serve_webhook(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run a webhook receiver that logs verified transactions."""
    settings: Settings = ctx.obj["settings"]
    app = create_webhook_app(log_transaction, settings, _credentials(ctx))

    uvicorn.run(
        app,
        host=host or settings.webhook_host,
        port=port or settings.webhook_port,
        log_level="info",
    )


def main() -> None:
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
