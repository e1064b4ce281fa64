"""Composable request options for list endpoints.

Each option mutates exactly one aspect of an ``OutboundRequest`` (its query
string); options are applied in the order given, before signing.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from corpbank.auth.bearer_token import format_timestamp
from corpbank.auth.signer import OutboundRequest
from corpbank.client.models import TrxDirection

RequestOption = Callable[[OutboundRequest], None]


def _set_query(request: OutboundRequest, name: str, value: str) -> None:
    request.url = request.url.update_query({name: value})


def with_page_num(page_num: int) -> RequestOption:
    """Request a specific page number."""

    def apply(request: OutboundRequest) -> None:
        _set_query(request, "pageNum", str(page_num))

    return apply


def with_page_size(page_size: int) -> RequestOption:
    """Request a specific page size."""

    def apply(request: OutboundRequest) -> None:
        _set_query(request, "pageSize", str(page_size))

    return apply


def with_filter_in_date_range(start_date: datetime, end_date: datetime) -> RequestOption:
    """Filter bank transactions to the given date range."""

    def apply(request: OutboundRequest) -> None:
        _set_query(request, "startDate", format_timestamp(start_date))
        _set_query(request, "endDate", format_timestamp(end_date))

    return apply


def with_filter_incoming_transactions() -> RequestOption:
    """Filter bank transactions to incoming transfers."""

    def apply(request: OutboundRequest) -> None:
        _set_query(request, "direction", TrxDirection.INCOMING.value)

    return apply


def with_filter_outgoing_transactions() -> RequestOption:
    """Filter bank transactions to outgoing transfers."""

    def apply(request: OutboundRequest) -> None:
        _set_query(request, "direction", TrxDirection.OUTGOING.value)

    return apply


def with_filter_account_ids(*account_ids: uuid.UUID) -> RequestOption:
    """Filter bank transactions to the given accounts (repeatable ``account``)."""

    def apply(request: OutboundRequest) -> None:
        request.url = request.url.extend_query([("account", str(aid)) for aid in account_ids])

    return apply
