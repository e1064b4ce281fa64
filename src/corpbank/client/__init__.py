"""CorpBank REST API client."""

from corpbank.client.client import CorpBankClient
from corpbank.client.models import PageInfo, PaymentOrder, Transaction
from corpbank.client.options import (
    RequestOption,
    with_filter_account_ids,
    with_filter_in_date_range,
    with_filter_incoming_transactions,
    with_filter_outgoing_transactions,
    with_page_num,
    with_page_size,
)

__all__ = [
    "CorpBankClient",
    "PageInfo",
    "PaymentOrder",
    "RequestOption",
    "Transaction",
    "with_filter_account_ids",
    "with_filter_in_date_range",
    "with_filter_incoming_transactions",
    "with_filter_outgoing_transactions",
    "with_page_num",
    "with_page_size",
]
