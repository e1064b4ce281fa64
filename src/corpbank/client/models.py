"""Wire models of the CorpBank API."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AuthUserStatus(str, Enum):
    """Account status of the authenticated user."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    PAUSED = "PAUSED"
    NOT_ACTIVATED = "WAITING_FOR_ACTIVATION"


class TrxDirection(str, Enum):
    """Direction of a bank transaction."""

    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


class TrxTransferMethod(str, Enum):
    """Interbank transfer method."""

    HAVALE = "HAVALE"
    EFT = "EFT"
    FAST = "FAST"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AuthUser(_WireModel):
    email: str = Field(alias="accountIdentifier")
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    status: AuthUserStatus = Field(alias="accountStatus")


class MeResponse(_WireModel):
    account: AuthUser | None = Field(default=None, alias="userAccount")


class AccountBalance(_WireModel):
    balance: Decimal
    last_updated_at: datetime = Field(alias="lastUpdatedAt")


@dataclass(frozen=True)
class PageInfo:
    """Pagination state of a list response."""

    current_page: int
    total_pages: int
    total_records: int


class TransactionAccount(_WireModel):
    bank_code: str = ""
    iban: str = ""


class TransactionParticipant(_WireModel):
    bank_code: str = ""
    iban: str = ""
    identity_number: str = ""
    name: str = ""


class Transaction(_WireModel):
    """A bank transaction, as listed by the API and pushed by webhooks."""

    id: uuid.UUID
    date: datetime
    account: TransactionAccount
    amount: Decimal
    currency: str
    direction: TrxDirection
    description: str = ""
    received_at: datetime
    ref_code: str = Field(default="", alias="reference_code")
    transfer_method: TrxTransferMethod | None = Field(default=None, alias="transfer_type")
    sender: TransactionParticipant | None = None
    recipient: TransactionParticipant | None = None


class TransactionsResponse(_WireModel):
    page_num: int = 0
    total_pages: int = 0
    total_records: int = 0
    transactions: list[Transaction] = Field(default_factory=list)

    def page_info(self) -> PageInfo:
        return PageInfo(self.page_num, self.total_pages, self.total_records)


class APIKey(_WireModel):
    id: uuid.UUID = Field(alias="apiKeyID")
    created_at: datetime = Field(alias="createdAt")
    modified_at: datetime | None = Field(default=None, alias="modifiedAt")
    enabled: bool
    secret: str | None = Field(default=None, alias="apiKeySecret", repr=False)


class Pagination(_WireModel):
    page_num: int = Field(default=0, alias="pageNum")
    page_size: int = Field(default=0, alias="pageSize")
    total_pages: int = Field(default=0, alias="totalPages")
    total_records: int = Field(default=0, alias="totalRecords")


class APIKeysResponse(_WireModel):
    pagination: Pagination = Field(default_factory=Pagination)
    api_keys: list[APIKey] = Field(default_factory=list, alias="apiKeys")

    def page_info(self) -> PageInfo:
        return PageInfo(
            self.pagination.page_num,
            self.pagination.total_pages,
            self.pagination.total_records,
        )


class NewAPIKeyResponse(_WireModel):
    api_key: APIKey | None = Field(default=None, alias="apiKey")


# === Payments ===

IMMEDIATE_PAYMENT_DATE = "1970-01-01T00:00:00.000Z"


@dataclass(frozen=True)
class PaymentOrder:
    """A payment order to submit to the bank."""

    sender_iban: str
    recipient_iban: str
    recipient_name: str
    recipient_identity_num: str
    transfer_amount: Decimal
    ref_code: str = ""
    description: str = ""
    idempotency_key: str | None = None


class PaymentResult(_WireModel):
    payment_id: uuid.UUID


def format_amount(amount: Decimal) -> str:
    """Render an amount with exactly two decimals."""
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def build_payment_request(order: PaymentOrder, callback_url: str | None = None) -> dict:
    """Build the JSON body of a payment submission."""
    payload = {
        "source": {"addressType": "IBAN", "address": order.sender_iban},
        "destination": {
            "address": {"addressType": "IBAN", "address": order.recipient_iban},
            "identifier": {
                "identifierType": "NATIONAL_ID",
                "identifier": order.recipient_identity_num,
            },
            "name": order.recipient_name,
        },
        "date": IMMEDIATE_PAYMENT_DATE,
        "amount": format_amount(order.transfer_amount),
        "refNum": order.ref_code,
        "description": order.description,
    }
    if callback_url:
        payload["callbackURL"] = callback_url
    return payload
