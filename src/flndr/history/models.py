"""Unified transaction history models.

Payments (outbound) and invoices (inbound) are normalized into a single
:class:`Transaction` shape so they can be merged, sorted and paged together.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any

from flndr.errors.lnd_errors import HistoryFilterError
from flndr.lnd.models import InvoiceState, PaymentState

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TransactionType(enum.StrEnum):
    """Direction of a transaction."""

    SENT = "sent"
    RECEIVED = "received"


class TransactionStatus(enum.StrEnum):
    """Statuses shared by payments and invoices."""

    # payments
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IN_FLIGHT = "in_flight"
    PENDING = "pending"
    # invoices
    SETTLED = "settled"
    ACCEPTED = "accepted"
    CANCELED = "canceled"
    EXPIRED = "expired"


_PAYMENT_STATUS = {
    PaymentState.SUCCEEDED: TransactionStatus.SUCCEEDED,
    PaymentState.FAILED: TransactionStatus.FAILED,
    PaymentState.IN_FLIGHT: TransactionStatus.IN_FLIGHT,
}

_INVOICE_STATUS = {
    InvoiceState.SETTLED: TransactionStatus.SETTLED,
    InvoiceState.CANCELED: TransactionStatus.CANCELED,
    InvoiceState.ACCEPTED: TransactionStatus.ACCEPTED,
    InvoiceState.OPEN: TransactionStatus.PENDING,
}


def map_payment_status(status: str | None) -> str:
    """Map an LND payment status; anything unrecognised is ``pending``."""
    return _PAYMENT_STATUS.get(status or "", TransactionStatus.PENDING)


def map_invoice_status(state: str | None) -> str:
    """Map an LND invoice state; unknown states pass through lower-cased."""
    state = state or ""
    mapped = _INVOICE_STATUS.get(state)
    if mapped is not None:
        return mapped
    return state.lower()


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


def _int(value: Any, default: int = 0) -> int:
    """LND encodes 64-bit integers as JSON strings."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Transaction:
    """Normalized view of a payment or an invoice.

    Exactly one of ``raw_payment`` / ``raw_invoice`` is set, matching
    ``type``.
    """

    id: str
    type: TransactionType
    amount: int
    fee: int
    timestamp: int
    status: str
    description: str = ""
    destination: str = ""
    preimage: str = ""
    payment_hash: str = ""
    raw_payment: dict[str, Any] | None = None
    raw_invoice: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if (self.raw_payment is None) == (self.raw_invoice is None):
            msg = "exactly one of raw_payment / raw_invoice must be set"
            raise ValueError(msg)
        expected = (
            TransactionType.SENT if self.raw_payment is not None else TransactionType.RECEIVED
        )
        if self.type != expected:
            msg = f"transaction type {self.type} does not match its raw record"
            raise ValueError(msg)

    @classmethod
    def from_payment(cls, payment: dict[str, Any]) -> Transaction:
        """Normalize an LND payment record."""
        timestamp = _int(payment.get("creation_date"))
        if not timestamp:
            timestamp = _int(payment.get("creation_time_ns")) // 1_000_000_000
        path = payment.get("path") or []
        payment_hash = payment.get("payment_hash", "")
        return cls(
            id=payment_hash,
            type=TransactionType.SENT,
            amount=_int(payment.get("value_sat", payment.get("value"))),
            fee=_int(payment.get("fee_sat", payment.get("fee"))),
            timestamp=timestamp,
            status=map_payment_status(payment.get("status")),
            description="",
            destination=path[-1] if path else "",
            preimage=payment.get("payment_preimage", ""),
            payment_hash=payment_hash,
            raw_payment=payment,
        )

    @classmethod
    def from_invoice(cls, invoice: dict[str, Any]) -> Transaction:
        """Normalize an LND invoice record."""
        r_hash = invoice.get("r_hash", "")
        return cls(
            id=r_hash,
            type=TransactionType.RECEIVED,
            amount=_int(invoice.get("value", invoice.get("value_sat"))),
            fee=0,
            timestamp=_int(invoice.get("creation_date")),
            status=map_invoice_status(invoice.get("state")),
            description=invoice.get("memo", ""),
            destination="",
            preimage=invoice.get("r_preimage", ""),
            payment_hash=r_hash,
            raw_invoice=invoice,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Cursors and pages
# ---------------------------------------------------------------------------


@dataclass
class Cursor:
    """Per-source pagination position.

    Once ``exhausted`` the source is not queried again in the same call.
    """

    offset: str = ""
    exhausted: bool = False


@dataclass(frozen=True)
class NextCursor:
    """Continuation tokens for the next round, one per source."""

    payment_cursor: str = ""
    invoice_cursor: str = ""


@dataclass
class PageResult:
    """One page of the merged history.

    ``next_cursor`` is set iff ``has_more``.
    """

    transactions: list[Transaction]
    total_count: int
    limit: int
    offset: int
    has_more: bool
    next_cursor: NextCursor | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict (omits ``next_cursor`` when absent)."""
        data = {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "total_count": self.total_count,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }
        if self.next_cursor is not None:
            data["next_cursor"] = asdict(self.next_cursor)
        return data


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


def _date(value: str | int | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"invalid creation date: {value!r}"
        raise HistoryFilterError(msg) from exc


@dataclass
class HistoryFilter:
    """Parameters of a history request.

    Attributes:
        types: Directions to include (default both).
        statuses: Unified statuses to keep (default all).
        creation_date_start: Inclusive lower bound, Unix seconds.
        creation_date_end: Inclusive upper bound, Unix seconds.
        limit: Page size.
        offset: Position in the merged, filtered list.
        payment_cursor: Continuation token for the payments source.
        invoice_cursor: Continuation token for the invoices source.
        fetch_all: Keep fetching batches until each source is exhausted
            (bounded by the loop guard).
    """

    types: list[TransactionType] = field(
        default_factory=lambda: [TransactionType.SENT, TransactionType.RECEIVED]
    )
    statuses: list[str] | None = None
    creation_date_start: str | int | None = None
    creation_date_end: str | int | None = None
    limit: int = 25
    offset: int = 0
    payment_cursor: str | None = None
    invoice_cursor: str | None = None
    fetch_all: bool = False

    def __post_init__(self) -> None:
        try:
            self.types = [TransactionType(t) for t in self.types]
        except ValueError as exc:
            msg = f"unknown transaction type in {self.types!r}"
            raise HistoryFilterError(msg) from exc
        if self.limit < 0:
            msg = f"limit must be >= 0, got {self.limit}"
            raise HistoryFilterError(msg)
        if self.offset < 0:
            msg = f"offset must be >= 0, got {self.offset}"
            raise HistoryFilterError(msg)
        self._start = _date(self.creation_date_start)
        self._end = _date(self.creation_date_end)

    @property
    def start(self) -> int | None:
        """Parsed inclusive lower bound."""
        return self._start

    @property
    def end(self) -> int | None:
        """Parsed inclusive upper bound."""
        return self._end

    def wants(self, tx_type: TransactionType) -> bool:
        """Whether *tx_type* was requested."""
        return tx_type in self.types

    def matches(self, tx: Transaction) -> bool:
        """Apply the type, status and date-range predicates."""
        if tx.type not in self.types:
            return False
        if self.statuses and tx.status not in self.statuses:
            return False
        if self._start is not None and tx.timestamp < self._start:
            return False
        return not (self._end is not None and tx.timestamp > self._end)
