"""Paged sources — one adapter per upstream collection.

Payments and invoices expose the same concept (a page of records plus the
offset to continue from) under different field names. Each adapter hides
those names behind :class:`PagedSource` so the aggregator stays
source-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flndr.history.models import Transaction, TransactionType

if TYPE_CHECKING:
    from flndr.lnd.service import LndService


@dataclass
class Batch:
    """One upstream page: raw records plus the advertised next offset."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_offset: str = ""


class PagedSource(ABC):
    """Abstract paged-fetch interface."""

    #: Human-readable source name used in errors and warnings.
    name: str = ""
    #: Record noun used in loop-guard warnings ("payments", "invoices").
    noun: str = ""
    #: Direction of the records this source yields.
    tx_type: TransactionType

    @abstractmethod
    async def fetch(
        self,
        cursor: str | None,
        batch_size: int,
        *,
        creation_date_start: int | None = None,
        creation_date_end: int | None = None,
    ) -> Batch:
        """Fetch one batch starting at *cursor*."""

    @abstractmethod
    def normalize(self, record: dict[str, Any]) -> Transaction:
        """Convert a raw record into a :class:`Transaction`."""


class PaymentsSource(PagedSource):
    """Outbound payments via ``GET /v1/payments``."""

    name = "LND payments"
    noun = "payments"
    tx_type = TransactionType.SENT

    def __init__(self, service: LndService) -> None:
        self._service = service

    async def fetch(
        self,
        cursor: str | None,
        batch_size: int,
        *,
        creation_date_start: int | None = None,
        creation_date_end: int | None = None,
    ) -> Batch:
        """Fetch newest-first payments, in-flight ones included."""
        data = await self._service.list_payments(
            include_incomplete=True,
            index_offset=cursor,
            max_payments=batch_size,
            reversed=True,
            creation_date_start=creation_date_start,
            creation_date_end=creation_date_end,
        )
        return Batch(
            items=list(data.get("payments") or []),
            next_offset=str(data.get("last_index_offset") or ""),
        )

    def normalize(self, record: dict[str, Any]) -> Transaction:
        return Transaction.from_payment(record)


class InvoicesSource(PagedSource):
    """Inbound invoices via ``GET /v1/invoices``."""

    name = "LND invoices"
    noun = "invoices"
    tx_type = TransactionType.RECEIVED

    def __init__(self, service: LndService) -> None:
        self._service = service

    async def fetch(
        self,
        cursor: str | None,
        batch_size: int,
        *,
        creation_date_start: int | None = None,
        creation_date_end: int | None = None,
    ) -> Batch:
        """Fetch newest-first invoices of every state."""
        data = await self._service.list_invoices(
            pending_only=False,
            index_offset=cursor,
            num_max_invoices=batch_size,
            reversed=True,
            creation_date_start=creation_date_start,
            creation_date_end=creation_date_end,
        )
        return Batch(
            items=list(data.get("invoices") or []),
            next_offset=str(data.get("last_index_offset") or ""),
        )

    def normalize(self, record: dict[str, Any]) -> Transaction:
        return Transaction.from_invoice(record)
