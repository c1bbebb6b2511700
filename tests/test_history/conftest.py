"""Fixtures for history tests: in-memory paged sources and record builders."""

from __future__ import annotations

from typing import Any

import pytest

from flndr.history.models import Transaction, TransactionType
from flndr.history.sources import Batch, PagedSource


class FakeSource(PagedSource):
    """Serves a newest-first record list; offsets are list positions.

    Args:
        page_size: Upstream cap per fetch, below the requested batch size.
        stuck_offset: Always advertise this offset instead of advancing.
        error: Raise this from every fetch.
    """

    def __init__(
        self,
        tx_type: TransactionType,
        records: list[dict[str, Any]],
        *,
        page_size: int | None = None,
        stuck_offset: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.tx_type = tx_type
        if tx_type == TransactionType.SENT:
            self.name, self.noun = "LND payments", "payments"
        else:
            self.name, self.noun = "LND invoices", "invoices"
        self.records = records
        self.page_size = page_size
        self.stuck_offset = stuck_offset
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def fetch(
        self,
        cursor: str | None,
        batch_size: int,
        *,
        creation_date_start: int | None = None,
        creation_date_end: int | None = None,
    ) -> Batch:
        self.calls.append(
            {
                "cursor": cursor,
                "batch_size": batch_size,
                "creation_date_start": creation_date_start,
                "creation_date_end": creation_date_end,
            }
        )
        if self.error is not None:
            raise self.error
        start = int(cursor or 0)
        size = min(batch_size, self.page_size or batch_size)
        chunk = self.records[start : start + size]
        if self.stuck_offset is not None:
            next_offset = self.stuck_offset
        else:
            next_offset = str(start + len(chunk))
        return Batch(items=chunk, next_offset=next_offset)

    def normalize(self, record: dict[str, Any]) -> Transaction:
        if self.tx_type == TransactionType.SENT:
            return Transaction.from_payment(record)
        return Transaction.from_invoice(record)


def _payment(ts: int, payment_hash: str = "", value: int = 1000, status: str = "SUCCEEDED"):
    return {
        "payment_hash": payment_hash or f"p{ts}",
        "value_sat": str(value),
        "fee_sat": "1",
        "creation_date": str(ts),
        "status": status,
        "payment_preimage": "00",
        "path": ["02aa", "03bb"],
    }


def _invoice(ts: int, r_hash: str = "", value: int = 2000, state: str = "SETTLED"):
    return {
        "r_hash": r_hash or f"i{ts}",
        "value": str(value),
        "creation_date": str(ts),
        "state": state,
        "memo": f"invoice {ts}",
        "r_preimage": "11",
    }


@pytest.fixture
def payment():
    """Build an LND payment record."""
    return _payment


@pytest.fixture
def invoice():
    """Build an LND invoice record."""
    return _invoice


@pytest.fixture
def payments_source():
    """Build a fake payments source."""

    def _build(records, **kwargs) -> FakeSource:
        return FakeSource(TransactionType.SENT, records, **kwargs)

    return _build


@pytest.fixture
def invoices_source():
    """Build a fake invoices source."""

    def _build(records, **kwargs) -> FakeSource:
        return FakeSource(TransactionType.RECEIVED, records, **kwargs)

    return _build
