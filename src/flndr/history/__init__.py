"""Unified transaction history over LND payments and invoices."""

from flndr.history.aggregator import HistoryAggregator
from flndr.history.loop_guard import AnomalyKind, LoopGuard, PaginationAnomaly
from flndr.history.models import (
    Cursor,
    HistoryFilter,
    NextCursor,
    PageResult,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from flndr.history.sources import Batch, InvoicesSource, PagedSource, PaymentsSource

__all__ = [
    "AnomalyKind",
    "Batch",
    "Cursor",
    "HistoryAggregator",
    "HistoryFilter",
    "InvoicesSource",
    "LoopGuard",
    "NextCursor",
    "PageResult",
    "PagedSource",
    "PaginationAnomaly",
    "PaymentsSource",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
