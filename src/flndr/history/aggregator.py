"""History aggregator — one ordered, paged view over payments and invoices.

Both sources are fetched concurrently through a :class:`LoopGuard`,
normalized into :class:`Transaction` records, merged newest-first (payments
before invoices on equal timestamps), filtered, and sliced into a page.
Continuation cursors come from each source's own offset rather than from
the merged position, so a caller can resume without re-merging.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from flndr.config.settings import HistoryConfig
from flndr.errors.flndr_errors import FlndrError
from flndr.errors.lnd_errors import HistoryFilterError, UpstreamRequestError
from flndr.history.loop_guard import GuardResult, LoopGuard
from flndr.history.models import Cursor, HistoryFilter, NextCursor, PageResult, Transaction

if TYPE_CHECKING:
    from flndr.history.sources import Batch, PagedSource
    from flndr.metrics.collector import ClientMetrics

logger = logging.getLogger(__name__)


class HistoryAggregator:
    """Merges the payments and invoices collections into one history.

    Usage::

        aggregator = HistoryAggregator(PaymentsSource(lnd), InvoicesSource(lnd))
        page = await aggregator.fetch_history(HistoryFilter(limit=10))
        if page.has_more:
            nxt = await aggregator.fetch_history(
                HistoryFilter(
                    limit=10,
                    payment_cursor=page.next_cursor.payment_cursor,
                    invoice_cursor=page.next_cursor.invoice_cursor,
                )
            )
    """

    def __init__(
        self,
        payments: PagedSource,
        invoices: PagedSource,
        *,
        config: HistoryConfig | None = None,
        metrics: ClientMetrics | None = None,
    ) -> None:
        self._payments = payments
        self._invoices = invoices
        self._config = config or HistoryConfig()
        self._metrics = metrics
        self._fetch_all_advised = False

    @property
    def config(self) -> HistoryConfig:
        """Aggregation settings."""
        return self._config

    def batch_size(self, limit: int, *, fetch_all: bool = False) -> int:
        """Upstream page size for a caller page of *limit* records."""
        floor = self._config.fetch_all_min_batch_size if fetch_all else self._config.min_batch_size
        return max(limit * 2, floor)

    async def fetch_history(
        self, history_filter: HistoryFilter | None = None, **kwargs: Any
    ) -> PageResult:
        """Return one page of the merged transaction history.

        Args:
            history_filter: Request parameters; alternatively pass the
                :class:`HistoryFilter` fields as keyword arguments.
                Keyword arguments given alongside a filter override its
                fields.

        Raises:
            UpstreamRequestError: If either source fails. No partial page
                is returned.
            HistoryFilterError: On invalid filter values.
        """
        if history_filter is None:
            kwargs.setdefault("limit", self._config.default_limit)
            history_filter = HistoryFilter(**kwargs)
        elif kwargs:
            history_filter = _with_overrides(history_filter, kwargs)
        flt = history_filter

        batch_size = self.batch_size(flt.limit, fetch_all=flt.fetch_all)
        if flt.fetch_all and not self._fetch_all_advised:
            self._fetch_all_advised = True
            logger.warning(
                "Using fetchAll=true can be inefficient for large datasets. "
                "Consider paginating with payment_cursor/invoice_cursor instead."
            )

        payment_pos = (
            Cursor(offset=flt.payment_cursor or "")
            if flt.wants(self._payments.tx_type)
            else None
        )
        invoice_pos = (
            Cursor(offset=flt.invoice_cursor or "")
            if flt.wants(self._invoices.tx_type)
            else None
        )
        plan = [
            (source, pos)
            for source, pos in ((self._payments, payment_pos), (self._invoices, invoice_pos))
            if pos is not None
        ]

        outcomes = await asyncio.gather(
            *(self._collect(source, cursor, batch_size, flt) for source, cursor in plan),
            return_exceptions=True,
        )

        merged: list[Transaction] = []
        warnings: list[str] = []
        for (source, _), outcome in zip(plan, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                cause = outcome.message if isinstance(outcome, FlndrError) else str(outcome)
                msg = f"Failed to fetch transaction history from {source.name}: {cause}"
                logger.error("%s", msg)
                raise UpstreamRequestError(
                    msg, operation="fetch_history", source=source.name
                ) from outcome
            merged.extend(source.normalize(record) for record in outcome.items)
            warnings.extend(anomaly.message for anomaly in outcome.anomalies)

        # sorted() is stable: equal timestamps keep payments ahead of invoices
        ordered = sorted(merged, key=lambda tx: tx.timestamp, reverse=True)
        filtered = [tx for tx in ordered if flt.matches(tx)]

        total = len(filtered)
        page = filtered[flt.offset : flt.offset + flt.limit]
        has_more = flt.offset + flt.limit < total

        next_cursor = None
        if has_more:
            # a skipped source echoes the caller's token
            next_cursor = NextCursor(
                payment_cursor=payment_pos.offset if payment_pos else flt.payment_cursor or "",
                invoice_cursor=invoice_pos.offset if invoice_pos else flt.invoice_cursor or "",
            )

        logger.debug(
            "History page: %d of %d transactions (offset=%d, limit=%d)",
            len(page),
            total,
            flt.offset,
            flt.limit,
        )
        return PageResult(
            transactions=page,
            total_count=total,
            limit=flt.limit,
            offset=flt.offset,
            has_more=has_more,
            next_cursor=next_cursor,
            warnings=warnings,
        )

    async def _collect(
        self,
        source: PagedSource,
        cursor: Cursor,
        batch_size: int,
        flt: HistoryFilter,
    ) -> GuardResult:
        guard = LoopGuard(
            source.noun,
            max_iterations=self._config.max_iterations,
            metrics=self._metrics,
        )

        async def fetch(offset: str | None) -> Batch:
            return await source.fetch(
                offset,
                batch_size,
                creation_date_start=flt.start,
                creation_date_end=flt.end,
            )

        return await guard.collect(fetch, cursor, single=not flt.fetch_all)


def _with_overrides(history_filter: HistoryFilter, overrides: dict[str, Any]) -> HistoryFilter:
    known = {f.name for f in dataclasses.fields(HistoryFilter)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        msg = f"Unknown history filter fields: {', '.join(unknown)}"
        raise HistoryFilterError(msg)
    return dataclasses.replace(history_filter, **overrides)
