"""Loop guard — bounds repeated fetches against one paged source.

The upstream pagination contract does not guarantee termination: a node
may echo a non-advancing ``last_index_offset`` forever. The guard stops on
an empty batch, on a repeated offset, and after a fixed number of fetches.
The last two are reported as :class:`PaginationAnomaly` warnings, never as
exceptions; whatever was accumulated is kept.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flndr.history.models import Cursor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from flndr.history.sources import Batch
    from flndr.metrics.collector import ClientMetrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5


class AnomalyKind(enum.StrEnum):
    """Why the guard broke out of a fetch loop."""

    DUPLICATE_OFFSET = "duplicate_offset"
    MAX_ITERATIONS = "max_iterations"


@dataclass(frozen=True)
class PaginationAnomaly:
    """A non-fatal pagination problem; results may be truncated."""

    source: str
    kind: AnomalyKind
    message: str
    offset: str = ""


@dataclass
class GuardResult:
    """Records gathered from one source and where the source stopped."""

    items: list[dict[str, Any]] = field(default_factory=list)
    cursor: Cursor = field(default_factory=Cursor)
    anomalies: list[PaginationAnomaly] = field(default_factory=list)
    calls: int = 0


class LoopGuard:
    """Drives a single source's fetch callable until it stops making progress.

    Usage::

        guard = LoopGuard("payments", max_iterations=5)
        result = await guard.collect(fetch, Cursor(offset="0"))
    """

    def __init__(
        self,
        noun: str,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        metrics: ClientMetrics | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            noun: Record noun for warnings ("payments", "invoices").
            max_iterations: Ceiling on successive fetches.
            metrics: Optional anomaly counter sink.
        """
        if max_iterations < 1:
            msg = f"max_iterations must be >= 1, got {max_iterations}"
            raise ValueError(msg)
        self._noun = noun
        self._max_iterations = max_iterations
        self._metrics = metrics

    @property
    def max_iterations(self) -> int:
        """Ceiling on successive fetches."""
        return self._max_iterations

    async def collect(
        self,
        fetch: Callable[[str | None], Awaitable[Batch]],
        cursor: Cursor,
        *,
        single: bool = False,
    ) -> GuardResult:
        """Fetch batches until exhaustion, a repeated offset, or the ceiling.

        Args:
            fetch: Called with the offset to resume from (None at the start).
            cursor: Starting position; updated in place and returned.
            single: Fetch at most one batch (no ceiling warning).

        Returns:
            GuardResult with every record seen, in upstream order.
        """
        result = GuardResult(cursor=cursor)
        ceiling = 1 if single else self._max_iterations

        while not cursor.exhausted and result.calls < ceiling:
            requested = cursor.offset
            batch = await fetch(requested or None)
            result.calls += 1

            if not batch.items:
                cursor.exhausted = True
                break
            result.items.extend(batch.items)

            if not batch.next_offset:
                # no advertised offset to resume from
                cursor.exhausted = True
                break
            if requested and batch.next_offset == requested:
                self._report(
                    result,
                    AnomalyKind.DUPLICATE_OFFSET,
                    f"Detected duplicate index offset {requested} when fetching "
                    f"{self._noun}. Breaking loop to prevent infinite recursion.",
                    requested,
                )
                cursor.exhausted = True
                break
            cursor.offset = batch.next_offset

        if not single and not cursor.exhausted and result.calls >= ceiling:
            self._report(
                result,
                AnomalyKind.MAX_ITERATIONS,
                f"Reached maximum number of iterations ({ceiling}) when fetching "
                f"{self._noun}. Some {self._noun} may be missing.",
                cursor.offset,
            )
        return result

    def _report(self, result: GuardResult, kind: AnomalyKind, message: str, offset: str) -> None:
        logger.warning("%s", message)
        result.anomalies.append(
            PaginationAnomaly(source=self._noun, kind=kind, message=message, offset=offset)
        )
        if self._metrics is not None:
            self._metrics.record_anomaly(self._noun, kind)
