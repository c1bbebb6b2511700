"""Base error for the LND client.

REST calls raise subclasses of :class:`FlndrError` directly. Subscription
failures never raise; they reach handlers inside ``error`` events, so the
``code`` attribute is how a handler tells them apart.
"""

from __future__ import annotations


class FlndrError(Exception):
    """Base error for all flndr operations.

    Attributes:
        message: Human-readable error description, as shown to handlers
            and by ``lnd-tool``.
        status_code: HTTP-style status (502 for node failures, 400 for
            bad history filters).
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "flndr-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
