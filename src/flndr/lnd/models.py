"""LND enums shared by the REST service and the history normalizer.

Upstream records themselves are kept as the decoded JSON dicts returned by
the node; only the enumerated fields are modelled here.
"""

from __future__ import annotations

import enum


class BitcoinNetwork(enum.StrEnum):
    """Chain network an LND node runs on."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"
    SIGNET = "signet"

    @classmethod
    def from_string(cls, value: str) -> BitcoinNetwork | None:
        """Parse a network name, returning None for unrecognised values."""
        try:
            return cls(value.lower())
        except ValueError:
            return None


class PaymentState(enum.StrEnum):
    """Outbound payment status as reported by ``/v1/payments``.

    Lifecycle: IN_FLIGHT → SUCCEEDED | FAILED
    """

    UNKNOWN = "UNKNOWN"
    IN_FLIGHT = "IN_FLIGHT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class InvoiceState(enum.StrEnum):
    """Inbound invoice state as reported by ``/v1/invoices``.

    Lifecycle: OPEN → ACCEPTED → SETTLED | CANCELED
    """

    OPEN = "OPEN"
    SETTLED = "SETTLED"
    CANCELED = "CANCELED"
    ACCEPTED = "ACCEPTED"
