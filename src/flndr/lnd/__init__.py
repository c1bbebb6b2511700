"""LND REST surface — one-shot calls, enums, payment-hash encodings."""

from flndr.lnd.encoding import Base64, Hex, to_url_safe_base64
from flndr.lnd.models import BitcoinNetwork, InvoiceState, PaymentState
from flndr.lnd.service import LndService

__all__ = [
    "Base64",
    "BitcoinNetwork",
    "Hex",
    "InvoiceState",
    "LndService",
    "PaymentState",
    "to_url_safe_base64",
]
