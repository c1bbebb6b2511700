"""Payment-hash encodings for LND REST paths.

LND expects URL-safe Base64 for byte fields embedded in URL paths
('+' → '-', '/' → '_', padding kept). Callers state which encoding they
hold by wrapping the value in :class:`Hex` or :class:`Base64`; nothing here
guesses the format from the characters of the string.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

_URL_SAFE_B64 = re.compile(r"^[A-Za-z0-9\-_]+=*$")


@dataclass(frozen=True)
class Hex:
    """A hex-encoded byte string (an optional ``0x`` prefix is tolerated)."""

    value: str

    def to_bytes(self) -> bytes:
        """Decode to raw bytes.

        Raises:
            ValueError: If the value is empty or not valid hex.
        """
        text = strip_hex_prefix(self.value)
        if not text:
            msg = "Invalid hex string"
            raise ValueError(msg)
        try:
            return bytes.fromhex(text)
        except ValueError as exc:
            msg = "Invalid hex string"
            raise ValueError(msg) from exc


@dataclass(frozen=True)
class Base64:
    """A Base64 byte string, standard or URL-safe alphabet."""

    value: str

    def to_bytes(self) -> bytes:
        """Decode to raw bytes.

        Raises:
            ValueError: If the value is not valid Base64.
        """
        try:
            return base64.b64decode(from_url_safe(self.value), validate=True)
        except binascii.Error as exc:
            msg = "Invalid base64 string"
            raise ValueError(msg) from exc


PaymentHash = Hex | Base64 | bytes | str


def strip_hex_prefix(value: str) -> str:
    """Remove a leading ``0x``/``0X`` from a hex string."""
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def to_url_safe(b64: str) -> str:
    """Convert standard Base64 to the URL-safe alphabet."""
    return b64.replace("+", "-").replace("/", "_")


def from_url_safe(b64: str) -> str:
    """Convert URL-safe Base64 back to the standard alphabet."""
    return b64.replace("-", "+").replace("_", "/")


def hex_to_url_safe_base64(hex_str: str) -> str:
    """Encode a hex string as URL-safe Base64."""
    return to_url_safe(base64.b64encode(Hex(hex_str).to_bytes()).decode("ascii"))


def url_safe_base64_to_hex(b64: str) -> str:
    """Decode URL-safe (or standard) Base64 to a lowercase hex string."""
    return Base64(b64).to_bytes().hex()


def is_url_safe_base64(value: str) -> bool:
    """Check whether *value* only uses the URL-safe Base64 alphabet."""
    return bool(_URL_SAFE_B64.match(value))


def to_url_safe_base64(value: PaymentHash) -> str:
    """Render a tagged payment hash as URL-safe Base64.

    A plain ``str`` is treated as hex.

    Raises:
        ValueError: If the value does not decode in its declared encoding.
        TypeError: For unsupported input types.
    """
    if isinstance(value, Base64):
        value.to_bytes()  # validate
        return to_url_safe(value.value)
    if isinstance(value, Hex):
        raw = value.to_bytes()
    elif isinstance(value, bytes):
        raw = value
    elif isinstance(value, str):
        raw = Hex(value).to_bytes()
    else:
        msg = f"Unsupported payment hash type: {type(value).__name__}"
        raise TypeError(msg)
    return to_url_safe(base64.b64encode(raw).decode("ascii"))


def to_hex(value: PaymentHash) -> str:
    """Render a tagged payment hash as lowercase hex (no prefix).

    A plain ``str`` is treated as hex and returned without its ``0x``
    prefix, otherwise untouched.
    """
    if isinstance(value, str):
        return strip_hex_prefix(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, Hex | Base64):
        return value.to_bytes().hex()
    msg = f"Unsupported payment hash type: {type(value).__name__}"
    raise TypeError(msg)
