"""Byte/text/number conversions shared by the hashing layer and the type codec."""

from __future__ import annotations

import base64
import math
import struct

_MAX_SAFE_INTEGER = 2**53 - 1


def text_to_bytes(text: str) -> bytes:
    return text.encode("utf-8")


def bytes_to_text(data: bytes) -> str:
    return bytes(data).decode("utf-8")


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(text: str) -> bytes:
    # API payloads wrap base64 at 60 columns; b64decode discards the newlines.
    return base64.b64decode(text)


def bytes_to_base64url(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_to_bytes(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def hex_to_base64url(hex_str: str) -> str:
    if len(hex_str) % 2 != 0:
        raise ValueError("Number of provided nibbles must be even")
    return bytes_to_base64url(bytes.fromhex(hex_str))


def base64url_to_hex(text: str) -> str:
    return base64url_to_bytes(text).hex()


def num_to_bytes(num: int | float) -> bytes:
    """Encode any number as an 8-byte little-endian IEEE-754 double."""
    return struct.pack("<d", float(num))


def bytes_to_num(data: bytes) -> int | float:
    """Inverse of num_to_bytes(); integral values within the safe range come back as int."""
    (value,) = struct.unpack("<d", bytes(data))
    if math.isfinite(value) and value.is_integer() and abs(value) <= _MAX_SAFE_INTEGER:
        return int(value)
    return value


def text_to_num(text: str) -> int | float:
    try:
        return int(text)
    except ValueError:
        return float(text)
