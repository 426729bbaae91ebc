"""Type codec: typed values to/from bytes with a type tag and view metadata."""

from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gitkv import conversions
from gitkv.errors import UnsupportedTypeError

# Numbers whose textual form is longer than this are stored as 8-byte doubles.
_MAX_TEXT_NUMBER_LEN = 7


class ValueType(str, Enum):
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    STRING = "String"
    JSON = "JSON"
    BLOB = "Blob"
    ARRAY_BUFFER = "ArrayBuffer"


# Tags with a canonical commit in the type registry. Raw `bytes` are untagged.
TYPES: tuple[ValueType, ...] = tuple(ValueType)


class _Absent:
    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()
"""Marks a missing value. Distinct from None, which is JSON null."""


@dataclass(frozen=True)
class Blob:
    """Binary payload labelled with a MIME type."""

    data: bytes
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class EncodedValue:
    type: ValueType | None
    bytes: bytes
    mime_type: str | None = None
    extension: str | None = None


def get_type(value: Any) -> ValueType | None:
    """Return the tag for `value`; None for raw bytes. Raises UnsupportedTypeError otherwise."""
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueType.NUMBER
    if isinstance(value, str):
        return ValueType.STRING
    if value is None or isinstance(value, (list, dict)):
        return ValueType.JSON
    if isinstance(value, Blob):
        return ValueType.BLOB
    if isinstance(value, bytearray):
        return ValueType.ARRAY_BUFFER
    if isinstance(value, bytes):
        return None
    raise UnsupportedTypeError(type(value).__name__)


def extension_for(mime_type: str) -> str | None:
    ext = mimetypes.guess_extension(mime_type.split(";")[0].strip(), strict=False)
    return ext.lstrip(".") if ext else None


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def typed_to_bytes(value: Any) -> EncodedValue:
    """Convert a typed value into bytes. Doubles as the type validator."""
    value_type = get_type(value)
    if value_type is ValueType.NUMBER:
        text = _number_text(value)
        if len(text) > _MAX_TEXT_NUMBER_LEN:
            return EncodedValue(value_type, conversions.num_to_bytes(value))
        return EncodedValue(value_type, conversions.text_to_bytes(text), extension="txt")
    if value_type is ValueType.BOOLEAN:
        text = "true" if value else "false"
        return EncodedValue(value_type, conversions.text_to_bytes(text), extension="txt")
    if value_type is ValueType.STRING:
        return EncodedValue(value_type, conversions.text_to_bytes(value), extension="txt")
    if value_type is ValueType.JSON:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return EncodedValue(value_type, conversions.text_to_bytes(text), extension="json")
    if value_type is ValueType.BLOB:
        return EncodedValue(
            value_type,
            bytes(value.data),
            mime_type=value.mime_type,
            extension=extension_for(value.mime_type),
        )
    if value_type is ValueType.ARRAY_BUFFER:
        return EncodedValue(value_type, bytes(value))
    return EncodedValue(None, bytes(value))


def bytes_to_typed(
    data: bytes, value_type: ValueType | str | None = None, mime_type: str | None = None
) -> Any:
    """Inverse of typed_to_bytes()."""
    if value_type is None:
        return bytes(data)
    try:
        value_type = ValueType(value_type)
    except ValueError:
        raise UnsupportedTypeError(str(value_type)) from None

    if value_type is ValueType.NUMBER:
        if len(data) == 8:
            return conversions.bytes_to_num(data)
        return conversions.text_to_num(conversions.bytes_to_text(data))
    if value_type is ValueType.BOOLEAN:
        return conversions.bytes_to_text(data) == "true"
    if value_type is ValueType.STRING:
        return conversions.bytes_to_text(data)
    if value_type is ValueType.JSON:
        return json.loads(conversions.bytes_to_text(data))
    if value_type is ValueType.BLOB:
        return Blob(bytes(data), mime_type or "application/octet-stream")
    return bytearray(data)


def clone_value(value: Any) -> Any:
    """Copy mutable values so a caller cannot alter the original through the copy."""
    value_type = get_type(value)
    if value_type is ValueType.JSON and value is not None:
        return bytes_to_typed(typed_to_bytes(value).bytes, value_type)
    if value_type is ValueType.ARRAY_BUFFER:
        return bytearray(value)
    return value


def encode_commit_message(mime_type: str | None = None, extension: str | None = None) -> str:
    if mime_type and extension:
        return f"{mime_type};extension={extension}"
    return mime_type or ""


def decode_commit_message(message: str | None) -> tuple[str | None, str | None]:
    """Return (mime_type, extension) parsed from a commit message."""
    if not message or not message.strip():
        return None, None
    mime_type, _, rest = message.strip().partition(";")
    extension = rest.split("=")[-1] if rest else None
    return mime_type, extension or None
