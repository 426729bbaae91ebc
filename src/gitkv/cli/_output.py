"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any

import yaml

from gitkv.types import ABSENT, Blob


def to_document(value: Any) -> Any:
    """Render a stored value as plain JSON-compatible data."""
    if value is ABSENT:
        return None
    if isinstance(value, Blob):
        return {"mime_type": value.mime_type, "size": len(value.data)}
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return value


def print_value(value: Any, *, fmt: str = "json") -> None:
    """Print a stored value as JSON, YAML, or plain text."""
    data = to_document(value)
    if fmt == "yaml":
        print(yaml.dump(data, default_flow_style=False, allow_unicode=True), end="")
    elif fmt == "text" and isinstance(data, str):
        print(data)
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def print_object(data: dict[str, Any] | list[Any], *, json_mode: bool = False) -> None:
    """Print a single object or list as JSON or key-value pairs."""
    if json_mode:
        print(json.dumps(data, indent=2, default=str))
        return

    if isinstance(data, list):
        for item in data:
            print(f"  {item}")
        return

    for k, v in data.items():
        if isinstance(v, list):
            print(f"{k}:")
            for item in v:
                print(f"  {item}")
        else:
            print(f"{k}: {v}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
