"""CLI helpers for opening a database from the global options."""

from __future__ import annotations

import json
from typing import Any

import httpx
import typer

from gitkv.cli import _exitcodes as ec
from gitkv.cli._output import print_error
from gitkv.config import GitKVConfig
from gitkv.crypto import AesGcmCodec
from gitkv.database import Database
from gitkv.errors import GitKVError, StorageBackendError

# Replaced by tests with an in-memory transport.
TRANSPORT: httpx.BaseTransport | None = None


def parse_cli_value(text: str, *, raw: bool = False) -> Any:
    """Interpret a CLI argument as JSON when it parses, else as a plain string."""
    if raw:
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


def open_database() -> Database:
    """Open the database selected by --repo/--token (or GH_REPO/GH_TOKEN)."""
    from gitkv.cli import state

    if not state.repo:
        raise ValueError("No repository given. Pass --repo or set GH_REPO.")

    codec_kwargs: dict[str, Any] = {}
    if state.password:
        salt = (state.salt or state.repo).encode("utf-8")
        codec = AesGcmCodec(state.password, salt)
        codec_kwargs = {"encrypt": codec.encrypt, "decrypt": codec.decrypt}

    return Database.instantiate(
        state.repo,
        auth=state.token,
        config=GitKVConfig(),
        transport=TRANSPORT,
        **codec_kwargs,
    )


def open_database_or_exit() -> Database:
    """open_database(), turning failures into CLI exit codes."""
    try:
        return open_database()
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except GitKVError as e:
        print_error(f"Cannot open repository: {e}")
        raise typer.Exit(ec.BACKEND_ERROR)


def exit_code_for(error: Exception) -> int:
    if isinstance(error, StorageBackendError):
        return ec.BACKEND_ERROR
    return ec.EXECUTION_FAILURE
