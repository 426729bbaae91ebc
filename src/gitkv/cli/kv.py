"""gitkv get / set / delete / has: single-key operations."""

from __future__ import annotations

from typing import Optional

import typer

from gitkv.cli import _exitcodes as ec
from gitkv.cli._database import exit_code_for, open_database_or_exit, parse_cli_value
from gitkv.cli._output import print_error, print_object, print_value
from gitkv.errors import GitKVError

_FORMATS = ("json", "yaml", "text")


def get_cmd(
    key: str = typer.Argument(..., help="Key (parsed as JSON when valid)"),
    fmt: str = typer.Option("json", "--format", help="Output format: json, yaml or text"),
    raw: bool = typer.Option(False, "--raw", help="Treat the key as a plain string"),
) -> None:
    """Print the value stored under KEY."""
    if fmt not in _FORMATS:
        print_error(f"Unknown format '{fmt}'. Expected one of: {', '.join(_FORMATS)}")
        raise typer.Exit(ec.USAGE_ERROR)

    db = open_database_or_exit()
    try:
        result = db.lookup(parse_cli_value(key, raw=raw))
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()

    if not result.found:
        print_error(f"Key not found: {key}")
        raise typer.Exit(1)
    print_value(result.value, fmt=fmt)


def set_cmd(
    key: str = typer.Argument(..., help="Key (parsed as JSON when valid)"),
    value: str = typer.Argument(..., help="Value (parsed as JSON when valid)"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Days until the key expires"),
    overwrite: Optional[bool] = typer.Option(
        None,
        "--overwrite/--no-overwrite",
        help="Require the key to exist (--overwrite) or to be absent (--no-overwrite)",
    ),
    raw: bool = typer.Option(False, "--raw", help="Treat key and value as plain strings"),
) -> None:
    """Store VALUE under KEY."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        result = db.create(
            parse_cli_value(key, raw=raw),
            parse_cli_value(value, raw=raw),
            overwrite=overwrite,
            ttl=ttl,
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()

    data = {
        "uuid": result.uuid,
        "expiry": result.expiry.isoformat() if result.expiry else None,
        "cdn_links": result.cdn_links,
    }
    print_object(data, json_mode=state.json_output)


def delete_cmd(
    key: str = typer.Argument(..., help="Key (parsed as JSON when valid)"),
    raw: bool = typer.Option(False, "--raw", help="Treat the key as a plain string"),
) -> None:
    """Delete KEY and all of its refs."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        result = db.delete(parse_cli_value(key, raw=raw))
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()
    print_object({"uuid": result.uuid, "deleted": True}, json_mode=state.json_output)


def has_cmd(
    key: str = typer.Argument(..., help="Key (parsed as JSON when valid)"),
    raw: bool = typer.Option(False, "--raw", help="Treat the key as a plain string"),
) -> None:
    """Exit 0 when KEY exists (expired keys included until GC), 1 otherwise."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        exists = db.has(parse_cli_value(key, raw=raw))
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()

    if state.json_output:
        print_object({"key": key, "exists": exists}, json_mode=True)
    else:
        print("true" if exists else "false")
    if not exists:
        raise typer.Exit(1)
