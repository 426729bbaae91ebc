"""gitkv gc / gc-stress: garbage collection of expired keys."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from gitkv.cli import _exitcodes as ec
from gitkv.cli._database import exit_code_for, open_database_or_exit
from gitkv.cli._output import print_error, print_object
from gitkv.errors import GitKVError

logger = logging.getLogger(__name__)


def gc_cmd(
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", min=1, help="Keys deleted per atomic ref transaction"
    ),
) -> None:
    """Delete every key that expired yesterday."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        removed = db.gc(batch_size=batch_size)
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()

    if state.json_output:
        print_object({"removed": removed}, json_mode=True)
    else:
        print(f"Removed {removed} expired keys")


def gc_stress_cmd(
    keys: int = typer.Option(10, "--keys", "-n", min=1, help="Number of expired keys to create"),
    prefix: str = typer.Option("gc-stress", "--prefix", help="Key prefix"),
) -> None:
    """Create already-expired keys, run GC, and verify that every key is gone."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        names = [f"{prefix}-{i}" for i in range(keys)]
        for name in names:
            db.create(name, name, ttl=-1)
        logger.info("Created %d expired keys", len(names))

        removed = db.gc()
        survivors = [name for name in names if db.has(name)]
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()

    data = {"created": len(names), "removed": removed, "survivors": survivors}
    print_object(data, json_mode=state.json_output)
    if survivors:
        print_error(f"{len(survivors)} keys survived garbage collection")
        raise typer.Exit(ec.EXECUTION_FAILURE)
