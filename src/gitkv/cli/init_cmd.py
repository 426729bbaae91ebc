"""gitkv init: publish the canonical type commits."""

from __future__ import annotations

import typer

from gitkv.cli._database import exit_code_for, open_database_or_exit
from gitkv.cli._output import print_error, print_object
from gitkv.errors import GitKVError


def init_cmd(
    check: bool = typer.Option(
        False, "--check", help="Only report whether the store is initialized"
    ),
) -> None:
    """Initialize the repository for use as a database."""
    from gitkv.cli import state

    json_mode = state.json_output
    db = open_database_or_exit()
    try:
        if check:
            initialized = db.is_initialized()
            print_object(
                {"repository": db.repo.full_name, "initialized": initialized}, json_mode=json_mode
            )
            if not initialized:
                raise typer.Exit(1)
            return

        commits = db.init()
        data = {
            "repository": db.repo.full_name,
            "status": "initialized",
            "types": {value_type.value: commit for value_type, commit in commits.items()},
        }
        if json_mode:
            print_object(data, json_mode=True)
        else:
            print(f"Initialized: {db.repo.full_name}")
            for name, commit in data["types"].items():
                print(f"  {name}: {commit}")
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()
