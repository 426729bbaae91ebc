"""gitkv info: show repository status and rate-limit budget."""

from __future__ import annotations

from typing import Any

import typer

from gitkv.cli._database import exit_code_for, open_database_or_exit
from gitkv.cli._output import print_error, print_object
from gitkv.errors import GitKVError


def info_cmd() -> None:
    """Show repository metadata and whether the database is initialized."""
    from gitkv.cli import state

    db = open_database_or_exit()
    try:
        repo = db.repo
        data: dict[str, Any] = {
            "repository": repo.full_name,
            "node_id": repo.id,
            "public": repo.is_public,
            "created": repo.created.isoformat() if repo.created else None,
            "authenticated": repo.authenticated,
            "encrypted": repo.encrypted,
            "initialized": db.is_initialized(),
            "ratelimit_remaining": repo.ratelimit.remaining,
        }
        if repo.ratelimit.reset is not None:
            data["ratelimit_reset"] = repo.ratelimit.reset_at().isoformat()
        print_object(data, json_mode=state.json_output)
    except GitKVError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        db.close()
