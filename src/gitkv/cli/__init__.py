"""gitkv CLI: operator console for a GitHub-backed key-value database."""

from __future__ import annotations

import logging
from typing import Optional

import typer
from dotenv import load_dotenv

from gitkv.cli import info, init_cmd, kv, maintenance

app = typer.Typer(
    name="gitkv",
    help="gitkv CLI: inspect and manage a key-value database stored in a GitHub repository.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    repo: str | None = None
    token: str | None = None
    password: str | None = None
    salt: str | None = None
    json_output: bool = False
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("gitkv")
        except Exception:
            v = "unknown"
        print(f"gitkv {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    repo: Optional[str] = typer.Option(
        None, "--repo", envvar="GH_REPO", help="Repository as <owner>/<repo>"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="GH_TOKEN", help="GitHub access token"
    ),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="GITKV_PASSWORD", help="Encrypt values with this password"
    ),
    salt: Optional[str] = typer.Option(
        None, "--salt", envvar="GITKV_SALT", help="Key derivation salt (default: repository name)"
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests to stderr"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all gitkv commands."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    state.repo = repo
    state.token = token
    state.password = password
    state.salt = salt
    state.json_output = json_output
    state.verbose = verbose
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="init")(init_cmd.init_cmd)
app.command(name="info")(info.info_cmd)
app.command(name="gc")(maintenance.gc_cmd)
app.command(name="gc-stress")(maintenance.gc_stress_cmd)
app.command(name="get")(kv.get_cmd)
app.command(name="set")(kv.set_cmd)
app.command(name="delete")(kv.delete_cmd)
app.command(name="has")(kv.has_cmd)


def main() -> None:
    """Entry point for the gitkv CLI."""
    load_dotenv()
    app()
