"""Shared fixtures for CLI tests."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from gitkv.cli import _database, app


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_env(fake_github, monkeypatch):
    """Point the CLI at the in-memory GitHub."""
    monkeypatch.setattr(_database, "TRANSPORT", fake_github.transport())
    return {
        "GH_REPO": fake_github.full_name,
        "GH_TOKEN": "test-token",
        "GITKV_PASSWORD": None,
        "GITKV_SALT": None,
    }


@pytest.fixture
def invoke(runner, cli_env):
    """Invoke the CLI against the fake store."""

    def _invoke(args: list[str], env: dict[str, str | None] | None = None):
        return runner.invoke(app, args, env={**cli_env, **(env or {})}, catch_exceptions=False)

    return _invoke


@pytest.fixture
def initialized(invoke):
    result = invoke(["init"])
    assert result.exit_code == 0
