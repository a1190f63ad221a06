# openid/cli/state.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from celine.openid.cli.utils import setup_cli_logging
from celine.openid.core.config import settings
from celine.openid.security.auth_state import AuthStateStore

state_app = typer.Typer(name="state", help="Maintain pending OpenID login state")


@state_app.command("purge")
def purge_state(
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="State directory"),
    ttl: Optional[int] = typer.Option(
        None, "--ttl", help="Maximum age in seconds (defaults to STATE_TTL_SECONDS)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Remove pending login records older than the TTL."""
    setup_cli_logging(verbose)

    ttl_seconds = ttl if ttl is not None else settings.state_ttl_seconds
    if ttl_seconds is None:
        typer.echo("No TTL configured, nothing to purge.")
        return

    store = AuthStateStore(state_dir or settings.state_dir, ttl_seconds=ttl_seconds)
    removed = store.purge_expired()
    typer.echo(f"Removed {removed} expired login state record(s).")
