# openid/cli/user.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from celine.openid.cli.utils import default_users_path, or_default, setup_cli_logging
from celine.openid.security.permissions import compute_api_permission
from celine.openid.store.users import UserStoreFile

user_app = typer.Typer(name="user", help="Inspect provisioned users")


@user_app.command("show")
def show_user(
    username: str = typer.Argument(..., help="Full username, e.g. alice@company"),
    users_path: Optional[Path] = typer.Option(None, "--users", help="User file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Print a user record and its computed capabilities."""
    setup_cli_logging(verbose)
    store = UserStoreFile(or_default(users_path, default_users_path())).read()

    record = store.users.get(username)
    if record is None:
        typer.echo(f"No such user '{username}'", err=True)
        raise typer.Exit(code=1)

    payload = {
        "username": username,
        **record.model_dump(mode="json", exclude_none=True),
        "cap": compute_api_permission(store, username),
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
