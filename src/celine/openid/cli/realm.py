# openid/cli/realm.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError

from celine.openid.cli.utils import (
    default_realms_path,
    or_default,
    resolve_realms,
    setup_cli_logging,
)
from celine.openid.core.errors import InvalidRealmConfig, LoginError
from celine.openid.store.realms import RealmResolver

logger = logging.getLogger(__name__)

realm_app = typer.Typer(name="realm", help="Inspect authentication realms")


@realm_app.command("list")
def list_realms(
    realms_path: Optional[Path] = typer.Option(None, "--realms", help="Realm file"),
    realm: List[str] = typer.Option(
        [], "--realm", "-r", help="Realm filter: name, +name, -name or '*'"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """List realms with their type and OpenID issuer."""
    setup_cli_logging(verbose)
    resolver = RealmResolver(or_default(realms_path, default_realms_path()))

    try:
        ids = resolver.list_realms()
    except InvalidRealmConfig as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    for realm_id in resolve_realms(list(ids), realm):
        raw = ids[realm_id]
        issuer = raw.get("issuer-url", "")
        typer.echo(f"{realm_id}\t{raw.get('type', '?')}\t{issuer}")


@realm_app.command("show")
def show_realm(
    realm_id: str = typer.Argument(..., help="Realm id"),
    realms_path: Optional[Path] = typer.Option(None, "--realms", help="Realm file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Validate an OpenID realm and print its effective configuration."""
    setup_cli_logging(verbose)
    resolver = RealmResolver(or_default(realms_path, default_realms_path()))

    try:
        config = resolver.resolve(realm_id)
    except (LoginError, ValidationError) as exc:
        typer.echo(f"Realm '{realm_id}': {exc}", err=True)
        raise typer.Exit(code=1)

    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    # never print the client secret
    if "client-key" in data:
        data["client-key"] = "********"
    typer.echo(yaml.safe_dump(data, sort_keys=False).rstrip())
