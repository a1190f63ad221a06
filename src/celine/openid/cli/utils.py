# openid/cli/utils.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from celine.openid.core.config import settings
from celine.openid.core.logging import LOG_FORMAT


def setup_cli_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
    )


def or_default(value: Optional[Path], default: Path) -> Path:
    return value if value is not None else default


# ---------------------------------------------------------------------------
# Realm filter resolution
# ---------------------------------------------------------------------------
def resolve_realms(all_realms: list[str], filters: list[str]) -> list[str]:
    """
    Select realms from ``filters``.

    ``*`` selects everything, ``+name`` or ``name`` includes, ``-name``
    excludes. Without any filter every realm is selected.
    """
    if not filters:
        return sorted(all_realms)

    includes = set()
    excludes = set()
    star = False

    for flt in filters:
        if flt == "*":
            star = True
        elif flt.startswith("+"):
            includes.add(flt[1:])
        elif flt.startswith("-"):
            excludes.add(flt[1:])
        else:
            includes.add(flt)

    if star or not includes:
        selected = set(all_realms)
    else:
        selected = {r for r in all_realms if r in includes}

    selected -= excludes
    return sorted(selected)


def default_realms_path() -> Path:
    return settings.realms_path


def default_users_path() -> Path:
    return settings.users_path
