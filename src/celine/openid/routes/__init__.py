import pkgutil
from importlib import import_module
from types import ModuleType
from typing import Iterator

from fastapi import FastAPI

from celine.openid.core.logging import logging

logger = logging.getLogger(__name__)


def _route_modules() -> Iterator[ModuleType]:
    for info in sorted(pkgutil.iter_modules(__path__), key=lambda i: i.name):
        if info.name.startswith("_") or info.ispkg:
            continue
        yield import_module(f"{__name__}.{info.name}")


def register_routes(app: FastAPI):
    """
    Include the ``router`` of every module in this package.

    A module may also expose ``tags``; modules without a router are skipped.
    """
    for module in _route_modules():
        router = getattr(module, "router", None)
        if router is None:
            logger.warning("Route module %s has no 'router', skipping", module.__name__)
            continue

        app.include_router(router, tags=list(getattr(module, "tags", [])))
        logger.debug("Registered routes from %s", module.__name__)
