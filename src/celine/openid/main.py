# openid/main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from celine.openid.core.config import settings
from celine.openid.core.healthcheck import is_healthly
from celine.openid.core.logging import setup_logging
from celine.openid.routes import register_routes
from celine.openid.security.auth_state import AuthStateStore

setup_logging()
logger = logging.getLogger(__name__)


def _log_stores() -> None:
    logger.info("Realm file: %s", settings.realms_path)
    logger.info("User file: %s", settings.users_path)
    if settings.state_ttl_seconds is None:
        logger.warning("Login state in %s never expires", settings.state_dir)
    else:
        logger.info(
            "Login state in %s (ttl %ss)", settings.state_dir, settings.state_ttl_seconds
        )
    if settings.ticket_secret.get_secret_value().startswith("change-me"):
        logger.warning("TICKET_SECRET is not set, tickets use the built-in default key")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s mode)", settings.app_name, settings.env)
    _log_stores()

    failed = await is_healthly()
    if failed:
        raise RuntimeError(f"System failed health check at startup: {', '.join(failed)}")

    # records abandoned while the service was down
    purged = AuthStateStore(
        settings.state_dir, ttl_seconds=settings.state_ttl_seconds
    ).purge_expired()
    if purged:
        logger.info("Purged %d expired login state record(s)", purged)

    yield

    logger.info("Shutting down %s", settings.app_name)


def create_app(use_lifespan: bool = True) -> FastAPI:
    if os.getenv("DEBUG_ATTACH") == "1":
        import debugpy

        debugpy.listen(("0.0.0.0", 5678))
        logger.info("Debugger listening on 0.0.0.0:5678")

    app = FastAPI(
        title=settings.app_name,
        description="OpenID Connect login completion and account provisioning",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )
    register_routes(app)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host=settings.host, port=settings.port)
