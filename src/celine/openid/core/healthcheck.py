from __future__ import annotations

import os
from typing import List

from fastapi.concurrency import run_in_threadpool

from celine.openid.core.config import settings
from celine.openid.core.logging import logging
from celine.openid.store.locking import load_yaml_file

logger = logging.getLogger(__name__)


def _check_stores() -> List[str]:
    """Return the names of the stores that are not usable."""
    failed: List[str] = []

    for name, path in (("realms", settings.realms_path), ("users", settings.users_path)):
        try:
            load_yaml_file(path, allow_missing=True)
            logger.info("Store %s (%s): OK", name, path)
        except Exception as e:
            logger.error("Store %s (%s) is unreadable: %s", name, path, e)
            failed.append(name)

    state_dir = settings.state_dir
    try:
        state_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        if not os.access(state_dir, os.W_OK):
            raise PermissionError(f"{state_dir} is not writable")
        logger.info("State directory %s: OK", state_dir)
    except OSError as e:
        logger.error("State directory %s is not usable: %s", state_dir, e)
        failed.append("state")

    return failed


async def is_healthly() -> List[str]:
    return await run_in_threadpool(_check_stores)
