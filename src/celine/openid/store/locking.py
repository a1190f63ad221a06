# openid/store/locking.py
"""
File primitives shared by the realm and user stores.

Every read-modify-write of a store file must happen inside a single
``exclusive_lock`` acquisition on that file.
"""
from __future__ import annotations

import fcntl
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

import yaml

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT = 10.0


class LockTimeout(RuntimeError):
    pass


def lock_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.lock")


@contextmanager
def exclusive_lock(path: Path, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
    """
    Hold an exclusive advisory lock on ``path`` for the duration of the block.

    The lock lives on a sibling ``.lock`` file opened for each acquisition, so
    it serialises threads of this process as well as other processes.
    """
    lock_file = lock_path_for(path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(lock_file, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeout(f"can't acquire lock '{lock_file}'")
                time.sleep(0.01)

        logger.debug("Acquired lock %s", lock_file)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def with_exclusive_lock(
    path: Path,
    fn: Callable[[], T],
    errmsg: str | None = None,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> T:
    """Run ``fn`` under the exclusive lock of ``path`` and return its result."""
    try:
        with exclusive_lock(path, timeout=timeout):
            return fn()
    except LockTimeout:
        if errmsg:
            logger.error("%s: lock timeout on %s", errmsg, path)
        raise


def load_yaml_file(path: Path, allow_missing: bool = False) -> dict[str, Any]:
    if not path.exists():
        if allow_missing:
            return {}
        raise FileNotFoundError(f"YAML file does not exist: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML file {path} must contain a mapping")
    return data


def write_yaml_file(path: Path, data: dict[str, Any]) -> None:
    """Replace ``path`` atomically with the YAML rendering of ``data``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
