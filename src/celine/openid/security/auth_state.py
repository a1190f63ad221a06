# openid/security/auth_state.py
"""
Durable, single-use correlation between a public state token and the
private verification material of a pending OpenID login.

One JSON record per token lives in the state directory. A record is
consumed by renaming it to a name unique to the consuming call, which
the filesystem grants to exactly one caller.
"""
from __future__ import annotations

import json
import logging
import os
import re
import secrets
import tempfile
import time
import uuid
from pathlib import Path
from typing import Optional, Tuple

from celine.openid.core.errors import InvalidState
from celine.openid.security.oidc import PrivateAuthState, ProviderContext

logger = logging.getLogger(__name__)

STATE_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{16,128}$")
RECORD_SUFFIX = ".json"
TEMP_PREFIX = ".pending-"
CLAIMED_SUFFIX = ".claimed"


class AuthStateStore:
    def __init__(self, state_dir: Path, ttl_seconds: Optional[int] = None):
        self.state_dir = Path(state_dir)
        self.ttl_seconds = ttl_seconds

    def _record_path(self, token: str) -> Path:
        return self.state_dir / f"{token}{RECORD_SUFFIX}"

    def _write_record(self, token: str, payload: dict) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.state_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._record_path(token))
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def begin(self, provider: ProviderContext, realm_id: str) -> str:
        """Persist fresh verification material and return the authorization URL."""
        token = secrets.token_urlsafe(32)
        private_state = PrivateAuthState.generate(ctime=int(time.time()))

        self._write_record(token, {"realm": realm_id, **private_state.to_dict()})
        logger.debug("Stored pending OpenID login for realm %s", realm_id)

        return provider.authorize_url(token, private_state)

    def recover(self, public_state: str) -> Tuple[str, PrivateAuthState]:
        """Consume the record of ``public_state``. A token can be recovered once."""
        if not isinstance(public_state, str) or not STATE_TOKEN_RE.match(public_state):
            raise InvalidState("malformed state token")

        claimed = self.state_dir / f".{public_state}.{uuid.uuid4().hex}{CLAIMED_SUFFIX}"
        try:
            os.rename(self._record_path(public_state), claimed)
        except FileNotFoundError as exc:
            raise InvalidState("unknown or already used state token") from exc

        try:
            with claimed.open("r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as exc:
            raise InvalidState("unreadable state record") from exc
        finally:
            claimed.unlink(missing_ok=True)

        try:
            realm = record["realm"]
            private_state = PrivateAuthState(
                nonce=record["nonce"],
                pkce_verifier=record["pkce_verifier"],
                ctime=int(record["ctime"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidState("incomplete state record") from exc

        if self._expired(private_state.ctime):
            raise InvalidState("state token expired")

        return realm, private_state

    def _expired(self, ctime: int, now: Optional[float] = None) -> bool:
        if self.ttl_seconds is None:
            return False
        now = time.time() if now is None else now
        return ctime + self.ttl_seconds < now

    def purge_expired(self, now: Optional[float] = None) -> int:
        """
        Remove records older than the configured TTL. Returns the count removed.

        Temporary and claimed files left behind by an interrupted ``begin`` or
        ``recover`` are removed once their mtime is older than the TTL.
        """
        if self.ttl_seconds is None or not self.state_dir.exists():
            return 0

        removed = 0
        for path in self.state_dir.glob(f"*{RECORD_SUFFIX}"):
            if path.name.startswith("."):
                continue
            try:
                with path.open("r", encoding="utf-8") as f:
                    ctime = int(json.load(f).get("ctime", 0))
            except FileNotFoundError:
                # consumed by a concurrent recover
                continue
            except (OSError, ValueError, TypeError, AttributeError):
                logger.warning("Removing unreadable state record %s", path.name)
                ctime = 0

            if self._expired(ctime, now) and self._unlink(path):
                removed += 1

        for pattern in (f"{TEMP_PREFIX}*", f".*{CLAIMED_SUFFIX}"):
            for path in self.state_dir.glob(pattern):
                try:
                    mtime = path.stat().st_mtime
                except FileNotFoundError:
                    continue
                if self._expired(int(mtime), now) and self._unlink(path):
                    logger.info("Removed leftover state file %s", path.name)
                    removed += 1

        return removed

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
