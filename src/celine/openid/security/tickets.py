# openid/security/tickets.py
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from jose import JWTError, jwt

from celine.openid.core.errors import InvalidTicket
from celine.openid.security import permissions
from celine.openid.store.users import UserStoreFile

logger = logging.getLogger(__name__)

TICKET_ISSUER = "celine-openid"
TICKET_ALGORITHM = "HS256"

# accepted clock skew for tokens minted "in the future"
MAX_CLOCK_SKEW = 300


@dataclass(frozen=True)
class SessionCredential:
    ticket: str
    username: str
    csrf_token: str
    cap: Dict[str, Dict[str, int]] = field(default_factory=dict)
    clustername: Optional[str] = None


class CredentialIssuer:
    """
    Mints session credentials for an already provisioned user.

    Reads the committed user file and never writes it.
    """

    def __init__(
        self,
        users: UserStoreFile,
        *,
        ticket_secret: str,
        csrf_secret: str,
        ticket_lifetime: int = 7200,
        cluster_name: Optional[str] = None,
    ):
        self.users = users
        self._ticket_secret = ticket_secret
        self._csrf_secret = csrf_secret
        self.ticket_lifetime = ticket_lifetime
        self.cluster_name = cluster_name

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def assemble_ticket(self, username: str, now: Optional[int] = None) -> str:
        iat = int(time.time()) if now is None else now
        claims = {
            "iss": TICKET_ISSUER,
            "sub": username,
            "iat": iat,
            "exp": iat + self.ticket_lifetime,
        }
        return jwt.encode(claims, self._ticket_secret, algorithm=TICKET_ALGORITHM)

    def verify_ticket(self, ticket: str) -> str:
        """Return the username carried by ``ticket``."""
        try:
            claims = jwt.decode(
                ticket,
                self._ticket_secret,
                algorithms=[TICKET_ALGORITHM],
                issuer=TICKET_ISSUER,
            )
        except JWTError as exc:
            raise InvalidTicket(f"invalid ticket: {exc}") from exc

        username = claims.get("sub")
        if not isinstance(username, str) or not username:
            raise InvalidTicket("ticket without subject")
        return username

    # ------------------------------------------------------------------
    # CSRF prevention tokens
    # ------------------------------------------------------------------

    def _csrf_digest(self, timestamp: str, username: str) -> str:
        digest = hmac.new(
            self._csrf_secret.encode("utf-8"),
            f"{timestamp}:{username}".encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii").rstrip("=")

    def assemble_csrf_prevention_token(self, username: str, now: Optional[int] = None) -> str:
        timestamp = f"{int(time.time()) if now is None else now:08X}"
        return f"{timestamp}:{self._csrf_digest(timestamp, username)}"

    def verify_csrf_prevention_token(
        self, username: str, token: str, now: Optional[int] = None
    ) -> bool:
        timestamp, sep, digest = token.partition(":")
        if not sep:
            return False
        try:
            issued = int(timestamp, 16)
        except ValueError:
            return False

        if not hmac.compare_digest(digest, self._csrf_digest(timestamp, username)):
            return False

        age = (int(time.time()) if now is None else now) - issued
        return -MAX_CLOCK_SKEW <= age <= self.ticket_lifetime

    # ------------------------------------------------------------------
    # Session credential
    # ------------------------------------------------------------------

    def issue(self, username: str) -> SessionCredential:
        store = self.users.read()

        clustername = None
        if self.cluster_name and permissions.check(store, username, "/", ["Sys.Audit"]):
            clustername = self.cluster_name

        return SessionCredential(
            ticket=self.assemble_ticket(username),
            username=username,
            csrf_token=self.assemble_csrf_prevention_token(username),
            cap=permissions.compute_api_permission(store, username),
            clustername=clustername,
        )
