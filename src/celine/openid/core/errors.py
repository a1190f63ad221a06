# openid/core/errors.py
"""
Error taxonomy for the OpenID login flow.

Realm lookup errors raised by ``begin-login`` are reported to the caller.
Everything raised while completing a login is collapsed into a single
``AuthenticationFailure`` before it leaves the service.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from celine.openid.security.tickets import SessionCredential


class LoginError(Exception):
    """Base class for every failure of the login flow."""


class UnknownRealm(LoginError):
    def __init__(self, realm: str):
        self.realm = realm
        super().__init__(f"authentication domain '{realm}' does not exist")


class WrongRealmType(LoginError):
    def __init__(self, realm: str, realm_type: str):
        self.realm = realm
        self.realm_type = realm_type
        super().__init__(f"wrong realm type ({realm_type} != openid)")


class ProviderUnavailable(LoginError):
    """Discovery or token exchange with the OpenID provider failed."""


class InvalidState(LoginError):
    """The public state token is unknown, malformed, expired or already used."""


class MissingClaim(LoginError):
    def __init__(self, claim: str):
        self.claim = claim
        super().__init__(f"missing claim '{claim}'")


class InvalidPolicy(LoginError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"got unexpected value for 'username-claim': '{value}'")


class InvalidRealmConfig(LoginError):
    """The realm file or one of its entries has the wrong shape."""


class InvalidUsername(LoginError):
    pass


class AccountDisabled(LoginError):
    pass


class NoSuchAccount(LoginError):
    pass


class AccountConflict(LoginError):
    pass


class InvalidTicket(LoginError):
    pass


class AuthenticationFailure(LoginError):
    """The only error a caller of ``complete-login`` ever sees."""

    def __init__(self, message: str = "authentication failure"):
        super().__init__(message)


@dataclass(frozen=True)
class LoginResult:
    credential: Optional["SessionCredential"] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.credential is not None
