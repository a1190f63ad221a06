# openid/security/identity.py
from __future__ import annotations

import re
from typing import Any, Mapping

from celine.openid.core.errors import (
    InvalidPolicy,
    InvalidUsername,
    MissingClaim,
)
from celine.openid.store.realms import RealmConfig, UsernameClaim

USER_PART_RE = re.compile(r"^[^\s:/]+$")
REALM_PART_RE = re.compile(r"^[A-Za-z][A-Za-z0-9.\-_]+$")
MAX_USERNAME_LENGTH = 64
MAX_REALM_LENGTH = 32


def verify_username(username: str) -> str:
    """Check ``user@realm`` against the local naming convention."""
    if len(username) >= MAX_USERNAME_LENGTH:
        raise InvalidUsername(f"invalid username '{username}' - too long")

    user, sep, realm = username.rpartition("@")
    if not sep or not user or not realm:
        raise InvalidUsername(f"invalid username '{username}'")
    if len(realm) > MAX_REALM_LENGTH or not REALM_PART_RE.match(realm):
        raise InvalidUsername(f"invalid realm in username '{username}'")
    if not USER_PART_RE.match(user):
        raise InvalidUsername(f"invalid characters in username '{username}'")

    return username


def _string_claim(claims: Mapping[str, Any], name: str) -> str:
    value = claims.get(name)
    if not isinstance(value, str) or not value:
        raise MissingClaim(name)
    return value


def derive(claims: Mapping[str, Any], policy: UsernameClaim) -> str:
    """Pick the unique name for ``claims`` according to the realm's claim policy."""
    # sub is required by the protocol, even when another claim names the user
    subject = _string_claim(claims, "sub")

    if policy is UsernameClaim.SUBJECT:
        return subject
    if policy is UsernameClaim.USERNAME:
        return _string_claim(claims, "preferred_username")
    if policy is UsernameClaim.EMAIL:
        return _string_claim(claims, "email")

    raise InvalidPolicy(policy)


def resolve_username(claims: Mapping[str, Any], realm: RealmConfig) -> str:
    unique_name = derive(claims, realm.username_claim)
    return verify_username(f"{unique_name}@{realm.realm_id}")
