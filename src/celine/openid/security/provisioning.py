# openid/security/provisioning.py
"""
Account provisioning for OpenID logins.

Both operations re-read the user file inside their own exclusive lock and
commit before releasing it, so a decision is never based on a read taken
outside the lock.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, List, Mapping, Sequence

from celine.openid.core.errors import AccountDisabled, NoSuchAccount
from celine.openid.store.users import UserRecord, UserStoreFile

logger = logging.getLogger(__name__)


class ProvisionOutcome(str, Enum):
    CREATED = "created"
    EXISTING = "existing"


def _optional_claim(claims: Mapping[str, Any], name: str) -> str | None:
    value = claims.get(name)
    return value if isinstance(value, str) and value else None


def record_from_claims(claims: Mapping[str, Any]) -> UserRecord:
    return UserRecord(
        enable=True,
        email=_optional_claim(claims, "email"),
        firstname=_optional_claim(claims, "given_name"),
        lastname=_optional_claim(claims, "family_name"),
    )


class UserProvisioner:
    def __init__(self, users: UserStoreFile):
        self.users = users

    def ensure_account(
        self,
        username: str,
        claims: Mapping[str, Any],
        autocreate: bool,
    ) -> ProvisionOutcome:
        def _ensure() -> ProvisionOutcome:
            store = self.users.read()

            existing = store.users.get(username)
            if existing is not None:
                if not existing.is_usable():
                    raise AccountDisabled(f"user '{username}' is disabled")
                return ProvisionOutcome.EXISTING

            if not autocreate:
                raise NoSuchAccount(f"no such user ('{username}')")

            store.add_user(username, record_from_claims(claims))
            self.users.write(store)
            return ProvisionOutcome.CREATED

        outcome = self.users.transaction(_ensure, errmsg=f"creating user '{username}' failed")
        if outcome is ProvisionOutcome.CREATED:
            logger.info("Created user '%s' from OpenID claims", username)
        return outcome

    def sync_groups(self, username: str, claimed_groups: Sequence[str]) -> List[str]:
        """
        Add ``username`` to every claimed group that already exists.

        Unknown groups are skipped. Returns the groups that were joined.
        """

        def _sync() -> List[str]:
            added: List[str] = []
            store = self.users.read()

            if username not in store.users:
                logger.warning("openid: cannot sync groups of unknown user '%s'", username)
                return added

            for claimed_group in claimed_groups:
                if not isinstance(claimed_group, str) or claimed_group not in store.groups:
                    logger.warning("openid: no such group '%s'", claimed_group)
                    continue

                if store.add_user_group(username, claimed_group):
                    added.append(claimed_group)

            if added:
                self.users.write(store)
            return added

        added = self.users.transaction(_sync, errmsg=f"updating groups of '{username}' failed")
        if added:
            logger.info("Added user '%s' to groups %s", username, added)
        return added
