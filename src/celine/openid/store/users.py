# openid/store/users.py
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from celine.openid.core.errors import AccountConflict
from celine.openid.store.locking import load_yaml_file, with_exclusive_lock, write_yaml_file

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UserRecord(BaseModel):
    enable: bool = True
    # epoch seconds, 0 means the account never expires
    expire: int = 0
    email: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    comment: Optional[str] = None
    groups: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def is_usable(self, now: Optional[float] = None) -> bool:
        if not self.enable:
            return False
        if self.expire and self.expire < (now if now is not None else time.time()):
            return False
        return True


class GroupRecord(BaseModel):
    users: List[str] = Field(default_factory=list)
    comment: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class AclEntry(BaseModel):
    path: str
    ugid: str
    type: Literal["user", "group"] = "user"
    roleid: str
    propagate: bool = True

    model_config = ConfigDict(extra="allow")


class UserStore(BaseModel):
    """
    In-memory view of the user file.

    Keys this service does not manage (tokens, keys, pools, ...) are kept as
    extras so a rewrite never drops them.
    """

    users: Dict[str, UserRecord] = Field(default_factory=dict)
    groups: Dict[str, GroupRecord] = Field(default_factory=dict)
    roles: Dict[str, List[str]] = Field(default_factory=dict)
    acl: List[AclEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def add_user(self, username: str, record: UserRecord) -> None:
        if username in self.users:
            raise AccountConflict(f"user '{username}' already exists")
        self.users[username] = record

    def add_user_group(self, username: str, groupid: str) -> bool:
        """
        Add ``username`` to ``groupid`` on both sides of the relation.

        Returns False when the membership already existed.
        """
        user = self.users[username]
        group = self.groups[groupid]

        changed = False
        if groupid not in user.groups:
            user.groups.append(groupid)
            changed = True
        if username not in group.users:
            group.users.append(username)
            changed = True
        return changed


class UserStoreFile:
    """
    The user file plus its lock.

    ``read()`` is an unlocked snapshot for read-only consumers. Anything that
    writes must run its read and its ``write()`` inside one ``transaction``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> UserStore:
        return UserStore.model_validate(load_yaml_file(self.path, allow_missing=True))

    def write(self, store: UserStore) -> None:
        write_yaml_file(self.path, store.model_dump(mode="json", exclude_none=True))

    def transaction(self, fn: Callable[[], T], errmsg: Optional[str] = None) -> T:
        return with_exclusive_lock(self.path, fn, errmsg=errmsg)
