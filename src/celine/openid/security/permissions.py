# openid/security/permissions.py
"""
ACL evaluation over the user store.

Rules:
- ACL entries are evaluated from ``/`` down to the requested path
- entries on a parent path only apply when they propagate
- on a given path, roles granted to the user replace roles granted to
  its groups; roles found on a deeper path replace shallower ones
- ``NoAccess`` yields no privileges at all
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Set

from celine.openid.store.users import UserStore

logger = logging.getLogger(__name__)

PRIVILEGES: List[str] = [
    "Datastore.Allocate",
    "Datastore.AllocateSpace",
    "Datastore.AllocateTemplate",
    "Datastore.Audit",
    "Group.Allocate",
    "Permissions.Modify",
    "Pool.Allocate",
    "Pool.Audit",
    "Realm.Allocate",
    "Realm.AllocateUser",
    "SDN.Allocate",
    "SDN.Audit",
    "SDN.Use",
    "Sys.Audit",
    "Sys.Console",
    "Sys.Modify",
    "Sys.PowerMgmt",
    "Sys.Syslog",
    "User.Modify",
    "VM.Allocate",
    "VM.Audit",
    "VM.Backup",
    "VM.Config.Options",
    "VM.Console",
    "VM.Migrate",
    "VM.Monitor",
    "VM.PowerMgmt",
    "VM.Snapshot",
]

BUILTIN_ROLES: Dict[str, List[str]] = {
    "Administrator": list(PRIVILEGES),
    "NoAccess": [],
    "PVEAuditor": [
        "Datastore.Audit",
        "Pool.Audit",
        "SDN.Audit",
        "Sys.Audit",
        "VM.Audit",
    ],
    "PVEVMUser": [
        "VM.Audit",
        "VM.Backup",
        "VM.Config.Options",
        "VM.Console",
        "VM.PowerMgmt",
    ],
    "PVEDatastoreUser": ["Datastore.AllocateSpace", "Datastore.Audit"],
    "PVEUserAdmin": ["Group.Allocate", "Realm.AllocateUser", "User.Modify"],
    "PVESDNUser": ["SDN.Audit", "SDN.Use"],
}

# top level path component -> privileges reported in that capability group
CAPABILITY_PATTERNS: Dict[str, re.Pattern] = {
    "vms": re.compile(r"^(VM\.|Permissions\.Modify)"),
    "access": re.compile(r"^((User|Group)\.|Permissions\.Modify)"),
    "storage": re.compile(r"^(Datastore\.|Permissions\.Modify)"),
    "nodes": re.compile(r"^(Sys\.|Permissions\.Modify)"),
    "sdn": re.compile(r"^(SDN\.|Permissions\.Modify)"),
    "dc": re.compile(r"^(Sys\.Audit|Sys\.Modify|SDN\.)"),
}

REQUIRED_PATHS = ["/", "/nodes", "/access/groups", "/vms", "/storage", "/sdn"]


def normalize_path(path: str) -> str:
    parts = [p for p in path.split("/") if p]
    return "/" + "/".join(parts)


def _path_chain(path: str) -> List[str]:
    parts = [p for p in normalize_path(path).split("/") if p]
    return ["/"] + ["/" + "/".join(parts[: i + 1]) for i in range(len(parts))]


def _user_groups(store: UserStore, username: str) -> Set[str]:
    groups = set(store.users[username].groups)
    groups.update(gid for gid, group in store.groups.items() if username in group.users)
    return groups


def roles(store: UserStore, username: str, path: str) -> Set[str]:
    user = store.users.get(username)
    if user is None or not user.is_usable():
        return set()

    groups = _user_groups(store, username)
    target = normalize_path(path)

    result: Set[str] = set()
    for level in _path_chain(target):
        entries = [e for e in store.acl if normalize_path(e.path) == level]
        if level != target:
            entries = [e for e in entries if e.propagate]
        if not entries:
            continue

        user_roles = {e.roleid for e in entries if e.type == "user" and e.ugid == username}
        group_roles = {e.roleid for e in entries if e.type == "group" and e.ugid in groups}

        if user_roles:
            result = user_roles
        elif group_roles:
            result = group_roles

    return result


def _role_privileges(store: UserStore, roleid: str) -> Iterable[str]:
    if roleid in BUILTIN_ROLES:
        return BUILTIN_ROLES[roleid]
    privs = store.roles.get(roleid)
    if privs is None:
        logger.warning("ACL references unknown role '%s'", roleid)
        return []
    return privs


def permissions(store: UserStore, username: str, path: str) -> Set[str]:
    granted = roles(store, username, path)
    if "NoAccess" in granted:
        return set()

    privs: Set[str] = set()
    for roleid in granted:
        privs.update(_role_privileges(store, roleid))
    return privs


def check(store: UserStore, username: str, path: str, privs: Iterable[str]) -> bool:
    held = permissions(store, username, path)
    return all(p in held for p in privs)


def compute_api_permission(store: UserStore, username: str) -> Dict[str, Dict[str, int]]:
    """Privileges of ``username`` grouped by capability area."""
    res: Dict[str, Dict[str, int]] = {area: {} for area in CAPABILITY_PATTERNS}

    paths = list(REQUIRED_PATHS) + [normalize_path(e.path) for e in store.acl]
    checked: Set[str] = set()

    for path in paths:
        if path in checked:
            continue
        checked.add(path)

        path_perm = permissions(store, username, path)
        match = re.match(r"^/(\w+)", path)
        toplevel = match.group(1) if match else "dc"

        if toplevel == "pool":
            for priv in path_perm:
                if priv.startswith("VM."):
                    res["vms"][priv] = 1
                elif priv.startswith("Datastore."):
                    res["storage"][priv] = 1
                elif priv == "Permissions.Modify":
                    res["storage"][priv] = 1
                    res["vms"][priv] = 1
            continue

        pattern = CAPABILITY_PATTERNS.get(toplevel)
        if pattern is None:
            continue
        for priv in path_perm:
            if pattern.match(priv):
                res[toplevel][priv] = 1

    return res
