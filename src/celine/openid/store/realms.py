# openid/store/realms.py
from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from celine.openid.core.errors import (
    InvalidPolicy,
    InvalidRealmConfig,
    UnknownRealm,
    WrongRealmType,
)
from celine.openid.store.locking import load_yaml_file

logger = logging.getLogger(__name__)

REALM_ID_RE = re.compile(r"^[A-Za-z][A-Za-z0-9.\-_]+$")


class UsernameClaim(str, Enum):
    SUBJECT = "subject"
    USERNAME = "username"
    EMAIL = "email"


class RealmConfig(BaseModel):
    """
    OpenID realm as stored in the realm file.

    Keys use the dashed spelling of the file (``issuer-url``, ``client-id``,
    ...), attribute access uses the python names.
    """

    realm_id: str
    type: str = "openid"
    issuer_url: str = Field(..., alias="issuer-url")
    client_id: str = Field(..., alias="client-id")
    client_key: Optional[str] = Field(default=None, alias="client-key")
    username_claim: UsernameClaim = Field(
        default=UsernameClaim.SUBJECT, alias="username-claim"
    )
    autocreate: bool = False

    scopes: str = "email profile"
    prompt: Optional[str] = None
    acr_values: Optional[str] = Field(default=None, alias="acr-values")
    comment: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("realm_id")
    def realm_id_format(cls, v):
        if not REALM_ID_RE.match(v) or len(v) > 32:
            raise ValueError(f"invalid realm id '{v}'")
        return v


def parse_realm(realm_id: str, raw: Dict[str, Any]) -> RealmConfig:
    """
    Build a ``RealmConfig`` from its raw mapping.

    The username claim policy is checked here, once per load, so an unknown
    value never reaches the login flow.
    """
    claim = raw.get("username-claim", raw.get("username_claim"))
    if claim is not None and claim not in {c.value for c in UsernameClaim}:
        raise InvalidPolicy(claim)

    return RealmConfig.model_validate({"realm_id": realm_id, **raw})


class RealmResolver:
    """Fresh lookups of OpenID realms from the realm file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load_ids(self) -> Dict[str, Dict[str, Any]]:
        data = load_yaml_file(self.path, allow_missing=True)
        realms = data.get("realms") or {}
        if not isinstance(realms, dict):
            raise InvalidRealmConfig(f"'realms' in {self.path} must be a mapping")
        for realm_id, raw in realms.items():
            if not isinstance(raw, dict):
                raise InvalidRealmConfig(
                    f"realm '{realm_id}' in {self.path} must be a mapping"
                )
        return realms

    def resolve(self, realm_id: str) -> RealmConfig:
        ids = self._load_ids()

        raw = ids.get(realm_id)
        if not raw:
            raise UnknownRealm(realm_id)

        realm_type = raw.get("type", "")
        if realm_type != "openid":
            raise WrongRealmType(realm_id, realm_type)

        try:
            return parse_realm(realm_id, raw)
        except ValidationError as exc:
            logger.error("Invalid configuration for realm %s: %s", realm_id, exc)
            raise

    def list_realms(self) -> Dict[str, Dict[str, Any]]:
        """Raw view of every realm, regardless of type."""
        return self._load_ids()
