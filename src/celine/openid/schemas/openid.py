# openid/schemas/openid.py
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class DirectoryEntry(BaseModel):
    subdir: str


class AuthUrlRequest(BaseModel):
    realm: str = Field(..., min_length=2, max_length=32, description="Authentication realm")
    redirect_url: str = Field(
        ...,
        alias="redirect-url",
        max_length=255,
        description="Redirection Url. The client should set this to the used server url (location.origin).",
    )

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LoginRequest(BaseModel):
    state: str = Field(..., max_length=1024, description="OpenId state.")
    code: str = Field(..., max_length=1024, description="OpenId authorization code.")
    redirect_url: str = Field(
        ...,
        alias="redirect-url",
        max_length=255,
        description="Redirection Url. The client should set this to the used server url (location.origin).",
    )

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LoginResponse(BaseModel):
    ticket: str
    username: str
    csrf_token: str = Field(..., alias="CSRFPreventionToken")
    # computed api permissions
    cap: Dict[str, Dict[str, int]]
    clustername: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
