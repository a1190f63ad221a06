# openid/routes/openid.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from celine.openid.core.config import settings
from celine.openid.core.errors import (
    InvalidPolicy,
    InvalidRealmConfig,
    ProviderUnavailable,
    UnknownRealm,
    WrongRealmType,
)
from celine.openid.schemas.openid import (
    AuthUrlRequest,
    DirectoryEntry,
    LoginRequest,
    LoginResponse,
)
from celine.openid.security.auth_state import AuthStateStore
from celine.openid.security.login import LoginOrchestrator
from celine.openid.security.provisioning import UserProvisioner
from celine.openid.security.tickets import CredentialIssuer
from celine.openid.store.realms import RealmResolver
from celine.openid.store.users import UserStoreFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/openid")
tags = ["openid"]


def get_orchestrator() -> LoginOrchestrator:
    users = UserStoreFile(settings.users_path)
    return LoginOrchestrator(
        realms=RealmResolver(settings.realms_path),
        states=AuthStateStore(settings.state_dir, ttl_seconds=settings.state_ttl_seconds),
        provisioner=UserProvisioner(users),
        issuer=CredentialIssuer(
            users,
            ticket_secret=settings.ticket_secret.get_secret_value(),
            csrf_secret=settings.csrf_secret.get_secret_value(),
            ticket_lifetime=settings.ticket_lifetime_seconds,
            cluster_name=settings.cluster_name,
        ),
    )


@router.get("", response_model=List[DirectoryEntry], description="Directory index.")
async def index():
    return [
        DirectoryEntry(subdir="auth-url"),
        DirectoryEntry(subdir="login"),
    ]


@router.post(
    "/auth-url",
    response_model=str,
    description="Get the OpenId Authorization Url for the specified realm.",
)
async def auth_url(
    body: AuthUrlRequest,
    orchestrator: LoginOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.begin_login(body.realm, body.redirect_url)
    except (UnknownRealm, WrongRealmType) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (InvalidPolicy, InvalidRealmConfig, ValidationError) as exc:
        logger.error("Invalid configuration for realm %s: %s", body.realm, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Invalid realm configuration",
        ) from exc
    except ProviderUnavailable as exc:
        logger.error("OpenID discovery for realm %s failed: %s", body.realm, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    description="Verify OpenID authorization code and create a ticket.",
)
async def login(
    body: LoginRequest,
    request: Request,
    orchestrator: LoginOrchestrator = Depends(get_orchestrator),
):
    client_ip = request.client.host if request.client else None

    result = await orchestrator.complete_login(
        body.state,
        body.code,
        body.redirect_url,
        client_ip=client_ip,
    )

    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication failure",
        )

    credential = result.credential
    return LoginResponse(
        ticket=credential.ticket,
        username=credential.username,
        CSRFPreventionToken=credential.csrf_token,
        cap=credential.cap,
        clustername=credential.clustername,
    )
