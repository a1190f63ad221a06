# openid/security/login.py
"""
OpenID login flow.

``begin_login`` reports realm errors to the caller since nobody has
authenticated yet. ``complete_login`` never raises: every failure is logged
with its detail and the caller's address, and comes back as a
``LoginResult`` carrying only ``AuthenticationFailure``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi.concurrency import run_in_threadpool

from celine.openid.core.errors import AuthenticationFailure, LoginResult
from celine.openid.core.logging import get_audit_logger
from celine.openid.security.auth_state import AuthStateStore
from celine.openid.security.identity import resolve_username
from celine.openid.security.oidc import ProviderContext
from celine.openid.security.provisioning import UserProvisioner
from celine.openid.security.tickets import CredentialIssuer, SessionCredential
from celine.openid.store.realms import RealmConfig, RealmResolver

logger = logging.getLogger(__name__)
audit = get_audit_logger()


class LoginOrchestrator:
    def __init__(
        self,
        realms: RealmResolver,
        states: AuthStateStore,
        provisioner: UserProvisioner,
        issuer: CredentialIssuer,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.realms = realms
        self.states = states
        self.provisioner = provisioner
        self.issuer = issuer
        self._transport = transport

    async def _lookup_openid_auth(
        self, realm_id: str, redirect_url: str
    ) -> Tuple[RealmConfig, ProviderContext]:
        realm = await run_in_threadpool(self.realms.resolve, realm_id)
        provider = await ProviderContext.discover(
            realm, redirect_url, transport=self._transport
        )
        return realm, provider

    async def begin_login(self, realm_id: str, redirect_url: str) -> str:
        realm, provider = await self._lookup_openid_auth(realm_id, redirect_url)
        return await run_in_threadpool(self.states.begin, provider, realm.realm_id)

    async def _sync_groups(self, username: str, claims: Dict[str, Any]) -> None:
        groups = claims.get("groups")
        if not isinstance(groups, list):
            return
        try:
            await run_in_threadpool(self.provisioner.sync_groups, username, groups)
        except Exception as exc:
            logger.warning(
                "openid: updating groups of '%s' failed: %s", username, exc, exc_info=True
            )

    async def _complete(self, state: str, code: str, redirect_url: str) -> SessionCredential:
        realm_id, private_state = await run_in_threadpool(self.states.recover, state)

        realm, provider = await self._lookup_openid_auth(realm_id, redirect_url)

        claims = await provider.verify_authorization_code(code, private_state)

        username = resolve_username(claims, realm)

        outcome = await run_in_threadpool(
            self.provisioner.ensure_account, username, claims, realm.autocreate
        )
        logger.debug("Account '%s' provisioning outcome: %s", username, outcome.value)

        await self._sync_groups(username, claims)

        return await run_in_threadpool(self.issuer.issue, username)

    async def complete_login(
        self,
        state: str,
        code: str,
        redirect_url: str,
        client_ip: Optional[str] = None,
    ) -> LoginResult:
        try:
            credential = await self._complete(state, code, redirect_url)
        except Exception as exc:
            logger.error(
                "openid authentication failure; rhost=%s msg=%s: %s",
                client_ip or "",
                type(exc).__name__,
                exc,
            )
            # do not return any detail to prevent user enumeration
            return LoginResult(error=AuthenticationFailure())

        audit.info("successful openid auth for user '%s'", credential.username)
        return LoginResult(credential=credential)
