# openid/security/oidc.py
"""
Relying-party side of the OpenID Connect authorization code flow.

Transport goes through httpx, ID token signatures and standard claims are
validated by python-jose. The login flow only calls ``discover``,
``authorize_url`` and ``verify_authorization_code``.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from celine.openid.core.config import settings
from celine.openid.core.errors import LoginError, ProviderUnavailable
from celine.openid.store.realms import RealmConfig

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"
REQUIRED_METADATA = ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri")
DEFAULT_SIGNING_ALGS = ["RS256"]


class InvalidIdToken(LoginError):
    """The token response or the ID token it carries failed validation."""


def _base64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


def _random_url_string(length: int = 32) -> str:
    return _base64url_encode(secrets.token_bytes(length))


def pkce_challenge(verifier: str) -> str:
    """S256 code challenge (RFC 7636)."""
    return _base64url_encode(hashlib.sha256(verifier.encode("ascii")).digest())


@dataclass(frozen=True)
class PrivateAuthState:
    """Verification material that never leaves the server."""

    nonce: str
    pkce_verifier: str
    ctime: int

    @classmethod
    def generate(cls, ctime: int) -> "PrivateAuthState":
        return cls(
            nonce=_random_url_string(16),
            pkce_verifier=_random_url_string(32),
            ctime=ctime,
        )

    @property
    def pkce_challenge(self) -> str:
        return pkce_challenge(self.pkce_verifier)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _normalize_issuer(url: str) -> str:
    return url.rstrip("/")


class ProviderContext:
    """A realm bound to the discovered metadata of its provider."""

    def __init__(
        self,
        realm: RealmConfig,
        redirect_url: str,
        metadata: Dict[str, Any],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.realm = realm
        self.redirect_url = redirect_url
        self.metadata = metadata
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.oidc_http_timeout

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @classmethod
    async def discover(
        cls,
        realm: RealmConfig,
        redirect_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> "ProviderContext":
        url = _normalize_issuer(realm.issuer_url) + DISCOVERY_PATH
        timeout = timeout if timeout is not None else settings.oidc_http_timeout

        try:
            async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                metadata = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(
                f"discovery of '{url}' failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"discovery of '{url}' failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"discovery document at '{url}' is not JSON") from e

        if not isinstance(metadata, dict):
            raise ProviderUnavailable(f"discovery document at '{url}' is not an object")

        missing = [k for k in REQUIRED_METADATA if not metadata.get(k)]
        if missing:
            raise ProviderUnavailable(
                f"discovery document at '{url}' lacks {', '.join(missing)}"
            )

        if _normalize_issuer(metadata["issuer"]) != _normalize_issuer(realm.issuer_url):
            raise ProviderUnavailable(
                f"issuer mismatch: expected '{realm.issuer_url}', "
                f"got '{metadata['issuer']}'"
            )

        logger.debug("Discovered provider %s for realm %s", url, realm.realm_id)
        return cls(realm, redirect_url, metadata, transport=transport, timeout=timeout)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    # ------------------------------------------------------------------
    # Authorization request
    # ------------------------------------------------------------------

    def authorize_url(self, public_state: str, private_state: PrivateAuthState) -> str:
        query_params = {
            "response_type": "code",
            "client_id": self.realm.client_id,
            "redirect_uri": self.redirect_url,
            "scope": " ".join(["openid", *self.realm.scopes.split()]),
            "state": public_state,
            "nonce": private_state.nonce,
            "code_challenge": private_state.pkce_challenge,
            "code_challenge_method": "S256",
        }
        if self.realm.prompt:
            query_params["prompt"] = self.realm.prompt
        if self.realm.acr_values:
            query_params["acr_values"] = self.realm.acr_values

        endpoint = self.metadata["authorization_endpoint"]
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(query_params)}"

    # ------------------------------------------------------------------
    # Code exchange
    # ------------------------------------------------------------------

    def _client_auth(self, data: Dict[str, str]) -> Optional[httpx.BasicAuth]:
        if not self.realm.client_key:
            return None

        methods = self.metadata.get("token_endpoint_auth_methods_supported")
        if methods and "client_secret_basic" not in methods and "client_secret_post" in methods:
            data["client_secret"] = self.realm.client_key
            return None
        return httpx.BasicAuth(self.realm.client_id, self.realm.client_key)

    async def _token_request(self, code: str, private_state: PrivateAuthState) -> Dict[str, Any]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_url,
            "client_id": self.realm.client_id,
            "code_verifier": private_state.pkce_verifier,
        }
        auth = self._client_auth(data)

        try:
            async with self._client() as client:
                resp = await client.post(self.metadata["token_endpoint"], data=data, auth=auth)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(
                f"token request failed with status {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"token request failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable("token response is not JSON") from e

    async def _fetch_json(self, url: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.get(url, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"request to '{url}' failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"response from '{url}' is not JSON") from e

    async def _signing_key(self, alg: str) -> Any:
        if alg.startswith("HS"):
            # HMAC signed ID tokens use the client secret as key
            if not self.realm.client_key:
                raise InvalidIdToken(f"ID token signed with {alg} but realm has no client key")
            return self.realm.client_key
        return await self._fetch_json(self.metadata["jwks_uri"])

    async def _decode_id_token(
        self, id_token: str, access_token: Optional[str]
    ) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(id_token)
        except JWTError as e:
            raise InvalidIdToken(f"malformed ID token: {e}") from e

        alg = header.get("alg")
        allowed = self.metadata.get("id_token_signing_alg_values_supported") or DEFAULT_SIGNING_ALGS
        if not alg or alg == "none" or alg not in allowed:
            raise InvalidIdToken(f"ID token signed with unsupported algorithm '{alg}'")

        key = await self._signing_key(alg)

        try:
            return jwt.decode(
                id_token,
                key,
                algorithms=[alg],
                audience=self.realm.client_id,
                issuer=self.metadata["issuer"],
                access_token=access_token,
            )
        except JWTError as e:
            raise InvalidIdToken(f"ID token validation failed: {e}") from e

    async def verify_authorization_code(
        self, code: str, private_state: PrivateAuthState
    ) -> Dict[str, Any]:
        """
        Exchange ``code`` for tokens and return the verified claims.

        ID token claims take precedence; userinfo only fills claims the ID
        token does not carry.
        """
        token_response = await self._token_request(code, private_state)

        id_token = token_response.get("id_token")
        if not isinstance(id_token, str):
            raise InvalidIdToken("token response lacks an id_token")
        access_token = token_response.get("access_token")

        claims = await self._decode_id_token(id_token, access_token)

        if claims.get("nonce") != private_state.nonce:
            raise InvalidIdToken("nonce mismatch")

        userinfo_endpoint = self.metadata.get("userinfo_endpoint")
        if userinfo_endpoint and access_token:
            userinfo = await self._fetch_json(
                userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if userinfo.get("sub") != claims.get("sub"):
                raise InvalidIdToken("userinfo subject does not match ID token")
            for name, value in userinfo.items():
                claims.setdefault(name, value)

        return claims

