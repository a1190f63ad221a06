# tests/support.py
import time
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import yaml
from jose import jwt

from celine.openid.security.oidc import pkce_challenge

ISSUER = "https://idp.example.com"
CLIENT_ID = "celine-web"
CLIENT_SECRET = "s3cr3t-client-key"
REDIRECT_URL = "https://celine.example.com"


class FakeProvider:
    """
    Minimal OpenID provider served through ``httpx.MockTransport``.

    ``authorize`` plays the user agent: it reads the authorization URL and
    registers a code that the token endpoint will redeem for ``claims``.
    """

    def __init__(self):
        self.codes: Dict[str, Dict[str, Any]] = {}
        self.userinfo: Optional[Dict[str, Any]] = None
        self.discovery_status = 200
        self.token_requests = 0

    @property
    def metadata(self) -> Dict[str, Any]:
        data = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "id_token_signing_alg_values_supported": ["HS256", "RS256"],
            "token_endpoint_auth_methods_supported": ["client_secret_basic"],
        }
        if self.userinfo is not None:
            data["userinfo_endpoint"] = f"{ISSUER}/userinfo"
        return data

    def authorize(self, url: str, claims: Dict[str, Any]) -> tuple[str, str]:
        query = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
        code = f"code-{len(self.codes) + 1}"
        self.codes[code] = {
            "claims": claims,
            "nonce": query["nonce"],
            "challenge": query["code_challenge"],
            "redirect_uri": query["redirect_uri"],
        }
        return query["state"], code

    def _id_token(self, entry: Dict[str, Any]) -> str:
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + 300,
            "nonce": entry["nonce"],
            **entry["claims"],
        }
        return jwt.encode(payload, CLIENT_SECRET, algorithm="HS256")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path == "/.well-known/openid-configuration":
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status)
            return httpx.Response(200, json=self.metadata)

        if path == "/token":
            self.token_requests += 1
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            entry = self.codes.pop(form.get("code", ""), None)
            if entry is None:
                return httpx.Response(400, json={"error": "invalid_grant"})
            if pkce_challenge(form.get("code_verifier", "")) != entry["challenge"]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            if form.get("redirect_uri") != entry["redirect_uri"]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            if "authorization" not in request.headers:
                return httpx.Response(401, json={"error": "invalid_client"})
            return httpx.Response(
                200,
                json={
                    "access_token": "access-" + form["code"],
                    "token_type": "Bearer",
                    "id_token": self._id_token(entry),
                },
            )

        if path == "/userinfo" and self.userinfo is not None:
            return httpx.Response(200, json=self.userinfo)

        return httpx.Response(404)


def write_yaml(path: Path, data: Dict[str, Any]) -> Path:
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path
