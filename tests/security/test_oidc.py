import time

import httpx
import pytest
from jose import jwt

from celine.openid.core.errors import ProviderUnavailable
from celine.openid.security.oidc import InvalidIdToken, PrivateAuthState, ProviderContext
from celine.openid.store.realms import RealmResolver

from tests.support import CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URL


@pytest.fixture
def realm(realms_path):
    return RealmResolver(realms_path).resolve("r1")


@pytest.fixture
def transport(provider):
    return httpx.MockTransport(provider.handler)


async def _context(realm, transport) -> ProviderContext:
    return await ProviderContext.discover(realm, REDIRECT_URL, transport=transport)


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_discover_binds_metadata(realm, transport):
    ctx = await _context(realm, transport)

    assert ctx.metadata["token_endpoint"] == f"{ISSUER}/token"
    assert ctx.redirect_url == REDIRECT_URL
    assert ctx.realm is realm


@pytest.mark.asyncio
async def test_discover_http_error(realm, provider, transport):
    provider.discovery_status = 503

    with pytest.raises(ProviderUnavailable):
        await _context(realm, transport)


@pytest.mark.asyncio
async def test_discover_connection_error(realm):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderUnavailable):
        await _context(realm, httpx.MockTransport(refuse))


@pytest.mark.asyncio
async def test_discover_rejects_issuer_mismatch(realm):
    def handler(request):
        return httpx.Response(
            200,
            json={
                "issuer": "https://evil.example.com",
                "authorization_endpoint": "https://evil.example.com/authorize",
                "token_endpoint": "https://evil.example.com/token",
                "jwks_uri": "https://evil.example.com/jwks",
            },
        )

    with pytest.raises(ProviderUnavailable):
        await _context(realm, httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_discover_rejects_incomplete_document(realm):
    def handler(request):
        return httpx.Response(200, json={"issuer": ISSUER})

    with pytest.raises(ProviderUnavailable):
        await _context(realm, httpx.MockTransport(handler))


# ----------------------------------------------------------------------
# Code exchange
# ----------------------------------------------------------------------


async def _authorized(realm, provider, transport, claims):
    ctx = await _context(realm, transport)
    private_state = PrivateAuthState.generate(ctime=int(time.time()))
    _, code = provider.authorize(ctx.authorize_url("S" * 43, private_state), claims)
    return ctx, private_state, code


@pytest.mark.asyncio
async def test_verify_authorization_code_returns_claims(realm, provider, transport):
    ctx, private_state, code = await _authorized(
        realm, provider, transport, {"sub": "abc", "email": "a@x.com", "groups": ["admins"]}
    )

    claims = await ctx.verify_authorization_code(code, private_state)

    assert claims["sub"] == "abc"
    assert claims["email"] == "a@x.com"
    assert claims["groups"] == ["admins"]
    assert claims["nonce"] == private_state.nonce


@pytest.mark.asyncio
async def test_verify_authorization_code_rejects_wrong_verifier(realm, provider, transport):
    ctx, _, code = await _authorized(realm, provider, transport, {"sub": "abc"})
    other_state = PrivateAuthState.generate(ctime=int(time.time()))

    with pytest.raises(ProviderUnavailable):
        await ctx.verify_authorization_code(code, other_state)


@pytest.mark.asyncio
async def test_verify_authorization_code_rejects_nonce_mismatch(realm, provider, transport):
    ctx, private_state, code = await _authorized(realm, provider, transport, {"sub": "abc"})
    provider.codes[code]["nonce"] = "not-the-nonce"

    with pytest.raises(InvalidIdToken):
        await ctx.verify_authorization_code(code, private_state)


@pytest.mark.asyncio
async def test_verify_authorization_code_rejects_foreign_signature(realm, provider, transport):
    ctx, private_state, code = await _authorized(realm, provider, transport, {"sub": "abc"})

    def forged(request):
        if request.url.path == "/token":
            now = int(time.time())
            token = jwt.encode(
                {
                    "iss": ISSUER,
                    "aud": CLIENT_ID,
                    "sub": "abc",
                    "iat": now,
                    "exp": now + 60,
                    "nonce": private_state.nonce,
                },
                "not-the-client-secret",
                algorithm="HS256",
            )
            return httpx.Response(200, json={"id_token": token})
        return provider.handler(request)

    ctx._transport = httpx.MockTransport(forged)

    with pytest.raises(InvalidIdToken):
        await ctx.verify_authorization_code(code, private_state)


@pytest.mark.asyncio
async def test_verify_authorization_code_requires_id_token(realm, provider, transport):
    ctx, private_state, code = await _authorized(realm, provider, transport, {"sub": "abc"})

    def no_id_token(request):
        return httpx.Response(200, json={"access_token": "x", "token_type": "Bearer"})

    ctx._transport = httpx.MockTransport(no_id_token)

    with pytest.raises(InvalidIdToken):
        await ctx.verify_authorization_code(code, private_state)


@pytest.mark.asyncio
async def test_userinfo_fills_missing_claims(realm, provider, transport):
    provider.userinfo = {"sub": "abc", "email": "a@x.com", "given_name": "Alice"}
    ctx, private_state, code = await _authorized(
        realm, provider, transport, {"sub": "abc", "given_name": "Alicia"}
    )

    claims = await ctx.verify_authorization_code(code, private_state)

    assert claims["email"] == "a@x.com"
    # ID token claims win over userinfo
    assert claims["given_name"] == "Alicia"


@pytest.mark.asyncio
async def test_userinfo_subject_must_match(realm, provider, transport):
    provider.userinfo = {"sub": "someone-else"}
    ctx, private_state, code = await _authorized(realm, provider, transport, {"sub": "abc"})

    with pytest.raises(InvalidIdToken):
        await ctx.verify_authorization_code(code, private_state)


def test_authorize_url_carries_realm_options(realm):
    ctx = ProviderContext(
        realm.model_copy(update={"prompt": "login", "acr_values": "mfa", "scopes": "email"}),
        REDIRECT_URL,
        {"authorization_endpoint": f"{ISSUER}/authorize?tenant=x"},
    )
    private_state = PrivateAuthState.generate(ctime=0)

    url = ctx.authorize_url("S" * 43, private_state)

    assert url.startswith(f"{ISSUER}/authorize?tenant=x&")
    assert "prompt=login" in url
    assert "acr_values=mfa" in url
    assert "scope=openid+email" in url
    assert CLIENT_SECRET not in url
