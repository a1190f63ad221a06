# tests/conftest.py
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from celine.openid.main import create_app
from celine.openid.routes.openid import get_orchestrator
from celine.openid.security.auth_state import AuthStateStore
from celine.openid.security.login import LoginOrchestrator
from celine.openid.security.provisioning import UserProvisioner
from celine.openid.security.tickets import CredentialIssuer
from celine.openid.store.realms import RealmResolver
from celine.openid.store.users import UserStoreFile

from tests.support import CLIENT_ID, CLIENT_SECRET, ISSUER, FakeProvider, write_yaml


@pytest.fixture
def realms_path(tmp_path: Path) -> Path:
    common = {
        "type": "openid",
        "issuer-url": ISSUER,
        "client-id": CLIENT_ID,
        "client-key": CLIENT_SECRET,
    }
    return write_yaml(
        tmp_path / "domains.yaml",
        {
            "realms": {
                "r1": {**common, "username-claim": "email", "autocreate": True},
                "corp": {**common, "username-claim": "username", "autocreate": False},
                "sub": {**common, "autocreate": True},
                "pam": {"type": "pam", "comment": "Linux PAM"},
            }
        },
    )


@pytest.fixture
def users_path(tmp_path: Path) -> Path:
    return write_yaml(
        tmp_path / "user.yaml",
        {
            "users": {
                "alice@corp": {"enable": True, "email": "alice@example.com"},
                "bob@corp": {"enable": False},
                "carol@corp": {"enable": True, "expire": 1},
            },
            "groups": {
                "admins": {"users": [], "comment": "Administrators"},
                "auditors": {"users": []},
            },
            "acl": [
                {"path": "/", "ugid": "admins", "type": "group", "roleid": "Administrator"},
                {"path": "/", "ugid": "auditors", "type": "group", "roleid": "PVEAuditor"},
                {"path": "/vms", "ugid": "alice@corp", "type": "user", "roleid": "PVEVMUser"},
            ],
        },
    )


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "openid-state"


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def users(users_path: Path) -> UserStoreFile:
    return UserStoreFile(users_path)


@pytest.fixture
def issuer(users: UserStoreFile) -> CredentialIssuer:
    return CredentialIssuer(
        users,
        ticket_secret="ticket-secret",
        csrf_secret="csrf-secret",
        ticket_lifetime=7200,
        cluster_name="pve-lab",
    )


@pytest.fixture
def orchestrator(realms_path, state_dir, users, issuer, provider) -> LoginOrchestrator:
    return LoginOrchestrator(
        realms=RealmResolver(realms_path),
        states=AuthStateStore(state_dir, ttl_seconds=3600),
        provisioner=UserProvisioner(users),
        issuer=issuer,
        transport=httpx.MockTransport(provider.handler),
    )


@pytest.fixture
async def client(orchestrator):
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
