import pytest
from typing import Any, Dict

from celine.openid.store.realms import RealmConfig, UsernameClaim


@pytest.fixture
def claims() -> Dict[str, Any]:
    return {
        "sub": "abc",
        "preferred_username": "alice",
        "email": "a@x.com",
        "given_name": "Alice",
        "family_name": "Liddell",
    }


def make_realm(
    *,
    realm_id: str = "r1",
    username_claim: UsernameClaim = UsernameClaim.SUBJECT,
    autocreate: bool = False,
) -> RealmConfig:
    """
    Minimal RealmConfig.
    Only fields used by the login flow are provided.
    """
    return RealmConfig(
        realm_id=realm_id,
        issuer_url="https://idp.example.com",
        client_id="celine-web",
        username_claim=username_claim,
        autocreate=autocreate,
    )
