# openid/core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "OpenID Login API"
    env: Literal["dev", "prod", "test"] = "dev"

    log_level: str = "INFO"

    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =============================================================================
    # Persisted stores
    # =============================================================================

    realms_path: Path = Field(
        default=Path("/etc/celine/domains.yaml"),
        description="YAML file holding the authentication realms",
    )
    users_path: Path = Field(
        default=Path("/etc/celine/user.yaml"),
        description="YAML file holding users, groups, roles and ACL entries",
    )

    # Directory holding one record per in-flight OpenID login
    state_dir: Path = Field(
        default=Path("/var/lib/celine-openid"),
        description="Directory for pending OpenID authorization state",
    )
    state_ttl_seconds: Optional[int] = Field(
        default=7 * 24 * 3600,
        description="Maximum age of a pending login state, None to keep forever",
    )

    # =============================================================================
    # Credentials
    # =============================================================================

    ticket_secret: SecretStr = Field(
        default=SecretStr("change-me-ticket-secret"),
        description="HMAC key used to sign session tickets",
    )
    csrf_secret: SecretStr = Field(
        default=SecretStr("change-me-csrf-secret"),
        description="HMAC key used to sign CSRF prevention tokens",
    )
    ticket_lifetime_seconds: int = Field(
        default=2 * 3600, description="Validity of an issued ticket"
    )

    cluster_name: Optional[str] = Field(
        default=None,
        description="Cluster name reported to users holding Sys.Audit on /",
    )

    # =============================================================================
    # OpenID provider access
    # =============================================================================

    oidc_http_timeout: float = Field(
        default=10.0, description="Timeout in seconds for provider requests"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
