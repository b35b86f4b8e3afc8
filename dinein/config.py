"""dinein configuration management.

Configuration sources:
1. Config file (config.yaml)
2. Environment variables (DINEIN_ prefix)
3. Defaults

The application builds one ``Settings`` instance at startup and hands it to
the components that need it; nothing in the auth core reads configuration
on its own.
"""

from __future__ import annotations

import base64
import binascii
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    api_version: str = "v1"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # Any SQLAlchemy async URL, e.g. postgresql+asyncpg://
    url: str = "sqlite+aiosqlite:///./dinein.db"
    echo: bool = False

    # Seconds to wait for a connection before treating the store as unreachable
    connect_timeout: float = 10.0

    # auto: use transactions, switch to sequential writes once the store
    #       reports it cannot run them
    # enabled: always use transactions
    # disabled: always use sequential writes with compensation
    transactions: Literal["auto", "enabled", "disabled"] = "auto"


class SecurityConfig(BaseModel):
    """Security configuration."""

    # Base64-encoded HMAC secret for the auth cookie, at least 32 bytes decoded
    cookie_secret: str | None = None

    # Outside production, sign cookies with a fixed placeholder when no
    # secret is configured. Never honoured in production.
    allow_insecure_cookie_secret: bool = False

    @field_validator("cookie_secret")
    @classmethod
    def _check_cookie_secret(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        try:
            decoded = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("cookie_secret must be valid base64") from e
        if len(decoded) < 32:
            raise ValueError("cookie_secret must decode to at least 32 bytes")
        return value

    def cookie_secret_bytes(self) -> bytes | None:
        """Decoded cookie secret, or None when unset."""
        if self.cookie_secret is None:
            return None
        return base64.b64decode(self.cookie_secret)


class CookieConfig(BaseModel):
    """Auth cookie configuration."""

    name: str = "auth_token"
    max_age_seconds: int = 15 * 60
    refresh_threshold_seconds: int = 5 * 60
    http_only: bool = True
    # None = secure only in production
    secure: bool | None = None
    same_site: Literal["strict", "lax", "none"] = "strict"
    path: str = "/"


class BootstrapConfig(BaseModel):
    """Initial admin provisioning."""

    init_admin: bool = False
    admin_name: str = Field(default="admin", min_length=1)

    # Seed this key for the initial admin instead of generating one
    admin_api_key: str | None = None


class GCTaskConfig(BaseModel):
    """GC task-specific configuration."""

    enabled: bool = True


class GCConfig(BaseModel):
    """Background cleanup configuration."""

    enabled: bool = True
    run_on_startup: bool = True
    interval_seconds: int = 300  # 5 minutes

    expired_api_key: GCTaskConfig = Field(default_factory=GCTaskConfig)


class Settings(BaseSettings):
    """dinein application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DINEIN_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Literal["development", "test", "production"] = "development"

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    cookie: CookieConfig = Field(default_factory=CookieConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    gc: GCConfig = Field(default_factory=GCConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cookie_secure(self) -> bool:
        """Whether the auth cookie carries the Secure flag."""
        if self.cookie.secure is not None:
            return self.cookie.secure
        return self.is_production


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. DINEIN_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/dinein/config.yaml
    """
    config_paths = [
        os.environ.get("DINEIN_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/dinein/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Top-level sections present in the YAML file are passed as init values;
    sections the file omits are filled from environment variables, then
    defaults.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
