"""Client configuration."""

from dataclasses import dataclass, replace
from typing import Dict, Optional

import httpx
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .auth import BasicAuth, TokenAuth
from .exceptions import ConfigError

DEFAULT_TIMEOUT = 30.0


@dataclass
class TransportConfig:
    """Timeout and connection settings shared by all requests of a client."""

    # Per-request timeout (in seconds)
    timeout: float = DEFAULT_TIMEOUT

    # Connection settings
    max_connections: int = 10
    max_keepalive_connections: int = 5
    keepalive_expiry: float = 30.0

    # Default headers
    default_headers: Optional[Dict[str, str]] = None

    def __post_init__(self):
        if self.timeout is None or self.timeout <= 0:
            raise ConfigError(f"Timeout must be a positive number of seconds, got {self.timeout!r}")
        if self.default_headers is None:
            self.default_headers = {
                "User-Agent": "ChRIS-API-Client/1.0",
            }

    @property
    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
            keepalive_expiry=self.keepalive_expiry,
        )

    def with_timeout(self, timeout: float) -> "TransportConfig":
        """Create a new config with a different default timeout."""
        return replace(self, timeout=timeout)

    def with_headers(self, headers: Dict[str, str]) -> "TransportConfig":
        """Create a new config with additional headers."""
        new_headers = self.default_headers.copy() if self.default_headers else {}
        new_headers.update(headers)
        return replace(self, default_headers=new_headers)


class Settings(BaseSettings):
    """Client configuration loaded from ``CHRIS_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHRIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = "http://localhost:8000/api/v1/"

    # Credentials, a non-empty token takes precedence over username/password
    username: str | None = None
    password: SecretStr | None = None
    token: SecretStr | None = None

    timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"

    def credentials(self) -> BasicAuth | TokenAuth:
        """Build the credentials object described by these settings."""
        if self.token and self.token.get_secret_value():
            return TokenAuth(self.token.get_secret_value())
        if self.username and self.password is not None:
            return BasicAuth(self.username, self.password.get_secret_value())
        raise ConfigError(
            "No credentials configured: set CHRIS_TOKEN or CHRIS_USERNAME and CHRIS_PASSWORD"
        )

    def transport_config(self) -> TransportConfig:
        return TransportConfig(timeout=self.timeout)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
