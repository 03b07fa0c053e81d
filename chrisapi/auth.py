"""Credentials attached to every request.

All credential objects are ``httpx.Auth`` flows so they can be handed to
httpx directly. They are read-only after construction and their ``repr``
never includes the secret.
"""

from typing import Generator

import httpx

from .exceptions import ConfigError


class BasicAuth(httpx.BasicAuth):
    """Username/password credentials sent as HTTP Basic authentication."""

    def __init__(self, username: str, password: str):
        super().__init__(username, password)
        self._username = username

    @property
    def username(self) -> str:
        return self._username

    def __repr__(self) -> str:
        return f"BasicAuth(username={self._username!r}, password='***')"


class TokenAuth(httpx.Auth):
    """Token credentials sent in the ``Authorization`` header.

    The server issues tokens through its auth-token endpoint and expects
    them with the ``Token`` scheme; pass ``scheme="Bearer"`` for servers
    that use bearer tokens.
    """

    def __init__(self, token: str, scheme: str = "Token"):
        if not token:
            raise ConfigError("Token cannot be empty")
        self._header = f"{scheme} {token}"
        self._scheme = scheme

    @property
    def scheme(self) -> str:
        return self._scheme

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = self._header
        yield request

    def __repr__(self) -> str:
        return f"TokenAuth(scheme={self._scheme!r}, token='***')"


class Anonymous(httpx.Auth):
    """Explicitly unauthenticated access.

    Only the account-creation and token-issuance endpoints accept it.
    """

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        yield request

    def __repr__(self) -> str:
        return "Anonymous()"
