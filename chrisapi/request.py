"""Authenticated HTTP requests with uniform failure reporting."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from .collection import COLLECTION_JSON
from .config import TransportConfig
from .exceptions import ConfigError, RequestException, RequestInfo, ResponseInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Response:
    """Decoded result of a successful request."""

    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class Request:
    """Issues GET, POST, PUT and DELETE requests against the REST API.

    A ``Request`` only holds read-only settings (credentials, content type,
    default timeout), so a single instance can serve concurrent calls. When
    no ``http_client`` is given every call opens its own
    ``httpx.AsyncClient``; pass one to share a connection pool.
    """

    def __init__(
        self,
        auth: httpx.Auth,
        content_type: str = COLLECTION_JSON,
        timeout: Optional[float] = None,
        config: Optional[TransportConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the request wrapper.

        Args:
            auth: Credentials (``BasicAuth``, ``TokenAuth`` or ``Anonymous``)
            content_type: Media type sent and accepted
            timeout: Default timeout in seconds, overrides ``config.timeout``
            config: Transport configuration. If None, uses default config.
            http_client: Optional shared async client

        Raises:
            ConfigError: If no usable credentials object is given
        """
        if auth is None:
            raise ConfigError("Authentication object is required")
        if not isinstance(auth, httpx.Auth):
            raise ConfigError(f"Unsupported credentials object: {type(auth).__name__}")

        self.config = config or TransportConfig()
        if timeout is not None and timeout <= 0:
            raise ConfigError(f"Timeout must be a positive number of seconds, got {timeout!r}")

        self._auth = auth
        self._content_type = content_type
        self._timeout = timeout if timeout is not None else self.config.timeout
        self._http_client = http_client

    @property
    def auth(self) -> httpx.Auth:
        return self._auth

    @property
    def content_type(self) -> str:
        return self._content_type

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        return self._http_client

    async def get(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        raw: bool = False,
    ) -> Response:
        """Send a GET request. GET requests are never retried."""
        params = {k: v for k, v in (params or {}).items() if v is not None}
        return await self._send("GET", url, timeout, params=params or None, raw=raw)

    async def post(
        self,
        url: str,
        data: Optional[Mapping[str, Any]],
        files: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Send a POST request.

        With ``files`` the body is ``multipart/form-data``: ``data`` becomes
        the form fields and ``files`` must hold exactly one part, mapping the
        part name to bytes, a file object or an httpx file tuple. Otherwise
        ``data`` is sent as a JSON document.
        """
        if files is not None:
            if len(files) != 1:
                raise ConfigError("Exactly one file part can be uploaded per request")
            return await self._send(
                "POST", url, timeout, form=_form_fields(data or {}), files=dict(files)
            )
        return await self._send("POST", url, timeout, body=data)

    async def put(
        self,
        url: str,
        data: Optional[Mapping[str, Any]],
        timeout: Optional[float] = None,
    ) -> Response:
        """Send a PUT request with a JSON document body."""
        return await self._send("PUT", url, timeout, body=data)

    async def delete(self, url: str, timeout: Optional[float] = None) -> Response:
        """Send a DELETE request."""
        return await self._send("DELETE", url, timeout)

    def _headers(self, with_body: bool) -> Dict[str, str]:
        headers = dict(self.config.default_headers or {})
        headers["Accept"] = self._content_type
        if with_body:
            headers["Content-Type"] = self._content_type
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        timeout: Optional[float],
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
        raw: bool = False,
    ) -> Response:
        timeout = self._timeout if timeout is None else timeout
        request_info = RequestInfo(method=method, url=url, params=params, timeout=timeout)

        kwargs: Dict[str, Any] = {
            "params": params,
            "headers": self._headers(with_body=body is not None),
            "auth": self._auth,
            "timeout": timeout,
            "follow_redirects": True,
        }
        if body is not None:
            kwargs["content"] = json.dumps(body).encode("utf-8")
        if files is not None:
            kwargs["data"] = form
            kwargs["files"] = files

        if self._http_client is not None and self._http_client.is_closed:
            raise RequestException("HTTP client is closed", request=request_info)

        logger.debug("%s %s", method, url)
        try:
            if self._http_client is not None:
                response = await self._http_client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(limits=self.config.limits) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestException(
                f"Request timed out after {timeout}s: {e}",
                request=request_info,
                timed_out=True,
                original_exception=e,
            )
        except httpx.HTTPError as e:
            raise RequestException(
                f"Network error: {e}",
                request=request_info,
                original_exception=e,
            )

        return self._handle_response(response, request_info, raw)

    def _handle_response(
        self,
        response: httpx.Response,
        request_info: RequestInfo,
        raw: bool,
    ) -> Response:
        headers = dict(response.headers)

        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                error_data = response.text

            message = f"{request_info.method} request failed with status {response.status_code}"
            if isinstance(error_data, dict) and isinstance(error_data.get("detail"), str):
                message += f": {error_data['detail']}"

            raise RequestException(
                message,
                request=request_info,
                response=ResponseInfo(response.status_code, error_data, headers),
            )

        if raw:
            return Response(response.status_code, response.content, headers)

        if response.status_code == 204 or not response.content:
            return Response(response.status_code, None, headers)

        try:
            data = response.json()
        except ValueError as e:
            raise RequestException(
                f"Failed to decode JSON response: {e}",
                request=request_info,
                response=ResponseInfo(response.status_code, response.text, headers),
                original_exception=e,
            )
        return Response(response.status_code, data, headers)


def _form_fields(data: Mapping[str, Any]) -> Dict[str, str]:
    """Encode multipart form fields, JSON-encoding non-string values."""
    fields = {}
    for name, value in data.items():
        if value is None:
            continue
        fields[name] = value if isinstance(value, str) else json.dumps(value)
    return fields
