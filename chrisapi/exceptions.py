"""Exceptions raised by the ChRIS API client."""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestInfo:
    """Description of an outgoing request. Credentials are never recorded."""

    method: str
    url: str
    params: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class ResponseInfo:
    """Status and decoded body of a response that was received."""

    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class ChrisAPIError(Exception):
    """Base exception for all client errors."""

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        original_exception: Optional[Exception] = None,
        **context
    ):
        """
        Initialize the error with context and log it.

        Args:
            message (str): Primary error message
            original_exception (Optional[Exception]): Underlying exception
            **context: Additional error context
        """
        self.message = message
        self.original_exception = original_exception
        self.context = context

        log_message = f"{self.__class__.__name__}: {message}"
        if context:
            log_message += f" | Context: {context}"
        logger.log(self.log_level, log_message)

        super().__init__(message)


class ConfigError(ChrisAPIError):
    """Raised for missing or invalid client construction input."""
    pass


class ProtocolError(ChrisAPIError):
    """Raised when a response violates the Collection+JSON contract."""
    pass


class NotFoundError(ChrisAPIError):
    """Raised when a well-formed response lacks the requested item."""

    log_level = logging.WARNING


class RequestException(ChrisAPIError):
    """Raised for any transport-level failure.

    Covers non-2xx responses, network faults, timeouts and undecodable
    bodies. Callers tell the cases apart by inspecting ``request``,
    ``response`` and ``timed_out``.
    """

    def __init__(
        self,
        message: str,
        request: Optional[RequestInfo] = None,
        response: Optional[ResponseInfo] = None,
        timed_out: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        self.request = request
        self.response = response
        self.timed_out = timed_out
        context = {}
        if request is not None:
            context["request"] = f"{request.method} {request.url}"
        if response is not None:
            context["status_code"] = response.status_code
        if timed_out:
            context["timed_out"] = True
        super().__init__(message, original_exception=original_exception, **context)

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response else None

    @property
    def response_data(self) -> Any:
        return self.response.data if self.response else None

    @property
    def validation_errors(self) -> Dict[str, Any]:
        """Field-keyed errors reported by the server for a rejected write."""
        data = self.response_data
        if self.status_code == 400 and isinstance(data, dict):
            return {k: v for k, v in data.items() if k != "detail"}
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable summary of the failure."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "timed_out": self.timed_out,
            "status_code": self.status_code,
            "request": asdict(self.request) if self.request else None,
            "response": self.response_data,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"Status: {self.status_code}")
        if self.request is not None:
            parts.append(f"Request: {self.request.method} {self.request.url}")
        return " | ".join(parts)
