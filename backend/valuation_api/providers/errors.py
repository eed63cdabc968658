from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import socket

import httpx


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    UPSTREAM_ERROR = "upstream_error"
    INTERNAL_ERROR = "internal_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    kind: ProviderErrorKind
    error_code: str
    response_code: int


_TIMEOUT = ErrorClassification(ProviderErrorKind.TIMEOUT, "TIMEOUT", 408)
_NETWORK = ErrorClassification(ProviderErrorKind.NETWORK_ERROR, "NETWORK_ERROR", 503)
_INTERNAL = ErrorClassification(ProviderErrorKind.INTERNAL_ERROR, "INTERNAL_ERROR", 500)
_UNKNOWN = ErrorClassification(ProviderErrorKind.UNKNOWN, "UNKNOWN_ERROR", 500)

_DNS_MARKERS = ("enotfound", "getaddrinfo", "name or service not known", "nodename nor servname")


class ProviderError(Exception):
    def __init__(
        self,
        message: str,
        *,
        kind: ProviderErrorKind,
        error_code: str,
        response_code: int,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.error_code = error_code
        self.response_code = response_code
        self.upstream_status = upstream_status


class ProviderTimeoutError(ProviderError):
    def __init__(self, message: str = "Provider request timed out.") -> None:
        super().__init__(message, kind=_TIMEOUT.kind, error_code=_TIMEOUT.error_code, response_code=_TIMEOUT.response_code)


class ProviderNetworkError(ProviderError):
    def __init__(self, message: str = "Provider network request failed.") -> None:
        super().__init__(message, kind=_NETWORK.kind, error_code=_NETWORK.error_code, response_code=_NETWORK.response_code)


class ProviderUpstreamError(ProviderError):
    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Provider responded with HTTP {status_code}.",
            kind=ProviderErrorKind.UPSTREAM_ERROR,
            error_code="UPSTREAM_ERROR",
            response_code=status_code,
            upstream_status=status_code,
        )


class ProviderResponseFormatError(ProviderError):
    def __init__(self, message: str = "Provider response format is invalid.") -> None:
        super().__init__(message, kind=_INTERNAL.kind, error_code=_INTERNAL.error_code, response_code=_INTERNAL.response_code)


class ServiceUnavailableError(Exception):
    """Raised when every provider failed for one valuation request."""

    def __init__(self, message: str = "Valuation service temporarily unavailable") -> None:
        super().__init__(message)
        self.message = message


def classify_error_message(message: str) -> ErrorClassification:
    # Coarse by nature: an upstream message that merely mentions "timeout" is
    # classified as one. Typed errors are preferred over this path.
    if not message:
        return _UNKNOWN
    lowered = message.lower()
    if "timeout" in lowered:
        return _TIMEOUT
    if "network" in lowered or any(marker in lowered for marker in _DNS_MARKERS):
        return _NETWORK
    return _INTERNAL


def classification_from_exception(exc: BaseException) -> ErrorClassification:
    if isinstance(exc, ProviderError):
        return ErrorClassification(exc.kind, exc.error_code, exc.response_code)
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return _TIMEOUT
    if isinstance(exc, ConnectionError | socket.gaierror | httpx.NetworkError):
        return _NETWORK
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else 500
        return ErrorClassification(ProviderErrorKind.UPSTREAM_ERROR, "UPSTREAM_ERROR", status_code)
    return classify_error_message(str(exc))


def classify_provider_error(exc: BaseException) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    classification = classification_from_exception(exc)
    upstream_status = None
    if classification.kind is ProviderErrorKind.UPSTREAM_ERROR:
        upstream_status = classification.response_code
    return ProviderError(
        str(exc) or "Unknown error",
        kind=classification.kind,
        error_code=classification.error_code,
        response_code=classification.response_code,
        upstream_status=upstream_status,
    )
