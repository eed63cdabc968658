from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

import httpx

from valuation_api.providers.errors import (
    ProviderError,
    ProviderResponseFormatError,
    ProviderUpstreamError,
    classify_provider_error,
)
from valuation_api.providers.valuation_types import ProviderIdentity, ValuationResult


class ValuationProvider(Protocol):
    identity: ProviderIdentity
    name: str

    def request_url(self, vrm: str, mileage: int) -> str:
        ...

    def fetch_valuation(self, vrm: str, mileage: int, *, timeout_seconds: float) -> ValuationResult:
        ...


class HttpValuationProvider(ABC):
    """Base adapter for providers reached with a single HTTP GET.

    Subclasses supply the request URL and turn the upstream response into a
    ``ValuationResult``. Transport failures and non-2xx statuses are raised as
    ``ProviderError`` so callers never see raw ``httpx`` exceptions.
    """

    def __init__(
        self,
        *,
        identity: ProviderIdentity,
        name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.identity = identity
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self._transport = transport

    def fetch_valuation(self, vrm: str, mileage: int, *, timeout_seconds: float) -> ValuationResult:
        url = self.request_url(vrm, mileage)
        try:
            with httpx.Client(transport=self._transport, timeout=timeout_seconds) as client:
                response = client.get(url, headers=self.headers)
        except Exception as exc:  # noqa: BLE001
            raise classify_provider_error(exc) from exc
        if response.status_code >= 400:
            raise ProviderUpstreamError(response.status_code)
        try:
            return self._parse_response(response, vrm=vrm, mileage=mileage)
        except ProviderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ProviderResponseFormatError(f"{self.name} response could not be parsed: {exc}") from exc

    @abstractmethod
    def request_url(self, vrm: str, mileage: int) -> str:
        raise NotImplementedError

    @abstractmethod
    def _parse_response(self, response: httpx.Response, *, vrm: str, mileage: int) -> ValuationResult:
        raise NotImplementedError
