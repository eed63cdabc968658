from valuation_api.providers.base import HttpValuationProvider, ValuationProvider
from valuation_api.providers.errors import (
    ProviderError,
    ProviderErrorKind,
    ProviderNetworkError,
    ProviderResponseFormatError,
    ProviderTimeoutError,
    ProviderUpstreamError,
    ServiceUnavailableError,
    classify_provider_error,
)
from valuation_api.providers.valuation_types import ProviderIdentity, ProviderLogEntry, ValuationResult

__all__ = [
    "ValuationProvider",
    "HttpValuationProvider",
    "ProviderIdentity",
    "ValuationResult",
    "ProviderLogEntry",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderTimeoutError",
    "ProviderNetworkError",
    "ProviderUpstreamError",
    "ProviderResponseFormatError",
    "ServiceUnavailableError",
    "classify_provider_error",
]
