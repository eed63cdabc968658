from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import time

from valuation_api.core.clock import Clock, SystemClock
from valuation_api.core.config import Settings
from valuation_api.core.metrics import (
    valuation_provider_request_duration_seconds,
    valuation_provider_requests_total,
    valuation_unavailable_total,
)
from valuation_api.providers.base import ValuationProvider
from valuation_api.providers.errors import (
    ProviderError,
    ProviderTimeoutError,
    ServiceUnavailableError,
    classify_provider_error,
)
from valuation_api.providers.valuation_types import ProviderIdentity, ProviderLogEntry, ValuationResult
from valuation_api.services.failover_engine import FailoverDecisionEngine
from valuation_api.services.provider_stats import FailoverPolicy, ProviderStatsRegistry, ProviderStatsSnapshot
from valuation_api.services.request_logger import LoggingProviderLogSink, ProviderLogSink, RequestLogger


logger = logging.getLogger("valuation.service")

SUCCESS_RESPONSE_CODE = 200


@dataclass(frozen=True)
class ValuationDeadline:
    expires_at: datetime

    @classmethod
    def starting_at(cls, now: datetime, budget_seconds: float) -> ValuationDeadline:
        return cls(expires_at=now + timedelta(seconds=budget_seconds))

    def remaining_seconds(self, now: datetime) -> float:
        return (self.expires_at - now).total_seconds()


class ValuationService:
    """Fetches a valuation from the preferred provider, falling back to the other.

    Provider failures never escape individually: each one is counted, logged
    and followed by the fallback. Only ``ServiceUnavailableError`` reaches the
    caller, when both providers fail for the same request.
    """

    def __init__(
        self,
        *,
        providers: Mapping[ProviderIdentity, ValuationProvider],
        stats: ProviderStatsRegistry,
        request_logger: RequestLogger,
        clock: Clock | None = None,
        provider_timeout_seconds: float = 10.0,
        request_timeout_seconds: float = 25.0,
    ) -> None:
        missing = [identity.value for identity in ProviderIdentity if identity not in providers]
        if missing:
            raise ValueError(f"Missing valuation providers: {', '.join(missing)}")
        self._providers = dict(providers)
        self._stats = stats
        self._engine = FailoverDecisionEngine(stats)
        self._request_logger = request_logger
        self._clock = clock or SystemClock()
        self._provider_timeout_seconds = provider_timeout_seconds
        self._request_timeout_seconds = request_timeout_seconds

    @property
    def engine(self) -> FailoverDecisionEngine:
        return self._engine

    def get_valuation(self, vrm: str, mileage: int) -> ValuationResult:
        first, second = self._engine.select_order()
        deadline = ValuationDeadline.starting_at(self._clock.now(), self._request_timeout_seconds)
        try:
            return self._attempt(first, vrm, mileage, deadline)
        except ProviderError as first_error:
            logger.info(
                "Falling back to %s after %s failed.",
                second.value,
                first.value,
                extra={"event": "valuation.fallback_used", "vrm": vrm, "error_code": first_error.error_code},
            )
            try:
                return self._attempt(second, vrm, mileage, deadline)
            except ProviderError as fallback_error:
                valuation_unavailable_total.inc()
                logger.error(
                    "All valuation providers failed.",
                    extra={"event": "valuation.unavailable", "vrm": vrm, "error_code": fallback_error.error_code},
                )
                raise ServiceUnavailableError() from fallback_error

    def stats_snapshot(self) -> dict[ProviderIdentity, ProviderStatsSnapshot]:
        return self._stats.snapshot_all()

    def reset_stats(self) -> None:
        for identity in ProviderIdentity:
            self._stats.reset(identity)

    def close(self) -> None:
        self._request_logger.close()

    def _attempt(
        self,
        identity: ProviderIdentity,
        vrm: str,
        mileage: int,
        deadline: ValuationDeadline,
    ) -> ValuationResult:
        provider = self._providers[identity]
        request_url = "unknown"
        start_time = self._clock.now()
        started = time.perf_counter()
        try:
            request_url = provider.request_url(vrm, mileage)
            remaining = deadline.remaining_seconds(start_time)
            if remaining <= 0:
                raise ProviderTimeoutError("Valuation request deadline exhausted before provider call.")
            result = provider.fetch_valuation(
                vrm,
                mileage,
                timeout_seconds=min(self._provider_timeout_seconds, remaining),
            )
        except Exception as exc:  # noqa: BLE001
            error = classify_provider_error(exc)
            self._engine.record_failure(identity)
            self._observe(identity, "failure", started)
            self._request_logger.log_attempt(
                ProviderLogEntry.build(
                    vrm=vrm,
                    provider=provider.name,
                    request_url=request_url,
                    start_time=start_time,
                    end_time=self._clock.now(),
                    response_code=error.response_code,
                    error_code=error.error_code,
                    error_message=error.message,
                )
            )
            if error is exc:
                raise
            raise error from exc

        self._engine.record_success(identity)
        self._observe(identity, "success", started)
        self._request_logger.log_attempt(
            ProviderLogEntry.build(
                vrm=vrm,
                provider=provider.name,
                request_url=request_url,
                start_time=start_time,
                end_time=self._clock.now(),
                response_code=SUCCESS_RESPONSE_CODE,
            )
        )
        return result

    def _observe(self, identity: ProviderIdentity, outcome: str, started: float) -> None:
        valuation_provider_requests_total.labels(provider=identity.value, outcome=outcome).inc()
        valuation_provider_request_duration_seconds.labels(provider=identity.value).observe(
            time.perf_counter() - started
        )


def build_valuation_service(
    settings: Settings,
    providers: Mapping[ProviderIdentity, ValuationProvider],
    *,
    sink: ProviderLogSink | None = None,
    clock: Clock | None = None,
) -> ValuationService:
    clock = clock or SystemClock()
    executor = None
    if settings.provider_log_background:
        executor = ThreadPoolExecutor(
            max_workers=settings.provider_log_max_workers,
            thread_name_prefix="provider-log",
        )
    return ValuationService(
        providers=providers,
        stats=ProviderStatsRegistry(FailoverPolicy.from_settings(settings), clock=clock),
        request_logger=RequestLogger(sink or LoggingProviderLogSink(), executor=executor),
        clock=clock,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        request_timeout_seconds=settings.valuation_request_timeout_seconds,
    )
