from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock

from valuation_api.core.clock import Clock, SystemClock
from valuation_api.core.config import Settings
from valuation_api.providers.valuation_types import ProviderIdentity


@dataclass(frozen=True)
class FailoverPolicy:
    failure_threshold: float = 0.5
    revert_timeout: timedelta = timedelta(milliseconds=180_000)
    min_requests_for_threshold: int = 10
    monitored_provider: ProviderIdentity = ProviderIdentity.PRIMARY

    @classmethod
    def from_settings(cls, settings: Settings) -> FailoverPolicy:
        return cls(
            failure_threshold=settings.failure_threshold,
            revert_timeout=timedelta(milliseconds=settings.revert_timeout_ms),
            min_requests_for_threshold=settings.min_requests_for_threshold,
            monitored_provider=ProviderIdentity(settings.monitored_provider.lower()),
        )


@dataclass
class ProviderStats:
    requests: int = 0
    failures: int = 0
    last_failover_at: datetime | None = None


@dataclass(frozen=True)
class ProviderStatsSnapshot:
    provider: ProviderIdentity
    requests: int
    failures: int
    failure_rate: float
    last_failover_at: datetime | None

    def as_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "requests": self.requests,
            "failures": self.failures,
            "failure_rate": round(self.failure_rate, 4),
            "last_failover_at": self.last_failover_at.isoformat() if self.last_failover_at else None,
        }


class ProviderStatsRegistry:
    """Request/failure counters for every provider, shared across requests.

    A single lock guards all providers. ``record_failure`` checks the threshold
    and stamps ``last_failover_at`` inside that lock, so concurrent failures
    start at most one failover episode.
    """

    def __init__(self, policy: FailoverPolicy | None = None, *, clock: Clock | None = None) -> None:
        self.policy = policy or FailoverPolicy()
        self._clock = clock or SystemClock()
        self._lock = Lock()
        self._stats: dict[ProviderIdentity, ProviderStats] = {identity: ProviderStats() for identity in ProviderIdentity}

    def record_success(self, provider: ProviderIdentity) -> None:
        with self._lock:
            self._stats[provider].requests += 1

    def record_failure(self, provider: ProviderIdentity) -> bool:
        """Count a failed call; return True when it starts a failover episode."""
        with self._lock:
            stats = self._stats[provider]
            stats.requests += 1
            stats.failures += 1
            if provider is not self.policy.monitored_provider or stats.last_failover_at is not None:
                return False
            if self._failure_rate(stats) >= self.policy.failure_threshold:
                stats.last_failover_at = self._clock.now()
                return True
            return False

    def failure_rate(self, provider: ProviderIdentity) -> float:
        with self._lock:
            return self._failure_rate(self._stats[provider])

    def reset(self, provider: ProviderIdentity) -> None:
        with self._lock:
            self._stats[provider] = ProviderStats()

    def begin_failover(self, provider: ProviderIdentity) -> bool:
        """Stamp the start of a failover episode if the rate is over threshold and none is running."""
        with self._lock:
            stats = self._stats[provider]
            if stats.last_failover_at is not None:
                return False
            if self._failure_rate(stats) < self.policy.failure_threshold:
                return False
            stats.last_failover_at = self._clock.now()
            return True

    def revert_if_expired(self, provider: ProviderIdentity) -> bool:
        with self._lock:
            last_failover_at = self._stats[provider].last_failover_at
            if last_failover_at is None:
                return False
            if self._clock.now() - last_failover_at < self.policy.revert_timeout:
                return False
            self._stats[provider] = ProviderStats()
            return True

    def is_diverted(self, provider: ProviderIdentity) -> bool:
        """Whether the next decision would divert away from ``provider``, without changing any state."""
        with self._lock:
            stats = self._stats[provider]
            if stats.last_failover_at is not None:
                return self._clock.now() - stats.last_failover_at < self.policy.revert_timeout
            return self._failure_rate(stats) >= self.policy.failure_threshold

    def snapshot(self, provider: ProviderIdentity) -> ProviderStatsSnapshot:
        with self._lock:
            return self._snapshot(provider)

    def snapshot_all(self) -> dict[ProviderIdentity, ProviderStatsSnapshot]:
        with self._lock:
            return {identity: self._snapshot(identity) for identity in ProviderIdentity}

    def _snapshot(self, provider: ProviderIdentity) -> ProviderStatsSnapshot:
        stats = self._stats[provider]
        return ProviderStatsSnapshot(
            provider=provider,
            requests=stats.requests,
            failures=stats.failures,
            failure_rate=self._failure_rate(stats),
            last_failover_at=stats.last_failover_at,
        )

    def _failure_rate(self, stats: ProviderStats) -> float:
        if stats.requests < self.policy.min_requests_for_threshold:
            return 0.0
        return stats.failures / stats.requests
