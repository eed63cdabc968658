from __future__ import annotations

import logging

from valuation_api.core.metrics import valuation_provider_failovers_total, valuation_provider_reverts_total
from valuation_api.providers.valuation_types import ProviderIdentity
from valuation_api.services.provider_stats import ProviderStatsRegistry


logger = logging.getLogger("valuation.failover")


class FailoverDecisionEngine:
    """Chooses which provider a valuation request tries first.

    Only the monitored provider's health drives the choice. The other provider
    is never failed away from: its failures are counted for observability only.
    Once the monitored provider crosses the failure threshold it stays second
    choice until ``revert_timeout`` has passed, then its counters are reset and
    it is tried first again.
    """

    def __init__(self, stats: ProviderStatsRegistry) -> None:
        self._stats = stats

    @property
    def monitored_provider(self) -> ProviderIdentity:
        return self._stats.policy.monitored_provider

    def should_use_secondary(self) -> bool:
        monitored = self.monitored_provider
        if self._stats.revert_if_expired(monitored):
            valuation_provider_reverts_total.labels(provider=monitored.value).inc()
            logger.info(
                "Failover cooldown elapsed; retrying %s first.",
                monitored.value,
                extra={"event": "provider.failover.reverted", "provider_identity": monitored.value},
            )
            return False
        if self._stats.failure_rate(monitored) < self._stats.policy.failure_threshold:
            return False
        # Threshold crossed while the sample was still too small to stamp a
        # failover time: start the episode now so it can revert.
        if self._stats.begin_failover(monitored):
            self._failover_started(monitored)
        return True

    def select_order(self) -> tuple[ProviderIdentity, ProviderIdentity]:
        monitored = self.monitored_provider
        if self.should_use_secondary():
            return monitored.other, monitored
        return monitored, monitored.other

    def current_order(self) -> tuple[ProviderIdentity, ProviderIdentity]:
        """The order the next request would use. Read-only: never reverts or starts an episode."""
        monitored = self.monitored_provider
        if self._stats.is_diverted(monitored):
            return monitored.other, monitored
        return monitored, monitored.other

    def record_success(self, provider: ProviderIdentity) -> None:
        self._stats.record_success(provider)

    def record_failure(self, provider: ProviderIdentity) -> None:
        if self._stats.record_failure(provider):
            self._failover_started(provider)

    def _failover_started(self, provider: ProviderIdentity) -> None:
        snapshot = self._stats.snapshot(provider)
        valuation_provider_failovers_total.labels(provider=provider.value).inc()
        logger.warning(
            "Failure threshold reached; failing over away from %s.",
            provider.value,
            extra={
                "event": "provider.failover.triggered",
                "provider_identity": provider.value,
                "failure_rate": snapshot.failure_rate,
                "requests": snapshot.requests,
                "failures": snapshot.failures,
            },
        )
