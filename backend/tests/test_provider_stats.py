from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from valuation_api.core.config import Settings
from valuation_api.providers.valuation_types import ProviderIdentity
from valuation_api.services.provider_stats import FailoverPolicy, ProviderStatsRegistry

PRIMARY = ProviderIdentity.PRIMARY
SECONDARY = ProviderIdentity.SECONDARY


def test_failure_rate_is_zero_below_minimum_sample(stats) -> None:
    for _ in range(9):
        stats.record_failure(PRIMARY)
    snapshot = stats.snapshot(PRIMARY)
    assert snapshot.requests == 9
    assert snapshot.failures == 9
    assert stats.failure_rate(PRIMARY) == 0.0
    assert snapshot.last_failover_at is None


def test_failure_rate_counts_once_minimum_sample_reached(stats) -> None:
    for _ in range(6):
        stats.record_success(SECONDARY)
    for _ in range(4):
        stats.record_failure(SECONDARY)
    assert stats.failure_rate(SECONDARY) == 0.4


def test_record_success_only_increments_requests(stats) -> None:
    stats.record_success(PRIMARY)
    stats.record_success(PRIMARY)
    snapshot = stats.snapshot(PRIMARY)
    assert (snapshot.requests, snapshot.failures) == (2, 0)


def test_record_failure_stamps_failover_once_threshold_reached(stats, clock) -> None:
    for _ in range(5):
        stats.record_success(PRIMARY)
    triggered = [stats.record_failure(PRIMARY) for _ in range(5)]
    assert triggered == [False, False, False, False, True]
    assert stats.snapshot(PRIMARY).last_failover_at == clock.now()

    clock.advance(seconds=30)
    assert stats.record_failure(PRIMARY) is False
    assert stats.snapshot(PRIMARY).last_failover_at == clock.now() - timedelta(seconds=30)


def test_unmonitored_provider_never_starts_failover(stats) -> None:
    results = [stats.record_failure(SECONDARY) for _ in range(20)]
    assert not any(results)
    assert stats.snapshot(SECONDARY).last_failover_at is None
    assert stats.failure_rate(SECONDARY) == 1.0


def test_monitored_provider_is_configurable(clock) -> None:
    registry = ProviderStatsRegistry(FailoverPolicy(monitored_provider=SECONDARY), clock=clock)
    primary_results = [registry.record_failure(PRIMARY) for _ in range(10)]
    secondary_results = [registry.record_failure(SECONDARY) for _ in range(10)]
    assert not any(primary_results)
    assert secondary_results[-1] is True
    assert registry.snapshot(SECONDARY).last_failover_at == clock.now()


def test_reset_clears_counters_and_failover_time(stats) -> None:
    for _ in range(10):
        stats.record_failure(PRIMARY)
    assert stats.snapshot(PRIMARY).last_failover_at is not None

    stats.reset(PRIMARY)
    snapshot = stats.snapshot(PRIMARY)
    assert (snapshot.requests, snapshot.failures, snapshot.last_failover_at) == (0, 0, None)


def test_revert_if_expired_waits_for_full_timeout(stats, clock) -> None:
    for _ in range(10):
        stats.record_failure(PRIMARY)

    clock.advance(milliseconds=179_999)
    assert stats.revert_if_expired(PRIMARY) is False
    assert stats.snapshot(PRIMARY).requests == 10

    clock.advance(milliseconds=1)
    assert stats.revert_if_expired(PRIMARY) is True
    snapshot = stats.snapshot(PRIMARY)
    assert (snapshot.requests, snapshot.failures, snapshot.last_failover_at) == (0, 0, None)
    assert stats.revert_if_expired(PRIMARY) is False


def test_revert_if_expired_ignores_provider_without_failover(stats, clock) -> None:
    stats.record_failure(PRIMARY)
    clock.advance(hours=1)
    assert stats.revert_if_expired(PRIMARY) is False
    assert stats.snapshot(PRIMARY).requests == 1


def test_is_diverted_reads_state_without_changing_it(stats, clock) -> None:
    assert stats.is_diverted(PRIMARY) is False

    for _ in range(10):
        stats.record_failure(PRIMARY)
    assert stats.is_diverted(PRIMARY) is True

    clock.advance(minutes=3)
    assert stats.is_diverted(PRIMARY) is False
    snapshot = stats.snapshot(PRIMARY)
    assert (snapshot.requests, snapshot.failures) == (10, 10)
    assert snapshot.last_failover_at is not None


def test_is_diverted_over_threshold_without_stamp(stats) -> None:
    for _ in range(5):
        stats.record_failure(PRIMARY)
    for _ in range(5):
        stats.record_success(PRIMARY)

    assert stats.is_diverted(PRIMARY) is True
    assert stats.snapshot(PRIMARY).last_failover_at is None


def test_snapshot_as_dict(stats, clock) -> None:
    for _ in range(10):
        stats.record_failure(PRIMARY)
    payload = stats.snapshot_all()[PRIMARY].as_dict()
    assert payload == {
        "provider": "primary",
        "requests": 10,
        "failures": 10,
        "failure_rate": 1.0,
        "last_failover_at": clock.now().isoformat(),
    }


def test_concurrent_failures_start_exactly_one_failover(stats) -> None:
    def _fail(_: int) -> bool:
        return stats.record_failure(PRIMARY)

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(_fail, range(1000)))

    snapshot = stats.snapshot(PRIMARY)
    assert results.count(True) == 1
    assert snapshot.requests == 1000
    assert snapshot.failures == 1000


def test_concurrent_mixed_updates_are_not_lost(stats) -> None:
    def _record(index: int) -> None:
        if index % 3 == 0:
            stats.record_failure(SECONDARY)
        else:
            stats.record_success(SECONDARY)

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(_record, range(900)))

    snapshot = stats.snapshot(SECONDARY)
    assert snapshot.requests == 900
    assert snapshot.failures == 300
    assert snapshot.failures <= snapshot.requests


def test_policy_from_settings() -> None:
    settings = Settings(
        _env_file=None,
        failure_threshold=0.25,
        revert_timeout_ms=60_000,
        min_requests_for_threshold=4,
        monitored_provider="SECONDARY",
    )
    policy = FailoverPolicy.from_settings(settings)
    assert policy.failure_threshold == 0.25
    assert policy.revert_timeout == timedelta(minutes=1)
    assert policy.min_requests_for_threshold == 4
    assert policy.monitored_provider is SECONDARY
