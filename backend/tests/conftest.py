from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from threading import Lock
from typing import Any

import pytest
from fastapi.testclient import TestClient

from valuation_api.core.config import Settings
from valuation_api.providers.errors import ProviderNetworkError
from valuation_api.providers.valuation_types import ProviderIdentity, ProviderLogEntry, ValuationResult
from valuation_api.services.provider_stats import FailoverPolicy, ProviderStatsRegistry
from valuation_api.services.request_logger import RequestLogger
from valuation_api.services.valuation_service import ValuationService


class ManualClock:
    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


class InMemoryLogSink:
    def __init__(self) -> None:
        self.entries: list[ProviderLogEntry] = []
        self._lock = Lock()

    def save(self, entry: ProviderLogEntry) -> None:
        with self._lock:
            self.entries.append(entry)


class ScriptedProvider:
    def __init__(
        self,
        identity: ProviderIdentity,
        name: str,
        *,
        fail_when: Callable[[str], bool] | None = None,
        error: Exception | None = None,
        before_call: Callable[[], None] | None = None,
    ) -> None:
        self.identity = identity
        self.name = name
        self.fail_when = fail_when or (lambda _vrm: False)
        self.error = error or ProviderNetworkError("network unreachable")
        self.before_call = before_call
        self.calls: list[tuple[str, int, float]] = []
        self._lock = Lock()

    def fail_always(self, error: Exception | None = None) -> None:
        self.fail_when = lambda _vrm: True
        if error is not None:
            self.error = error

    def recover(self) -> None:
        self.fail_when = lambda _vrm: False

    def request_url(self, vrm: str, mileage: int) -> str:
        return f"https://{self.identity.value}.test/valuations/{vrm}?mileage={mileage}"

    def fetch_valuation(self, vrm: str, mileage: int, *, timeout_seconds: float) -> ValuationResult:
        with self._lock:
            self.calls.append((vrm, mileage, timeout_seconds))
        if self.before_call is not None:
            self.before_call()
        if self.fail_when(vrm):
            raise self.error
        return ValuationResult(
            vrm=vrm,
            lowest_value=Decimal("15000.00"),
            highest_value=Decimal("18000.00"),
            provider_name=self.name,
        )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def sink() -> InMemoryLogSink:
    return InMemoryLogSink()


@pytest.fixture()
def make_provider() -> Callable[..., ScriptedProvider]:
    names = {
        ProviderIdentity.PRIMARY: "SuperCar Valuations",
        ProviderIdentity.SECONDARY: "Premium Car Valuations",
    }

    def _make(identity: ProviderIdentity, **kwargs: Any) -> ScriptedProvider:
        return ScriptedProvider(identity, names[identity], **kwargs)

    return _make


@pytest.fixture()
def primary(make_provider: Callable[..., ScriptedProvider]) -> ScriptedProvider:
    return make_provider(ProviderIdentity.PRIMARY)


@pytest.fixture()
def secondary(make_provider: Callable[..., ScriptedProvider]) -> ScriptedProvider:
    return make_provider(ProviderIdentity.SECONDARY)


@pytest.fixture()
def policy() -> FailoverPolicy:
    return FailoverPolicy()


@pytest.fixture()
def stats(policy: FailoverPolicy, clock: ManualClock) -> ProviderStatsRegistry:
    return ProviderStatsRegistry(policy, clock=clock)


@pytest.fixture()
def service(
    primary: ScriptedProvider,
    secondary: ScriptedProvider,
    stats: ProviderStatsRegistry,
    sink: InMemoryLogSink,
    clock: ManualClock,
) -> ValuationService:
    return ValuationService(
        providers={ProviderIdentity.PRIMARY: primary, ProviderIdentity.SECONDARY: secondary},
        stats=stats,
        request_logger=RequestLogger(sink),
        clock=clock,
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, app_env="test", provider_log_background=False)


@pytest.fixture()
def client(service: ValuationService, settings: Settings) -> Generator[TestClient, None, None]:
    from valuation_api.main import create_app

    app = create_app(service, settings)
    with TestClient(app) as test_client:
        yield test_client
