from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests.",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds.",
    ["method", "path"],
)

valuation_provider_requests_total = Counter(
    "valuation_provider_requests_total",
    "Valuation provider call attempts by outcome.",
    ["provider", "outcome"],
)

valuation_provider_request_duration_seconds = Histogram(
    "valuation_provider_request_duration_seconds",
    "Valuation provider call duration in seconds.",
    ["provider"],
)

valuation_provider_failovers_total = Counter(
    "valuation_provider_failovers_total",
    "Failover episodes started away from the monitored provider.",
    ["provider"],
)

valuation_provider_reverts_total = Counter(
    "valuation_provider_reverts_total",
    "Reverts to the monitored provider after the cooldown elapsed.",
    ["provider"],
)

valuation_unavailable_total = Counter(
    "valuation_unavailable_total",
    "Valuation requests where every provider failed.",
)

valuation_provider_failover_active = Gauge(
    "valuation_provider_failover_active",
    "1 while valuation traffic is diverted away from the provider, else 0.",
    ["provider"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
