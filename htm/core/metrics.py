from prometheus_client import (
    Counter,
    Summary,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)

registry = CollectorRegistry()

UNMATCHED_ROUTE = "unmatched"

REQUEST_COUNT = Counter(
    "htm_requests_total",
    "Total number of proxied requests",
    ["method", "route", "status"],
    registry=registry
)

REQUEST_DURATION = Summary(
    "htm_request_duration_seconds",
    "Time until upstream response headers arrived, in seconds",
    ["route"],
    registry=registry
)

ACTIVE_REQUESTS = Gauge(
    "htm_concurrent_requests",
    "Current number of requests waiting on an upstream",
    registry=registry
)

UPSTREAM_ERRORS = Counter(
    "htm_upstream_errors_total",
    "Number of requests that failed to reach their upstream",
    ["route"],
    registry=registry
)


def render_prometheus_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
