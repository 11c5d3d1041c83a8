from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info, make_asgi_app

REQUEST_COUNTER = Counter(
    "mock_completion_requests_total",
    "Total number of completion requests processed",
    labelnames=("route", "status"),
)

REQUEST_LATENCY = Histogram(
    "mock_completion_request_latency_seconds",
    "Completion request latency (seconds)",
    labelnames=("route",),
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

PROMPT_TOKENS = Counter(
    "mock_completion_prompt_tokens_total",
    "Total number of prompt tokens counted",
)

COMPLETION_TOKENS = Counter(
    "mock_completion_completion_tokens_total",
    "Total number of tokens returned across all choices",
)

VALIDATION_FAILURES = Counter(
    "mock_completion_validation_failures_total",
    "Requests rejected by field validation",
    labelnames=("param",),
)

FINISH_REASONS = Counter(
    "mock_completion_choices_total",
    "Generated choices by finish reason",
    labelnames=("finish_reason",),
)

ACTIVE_CONNECTIONS = Gauge(
    "mock_completion_active_connections",
    "Number of in-flight completion requests",
)

SERVICE_INFO = Info(
    "mock_completion_service",
    "Information about the mock completions service",
)

HEALTH_STATUS = Gauge(
    "mock_completion_service_health",
    "Service health status (1=healthy, 0=unhealthy)",
    labelnames=("component",),
)


metrics_app = make_asgi_app()


def update_service_info(default_encoding: str, version: str = "0.1.0") -> None:
    """Update service information metrics."""
    SERVICE_INFO.info(
        {"default_encoding": default_encoding, "version": version, "api_version": "v1"}
    )


def set_health_status(component: str, healthy: bool) -> None:
    """Set health status for a component."""
    HEALTH_STATUS.labels(component=component).set(1 if healthy else 0)


def record_usage_metrics(prompt_tokens: int, completion_tokens: int) -> None:
    PROMPT_TOKENS.inc(prompt_tokens)
    COMPLETION_TOKENS.inc(completion_tokens)


def record_validation_failure(param: str | None) -> None:
    VALIDATION_FAILURES.labels(param=param or "body").inc()
