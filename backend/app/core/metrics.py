"""
Prometheus metrics collection module.

Metrics Categories:
- RED Metrics: Rate, Errors, Duration for HTTP endpoints
- Routing Metrics: classifier decisions
- Provider Metrics: requests, latency, errors, fallbacks, circuit state
- Pipeline Metrics: C.R.A.F.T steps applied, degraded turns, keyword annotations
- Rate Limiting Metrics: limit hits, abuse detections
- Resource Metrics: CPU, memory

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration
- Gauges: No special suffix
"""
import re
import psutil
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    REGISTRY,
    CONTENT_TYPE_LATEST,
)

from app.core.logging import get_logger

logger = get_logger(__name__)

# Using default REGISTRY
registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=registry,
)

# ============================================================================
# ROUTING & PROVIDER METRICS
# ============================================================================

routing_decisions_total = Counter(
    "routing_decisions_total",
    "Total number of routing decisions by provider and complexity",
    ["provider", "complexity"],
    registry=registry,
)

provider_requests_total = Counter(
    "provider_requests_total",
    "Total number of provider calls",
    ["provider", "status"],  # status: success | error
    registry=registry,
)

provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Provider call latency in seconds",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0, 120.0],
    registry=registry,
)

provider_errors_total = Counter(
    "provider_errors_total",
    "Total number of provider errors by error code",
    ["provider", "code"],
    registry=registry,
)

provider_fallbacks_total = Counter(
    "provider_fallbacks_total",
    "Total number of fallbacks from one provider to another",
    ["from_provider", "to_provider"],
    registry=registry,
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0 = closed, 1 = half_open, 2 = open)",
    ["circuit"],
    registry=registry,
)

# ============================================================================
# PIPELINE METRICS
# ============================================================================

craft_steps_applied_total = Counter(
    "craft_steps_applied_total",
    "Total number of C.R.A.F.T steps that modified or annotated content",
    ["step"],
    registry=registry,
)

pipeline_failures_total = Counter(
    "pipeline_failures_total",
    "Total number of best-effort pipeline failures (turn degraded, not failed)",
    ["component"],  # post_process | keyword_annotation
    registry=registry,
)

keyword_annotations_total = Counter(
    "keyword_annotations_total",
    "Total number of keyword annotation runs",
    registry=registry,
)

keyword_entries_per_annotation = Histogram(
    "keyword_entries_per_annotation",
    "Number of keyword entries returned per annotation",
    buckets=[0, 1, 2, 5, 10, 20],
    registry=registry,
)

chat_turns_total = Counter(
    "chat_turns_total",
    "Total number of chat turns by outcome",
    ["status"],  # completed | failed | rejected
    registry=registry,
)

# ============================================================================
# RATE LIMITING METRICS
# ============================================================================

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total number of requests rejected by rate limiting",
    ["endpoint", "limit_type"],
    registry=registry,
)

abuse_detections_total = Counter(
    "abuse_detections_total",
    "Total number of abuse pattern detections",
    ["pattern"],
    registry=registry,
)

# ============================================================================
# RESOURCE METRICS
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

_CONVERSATION_PATH_RE = re.compile(r"^/api/conversations/[^/]+")

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path for metrics.

    Replaces conversation ids with a placeholder to avoid high cardinality.

    Examples:
        /api/conversations/abc123/messages -> /api/conversations/{conversation_id}/messages
        /api/conversations?limit=5 -> /api/conversations
        /health -> /health
    """
    if "?" in path:
        path = path.split("?")[0]

    return _CONVERSATION_PATH_RE.sub("/api/conversations/{conversation_id}", path)


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics (RED metrics).

    Args:
        method: HTTP method (GET, POST, etc.)
        endpoint: Request path (normalized here)
        status_code: HTTP status code
        duration_seconds: Request duration in seconds
    """
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_routing_decision(provider: str, complexity: str) -> None:
    routing_decisions_total.labels(provider=provider, complexity=complexity).inc()


def record_provider_request(provider: str, success: bool, duration_seconds: float) -> None:
    """
    Record a provider call.

    Args:
        provider: Provider kind ("fast", "research", "complex")
        success: Whether the call returned usable output
        duration_seconds: Wall-clock latency, recorded for failures too
    """
    provider_requests_total.labels(
        provider=provider,
        status="success" if success else "error",
    ).inc()
    provider_request_duration_seconds.labels(provider=provider).observe(duration_seconds)


def record_provider_error(provider: str, code: str) -> None:
    provider_errors_total.labels(provider=provider, code=code).inc()


def record_provider_fallback(from_provider: str, to_provider: str) -> None:
    provider_fallbacks_total.labels(
        from_provider=from_provider,
        to_provider=to_provider,
    ).inc()


def update_circuit_breaker_state(circuit: str, state: str) -> None:
    circuit_breaker_state.labels(circuit=circuit).set(_CIRCUIT_STATE_VALUES.get(state, 0))


def record_craft_step(step: str, applied: bool) -> None:
    """Count applied C.R.A.F.T steps. Non-applied steps are not counted."""
    if applied:
        craft_steps_applied_total.labels(step=step).inc()


def record_pipeline_failure(component: str) -> None:
    pipeline_failures_total.labels(component=component).inc()


def record_keyword_annotation(entry_count: int) -> None:
    keyword_annotations_total.inc()
    keyword_entries_per_annotation.observe(entry_count)


def record_chat_turn(status: str) -> None:
    chat_turns_total.labels(status=status).inc()


def record_rate_limit_hit(endpoint: str, limit_type: str) -> None:
    rate_limit_hits_total.labels(endpoint=endpoint, limit_type=limit_type).inc()


def record_abuse_detection(pattern: str) -> None:
    abuse_detections_total.labels(pattern=pattern).inc()


def update_resource_metrics() -> None:
    """
    Update system resource metrics (CPU, memory).

    Called on-demand when metrics are scraped.
    """
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        system_cpu_usage_percent.set(cpu_percent)

        memory = psutil.virtual_memory()
        system_memory_usage_bytes.set(memory.used)

    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    """
    Get Prometheus metrics in text format.

    Returns:
        Prometheus metrics text format
    """
    update_resource_metrics()

    return generate_latest(registry)


def get_metrics_content_type() -> str:
    """Get content type for metrics endpoint."""
    return CONTENT_TYPE_LATEST
