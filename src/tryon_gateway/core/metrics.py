"""Prometheus metrics for the gateway."""

from prometheus_client import Counter, Gauge, Histogram

# Request metrics
request_latency_seconds = Histogram(
    "tryon_gateway_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

request_total = Counter(
    "tryon_gateway_request_total",
    "Total number of HTTP requests",
    ["endpoint", "method", "status"],
)

active_requests = Gauge(
    "tryon_gateway_active_requests",
    "Number of active HTTP requests",
)

# Credential pool metrics
credential_allocations_total = Counter(
    "tryon_gateway_credential_allocations_total",
    "Credential allocation attempts by outcome",
    ["outcome"],
)

credential_allocation_retries_total = Counter(
    "tryon_gateway_credential_allocation_retries_total",
    "Allocations that lost a race and retried with a new candidate",
)

credential_pool_resets_total = Counter(
    "tryon_gateway_credential_pool_resets_total",
    "Daily credential pool resets by outcome",
    ["outcome"],
)

# Gate metrics
gate_decisions_total = Counter(
    "tryon_gateway_gate_decisions_total",
    "Quota gate decisions by outcome and policy",
    ["outcome", "policy"],
)

usage_log_writes_total = Counter(
    "tryon_gateway_usage_log_writes_total",
    "Post-response usage log writes by outcome",
    ["outcome"],
)

upstream_latency_seconds = Histogram(
    "tryon_gateway_upstream_latency_seconds",
    "Latency of upstream image generation calls in seconds",
    ["outcome"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 90.0),
)


def track_allocation(outcome: str) -> None:
    """Track a credential allocation outcome (allocated or exhausted)."""
    credential_allocations_total.labels(outcome=outcome).inc()


def track_pool_reset(outcome: str) -> None:
    """Track a pool reset outcome (success or failure)."""
    credential_pool_resets_total.labels(outcome=outcome).inc()


def track_gate_decision(outcome: str, policy: str) -> None:
    """Track a quota gate decision."""
    gate_decisions_total.labels(outcome=outcome, policy=policy).inc()


def track_usage_log_write(outcome: str) -> None:
    """Track a usage log write outcome."""
    usage_log_writes_total.labels(outcome=outcome).inc()
