"""Prometheus metric definitions for the checkout service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
payment_sessions_total = Counter(
    "payment_sessions_total",
    "Payment sessions requested, by outcome",
    ["service", "outcome"],
)
payment_callbacks_total = Counter(
    "payment_callbacks_total",
    "Gateway confirmations received, by outcome",
    ["service", "outcome"],
)
signature_failures_total = Counter(
    "signature_failures_total",
    "Inbound notifications rejected for a bad signature",
    ["service"],
)
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound gateway calls, by operation and outcome",
    ["service", "operation", "outcome"],
)
gateway_latency_seconds = Histogram(
    "gateway_latency_seconds",
    "Outbound gateway call latency seconds",
    ["service", "operation"],
)
order_transitions_total = Counter(
    "order_transitions_total",
    "Applied order status transitions",
    ["service", "from_state", "to_state"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
