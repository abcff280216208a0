"""Application metrics (Prometheus client library).

Every metric the service exports is defined here so the inventory lives
in one place.  Modules import the metric they own and increment/observe
it at the point of action; /metrics exposes the lot for scraping.

  COUNTER    only goes up: rate() it in PromQL
  GAUGE      goes up and down: in-flight requests
  HISTOGRAM  bucketed observations: histogram_quantile() for p95/p99
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "user" or "ip"
)

CHECKOUT_SESSIONS = Counter(
    "checkout_sessions_total",
    "Checkout sessions requested from the payment gateway",
    ["outcome"],  # created|gateway_error
)

WEBHOOK_EVENTS = Counter(
    "payment_webhook_events_total",
    "Payment gateway webhook deliveries",
    ["event_type", "outcome"],
    # outcome: completed|duplicate|failed|unknown_purchase|retry|ignored|bad_signature
)

ENROLLMENTS_GRANTED = Counter(
    "enrollments_granted_total",
    "Enrollments created as a result of a completed purchase",
)

LECTURE_COMPLETIONS = Counter(
    "lecture_completions_total",
    "Lecture completion marks recorded",
)

WEBHOOK_DURATION = Histogram(
    "payment_webhook_duration_seconds",
    "Time spent reconciling a verified webhook event",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
