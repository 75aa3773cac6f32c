"""Application metrics using the Prometheus client library.

Every metric the service exports is declared here so the inventory lives
in one place.  Modules import the metric they own and increment it at the
point of action.

Scope resolution runs once per candidate row, so its counters are cheap
label increments only; nothing here performs I/O.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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
# Scope resolution
# ---------------------------------------------------------------------------

SCOPE_CHECKS = Counter(
    "scope_checks_total",
    "Scope resolution routine evaluations by routine and result",
    ["routine", "result"],  # result: "allow" | "deny"
)

SCOPE_RESOLUTION_FAILURES = Counter(
    "scope_resolution_failures_total",
    "Graph walks that hit a dangling reference and failed closed",
    ["reason"],  # "branch_without_school", "school_without_company", ...
)

# ---------------------------------------------------------------------------
# License ledger
# ---------------------------------------------------------------------------

LICENSE_ALLOCATIONS = Counter(
    "license_allocations_total",
    "License assign/revoke outcomes",
    ["operation", "outcome"],  # operation: assign|revoke; outcome: ok|<error code>
)

LICENSE_ACTIONS = Counter(
    "license_actions_total",
    "Administrative capacity changes appended to the action log",
    ["action_type"],  # EXPAND|EXTEND|RENEW
)

# ---------------------------------------------------------------------------
# Scoped read views / background work
# ---------------------------------------------------------------------------

ORG_STATS_REFRESHES = Counter(
    "org_stats_refresh_total",
    "Organization statistics snapshot rebuilds",
    ["trigger"],  # "read_miss" | "on_demand" | "scheduled" | "queued"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)

IMPERSONATED_REQUESTS = Counter(
    "impersonated_requests_total",
    "Requests evaluated as another actor through the test channel",
)
