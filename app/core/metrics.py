"""Prometheus metric inventory.

Every metric the service exposes is declared here; the modules that own
the behavior import the object and increment/observe it in place.

Label values are always drawn from small fixed sets (outcome, category,
reason).  Verb ids, actor keys and course ids are unbounded and never used
as labels; per-verb usage lives in app/services/verb_usage.py instead.
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
# Ingestion
# ---------------------------------------------------------------------------

STATEMENTS_INGESTED = Counter(
    "xapi_statements_ingested_total",
    "Statements received, by outcome",
    ["outcome"],  # accepted | duplicate | rejected | conflict
)

UNRESOLVED_STATEMENTS = Counter(
    "xapi_unresolved_statements_total",
    "Stored statements whose activity did not resolve to a single course",
    ["reason"],  # no_match | ambiguous
)

VERB_CLASSIFICATIONS = Counter(
    "xapi_verb_classifications_total",
    "Verb classifications at ingestion, by category and rule that matched",
    ["category", "source"],  # source: builtin | override | heuristic | default
)

KC_ATTEMPTS_RECORDED = Counter(
    "kc_attempts_recorded_total",
    "Knowledge-check attempts recorded from newly stored statements",
)

XAPI_DOCUMENT_OPERATIONS = Counter(
    "xapi_document_operations_total",
    "State and profile document operations, by kind and operation",
    ["kind", "operation"],  # kind: state | activity_profile | agent_profile
)

# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------

MATERIALIZATIONS = Counter(
    "progress_materializations_total",
    "Progress materialization attempts, by outcome",
    ["outcome"],  # written | empty | unknown_course | failed | throttled
)

MATERIALIZATION_DURATION = Histogram(
    "progress_materialization_duration_seconds",
    "Wall time of one read-compute-write materialization",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

STORE_RETRIES = Counter(
    "store_retries_total",
    "Store calls retried after a transient failure",
    ["operation"],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
