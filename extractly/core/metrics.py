from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Extraction requests (single-task routes)
# ---------------------------------------------------------------------------
extraction_requests_total = Counter(
    "extraction_requests_total",
    "Total extraction requests by strategy and outcome",
    ["strategy", "status"],
)
extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "Time spent serving an extraction, cache hits included",
    ["strategy"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)

# ---------------------------------------------------------------------------
# Batch tasks
# ---------------------------------------------------------------------------
batch_tasks_total = Counter(
    "batch_tasks_total",
    "Total batch tasks by type and outcome",
    ["type", "status"],
)

# ---------------------------------------------------------------------------
# Fetcher / cache
# ---------------------------------------------------------------------------
fetch_attempts_total = Counter(
    "fetch_attempts_total",
    "Outbound GET attempts by outcome (success, retry, fatal, exhausted)",
    ["outcome"],
)
cache_lookups_total = Counter(
    "cache_lookups_total",
    "Response cache lookups by result (hit, miss, expired)",
    ["result"],
)

# ---------------------------------------------------------------------------
# Browser sessions
# ---------------------------------------------------------------------------
active_browser_sessions = Gauge(
    "active_browser_sessions",
    "Number of browser processes currently owned by render tasks",
)
browser_launch_failures_total = Counter(
    "browser_launch_failures_total",
    "Number of failed browser launch attempts",
)
blocked_requests_total = Counter(
    "blocked_requests_total",
    "Sub-resource requests aborted by the interception policy",
    ["reason"],
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
