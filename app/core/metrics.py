"""
Prometheus metrics for the bracket sync service.

Metrics exposed:
- Result provider request counters and latency histogram
- Identity scan probe outcomes
- Sync run counters and duration histogram
- Event bracket sync outcomes
- Scheduler status gauges
"""
from prometheus_client import Counter, Gauge, Histogram

# Result provider
results_api_requests_total = Counter(
    "results_api_requests_total",
    "Total result provider requests",
    ["endpoint", "outcome"]
)

results_api_request_duration_seconds = Histogram(
    "results_api_request_duration_seconds",
    "Result provider request latency in seconds",
    ["endpoint"]
)

# Identity matcher
identity_scan_probes_total = Counter(
    "identity_scan_probes_total",
    "Identifiers probed during identity scans",
    ["outcome"]  # ok, skipped, fatal
)

identity_matches_total = Counter(
    "identity_matches_total",
    "Listing events matched to a provider identifier",
    ["match_type"]  # exact, substring, date_words
)

# Sync orchestrator
sync_runs_total = Counter(
    "sync_runs_total",
    "Total orchestrator runs",
    ["job", "status"]
)

sync_run_duration_seconds = Histogram(
    "sync_run_duration_seconds",
    "Orchestrator run duration in seconds",
    ["job"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200)
)

event_bracket_syncs_total = Counter(
    "event_bracket_syncs_total",
    "Event bracket syncs by terminal status",
    ["status"]  # synced, error
)

# Scheduler
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the automation scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)
