"""Prometheus metrics for the job run lifecycle."""

from prometheus_client import Counter, Histogram

jobs_queued = Counter(
    "jobs_queued_total",
    "Total jobs queued (pending)",
)

jobs_running = Counter(
    "jobs_running_total",
    "Total jobs marked running",
)

jobs_completed = Counter(
    "jobs_completed_total",
    "Total jobs completed",
)

jobs_failed = Counter(
    "jobs_failed_total",
    "Total jobs failed",
)

job_duration_histogram = Histogram(
    "job_duration_seconds",
    "Wall-clock duration of a delivery run",
    ["result"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

dependency_failures = Counter(
    "dependency_failures_total",
    "Failures of external collaborators, by dependency",
    ["dependency"],
)
