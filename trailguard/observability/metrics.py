"""Prometheus metrics for trailguard.

Counters and histograms for dispatch, retries, signature verification and
integrity scans. These are process-local and complement the shared
DispatchMetrics aggregator used for queue health.
"""

from prometheus_client import Counter, Histogram

# Dispatch metrics
EVENTS_DISPATCHED = Counter(
    "trailguard_events_dispatched_total",
    "Total number of events handed to the queue broker",
    labelnames=["queue", "kind"],
)

DISPATCH_FAILURES = Counter(
    "trailguard_dispatch_failures_total",
    "Total number of dispatches the broker refused",
    labelnames=["queue"],
)

DISPATCH_LATENCY = Histogram(
    "trailguard_dispatch_latency_seconds",
    "Time spent enqueueing one job",
    labelnames=["queue"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

BATCH_FLUSHES = Counter(
    "trailguard_batch_flushes_total",
    "Total number of batch bucket flushes",
    labelnames=["trigger"],
)

# Worker metrics
JOBS_PROCESSED = Counter(
    "trailguard_jobs_processed_total",
    "Total number of jobs processed by workers",
    labelnames=["queue", "outcome"],
)

JOB_PROCESSING_LATENCY = Histogram(
    "trailguard_job_processing_latency_seconds",
    "Time spent processing one job",
    labelnames=["queue"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Retry metrics
RETRY_ATTEMPTS = Counter(
    "trailguard_retry_attempts_total",
    "Total number of retries scheduled",
    labelnames=["operation", "error_type"],
)

RETRY_RECOVERED = Counter(
    "trailguard_retry_recovered_total",
    "Operations that succeeded after at least one retry",
    labelnames=["operation"],
)

RETRY_EXHAUSTED = Counter(
    "trailguard_retry_exhausted_total",
    "Operations that failed after using every retry",
    labelnames=["operation", "error_type"],
)

RETRY_TERMINAL = Counter(
    "trailguard_retry_terminal_total",
    "Operations that failed with a non-retryable error",
    labelnames=["operation", "error_type"],
)

# Integrity metrics
SIGNATURES_VERIFIED = Counter(
    "trailguard_signatures_verified_total",
    "Signature verifications by outcome",
    labelnames=["outcome"],
)

TAMPERING_DETECTED = Counter(
    "trailguard_tampering_detected_total",
    "Snapshot comparisons that found modified critical fields",
    labelnames=["severity"],
)

INTEGRITY_SCANS = Counter(
    "trailguard_integrity_scans_total",
    "Integrity scans by final status",
    labelnames=["status"],
)

INTEGRITY_SCAN_LATENCY = Histogram(
    "trailguard_integrity_scan_latency_seconds",
    "Integrity scan duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
)

SIGNATURES_REGENERATED = Counter(
    "trailguard_signatures_regenerated_total",
    "Privileged signature regenerations by outcome",
    labelnames=["outcome"],
)
