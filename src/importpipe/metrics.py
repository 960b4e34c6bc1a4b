# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from prometheus_client import Counter, Histogram, Summary

# Job lifecycle
IMPORT_JOBS = Counter("ip_import_jobs_total", "Import jobs by lifecycle state", ["state"])
FILE_IMPORTS = Counter("ip_file_imports_total", "File imports by lifecycle state", ["state"])
FILE_PROCESSING_TIME = Histogram(
    "ip_file_processing_seconds",
    "Wall time spent processing one source file",
    buckets=[0.1, 0.5, 1, 5, 15, 60, 300, 900],
)

# Dispatcher
WRITE_EVENTS = Counter("ip_write_events_total", "Write events applied", ["kind"])
WRITE_ERRORS = Counter("ip_write_errors_total", "Write events that failed", ["kind"])
CHECKPOINTS = Counter("ip_checkpoints_total", "Checkpoints recorded")
HEARTBEATS = Counter("ip_heartbeats_total", "Heartbeats sent to the scheduler")

# Persistence
REPO_QUERIES = Counter("ip_repo_queries_total", "Job repository queries", ["operation"])
REPO_CONFLICTS = Counter(
    "ip_repo_conflicts_total", "Optimistic concurrency conflicts on job records", ["record"]
)
REPO_LATENCY = Summary("ip_repo_latency_seconds", "Job repository latency", ["operation"])

__all__ = [
    "IMPORT_JOBS",
    "FILE_IMPORTS",
    "FILE_PROCESSING_TIME",
    "WRITE_EVENTS",
    "WRITE_ERRORS",
    "CHECKPOINTS",
    "HEARTBEATS",
    "REPO_QUERIES",
    "REPO_CONFLICTS",
    "REPO_LATENCY",
]
