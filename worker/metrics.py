from __future__ import annotations

from prometheus_client import Counter, Gauge


tasks_received_total = Counter(
    "worker_tasks_received_total",
    "PerformTask calls by admission result",
    ["result"],
)

stage_outcomes_total = Counter(
    "worker_stage_outcomes_total",
    "Pipeline task outcomes by stage",
    ["stage", "outcome"],
)

pool_pending = Gauge(
    "worker_pool_pending",
    "Tasks queued or running in the worker pool",
)
