# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Counters
tokens_added_total = Counter("tokens_added_total", "Total tokens added to queues")
tokens_added_total.inc(0)

token_transitions_total = Counter(
    "token_transitions_total", "Total token status transitions", ["status"]
)
for _status in ("serving", "served", "cancelled", "no_show"):
    token_transitions_total.labels(status=_status).inc(0)

tokens_reordered_total = Counter(
    "tokens_reordered_total", "Total reorder batches applied"
)
tokens_reordered_total.inc(0)

engine_errors_total = Counter(
    "engine_errors_total", "Total failed engine operations", ["code"]
)
engine_errors_total.labels(code="CONFLICT").inc(0)

auto_serve_total = Counter("auto_serve_total", "Total tokens served by auto-serve")
auto_serve_total.inc(0)

analytics_cache_hits_total = Counter(
    "analytics_cache_hits_total", "Analytics snapshots answered from cache"
)
analytics_cache_hits_total.inc(0)

wait_time_minutes = Histogram(
    "token_wait_time_minutes",
    "Minutes tokens waited before being served",
    buckets=(1, 2, 5, 10, 15, 20, 30, 45, 60, 90, 120),
)

sse_clients_gauge = Gauge("queue_stream_clients", "Open queue change streams")
sse_clients_gauge.set(0)

router = APIRouter()


@router.get("/metrics")
async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
