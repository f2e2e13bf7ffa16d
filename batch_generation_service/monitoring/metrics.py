"""Prometheus metrics and monitoring utilities."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

BATCHES_STARTED_TOTAL = Counter("batch_generation_batches_started_total", "Batch runs started")
BATCHES_FINISHED_TOTAL = Counter(
    "batch_generation_batches_finished_total", "Batch runs finished", labelnames=("status",)
)
CONFIGS_COMPLETED_TOTAL = Counter("batch_generation_configs_completed_total", "Configs completed successfully")
CONFIGS_FAILED_TOTAL = Counter("batch_generation_configs_failed_total", "Configs failed after all retries")
GENERATION_ATTEMPTS_TOTAL = Counter("batch_generation_attempts_total", "Generation calls attempted")
CONFIGS_IN_FLIGHT = Gauge("batch_generation_configs_in_flight", "Configs currently being generated")
GENERATION_LATENCY = Histogram("batch_generation_latency_seconds", "Latency of single generation calls")

metrics_router = APIRouter()


@metrics_router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "BATCHES_STARTED_TOTAL",
    "BATCHES_FINISHED_TOTAL",
    "CONFIGS_COMPLETED_TOTAL",
    "CONFIGS_FAILED_TOTAL",
    "GENERATION_ATTEMPTS_TOTAL",
    "CONFIGS_IN_FLIGHT",
    "GENERATION_LATENCY",
    "metrics_router",
]
