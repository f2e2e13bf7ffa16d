"""Monitoring helpers."""

from .metrics import (
    BATCHES_FINISHED_TOTAL,
    BATCHES_STARTED_TOTAL,
    CONFIGS_COMPLETED_TOTAL,
    CONFIGS_FAILED_TOTAL,
    CONFIGS_IN_FLIGHT,
    GENERATION_ATTEMPTS_TOTAL,
    GENERATION_LATENCY,
    metrics_router,
)

__all__ = [
    "BATCHES_FINISHED_TOTAL",
    "BATCHES_STARTED_TOTAL",
    "CONFIGS_COMPLETED_TOTAL",
    "CONFIGS_FAILED_TOTAL",
    "CONFIGS_IN_FLIGHT",
    "GENERATION_ATTEMPTS_TOTAL",
    "GENERATION_LATENCY",
    "metrics_router",
]
