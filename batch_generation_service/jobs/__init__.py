"""Batch orchestration."""

from .models import Batch, BatchOptions, BatchProgress, BatchStatus, JobConfig, JobError, JobResult, JobStatus
from .events import BatchListeners, ListenerRegistry, Subscription
from .retry import RetryPolicy
from .scheduler import ConcurrencyScheduler, Outcome
from .store import BatchStore, JsonFileBatchStore, SqlBatchStore
from .orchestrator import BatchOrchestrator, build_orchestrator, build_store
from .templates import BatchTemplate, TemplateConfig, TemplateLibrary

__all__ = [
    "Batch",
    "BatchListeners",
    "BatchOptions",
    "BatchOrchestrator",
    "BatchProgress",
    "BatchStatus",
    "BatchStore",
    "BatchTemplate",
    "ConcurrencyScheduler",
    "JobConfig",
    "JobError",
    "JobResult",
    "JobStatus",
    "JsonFileBatchStore",
    "ListenerRegistry",
    "Outcome",
    "RetryPolicy",
    "SqlBatchStore",
    "Subscription",
    "TemplateConfig",
    "TemplateLibrary",
    "build_orchestrator",
    "build_store",
]
