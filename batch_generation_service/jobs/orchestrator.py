"""Batch lifecycle orchestration."""

from __future__ import annotations

import logging
from contextlib import aclosing, contextmanager
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Union

from ..config import Settings
from ..db.session import Database
from ..errors import BatchAlreadyRunningError, BatchNotFoundError, NoFailedConfigsError
from ..generation.client import ExportSink, GenerationClient, HistorySink, HttpGenerationClient
from ..generation.sinks import JsonBankExportSink, JsonHistorySink
from ..monitoring.metrics import (
    BATCHES_FINISHED_TOTAL,
    BATCHES_STARTED_TOTAL,
    CONFIGS_COMPLETED_TOTAL,
    CONFIGS_FAILED_TOTAL,
    CONFIGS_IN_FLIGHT,
    GENERATION_ATTEMPTS_TOTAL,
    GENERATION_LATENCY,
)
from .events import BatchListeners, ListenerRegistry, Subscription
from .models import (
    Batch,
    BatchOptions,
    BatchStatus,
    JobConfig,
    JobError,
    JobResult,
    JobStatus,
    utc_now,
)
from .retry import RetryPolicy
from .scheduler import DEFAULT_CONCURRENCY, ConcurrencyScheduler
from .store import BatchStore, JsonFileBatchStore, SqlBatchStore

logger = logging.getLogger(__name__)

ConfigInput = Union[JobConfig, Mapping[str, Any]]


def _terminal_count(results: Iterable[JobResult]) -> int:
    return sum(1 for result in results if result.status.is_terminal)


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class BatchOrchestrator:
    """Runs batches of generation configs against a rate-limited client.

    One instance allows a single active run per batch id. Job failures are
    recorded on the batch; only misuse (unknown id, double start, nothing to
    retry) raises to the caller.
    """

    def __init__(
        self,
        store: BatchStore,
        client: GenerationClient,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        history_sink: Optional[HistorySink] = None,
        export_sink: Optional[ExportSink] = None,
        listeners: Optional[ListenerRegistry] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.scheduler = ConcurrencyScheduler(concurrency)
        self.history_sink = history_sink
        self.export_sink = export_sink
        self.listeners = listeners or ListenerRegistry()
        self._active: Set[str] = set()

    # ------------------------------------------------------------------
    # Queries and CRUD
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        name: str,
        configs: Iterable[ConfigInput],
        options: Optional[Union[BatchOptions, Mapping[str, Any]]] = None,
    ) -> Batch:
        job_configs = [
            config if isinstance(config, JobConfig) else JobConfig.model_validate(config) for config in configs
        ]
        if options is not None and not isinstance(options, BatchOptions):
            options = BatchOptions.model_validate(options)
        batch = await self.store.create(Batch.create(name, job_configs, options))
        logger.info("Created batch", extra={"batch_id": batch.id, "config_count": len(job_configs)})
        return batch

    async def get_batch(self, batch_id: str) -> Optional[Batch]:
        return await self.store.get(batch_id)

    async def list_batches(self) -> List[Batch]:
        return await self.store.list()

    async def delete_batch(self, batch_id: str) -> bool:
        if batch_id in self._active:
            raise BatchAlreadyRunningError(batch_id)
        removed = await self.store.delete(batch_id)
        self.listeners.unregister(batch_id)
        return removed

    async def prune_older_than(self, days: float) -> int:
        """Delete finished batches created more than ``days`` ago."""

        cutoff = utc_now() - timedelta(days=days)
        removed = 0
        for batch in await self.store.list():
            if batch.status in (BatchStatus.PENDING, BatchStatus.PROCESSING) or batch.id in self._active:
                continue
            if batch.created_at < cutoff and await self.delete_batch(batch.id):
                removed += 1
        if removed:
            logger.info("Pruned batches", extra={"removed": removed, "days": days})
        return removed

    def is_active(self, batch_id: str) -> bool:
        return batch_id in self._active

    def active_count(self) -> int:
        return len(self._active)

    def register_listeners(self, batch_id: str, listeners: BatchListeners) -> Subscription:
        return self.listeners.register(batch_id, listeners)

    def unregister_listeners(self, batch_id: str) -> None:
        self.listeners.unregister(batch_id)

    async def aclose(self) -> None:
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()
        await self.store.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _claim(self, batch_id: str) -> Iterator[None]:
        if batch_id in self._active:
            raise BatchAlreadyRunningError(batch_id)
        self._active.add(batch_id)
        try:
            yield
        finally:
            self._active.discard(batch_id)

    async def _require(self, batch_id: str) -> Batch:
        batch = await self.store.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    async def start(self, batch_id: str) -> None:
        with self._claim(batch_id):
            batch = await self._require(batch_id)
            await self._process(batch_id, batch.configs)

    async def retry_failed(self, batch_id: str) -> None:
        with self._claim(batch_id):
            batch = await self._require(batch_id)
            failed_ids = set(batch.failed_config_ids)
            if not failed_ids:
                raise NoFailedConfigsError(batch_id)

            def reopen(current: Batch) -> Dict[str, Any]:
                results = [result for result in current.results if result.config_id not in failed_ids]
                return {
                    "status": BatchStatus.PENDING,
                    "results": results,
                    "errors": [error for error in current.errors if error.config_id not in failed_ids],
                    "progress": current.progress.model_copy(update={"current": _terminal_count(results)}),
                }

            reopened = await self.store.mutate(batch_id, reopen)
            logger.info("Retrying failed configs", extra={"batch_id": batch_id, "config_count": len(failed_ids)})
            await self._process(batch_id, [config for config in reopened.configs if config.id in failed_ids])

    async def cancel(self, batch_id: str) -> None:
        transitioned = False

        def request_cancel(current: Batch) -> Dict[str, Any]:
            nonlocal transitioned
            if current.status.is_terminal:
                return {}
            transitioned = True
            return {"status": BatchStatus.CANCELLED}

        updated = await self.store.mutate(batch_id, request_cancel)
        if not transitioned:
            logger.info("Cancel ignored for finished batch", extra={"batch_id": batch_id, "status": updated.status.value})
            return
        logger.info("Batch cancelled", extra={"batch_id": batch_id})
        BATCHES_FINISHED_TOTAL.labels(status=BatchStatus.CANCELLED.value).inc()
        await self.listeners.emit(batch_id, "on_complete", updated)

    async def _is_cancelled(self, batch_id: str) -> bool:
        current = await self.store.get(batch_id)
        return current is None or current.status == BatchStatus.CANCELLED

    async def _process(self, batch_id: str, configs: List[JobConfig]) -> None:
        try:
            started = await self.store.mutate(
                batch_id,
                lambda current: {
                    "status": BatchStatus.PROCESSING,
                    "progress": current.progress.model_copy(
                        update={"started_at": utc_now(), "total": len(current.configs)}
                    ),
                },
            )
            BATCHES_STARTED_TOTAL.inc()
            logger.info("Batch started", extra={"batch_id": batch_id, "config_count": len(configs)})
            await self.listeners.emit(batch_id, "on_progress", started)

            outcomes = self.scheduler.run(
                configs,
                partial(self._run_config, batch_id),
                should_stop=partial(self._is_cancelled, batch_id),
            )
            async with aclosing(outcomes) as settled:
                async for outcome in settled:
                    if outcome.error is not None:
                        raise outcome.error
            await self._finalize(batch_id)
        except Exception as exc:
            logger.exception("Batch processing failed", extra={"batch_id": batch_id})
            await self._fail_batch(batch_id, _error_message(exc))

    async def _fail_batch(self, batch_id: str, message: str) -> None:
        def mark_failed(current: Batch) -> Dict[str, Any]:
            # A cancelled batch has already announced its final state.
            if current.status == BatchStatus.CANCELLED:
                return {}
            return {"status": BatchStatus.FAILED}

        try:
            failed = await self.store.mutate(batch_id, mark_failed)
        except BatchNotFoundError:
            logger.warning("Batch vanished before it could be marked failed", extra={"batch_id": batch_id})
            return
        if failed.status == BatchStatus.CANCELLED:
            logger.warning("Batch failed after cancellation", extra={"batch_id": batch_id, "error": message})
            return
        BATCHES_FINISHED_TOTAL.labels(status=BatchStatus.FAILED.value).inc()
        await self.listeners.emit(batch_id, "on_error", failed, message)

    async def _finalize(self, batch_id: str) -> None:
        def decide(current: Batch) -> Dict[str, Any]:
            if current.status == BatchStatus.CANCELLED:
                return {}
            succeeded = current.success_count
            failed = current.failure_count
            status = BatchStatus.COMPLETED if failed == 0 or succeeded > 0 else BatchStatus.FAILED
            return {
                "status": status,
                "progress": current.progress.model_copy(
                    update={"current": current.terminal_count, "current_config": None}
                ),
            }

        final = await self.store.mutate(batch_id, decide)
        if final.status == BatchStatus.CANCELLED:
            logger.info("Batch drained after cancellation", extra={"batch_id": batch_id})
            return

        BATCHES_FINISHED_TOTAL.labels(status=final.status.value).inc()
        logger.info(
            "Batch finished",
            extra={
                "batch_id": batch_id,
                "status": final.status.value,
                "succeeded": final.success_count,
                "failed": final.failure_count,
            },
        )
        await self.listeners.emit(batch_id, "on_complete", final)

        if final.options.export_bank_id and final.success_count > 0:
            await self._export(final)

    # ------------------------------------------------------------------
    # Per-config execution
    # ------------------------------------------------------------------

    async def _generate(self, config: JobConfig) -> Any:
        GENERATION_ATTEMPTS_TOTAL.inc()
        with GENERATION_LATENCY.time():
            return await self.client.generate(dict(config.payload))

    async def _run_config(self, batch_id: str, config: JobConfig) -> None:
        await self.store.mutate(
            batch_id,
            lambda current: {"progress": current.progress.model_copy(update={"current_config": config.name})},
        )
        CONFIGS_IN_FLIGHT.inc()
        try:
            value = await self.retry_policy.execute(partial(self._generate, config))
        except Exception as exc:
            await self._record_failure(batch_id, config, _error_message(exc))
        else:
            await self._record_success(batch_id, config, value)
        finally:
            CONFIGS_IN_FLIGHT.dec()

    async def _record_success(self, batch_id: str, config: JobConfig, value: Any) -> None:
        result = JobResult.completed(config, value)

        def apply(current: Batch) -> Dict[str, Any]:
            results = [item for item in current.results if item.config_id != config.id] + [result]
            return {
                "results": results,
                "progress": current.progress.model_copy(update={"current": _terminal_count(results)}),
            }

        updated = await self.store.mutate(batch_id, apply)
        CONFIGS_COMPLETED_TOTAL.inc()
        logger.info("Config completed", extra={"batch_id": batch_id, "config_id": config.id})
        await self.listeners.emit(batch_id, "on_config_complete", updated, result)
        await self.listeners.emit(batch_id, "on_progress", updated)
        await self._record_history(batch_id, result)

    async def _record_failure(self, batch_id: str, config: JobConfig, message: str) -> None:
        result = JobResult.failed(config, message)
        error = JobError(config_id=config.id, config_name=config.name, error=message)

        def apply(current: Batch) -> Dict[str, Any]:
            results = [item for item in current.results if item.config_id != config.id] + [result]
            return {
                "results": results,
                "errors": [item for item in current.errors if item.config_id != config.id] + [error],
                "progress": current.progress.model_copy(update={"current": _terminal_count(results)}),
            }

        updated = await self.store.mutate(batch_id, apply)
        CONFIGS_FAILED_TOTAL.inc()
        logger.warning(
            "Config failed after retries",
            extra={"batch_id": batch_id, "config_id": config.id, "error": message},
        )
        await self.listeners.emit(batch_id, "on_config_error", updated, error)
        await self.listeners.emit(batch_id, "on_progress", updated)

    async def _record_history(self, batch_id: str, result: JobResult) -> None:
        if self.history_sink is None:
            return
        try:
            await self.history_sink.record(result)
        except Exception:
            logger.warning(
                "Failed to record history",
                exc_info=True,
                extra={"batch_id": batch_id, "config_id": result.config_id},
            )

    async def _export(self, batch: Batch) -> None:
        if self.export_sink is None:
            logger.warning("Export requested but no export sink configured", extra={"batch_id": batch.id})
            return
        successful = [result for result in batch.results if result.status == JobStatus.COMPLETED]
        try:
            await self.export_sink.export(batch.options.export_bank_id, successful, batch.options.common_tags)
        except Exception:
            logger.exception("Auto-export failed", extra={"batch_id": batch.id})
        else:
            logger.info(
                "Exported batch results",
                extra={"batch_id": batch.id, "bank_id": batch.options.export_bank_id, "count": len(successful)},
            )


def build_store(settings: Settings) -> BatchStore:
    if settings.store_backend == "sql":
        return SqlBatchStore(Database(settings.resolved_database_url))
    return JsonFileBatchStore(settings.data_dir / "batches.json")


def build_orchestrator(settings: Settings, client: Optional[GenerationClient] = None) -> BatchOrchestrator:
    """Wire the default object graph from settings."""

    data_dir = Path(settings.data_dir)
    return BatchOrchestrator(
        build_store(settings),
        client
        or HttpGenerationClient(
            settings.generation_url,
            timeout=settings.request_timeout_seconds,
            api_key=settings.generation_api_key,
        ),
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
        ),
        concurrency=settings.concurrency_limit,
        history_sink=JsonHistorySink(data_dir / "history.json", limit=settings.history_limit),
        export_sink=JsonBankExportSink(data_dir / "banks"),
    )


__all__ = ["BatchOrchestrator", "build_orchestrator", "build_store"]
