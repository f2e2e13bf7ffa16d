"""Domain models for batches and the configs they run."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


BANK_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.CANCELLED, BatchStatus.FAILED)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobConfig(BaseModel):
    """One unit of work. The payload is handed to the generation client untouched."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"config_{uuid.uuid4().hex[:12]}")
    name: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class JobResult(BaseModel):
    config_id: str
    config_name: str
    status: JobStatus
    payload_result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def completed(cls, config: JobConfig, payload_result: Any) -> "JobResult":
        return cls(
            config_id=config.id,
            config_name=config.name,
            status=JobStatus.COMPLETED,
            payload_result=payload_result,
        )

    @classmethod
    def failed(cls, config: JobConfig, error: str) -> "JobResult":
        return cls(config_id=config.id, config_name=config.name, status=JobStatus.FAILED, error=error)


class JobError(BaseModel):
    config_id: str
    config_name: str
    error: str
    timestamp: datetime = Field(default_factory=utc_now)
    retryable: bool = True


class BatchProgress(BaseModel):
    current: int = 0
    total: int = 0
    current_config: Optional[str] = None
    started_at: Optional[datetime] = None


class BatchOptions(BaseModel):
    """Orchestration knobs. Only ``export_bank_id`` and ``common_tags`` are read here."""

    export_bank_id: Optional[str] = Field(None, pattern=BANK_ID_PATTERN)
    common_tags: List[str] = Field(default_factory=list)
    generate_variations: bool = False
    randomize_topics: bool = False
    export_as_package: bool = False


class Batch(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    configs: List[JobConfig] = Field(..., min_length=1)
    options: BatchOptions = Field(default_factory=BatchOptions)
    created_at: datetime = Field(default_factory=utc_now)
    status: BatchStatus = BatchStatus.PENDING
    progress: BatchProgress = Field(default_factory=BatchProgress)
    results: List[JobResult] = Field(default_factory=list)
    errors: List[JobError] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Batch name must not be blank")
        return stripped

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def _unique_config_ids(self) -> "Batch":
        ids = [config.id for config in self.configs]
        if len(ids) != len(set(ids)):
            raise ValueError("Config ids must be unique within a batch")
        return self

    @classmethod
    def create(cls, name: str, configs: List[JobConfig], options: Optional[BatchOptions] = None) -> "Batch":
        return cls(
            id=f"batch_{uuid.uuid4().hex}",
            name=name,
            configs=list(configs),
            options=options or BatchOptions(),
            progress=BatchProgress(current=0, total=len(configs)),
        )

    def config(self, config_id: str) -> Optional[JobConfig]:
        return next((config for config in self.configs if config.id == config_id), None)

    def result_for(self, config_id: str) -> Optional[JobResult]:
        return next((result for result in self.results if result.config_id == config_id), None)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.status == JobStatus.COMPLETED)

    @property
    def failure_count(self) -> int:
        return sum(1 for result in self.results if result.status == JobStatus.FAILED)

    @property
    def terminal_count(self) -> int:
        return sum(1 for result in self.results if result.status.is_terminal)

    @property
    def failed_config_ids(self) -> List[str]:
        return [result.config_id for result in self.results if result.status == JobStatus.FAILED]

    @property
    def is_partial_success(self) -> bool:
        return self.status == BatchStatus.COMPLETED and bool(self.errors)


__all__ = [
    "BANK_ID_PATTERN",
    "Batch",
    "BatchOptions",
    "BatchProgress",
    "BatchStatus",
    "JobConfig",
    "JobError",
    "JobResult",
    "JobStatus",
    "utc_now",
]
