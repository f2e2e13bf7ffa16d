"""Exceptions raised to callers of the batch generation service."""

from __future__ import annotations

from typing import Optional


class BatchServiceError(Exception):
    """Base class for operational errors."""


class BatchNotFoundError(BatchServiceError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch {batch_id} not found")
        self.batch_id = batch_id


class BatchAlreadyRunningError(BatchServiceError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch {batch_id} is already being processed")
        self.batch_id = batch_id


class NoFailedConfigsError(BatchServiceError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch {batch_id} has no failed configs to retry")
        self.batch_id = batch_id


class TemplateNotFoundError(BatchServiceError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class GenerationError(BatchServiceError):
    """The generation API answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "BatchServiceError",
    "BatchNotFoundError",
    "BatchAlreadyRunningError",
    "NoFailedConfigsError",
    "TemplateNotFoundError",
    "GenerationError",
]
