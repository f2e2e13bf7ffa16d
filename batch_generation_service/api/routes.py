"""FastAPI routes for the batch generation service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field, ValidationError

from ..errors import BatchAlreadyRunningError, BatchNotFoundError, NoFailedConfigsError, TemplateNotFoundError
from ..jobs.models import Batch, BatchOptions, JobConfig
from ..jobs.orchestrator import BatchOrchestrator
from ..jobs.templates import BatchTemplate, TemplateConfig, TemplateLibrary

router = APIRouter()


def get_orchestrator(request: Request) -> BatchOrchestrator:
    return request.app.state.orchestrator


def get_templates(request: Request) -> TemplateLibrary:
    return request.app.state.templates


class BatchCreateRequest(BaseModel):
    name: str = Field(..., description="Friendly name for the batch")
    configs: List[JobConfig] = Field(default_factory=list)
    template_id: Optional[str] = Field(None, description="Append the configs of this template")
    base_payload: Dict[str, Any] = Field(default_factory=dict, description="Shared payload for template configs")
    options: BatchOptions = Field(default_factory=BatchOptions)


class BatchAccepted(BaseModel):
    batch_id: str
    status: str = "accepted"


class PruneResponse(BaseModel):
    removed: int


class TemplateCreateRequest(BaseModel):
    name: str
    description: str = ""
    subject: Optional[str] = None
    configs: List[TemplateConfig] = Field(..., min_length=1)


async def _require_batch(orchestrator: BatchOrchestrator, batch_id: str) -> Batch:
    batch = await orchestrator.get_batch(batch_id)
    if batch is None:
        raise BatchNotFoundError(batch_id)
    return batch


@router.post("/batches", response_model=Batch, status_code=201)
async def create_batch(
    payload: BatchCreateRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
    templates: TemplateLibrary = Depends(get_templates),
) -> Batch:
    configs = list(payload.configs)
    if payload.template_id:
        configs.extend(templates.instantiate(payload.template_id, payload.base_payload))
    if not configs:
        raise HTTPException(status_code=422, detail="A batch needs at least one config")
    try:
        return await orchestrator.create_batch(payload.name, configs, payload.options)
    except ValidationError as exc:
        detail = exc.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=detail) from exc


@router.get("/batches", response_model=List[Batch])
async def list_batches(orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> List[Batch]:
    return await orchestrator.list_batches()


@router.get("/batches/{batch_id}", response_model=Batch)
async def get_batch(batch_id: str, orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> Batch:
    return await _require_batch(orchestrator, batch_id)


@router.post("/batches/prune", response_model=PruneResponse)
async def prune_batches(
    days: float = Query(30, ge=0),
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> PruneResponse:
    return PruneResponse(removed=await orchestrator.prune_older_than(days))


@router.post("/batches/{batch_id}/start", response_model=BatchAccepted, status_code=202)
async def start_batch(
    batch_id: str,
    background_tasks: BackgroundTasks,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> BatchAccepted:
    await _require_batch(orchestrator, batch_id)
    if orchestrator.is_active(batch_id):
        raise BatchAlreadyRunningError(batch_id)
    background_tasks.add_task(orchestrator.start, batch_id)
    return BatchAccepted(batch_id=batch_id)


@router.post("/batches/{batch_id}/retry", response_model=BatchAccepted, status_code=202)
async def retry_batch(
    batch_id: str,
    background_tasks: BackgroundTasks,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> BatchAccepted:
    batch = await _require_batch(orchestrator, batch_id)
    if orchestrator.is_active(batch_id):
        raise BatchAlreadyRunningError(batch_id)
    if not batch.failed_config_ids:
        raise NoFailedConfigsError(batch_id)
    background_tasks.add_task(orchestrator.retry_failed, batch_id)
    return BatchAccepted(batch_id=batch_id)


@router.post("/batches/{batch_id}/cancel", response_model=Batch)
async def cancel_batch(batch_id: str, orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> Batch:
    await orchestrator.cancel(batch_id)
    return await _require_batch(orchestrator, batch_id)


@router.delete("/batches/{batch_id}", status_code=204)
async def delete_batch(batch_id: str, orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> Response:
    if not await orchestrator.delete_batch(batch_id):
        raise BatchNotFoundError(batch_id)
    return Response(status_code=204)


@router.get("/templates", response_model=List[BatchTemplate])
async def list_templates(templates: TemplateLibrary = Depends(get_templates)) -> List[BatchTemplate]:
    return templates.list_templates()


@router.post("/templates", response_model=BatchTemplate, status_code=201)
async def create_template(
    payload: TemplateCreateRequest,
    templates: TemplateLibrary = Depends(get_templates),
) -> BatchTemplate:
    if not payload.name.strip():
        raise HTTPException(status_code=422, detail="Template name must not be blank")
    return templates.save_custom_template(payload.name, payload.description, payload.subject, payload.configs)


@router.delete("/templates/{template_id}", status_code=204)
async def delete_template(template_id: str, templates: TemplateLibrary = Depends(get_templates)) -> Response:
    if not templates.delete_custom_template(template_id):
        raise TemplateNotFoundError(template_id)
    return Response(status_code=204)


class HealthResponse(BaseModel):
    status: str = "ok"
    active_batches: int
    timestamp: datetime


@router.get("/health", response_model=HealthResponse, include_in_schema=False)
async def health_check(orchestrator: BatchOrchestrator = Depends(get_orchestrator)) -> HealthResponse:
    return HealthResponse(active_batches=orchestrator.active_count(), timestamp=datetime.now(timezone.utc))
