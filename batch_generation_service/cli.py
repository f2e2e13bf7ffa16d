"""CLI entrypoint for the batch generation service."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import get_settings
from .db.migrate import upgrade_head
from .errors import BatchServiceError
from .jobs.events import BatchListeners
from .jobs.models import Batch, BatchOptions
from .jobs.orchestrator import BatchOrchestrator, build_orchestrator
from .jobs.templates import TemplateLibrary
from .logging_utils import configure_from_settings

app = typer.Typer(help="Batch generation service command line interface")


def _summary(batch: Batch) -> str:
    return (
        f"{batch.id}  {batch.status.value:<10}  {batch.progress.current}/{batch.progress.total}"
        f"  ok={batch.success_count} failed={batch.failure_count}  {batch.name}"
    )


async def _with_orchestrator(action) -> Any:
    orchestrator: BatchOrchestrator = build_orchestrator(get_settings())
    await orchestrator.store.initialize()
    try:
        return await action(orchestrator)
    finally:
        await orchestrator.aclose()


def _progress_listeners() -> BatchListeners:
    return BatchListeners(
        on_config_complete=lambda batch, result: typer.echo(f"  done   {result.config_name}"),
        on_config_error=lambda batch, error: typer.echo(f"  failed {error.config_name}: {error.error}"),
        on_error=lambda batch, message: typer.echo(f"Batch error: {message}", err=True),
    )


@app.command()
def show_config() -> None:
    """Print the active configuration."""

    settings = get_settings()
    typer.echo(settings.model_dump_json(indent=2))


@app.command()
def run(
    name: str,
    configs_file: Optional[Path] = typer.Argument(None, exists=True, readable=True),
    template: Optional[str] = typer.Option(None, help="Template id whose configs are appended"),
    base_payload: Optional[str] = typer.Option(None, help="JSON object merged into template payloads"),
    export_bank: Optional[str] = typer.Option(None, help="Bank id receiving successful results"),
    tag: List[str] = typer.Option([], help="Tag applied to exported results"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Create a batch from a JSON list of configs and run it to completion."""

    configure_from_settings(get_settings(), level=log_level.upper())
    configs: List[Dict[str, Any]] = []
    if configs_file is not None:
        configs.extend(json.loads(configs_file.read_text(encoding="utf-8")))
    if template:
        library = TemplateLibrary(get_settings().data_dir / "templates.json")
        shared = json.loads(base_payload) if base_payload else {}
        configs.extend(config.model_dump() for config in library.instantiate(template, shared))
    if not configs:
        raise typer.BadParameter("Provide a configs file or a template")

    async def _run(orchestrator: BatchOrchestrator) -> Batch:
        batch = await orchestrator.create_batch(
            name, configs, BatchOptions(export_bank_id=export_bank, common_tags=list(tag))
        )
        typer.echo(f"Running batch {batch.id} with {len(batch.configs)} configs")
        with orchestrator.register_listeners(batch.id, _progress_listeners()):
            await orchestrator.start(batch.id)
        return await orchestrator.get_batch(batch.id)

    final = asyncio.run(_with_orchestrator(_run))
    typer.echo(_summary(final))
    if final.status.value == "failed":
        raise typer.Exit(code=1)


@app.command("list")
def list_batches() -> None:
    """List stored batches, newest first."""

    batches = asyncio.run(_with_orchestrator(lambda orchestrator: orchestrator.list_batches()))
    if not batches:
        typer.echo("No batches")
    for batch in batches:
        typer.echo(_summary(batch))


@app.command()
def retry(batch_id: str) -> None:
    """Re-run the failed configs of a batch."""

    async def _retry(orchestrator: BatchOrchestrator) -> Optional[Batch]:
        with orchestrator.register_listeners(batch_id, _progress_listeners()):
            await orchestrator.retry_failed(batch_id)
        return await orchestrator.get_batch(batch_id)

    try:
        final = asyncio.run(_with_orchestrator(_retry))
    except BatchServiceError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(_summary(final))


@app.command()
def delete(batch_id: str) -> None:
    """Delete a batch."""

    removed = asyncio.run(_with_orchestrator(lambda orchestrator: orchestrator.delete_batch(batch_id)))
    if not removed:
        typer.echo(f"Batch {batch_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {batch_id}")


@app.command()
def prune(days: float = typer.Option(30, min=0, help="Delete finished batches older than this")) -> None:
    """Delete finished batches older than the given number of days."""

    removed = asyncio.run(_with_orchestrator(lambda orchestrator: orchestrator.prune_older_than(days)))
    typer.echo(f"Removed {removed} batches")


@app.command()
def templates() -> None:
    """List built-in and custom templates."""

    library = TemplateLibrary(get_settings().data_dir / "templates.json")
    for template in library.list_templates():
        origin = "built-in" if template.is_built_in else "custom"
        typer.echo(f"{template.id}  [{origin}]  {template.name} ({len(template.configs)} configs)")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
) -> None:
    """Run the HTTP API."""

    import uvicorn

    uvicorn.run("batch_generation_service.main:build_default_app", factory=True, host=host, port=port)


@app.command()
def migrate() -> None:
    """Apply database migrations up to head."""

    settings = get_settings()
    configure_from_settings(settings)
    upgrade_head(settings.resolved_database_url)
    typer.echo("Database is up to date")


if __name__ == "__main__":
    app()
