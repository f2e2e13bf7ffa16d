"""Best-effort destinations for generated results."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Sequence

from ..storage import JsonDocument

if TYPE_CHECKING:
    from ..jobs.models import JobResult


def _entry_id(result: JobResult) -> str:
    payload = result.payload_result
    if isinstance(payload, dict) and payload.get("id") is not None:
        return str(payload["id"])
    return result.config_id


class JsonHistorySink:
    """Keep the most recent generations in a JSON file, newest first."""

    def __init__(self, path: Path, limit: int = 20) -> None:
        self.document = JsonDocument(path, default=list)
        self.limit = limit

    def entries(self) -> List[Dict[str, Any]]:
        return list(self.document.read())

    async def record(self, result: JobResult) -> None:
        if result.payload_result in (None, {}, []):
            raise ValueError(f"Result for {result.config_name} has nothing to record")
        entry = {
            "id": _entry_id(result),
            "config_name": result.config_name,
            "payload_result": result.payload_result,
            "created_at": result.created_at.isoformat(),
        }
        existing = [item for item in self.entries() if item.get("id") != entry["id"]]
        self.document.write([entry, *existing][: self.limit])


class JsonBankExportSink:
    """Append successful results to ``<directory>/<bank_id>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def bank(self, bank_id: str) -> JsonDocument:
        root = self.directory.resolve()
        path = (root / f"{bank_id}.json").resolve()
        if not bank_id or path.parent != root:
            raise ValueError(f"Invalid bank id {bank_id!r}")
        return JsonDocument(path, default=list)

    async def export(self, bank_id: str, results: Sequence[JobResult], tags: Sequence[str]) -> None:
        document = self.bank(bank_id)
        entries = list(document.read())
        exported_at = datetime.now(timezone.utc).isoformat()
        for result in results:
            entries.append(
                {
                    "name": result.config_name,
                    "config_id": result.config_id,
                    "tags": list(tags),
                    "payload_result": result.payload_result,
                    "exported_at": exported_at,
                }
            )
        document.write(entries)


__all__ = ["JsonBankExportSink", "JsonHistorySink"]
