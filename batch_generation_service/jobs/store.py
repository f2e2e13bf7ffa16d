"""Durable batch records.

Every write to a batch goes through :meth:`BatchStore.mutate`, which holds a
per-batch lock across the read-modify-write. Concurrent config completions in
the same batch therefore never lose each other's updates.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select

from ..db.models import BatchRecord
from ..db.session import Database
from ..errors import BatchNotFoundError
from ..storage import JsonDocument
from .models import Batch

logger = logging.getLogger(__name__)

Changes = Mapping[str, Any]


def _apply(batch: Batch, changes: Changes) -> Batch:
    data = batch.model_dump()
    data.update(changes)
    return Batch.model_validate(data)


def _newest_first(batches: List[Batch]) -> List[Batch]:
    return sorted(batches, key=lambda batch: batch.created_at, reverse=True)


class BatchStore(ABC):
    """CRUD over batch records with atomic per-batch updates."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def initialize(self) -> None:
        """Prepare the backing storage. Safe to call more than once."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def _load(self, batch_id: str) -> Optional[Batch]:
        ...

    @abstractmethod
    async def _save(self, batch: Batch) -> None:
        ...

    @abstractmethod
    async def _remove(self, batch_id: str) -> bool:
        ...

    @abstractmethod
    async def list(self) -> List[Batch]:
        """Return every valid batch, newest first."""

    async def create(self, batch: Batch) -> Batch:
        async with self._locks[batch.id]:
            await self._save(batch)
        logger.debug("Stored batch", extra={"batch_id": batch.id})
        return batch

    async def get(self, batch_id: str) -> Optional[Batch]:
        return await self._load(batch_id)

    async def update(self, batch_id: str, changes: Changes) -> Batch:
        return await self.mutate(batch_id, lambda _current: changes)

    async def mutate(self, batch_id: str, compute: Callable[[Batch], Changes]) -> Batch:
        """Apply ``compute(current)`` to the stored batch under its lock."""

        async with self._locks[batch_id]:
            current = await self._load(batch_id)
            if current is None:
                raise BatchNotFoundError(batch_id)
            updated = _apply(current, compute(current))
            await self._save(updated)
            return updated

    async def delete(self, batch_id: str) -> bool:
        async with self._locks[batch_id]:
            removed = await self._remove(batch_id)
        self._locks.pop(batch_id, None)
        return removed


class JsonFileBatchStore(BatchStore):
    """All batches in one JSON document.

    The file is read and rewritten without yielding to the event loop, so the
    whole-document rewrite for one batch cannot interleave with another.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.document = JsonDocument(path, default=list)

    def _read_raw(self) -> List[Dict[str, Any]]:
        data = self.document.read()
        if not isinstance(data, list):
            logger.warning("Batch document is not a list, ignoring it", extra={"path": str(self.document.path)})
            return []
        return [item for item in data if isinstance(item, dict)]

    async def _load(self, batch_id: str) -> Optional[Batch]:
        for raw in self._read_raw():
            if raw.get("id") == batch_id:
                try:
                    return Batch.model_validate(raw)
                except ValidationError:
                    logger.warning("Invalid batch record", extra={"batch_id": batch_id})
                    return None
        return None

    async def _save(self, batch: Batch) -> None:
        raw_items = self._read_raw()
        payload = batch.model_dump(mode="json")
        for index, raw in enumerate(raw_items):
            if raw.get("id") == batch.id:
                raw_items[index] = payload
                break
        else:
            raw_items.insert(0, payload)
        self.document.write(raw_items)

    async def _remove(self, batch_id: str) -> bool:
        raw_items = self._read_raw()
        remaining = [raw for raw in raw_items if raw.get("id") != batch_id]
        if len(remaining) == len(raw_items):
            return False
        self.document.write(remaining)
        return True

    async def list(self) -> List[Batch]:
        batches: List[Batch] = []
        for raw in self._read_raw():
            try:
                batches.append(Batch.model_validate(raw))
            except ValidationError:
                logger.warning("Dropping invalid batch record", extra={"batch_id": raw.get("id")})
        return _newest_first(batches)


class SqlBatchStore(BatchStore):
    """Batches as rows of the ``batches`` table."""

    def __init__(self, database: Database) -> None:
        super().__init__()
        self.database = database

    async def initialize(self) -> None:
        await self.database.create_all()

    async def close(self) -> None:
        await self.database.dispose()

    async def _load(self, batch_id: str) -> Optional[Batch]:
        async with self.database.session_scope() as session:
            record = await session.get(BatchRecord, batch_id)
            if record is None:
                return None
            document = record.document
        try:
            return Batch.model_validate(document)
        except ValidationError:
            logger.warning("Invalid batch record", extra={"batch_id": batch_id})
            return None

    async def _save(self, batch: Batch) -> None:
        document = batch.model_dump(mode="json")
        async with self.database.session_scope() as session:
            record = await session.get(BatchRecord, batch.id)
            if record is None:
                session.add(
                    BatchRecord(
                        id=batch.id,
                        name=batch.name,
                        status=batch.status.value,
                        created_at=batch.created_at,
                        document=document,
                    )
                )
            else:
                record.name = batch.name
                record.status = batch.status.value
                record.document = document

    async def _remove(self, batch_id: str) -> bool:
        async with self.database.session_scope() as session:
            result = await session.execute(delete(BatchRecord).where(BatchRecord.id == batch_id))
            return bool(result.rowcount)

    async def list(self) -> List[Batch]:
        async with self.database.session_scope() as session:
            result = await session.execute(select(BatchRecord.id, BatchRecord.document))
            rows = result.all()
        batches: List[Batch] = []
        for batch_id, document in rows:
            try:
                batches.append(Batch.model_validate(document))
            except ValidationError:
                logger.warning("Dropping invalid batch record", extra={"batch_id": batch_id})
        return _newest_first(batches)


__all__ = ["BatchStore", "JsonFileBatchStore", "SqlBatchStore"]
