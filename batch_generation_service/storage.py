"""JSON document files written atomically."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


class JsonDocument:
    """A single JSON value persisted to disk.

    Writes go to a sibling ``.tmp`` file which then replaces the target, so a
    reader never observes a half written document.
    """

    def __init__(self, path: Path, default: Callable[[], Any]) -> None:
        self.path = path
        self._default = default
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def read(self) -> Any:
        if not self.path.exists():
            return self._default()
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Unreadable JSON document, starting empty", extra={"path": str(self.path)})
            return self._default()

    def write(self, data: Any) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        tmp.replace(self.path)


__all__ = ["JsonDocument"]
