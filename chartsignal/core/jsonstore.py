from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonTable:
    """A JSON array stored in one file, shared by every request in the process.

    Writers go through `update`, which holds the table lock for the whole
    load -> mutate -> write sequence. The file is replaced atomically, so
    lock-free readers see either the old or the new document, never a torn one.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser().resolve()
        self._lock = asyncio.Lock()
        self._write_lock = threading.Lock()

    def _load(self) -> list[dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Could not read {self.path.name}: {e}") from e

        if not raw.strip():
            return []
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{self.path.name} is corrupt: {e}") from e
        if not isinstance(rows, list):
            raise PersistenceError(f"{self.path.name} does not hold a JSON array")
        return rows

    def _dump(self, rows: list[dict[str, Any]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(rows, fh, indent=2, ensure_ascii=False)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path.name}: {e}") from e

    async def read(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._load)

    def _update_sync(self, fn: Callable[[list[dict[str, Any]]], T]) -> T:
        with self._write_lock:
            rows = self._load()
            result = fn(rows)
            self._dump(rows)
        logger.debug("wrote %d rows to %s", len(rows), self.path)
        return result

    async def update(self, fn: Callable[[list[dict[str, Any]]], T]) -> T:
        """Run `fn` on the loaded rows and persist them, serialized against other writers.

        `fn` mutates the list in place and returns whatever the caller needs.
        Nothing is written if `fn` raises.

        Load, mutate and write run as one worker-thread call under a thread
        lock. A cancelled caller stops waiting, but its write still finishes
        before the next writer loads.
        """
        async with self._lock:
            return await asyncio.to_thread(self._update_sync, fn)
