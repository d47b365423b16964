from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from ..core.jsonstore import JsonTable
from ..vision.schema import AnalysisRecord, ImageRef, SignalPlan

logger = logging.getLogger(__name__)


class HistoryJournal:
    """Append-only log of analyses for all users, filtered by user on read."""

    def __init__(self, path: Path):
        self.table = JsonTable(path)

    async def append(self, user_id: str, mode: str | None, image: ImageRef, result: SignalPlan) -> AnalysisRecord:
        def _push(rows: list[dict[str, Any]]) -> AnalysisRecord:
            # Ids are assigned inside the critical section so they stay unique
            # and increasing even for appends landing in the same millisecond.
            last = max((int(r["id"]) for r in rows if str(r.get("id", "")).isdigit()), default=0)
            now = datetime.now(timezone.utc)
            record = AnalysisRecord(
                id=str(max(int(time.time() * 1000), last + 1)),
                userId=user_id,
                mode=mode,
                imageUrl=image.url,
                timestamp=now.isoformat(),
                result=result,
            )
            rows.append(record.model_dump())
            return record

        record = await self.table.update(_push)
        logger.info("journaled analysis %s for user %s", record.id, user_id)
        return record

    async def list(self, user_id: str) -> List[AnalysisRecord]:
        rows = await self.table.read()
        records = [AnalysisRecord.model_validate(r) for r in rows if r.get("userId") == user_id]
        records.sort(key=_newest_first_key, reverse=True)
        return records


def _newest_first_key(record: AnalysisRecord) -> tuple[datetime, int]:
    ts = datetime.fromisoformat(record.timestamp.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts, int(record.id) if record.id.isdigit() else 0
