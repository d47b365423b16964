from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Tuple

from ..core.jsonstore import JsonTable
from ..errors import NotFound
from ..vision.schema import RiskSettings, User

logger = logging.getLogger(__name__)


def _new_user_id(rows: list[dict[str, Any]]) -> str:
    # epoch-ms ids, bumped past the newest existing one
    last = max((int(r["id"]) for r in rows if str(r.get("id", "")).isdigit()), default=0)
    return str(max(int(time.time() * 1000), last + 1))


def _find(rows: list[dict[str, Any]], user_id: str) -> dict[str, Any]:
    for row in rows:
        if row.get("id") == user_id:
            return row
    raise NotFound(f"User {user_id!r} not found")


class CredentialStore:
    """Users table: API key and risk configuration per user."""

    def __init__(self, path: Path):
        self.table = JsonTable(path)

    async def upsert_user_by_email(self, email: str, name: str | None = None, picture: str | None = None) -> User:
        def _upsert(rows: list[dict[str, Any]]) -> dict[str, Any]:
            for row in rows:
                if row.get("email") == email:
                    return row
            row = User(
                id=_new_user_id(rows),
                email=email,
                name=name,
                picture=picture,
                joined=datetime.now(timezone.utc).isoformat(),
            ).model_dump()
            rows.append(row)
            logger.info("created user %s", row["id"])
            return row

        # Lookups go through the lock too: two first logins for one email must
        # not both append.
        return User.model_validate(await self.table.update(_upsert))

    async def get_user(self, user_id: str) -> User:
        rows = await self.table.read()
        return User.model_validate(_find(rows, user_id))

    async def get_settings(self, user_id: str) -> Tuple[str, RiskSettings]:
        user = await self.get_user(user_id)
        return user.apiKey or "", user.riskSettings or RiskSettings()

    async def update_settings(
        self,
        user_id: str,
        api_key: str | None = None,
        risk_settings: RiskSettings | None = None,
    ) -> None:
        def _apply(rows: list[dict[str, Any]]) -> None:
            row = _find(rows, user_id)
            if api_key is not None:
                row["apiKey"] = api_key
            if risk_settings is not None:
                row["riskSettings"] = risk_settings.model_dump()

        await self.table.update(_apply)
        logger.info(
            "updated settings for user %s (api_key=%s, risk=%s)",
            user_id,
            "set" if api_key is not None else "unchanged",
            "set" if risk_settings is not None else "unchanged",
        )
