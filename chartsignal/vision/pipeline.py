from __future__ import annotations

import logging
import time

from ..errors import ChartSignalError, InvalidMode, MissingCredential, NotFound, PersistenceError
from ..store.history import HistoryJournal
from ..store.uploads import ImageIngestor
from ..store.users import CredentialStore
from .adapters import InferenceAdapter
from .extract import extract
from .schema import MODES, AnalysisRecord

logger = logging.getLogger(__name__)


class ChartAnalyzer:
    """Credentials -> ingest -> vision -> extract -> journal, for one upload.

    Every failure is terminal for the request and carries the stage it came
    from. Nothing is retried.

    Known limitation: when the journal write fails after a successful vision
    call, the provider has already billed the request but the analysis is
    reported as not having happened. The extracted plan is logged at ERROR
    level so it can be recovered by hand.
    """

    def __init__(
        self,
        users: CredentialStore,
        ingestor: ImageIngestor,
        adapter: InferenceAdapter,
        journal: HistoryJournal,
    ):
        self.users = users
        self.ingestor = ingestor
        self.adapter = adapter
        self.journal = journal

    async def _api_key(self, user_id: str) -> str:
        try:
            api_key, _risk = await self.users.get_settings(user_id)
        except NotFound as e:
            raise MissingCredential(f"Unknown user {user_id!r}") from e
        if not api_key.strip():
            raise MissingCredential(f"User {user_id} has no API key configured")
        return api_key

    async def analyze(
        self,
        user_id: str,
        mode: str,
        image_bytes: bytes,
        mime_type: str | None,
        filename: str | None = None,
    ) -> AnalysisRecord:
        t0 = time.perf_counter()
        mode_norm = (mode or "").strip().lower()
        if mode_norm not in MODES:
            raise InvalidMode(f"mode must be one of {', '.join(MODES)}, got {mode!r}")

        try:
            api_key = await self._api_key(user_id)
            image = await self.ingestor.ingest(image_bytes, mime_type, filename)
            raw_text = await self.adapter.infer(api_key, image_bytes, image.content_type, mode_norm)
            plan = extract(raw_text)
        except ChartSignalError as e:
            logger.warning("analysis for user %s failed at %s: %s: %s", user_id, e.stage, e.code, e)
            raise

        try:
            record = await self.journal.append(user_id, mode_norm, image, plan)
        except PersistenceError:
            logger.error(
                "analysis for user %s lost after vision call (journal write failed); plan=%s image=%s",
                user_id,
                plan.model_dump_json(),
                image.filename,
            )
            raise

        logger.info(
            "analysis %s for user %s: %s %d%% in %dms",
            record.id,
            user_id,
            plan.signal,
            plan.confidence,
            int((time.perf_counter() - t0) * 1000),
        )
        return record
