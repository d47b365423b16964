from __future__ import annotations

import asyncio
import io
import logging
import re
import secrets
import time
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..errors import InvalidUpload, PersistenceError
from ..vision.schema import ImageRef

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_.\-]+")


def _safe_name(s: str | None) -> str:
    s = (s or "").strip().rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
    s = _SAFE_NAME_RE.sub("_", s).lstrip(".")
    return s[-80:] if s else "chart.png"


def _check_decodable(raw: bytes) -> None:
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise InvalidUpload(f"Upload is not a readable image: {type(e).__name__}") from e


class ImageIngestor:
    """Stores uploaded chart images under time-ordered, collision-free names."""

    def __init__(self, upload_dir: Path, *, public_base_url: str = "", max_bytes: int = 8 * 1024 * 1024):
        self.upload_dir = Path(upload_dir).expanduser().resolve()
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.max_bytes = max_bytes

    def url_for(self, filename: str) -> str:
        return f"{self.public_base_url}/uploads/{filename}"

    def _write(self, filename: str, raw: bytes) -> Path:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self.upload_dir / filename
        # "xb" refuses to overwrite an existing upload
        with open(path, "xb") as fh:
            fh.write(raw)
        return path

    async def ingest(self, raw: bytes, declared_mime: str | None, original_name: str | None) -> ImageRef:
        if not raw:
            raise InvalidUpload("Empty image upload")
        mime = (declared_mime or "").split(";", 1)[0].strip().lower()
        if not mime.startswith("image/"):
            raise InvalidUpload(f"Expected an image upload, got {mime or 'unknown type'}")
        if len(raw) > self.max_bytes:
            raise InvalidUpload(f"Image is larger than {self.max_bytes // (1024 * 1024)} MB")
        await asyncio.to_thread(_check_decodable, raw)

        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}-{_safe_name(original_name)}"
        try:
            path = await asyncio.to_thread(self._write, filename, raw)
        except OSError as e:
            raise PersistenceError(f"Could not store upload: {e}", stage="ingest") from e

        logger.info("stored upload %s (%d bytes, %s)", filename, len(raw), mime)
        return ImageRef(filename=filename, path=str(path), url=self.url_for(filename), content_type=mime, size=len(raw))
