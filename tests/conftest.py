from __future__ import annotations

import io

import pytest
from PIL import Image

from chartsignal.core.config import Settings


@pytest.fixture()
def png_bytes() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (40, 30), "white").save(out, format="PNG")
    return out.getvalue()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        upload_dir=tmp_path / "uploads",
        public_base_url="http://testserver",
        vision_provider="openai",
    )
