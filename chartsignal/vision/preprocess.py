from __future__ import annotations

import io
from PIL import Image, ImageEnhance

MAX_SIDE = 2048


def preprocess_to_png_bytes(raw: bytes) -> bytes:
    """
    Simple pre-processing for chart screenshots:
    - convert to RGB
    - upscale small screenshots (helps small labels), never past MAX_SIDE
    - mild contrast boost
    """
    img = Image.open(io.BytesIO(raw)).convert("RGB")

    longest = max(img.size)
    if longest * 2 <= MAX_SIDE:
        img = img.resize((img.size[0] * 2, img.size[1] * 2))

    img = ImageEnhance.Contrast(img).enhance(1.15)

    out = io.BytesIO()
    img.save(out, format="PNG", optimize=True)
    return out.getvalue()
