from __future__ import annotations

import asyncio
import base64
import logging
from typing import Protocol

import openai
from openai import AsyncOpenAI
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..core.config import Settings
from ..errors import AuthError, InvalidUpload, ProviderError
from .preprocess import preprocess_to_png_bytes
from .prompt import SYSTEM, build_user_prompt
from .schema import Mode

logger = logging.getLogger(__name__)


class InferenceAdapter(Protocol):
    """Vision model call: chart image + mode prompt in, raw model text out.

    Implementations raise AuthError when the provider rejects the key and
    ProviderError for every other upstream failure. They never retry.
    """

    async def infer(self, api_key: str, image_bytes: bytes, mime_type: str, mode: Mode) -> str: ...


def _to_data_url_png(png_bytes: bytes) -> str:
    b64 = base64.b64encode(png_bytes).decode("utf-8")
    return f"data:image/png;base64,{b64}"


async def _prepare_png(image_bytes: bytes) -> bytes:
    try:
        return await asyncio.to_thread(preprocess_to_png_bytes, image_bytes)
    except (OSError, ValueError) as e:
        raise InvalidUpload(f"Image could not be decoded: {type(e).__name__}") from e


class OpenAIVisionAdapter:
    def __init__(self, model: str = "gpt-4o-mini", timeout_s: float = 25.0):
        self.model = model
        self.timeout_s = timeout_s

    async def _complete(self, api_key: str, data_url: str, mode: Mode) -> str:
        async with AsyncOpenAI(api_key=api_key, max_retries=0, timeout=self.timeout_s) as client:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_user_prompt(mode)},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    },
                ],
                temperature=0,
            )
        return (resp.choices[0].message.content or "").strip()

    async def infer(self, api_key: str, image_bytes: bytes, mime_type: str, mode: Mode) -> str:
        data_url = _to_data_url_png(await _prepare_png(image_bytes))
        try:
            text = await asyncio.wait_for(self._complete(api_key, data_url, mode), timeout=self.timeout_s)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthError(f"OpenAI rejected the API key: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Chart vision timed out after {self.timeout_s:g}s") from e
        except Exception as e:
            raise ProviderError(f"Chart vision failed: {type(e).__name__}: {e}") from e

        if not text:
            raise ProviderError("Chart vision returned an empty answer")
        return text


def _is_gemini_auth_error(e: genai_errors.APIError) -> bool:
    if e.code in (401, 403):
        return True
    return "API_KEY_INVALID" in str(e) or "API key not valid" in str(e)


class GeminiVisionAdapter:
    def __init__(self, model: str = "gemini-1.5-flash", timeout_s: float = 25.0):
        self.model = model
        self.timeout_s = timeout_s

    async def _complete(self, api_key: str, png: bytes, mode: Mode) -> str:
        async with genai.Client(api_key=api_key).aio as client:
            resp = await client.models.generate_content(
                model=self.model,
                contents=[
                    genai_types.Part.from_bytes(data=png, mime_type="image/png"),
                    SYSTEM + "\n" + build_user_prompt(mode),
                ],
                config=genai_types.GenerateContentConfig(temperature=0),
            )
        return (resp.text or "").strip()

    async def infer(self, api_key: str, image_bytes: bytes, mime_type: str, mode: Mode) -> str:
        png = await _prepare_png(image_bytes)
        try:
            text = await asyncio.wait_for(self._complete(api_key, png, mode), timeout=self.timeout_s)
        except genai_errors.APIError as e:
            if _is_gemini_auth_error(e):
                raise AuthError(f"Gemini rejected the API key: {e.code}") from e
            raise ProviderError(f"Chart vision failed: {type(e).__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Chart vision timed out after {self.timeout_s:g}s") from e
        except Exception as e:
            raise ProviderError(f"Chart vision failed: {type(e).__name__}: {e}") from e

        if not text:
            raise ProviderError("Chart vision returned an empty answer")
        return text


def build_adapter(settings: Settings) -> InferenceAdapter:
    provider = (settings.vision_provider or "openai").strip().lower()
    if provider == "gemini":
        return GeminiVisionAdapter(model=settings.gemini_model, timeout_s=settings.vision_timeout_sec)
    if provider == "openai":
        return OpenAIVisionAdapter(model=settings.vision_model, timeout_s=settings.vision_timeout_sec)
    raise ValueError(f"Unknown VISION_PROVIDER {settings.vision_provider!r}")
