from __future__ import annotations

from typing import Any


class ChartSignalError(Exception):
    """Base class for every failure surfaced by the analysis pipeline.

    `stage` tells the caller which step failed, `status_code` is the HTTP
    status the API answers with and `hint` is the user-facing message.
    """

    stage = "unknown"
    status_code = 500
    hint = "Something went wrong. Try again later."

    def __init__(self, message: str | None = None, *, stage: str | None = None):
        super().__init__(message or self.hint)
        if stage is not None:
            self.stage = stage

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.hint, "detail": str(self), "stage": self.stage, "code": self.code}


class NotFound(ChartSignalError):
    stage = "credentials"
    status_code = 404
    hint = "User not found"


class MissingCredential(ChartSignalError):
    stage = "credentials"
    status_code = 401
    hint = "API key missing. Please update settings."


class InvalidMode(ChartSignalError):
    stage = "request"
    status_code = 400
    hint = "Unknown analysis mode. Pick scalp or swing."


class InvalidUpload(ChartSignalError):
    stage = "ingest"
    status_code = 400
    hint = "Could not use that image. Upload a PNG/JPEG/WebP chart screenshot."


class AuthError(ChartSignalError):
    stage = "infer"
    hint = "The vision provider rejected your API key. Check your settings."


class ProviderError(ChartSignalError):
    stage = "infer"
    hint = "The vision provider failed. Try again later."


class ExtractionError(ChartSignalError):
    stage = "extract"
    hint = "Unexpected response from the model. Retry the analysis."


class NoStructuredData(ExtractionError):
    pass


class MalformedData(ExtractionError):
    pass


class SchemaViolation(ExtractionError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class PersistenceError(ChartSignalError):
    stage = "persist"
    hint = "Could not save the analysis. Try again later."


class RiskUnavailable(ChartSignalError):
    stage = "risk"
    status_code = 422
    hint = "Check prices: entry/stop loss could not be used for risk sizing."
