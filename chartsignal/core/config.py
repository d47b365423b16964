import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=lambda: Path(os.getenv("DATA_DIR", "./storage/data")))
    upload_dir: Path = Field(default_factory=lambda: Path(os.getenv("UPLOAD_DIR", "./storage/uploads")))
    public_base_url: str = Field(default_factory=lambda: os.getenv("PUBLIC_BASE_URL", ""))

    vision_provider: str = Field(default_factory=lambda: os.getenv("VISION_PROVIDER", "openai"))
    vision_model: str = Field(default_factory=lambda: os.getenv("VISION_MODEL", "gpt-4o-mini"))
    gemini_model: str = Field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-1.5-flash"))
    vision_timeout_sec: float = Field(default_factory=lambda: float(os.getenv("VISION_TIMEOUT_SEC", "25")))

    max_upload_mb: int = Field(default_factory=lambda: int(os.getenv("MAX_UPLOAD_MB", "8")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @property
    def users_file(self) -> Path:
        return self.data_dir / "users.json"

    @property
    def history_file(self) -> Path:
        return self.data_dir / "history.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
