# settings.py
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load variables from .env at import time
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    # Gemini image-edit API
    gemini_api_key: str = Field(default=os.getenv("GEMINI_API_KEY", ""))
    gemini_model: str = Field(default=os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image-preview"))
    gemini_api_base: str = Field(
        default=os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    )
    gemini_timeout_sec: float = Field(default=float(os.getenv("GEMINI_TIMEOUT_SEC", "120")))

    # Max number of generate calls outstanding at once
    concurrency_limit: int = Field(default=int(os.getenv("API_CONCURRENCY_LIMIT", "2")), ge=1)

    # Output storage: "local" or "r2"
    storage: str = Field(default=os.getenv("STORAGE", "local").lower())
    local_dir: str = Field(default=os.getenv("LOCAL_DIR", os.path.join(os.getcwd(), "local_outputs")))
    public_base_url: str = Field(default=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"))

    r2_access_key_id: str = Field(default=os.getenv("R2_ACCESS_KEY_ID", ""))
    r2_secret_access_key: str = Field(default=os.getenv("R2_SECRET_ACCESS_KEY", ""))
    r2_endpoint_url: str = Field(default=os.getenv("R2_ENDPOINT_URL", ""))
    r2_bucket: str = Field(default=os.getenv("R2_BUCKET", "drexbanana"))
    r2_public_base: str = Field(default=os.getenv("R2_PUBLIC_BASE", ""))

    cors_origins: str = Field(default=os.getenv("CORS_ORIGINS", "*"))
    debug: bool = Field(default=_env_bool("DEBUG", "true"))
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO").upper())

    @property
    def use_r2(self) -> bool:
        return self.storage == "r2"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
