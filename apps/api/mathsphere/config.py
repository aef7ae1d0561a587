from __future__ import annotations

from pathlib import Path
from typing import Optional
import os

from pydantic_settings import BaseSettings

ROOT_DIR = Path(__file__).resolve().parents[3]


def _default_data_dir() -> Path:
    if (
        os.getenv("VERCEL")
        or os.getenv("VERCEL_ENV")
        or os.getenv("VERCEL_URL")
        or os.getenv("AWS_LAMBDA_FUNCTION_NAME")
    ):
        return Path("/tmp/mathsphere")
    return ROOT_DIR / "data"


class Settings(BaseSettings):
    app_name: str = "MathSphere Lesson Audit API"
    data_dir: Path = _default_data_dir()
    db_path: Optional[Path] = None
    uploads_dir: Path = ROOT_DIR / "public"
    runs_enabled: bool = True

    environment: str = "development"
    log_level: str = "INFO"

    llm_provider: str = "mock"
    allow_mock_fallback: bool = False
    http_timeout_seconds: float = 120.0

    gemini_api_key: Optional[str] = None
    gemini_api_keys: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_temperature: float = 0.4

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 120.0

    max_retries: int = 3
    retry_base_delay_seconds: float = 20.0
    retry_hint_margin_seconds: float = 5.0

    excerpt_max_chars: int = 25000
    attachment_min_text_chars: int = 500
    attachment_tags: set[str] = {"EXERCICE", "MANUEL"}
    snippet_chars_before: int = 500
    snippet_chars_after: int = 1000
    lesson_content_max_chars: int = 50000

    class Config:
        env_file = (
            ".env",
            str(ROOT_DIR / ".env"),
            str(ROOT_DIR / "apps" / "api" / ".env"),
        )
        env_prefix = ""

    def gemini_key_pool(self) -> list[str]:
        keys: list[str] = []
        candidates = [self.gemini_api_key or ""] + self.gemini_api_keys.split(",")
        for value in candidates:
            cleaned = clean_api_key(value)
            if cleaned and cleaned not in keys:
                keys.append(cleaned)
        return keys

    def is_production(self) -> bool:
        return self.environment.lower().strip() in {"production", "prod"}


def clean_api_key(value: str) -> str:
    cleaned = value.strip().strip('"').strip("'")
    if cleaned.lower().startswith("bearer "):
        cleaned = cleaned.split(" ", 1)[1].strip()
    return cleaned

def prepare_settings(config: Settings) -> Settings:
    if config.openai_api_key:
        config.openai_api_key = clean_api_key(config.openai_api_key)
    if config.db_path is None:
        config.db_path = config.data_dir / "mathsphere.db"
    try:
        config.data_dir.mkdir(parents=True, exist_ok=True)
        config.db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        config.data_dir = Path("/tmp/mathsphere")
        config.db_path = config.data_dir / "mathsphere.db"
        config.data_dir.mkdir(parents=True, exist_ok=True)
    if config.is_production():
        config.allow_mock_fallback = False
    return config

settings = prepare_settings(Settings())
