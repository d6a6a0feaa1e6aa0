# guardian_post/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# guardian_post/config.py → parent = guardian_post → parents[1] = repo root
ROOT_DIR = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT_DIR / ".env"
load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # ---- OpenAI ----
    # Not required at class level; a missing key resolves to an unconfigured
    # provider and every analysis falls back to the synthetic generator.
    OPENAI_API_KEY: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    OPENAI_MODEL: str = "gpt-4.1-mini"
    ANALYSIS_PROVIDER_ENABLED: bool = True
    ANALYSIS_TIMEOUT_S: float = 5.0

    # ---- Storage ----
    ANALYSIS_CACHE_PATH: Path = ROOT_DIR / "data" / "analysis_cache.json"

    # ---- Feeds ----
    NEWS_QUERIES_PATH: Path = ROOT_DIR / "configs" / "news_queries.yml"
    NEWS_FETCH_TIMEOUT_S: float = 10.0
    NEWS_MAX_ENTRIES_PER_QUERY: int = 20
    SUMMARY_MAX_LENGTH: int = 150

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
