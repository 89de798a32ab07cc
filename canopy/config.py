"""Runtime settings, read from the environment (and backend .env) at startup."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    db_path: str = "canopy.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    recent_turns: int = Field(default=10, ge=1)

    # Provider selection. None means "first registered provider".
    default_provider: str | None = None
    default_model: str | None = None
    summary_provider: str | None = None
    summary_model: str | None = None

    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    gemini_api_key: str | None = None

    @classmethod
    def from_env(cls, env_file: Path | None = ENV_PATH) -> "Settings":
        """Build settings from os.environ, loading the .env file first if present."""
        if env_file is not None:
            load_dotenv(env_file)

        values: dict = {}
        if db_path := os.environ.get("CANOPY_DB_PATH"):
            values["db_path"] = db_path
        if origins := os.environ.get("CANOPY_CORS_ORIGINS"):
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        if log_level := os.environ.get("CANOPY_LOG_LEVEL"):
            values["log_level"] = log_level.upper()
        if recent := os.environ.get("CANOPY_RECENT_TURNS"):
            values["recent_turns"] = int(recent)

        for field, var in (
            ("default_provider", "DEFAULT_PROVIDER"),
            ("default_model", "DEFAULT_MODEL"),
            ("summary_provider", "SUMMARY_PROVIDER"),
            ("summary_model", "SUMMARY_MODEL"),
            ("anthropic_api_key", "ANTHROPIC_API_KEY"),
            ("openai_api_key", "OPENAI_API_KEY"),
            ("gemini_api_key", "GEMINI_API_KEY"),
        ):
            value = os.environ.get(var)
            if value:
                values[field] = value

        return cls.model_validate(values)
