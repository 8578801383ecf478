# File: backend/app/core/config.py
# Version: v0.4.0
"""
Centralized application settings using Pydantic Settings.

Controls:
- App metadata and API prefix
- CORS origins
- Database URL (SQLAlchemy) for persisted design runs
- Design parameter files (defaults + editable current)
- Engine limits: longest sequence the folder accepts, candidate cap for API designs
- Log level (uvicorn / CLI)
"""
from __future__ import annotations

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- App ---
    API_PREFIX: str = "/api"
    APP_NAME: str = "PrimerCraft"
    APP_VERSION: str = "1.0.0"

    # --- CORS ---
    CORS_ORIGINS: str = "*"  # comma-separated or '*' for all

    # --- Design parameters ---
    PRIMER_PARAMS_DEFAULT_PATH: Path = Path("backend/app/config/primers_param_default.json")
    PRIMER_PARAMS_PATH: Path = Path("backend/app/config/primers_param.json")

    # --- Engine limits ---
    FOLD_MAX_LENGTH: int = 120
    MAX_CANDIDATES: int = 5000

    # --- DB ---
    DB_URL: str = "sqlite:///backend/app/data/primercraft.db"
    SCHEMA_AUTOCREATE: bool = True

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "info"

    # unknown env vars (e.g. BACKEND_PORT) are ignored
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        raw = self.CORS_ORIGINS.strip()
        if raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]

settings = Settings()
