"""
Runtime configuration.

Values come from environment variables prefixed with STUDYPROGRESS_
(or a .env file in the working directory). Every path helper takes the
settings object so tests can point everything at a temporary directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_CURRICULUM_PATH = PACKAGE_DIR / "data" / "curriculum.json"
_DEFAULT_DATA_DIR = Path.home() / ".studyprogress"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STUDYPROGRESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(_DEFAULT_DATA_DIR)
    curriculum_path: Path = Field(DEFAULT_CURRICULUM_PATH)

    # study portal
    portal_url: str = Field("https://portal.example-university.de")
    session_cookie: Optional[str] = Field(None)
    request_timeout: float = Field(30.0)

    log_level: str = Field("WARNING")

    @model_validator(mode="before")
    @classmethod
    def _expand_paths(cls, values: dict[str, Any]) -> dict[str, Any]:
        for key in ("data_dir", "curriculum_path"):
            raw = values.get(key)
            if raw:
                values[key] = Path(raw).expanduser().resolve()
        return values

    @property
    def edits_path(self) -> Path:
        return self.data_dir / "module_edits.json"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def local_data_path(self) -> Path:
        return self.data_dir / "local_data.json"


def get_settings(**overrides: Any) -> Settings:
    """Build a fresh Settings object (environment first, then explicit overrides)."""
    return Settings(**overrides)
