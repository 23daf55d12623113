"""Application settings and logging setup.

Settings come from a JSON file (``--settings`` or ``METACRUD_SETTINGS``);
the database URL can be overridden by ``--database`` or ``METACRUD_URL``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from metacrud.core.types import RoleSpec
from metacrud.exceptions import MetaCrudError

DEFAULT_DATABASE_URL = "sqlite:///./metacrud.db"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    """Runtime configuration."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    roles: list[RoleSpec] = Field(default_factory=list)
    password_salt: str = ""
    log_level: str = "INFO"

    model_config = {"extra": "forbid"}


def get_database_url(url: str | None, settings: Settings | None = None) -> str:
    """Resolve database URL from argument, environment variable, settings, or default.

    Priority:
    1. Explicit URL argument
    2. METACRUD_URL environment variable
    3. ``settings.database_url``
    4. Default: sqlite:///./metacrud.db
    """
    if url:
        return url
    if env_url := os.getenv("METACRUD_URL"):
        return env_url
    if settings is not None:
        return settings.database_url
    return DEFAULT_DATABASE_URL


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a JSON file.

    Falls back to ``METACRUD_SETTINGS`` when no path is given, and to the
    defaults when neither is set.

    Raises:
        MetaCrudError: If the file cannot be read or does not match ``Settings``
    """
    if path is None:
        path = os.getenv("METACRUD_SETTINGS")
    if not path:
        return Settings()

    file_path = Path(path)
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise MetaCrudError(f"Settings file not found: {file_path}") from None
    except json.JSONDecodeError as e:
        raise MetaCrudError(f"Invalid JSON in settings file {file_path}: {e}") from e

    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise MetaCrudError(
            f"Invalid settings in {file_path}",
            context={"errors": [err["msg"] for err in e.errors()]},
        ) from e


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging for the CLI and the server."""
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("metacrud").setLevel(level)
