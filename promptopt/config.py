"""Runtime settings for promptopt.

Settings are read from environment variables (a local ``.env`` file is
loaded first). Library classes never read settings themselves; the CLI and
API entry points build them and inject the resulting collaborators.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_HOME = Path.home() / ".promptopt"
DEFAULT_MAX_RECORDS = 50
DEFAULT_MAX_INPUT_CHARS = 50_000


class Settings(BaseModel):
    """Process-wide configuration."""

    home: Path = DEFAULT_HOME
    storage: str = "file"  # file, sqlite, memory
    max_records: int = Field(default=DEFAULT_MAX_RECORDS, ge=1)
    max_input_chars: int = Field(default=DEFAULT_MAX_INPUT_CHARS, ge=1)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from PROMPTOPT_* environment variables."""
        load_dotenv(env_file)
        return cls(
            home=Path(os.environ.get("PROMPTOPT_HOME", str(DEFAULT_HOME))).expanduser(),
            storage=os.environ.get("PROMPTOPT_STORAGE", "file").lower(),
            max_records=int(os.environ.get("PROMPTOPT_MAX_RECORDS", DEFAULT_MAX_RECORDS)),
            max_input_chars=int(
                os.environ.get("PROMPTOPT_MAX_INPUT_CHARS", DEFAULT_MAX_INPUT_CHARS)
            ),
            log_level=os.environ.get("PROMPTOPT_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def sqlite_path(self) -> Path:
        return self.home / "promptopt.db"

    @property
    def file_store_dir(self) -> Path:
        return self.home / "store"


def configure_logging(level: str = "WARNING") -> None:
    """Attach a basic handler to the ``promptopt`` logger tree."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings used by the CLI and API entry points."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (mainly for testing)."""
    global _settings
    _settings = None


__all__ = ["Settings", "configure_logging", "get_settings", "reset_settings"]
