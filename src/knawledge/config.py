"""Configuration module for the knawledge catalog."""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from knawledge import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default database
_USER_ENV = Path.home() / ".knawledge" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def parse_directories(value: Optional[str]) -> Dict[str, str]:
    """Parse an ``alias=path,alias=path`` string into an alias mapping.

    Whitespace around aliases and paths is ignored, as are empty items.
    ``~`` in paths is expanded.

    Raises:
        ValueError: If an item has no ``=`` or an empty alias/path, or an
            alias is repeated.
    """
    directories: Dict[str, str] = {}
    if not value:
        return directories
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        alias, sep, path = item.partition("=")
        alias, path = alias.strip(), path.strip()
        if not sep or not alias or not path:
            raise ValueError(f"Invalid directory entry '{item}', expected ALIAS=PATH")
        if alias in directories:
            raise ValueError(f"Duplicate directory alias '{alias}'")
        directories[alias] = os.path.expanduser(path)
    return directories


class KnawledgeConfig(BaseModel):
    """Configuration for the knawledge catalog."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("KNAWLEDGE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("KNAWLEDGE_DATABASE_PATH", "data/db/knawledge.db")
        )
    )
    # Full SQLAlchemy URL, overrides database_path when set
    database_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("KNAWLEDGE_DATABASE_URL") or None
    )
    # Alias -> root directory mapping that the catalog mirrors
    directories: Dict[str, str] = Field(
        default_factory=lambda: parse_directories(os.getenv("KNAWLEDGE_DIRECTORIES"))
    )
    # Document title shown by front ends
    title: Optional[str] = Field(
        default_factory=lambda: os.getenv("KNAWLEDGE_TITLE") or None
    )
    # Seconds between background synchronization passes (0 disables)
    sync_interval: int = Field(
        default_factory=lambda: int(os.getenv("KNAWLEDGE_SYNC_INTERVAL", "300"))
    )
    # Log directory (None uses ~/.knawledge/logs)
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("KNAWLEDGE_LOG_DIR"))
            if os.getenv("KNAWLEDGE_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("KNAWLEDGE_SERVER_NAME", "knawledge"))
    server_version: str = Field(default=__version__)

    @field_validator("directories")
    @classmethod
    def _validate_directories(cls, value: Dict[str, str]) -> Dict[str, str]:
        for alias, path in value.items():
            if not alias.strip():
                raise ValueError("directory alias cannot be empty")
            if not str(path).strip():
                raise ValueError(f"directory path for alias '{alias}' cannot be empty")
        return value

    @field_validator("sync_interval")
    @classmethod
    def _validate_sync_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("sync_interval must be >= 0")
        return value

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL, defaulting to a SQLite file under base_dir."""
        if self.database_url:
            return self.database_url
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = KnawledgeConfig()
