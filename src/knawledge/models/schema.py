"""Data models for the knawledge catalog."""

import datetime
import uuid
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands back naive datetimes even for values stored with a zone,
    so every timestamp leaving the catalog goes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> uuid.UUID:
    """Generate a primary identifier for a directory or document."""
    return uuid.uuid4()


def parse_document_id(value: str) -> Optional[uuid.UUID]:
    """Parse ``value`` as a primary identifier.

    Returns:
        The UUID, or None if ``value`` is not a UUID (it is then a custom id).
    """
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None


class EntryKind(str, Enum):
    """Kind of a row in a directory listing."""

    DIRECTORY = "directory"
    FILE = "file"


class Directory(BaseModel):
    """A directory in the catalog. ``parent`` is None for roots."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    path: str
    name: str
    parent: Optional[uuid.UUID] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None


class Document(BaseModel):
    """A markdown document owned by exactly one directory."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=generate_id)
    file_name: str
    directory: uuid.UUID
    path: str
    title: Optional[str] = None
    custom_id: Optional[str] = None
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)


class DirectoryEntry(BaseModel):
    """One row of a hierarchy listing: either a directory or a document."""

    id: uuid.UUID
    parent: Optional[uuid.UUID] = None
    name: str
    kind: EntryKind
    title: Optional[str] = None
    custom_id: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.kind == EntryKind.DIRECTORY


class DocumentMeta(BaseModel):
    """Lightweight document metadata taken from front matter."""

    title: Optional[str] = None
    custom_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def read_from_file(cls, path: str) -> "DocumentMeta":
        """Read metadata from the document at ``path``.

        Raises:
            DocumentReadError: The file cannot be read.
            DocumentParseError: The front matter is malformed.
        """
        from knawledge.storage.markdown_parser import MarkdownParser

        return MarkdownParser().read_meta(path)


class DocumentData(BaseModel):
    """A document's identity, metadata and markdown body."""

    id: uuid.UUID
    content: str
    meta: DocumentMeta = Field(default_factory=DocumentMeta)

    @classmethod
    def read_from_disk(cls, id: uuid.UUID, path: str) -> "DocumentData":
        """Load the full document stored at ``path``.

        Raises:
            DocumentReadError: The file is missing or cannot be read.
            DocumentParseError: The front matter is malformed.
        """
        from knawledge.storage.markdown_parser import MarkdownParser

        return MarkdownParser().read_document(id, path)


class SyncReport(BaseModel):
    """Counts gathered during one synchronization pass."""

    roots_trimmed: int = 0
    documents_trimmed: int = 0
    directories_trimmed: int = 0
    directories_added: int = 0
    documents_added: int = 0
    skipped_roots: List[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(
            (
                self.roots_trimmed,
                self.documents_trimmed,
                self.directories_trimmed,
                self.directories_added,
                self.documents_added,
            )
        )
