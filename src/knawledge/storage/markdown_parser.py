"""Markdown parsing for catalog documents.

Reads documents with YAML front matter from disk and turns them into
DocumentMeta / DocumentData objects. This is the only place that touches
document contents; the catalog itself stores paths and metadata.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

import frontmatter
import yaml

from knawledge.exceptions import DocumentParseError, DocumentReadError
from knawledge.models.schema import DocumentData, DocumentMeta

logger = logging.getLogger(__name__)

# Front matter keys with a dedicated DocumentMeta field
_KNOWN_KEYS = ("title", "id", "tags")


class MarkdownParser:
    """Parses markdown documents with optional YAML front matter."""

    def parse(self, content: str, path: Optional[str] = None) -> Tuple[DocumentMeta, str]:
        """Split raw markdown into metadata and body.

        Args:
            content: Raw markdown, optionally starting with ``---`` front matter.
            path: Source path, only used in error details.

        Returns:
            The parsed metadata and the markdown body without front matter.

        Raises:
            DocumentParseError: If the front matter is not valid YAML or not
                a mapping.
        """
        try:
            post = frontmatter.loads(content)
        except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            raise DocumentParseError(
                "Invalid front matter", path=path, original_error=e
            ) from e

        metadata: Dict[str, Any] = dict(post.metadata)

        title = metadata.get("title")
        if title is not None:
            title = str(title).strip() or None
        if not title:
            title = self._first_heading(post.content)

        custom_id = metadata.get("id")
        if custom_id is not None:
            custom_id = str(custom_id).strip() or None

        meta = DocumentMeta(
            title=title,
            custom_id=custom_id,
            tags=self._parse_tags(metadata.get("tags")),
            extra={k: v for k, v in metadata.items() if k not in _KNOWN_KEYS},
        )
        return meta, post.content

    def read_meta(self, path: str) -> DocumentMeta:
        """Read only the metadata of the document at ``path``."""
        meta, _ = self.parse(self._read(path), path)
        return meta

    def read_document(self, id: uuid.UUID, path: str) -> DocumentData:
        """Read the full document at ``path`` under primary id ``id``."""
        meta, body = self.parse(self._read(path), path)
        return DocumentData(id=id, content=body, meta=meta)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read(path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentReadError(
                f"Cannot read document {path}", path=path, original_error=e
            ) from e

    @staticmethod
    def _first_heading(body: str) -> Optional[str]:
        for line in body.split("\n"):
            if line.startswith("# "):
                return line[2:].strip() or None
        return None

    @staticmethod
    def _parse_tags(raw: Any) -> List[str]:
        if isinstance(raw, str):
            return [t.strip() for t in raw.split(",") if t.strip()]
        if isinstance(raw, list):
            return [str(t).strip() for t in raw if str(t).strip()]
        return []
