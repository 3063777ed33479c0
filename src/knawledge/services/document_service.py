"""Service layer: catalog synchronization and document resolution."""

import logging
import uuid
from typing import Dict, List, Mapping, Optional, Tuple

import anyio

from knawledge.exceptions import DocumentNotFoundError, ValidationError
from knawledge.models.schema import (DirectoryEntry, DocumentData,
                                     DocumentMeta, SyncReport,
                                     parse_document_id)
from knawledge.observability import timed_operation
from knawledge.services.rwlock import ReadWriteLock
from knawledge.storage.catalog_store import INDEX_FILE_NAME, CatalogStore
from knawledge.storage.walker import process_root_directory
from knawledge.utils import canonicalize_path

logger = logging.getLogger(__name__)


async def _exists(path: str) -> bool:
    """Probe ``path`` on disk; any failure counts as gone."""
    try:
        await anyio.Path(path).stat()
    except OSError as e:
        logger.debug(f"Probe of {path} failed: {e}")
        return False
    return True


class DocumentService:
    """Shared entry point over the catalog.

    Holds the live alias -> root path configuration behind a reader-writer
    lock. Synchronization passes hold the read lock for their whole
    duration, so several passes may run at once and interleave their
    writes; configuration changes wait for running passes to finish.
    """

    def __init__(
        self,
        db: CatalogStore,
        title: Optional[str] = None,
        directories: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the service.

        Args:
            db: The catalog store, shared with any other component.
            title: Document title for front ends.
            directories: Initial alias -> root path mapping.
        """
        self.db = db
        self.title = title
        self._directories: Dict[str, str] = dict(directories or {})
        self._directories_lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Alias configuration
    # ------------------------------------------------------------------

    async def list_directories(self) -> Dict[str, str]:
        """Snapshot of the alias -> root path mapping."""
        async with self._directories_lock.read():
            return dict(self._directories)

    async def set_directory(self, alias: str, path: str) -> None:
        """Add or replace the root configured under ``alias``.

        Takes effect on the next synchronization pass.
        """
        alias = alias.strip()
        if not alias:
            raise ValidationError("Alias cannot be empty", field="alias")
        if not path.strip():
            raise ValidationError("Path cannot be empty", field="path")
        async with self._directories_lock.write():
            self._directories[alias] = path
        logger.info(f"Configured root '{alias}' -> {path}")

    async def remove_directory(self, alias: str) -> bool:
        """Stop mirroring the root configured under ``alias``.

        Returns:
            True if the alias was configured.
        """
        async with self._directories_lock.write():
            removed = self._directories.pop(alias, None) is not None
        if removed:
            logger.info(f"Removed root '{alias}' from configuration")
        return removed

    async def replace_directories(self, directories: Mapping[str, str]) -> None:
        """Replace the whole alias -> root path mapping."""
        async with self._directories_lock.write():
            self._directories = dict(directories)

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def sync(self) -> SyncReport:
        """Reconcile the catalog with the configured roots on disk.

        Steps, in order: trim roots that are no longer configured, trim
        documents and then directories whose path vanished, then walk every
        configured root to register what is new. Configured paths that
        cannot be resolved are left out of the pass.

        Any catalog failure aborts the pass. Work done by earlier steps
        stays committed; running the pass again completes it.
        """
        report = SyncReport()
        with timed_operation("sync") as op:
            async with self._directories_lock.read():
                roots: List[Tuple[str, str]] = []
                for alias, path in self._directories.items():
                    full_path = canonicalize_path(path)
                    if full_path is None:
                        logger.warning(f"Root '{alias}' at {path} cannot be resolved, skipping")
                        report.skipped_roots.append(alias)
                        continue
                    roots.append((alias, full_path))

                report.roots_trimmed = await self.db.trim_roots(
                    [full_path for _, full_path in roots]
                )

                for path in await self.db.get_all_file_paths():
                    if not await _exists(path):
                        logger.warning(f"Error while reading file {path}, trimming")
                        await self.db.remove_file_by_path(path)
                        report.documents_trimmed += 1

                for path in await self.db.get_all_dir_paths():
                    if not await _exists(path):
                        logger.warning(f"Directory {path} is gone, trimming")
                        await self.db.remove_dir(path)
                        report.directories_trimmed += 1

                for alias, full_path in roots:
                    stats = await process_root_directory(self.db, full_path, alias)
                    report.directories_added += stats.directories_added
                    report.documents_added += stats.documents_added

            op.update(report.model_dump(exclude={"skipped_roots"}))

        if report.changed:
            logger.info(
                f"Sync complete: {report.documents_added} documents and "
                f"{report.directories_added} directories added, "
                f"{report.documents_trimmed} documents, "
                f"{report.directories_trimmed} directories and "
                f"{report.roots_trimmed} roots trimmed"
            )
        return report

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def read_file(self, id: str) -> DocumentData:
        """Load a document by primary id or by custom id.

        ``id`` is tried as a primary identifier first; anything that does
        not parse as one is looked up as a custom id.

        Raises:
            DocumentNotFoundError: Nothing matches; carries ``id`` unchanged.
            DocumentReadError: The document's file cannot be read.
        """
        with timed_operation("read_file", identifier=id[:40]) as op:
            primary_id = parse_document_id(id)
            if primary_id is None:
                found = await self.db.get_doc_id_path_by_custom_id(id)
                if found is None:
                    raise DocumentNotFoundError(id)
                primary_id, path = found
            else:
                path = await self.db.get_doc_path(primary_id)
                if path is None:
                    raise DocumentNotFoundError(id)

            op["document_id"] = str(primary_id)
            return await anyio.to_thread.run_sync(
                DocumentData.read_from_disk, primary_id, path
            )

    async def get_file_meta(self, id: uuid.UUID) -> DocumentMeta:
        """Load a document's metadata by primary id (no custom id fallback).

        Raises:
            DocumentNotFoundError: No document has this id.
            DocumentReadError: The document's file cannot be read.
        """
        with timed_operation("get_file_meta", document_id=str(id)):
            path = await self.db.get_doc_path(id)
            if path is None:
                raise DocumentNotFoundError(str(id))
            return await anyio.to_thread.run_sync(DocumentMeta.read_from_file, path)

    async def get_index(self) -> DocumentData:
        """Load the catalog's ``index.md``.

        Raises:
            DocumentNotFoundError: No ``index.md`` is catalogued.
        """
        path = await self.db.get_index_path()
        if path is None:
            raise DocumentNotFoundError(INDEX_FILE_NAME)
        document = await self.db.get_document_by_path(path)
        if document is None:
            # Trimmed between the two lookups
            raise DocumentNotFoundError(INDEX_FILE_NAME)
        return await anyio.to_thread.run_sync(
            DocumentData.read_from_disk, document.id, path
        )

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------

    async def list_roots_with_entries(self) -> List[DirectoryEntry]:
        """Roots and their direct children, for the initial tree view."""
        return await self.db.list_roots_with_entries()

    async def list_entries(self, directory_id: uuid.UUID) -> List[DirectoryEntry]:
        """Direct children of one directory."""
        return await self.db.list_entries(directory_id)
