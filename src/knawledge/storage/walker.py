"""Filesystem walker that registers new directories and documents of a root."""

import datetime
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import timezone
from typing import List, Optional, Tuple

import anyio

from knawledge.exceptions import (
    ConstraintViolationError,
    DocumentParseError,
    DocumentReadError,
)
from knawledge.models.schema import Directory, Document, DocumentMeta, generate_id
from knawledge.storage.catalog_store import CatalogStore
from knawledge.utils import is_document, is_hidden

logger = logging.getLogger(__name__)

# (name, path) of a subdirectory; (name, path, stat) of a document file
_DirEntry = Tuple[str, str]
_FileEntry = Tuple[str, str, os.stat_result]


@dataclass
class WalkStats:
    """What one walk of a root added to the catalog."""
    directories_added: int = 0
    documents_added: int = 0
    documents_skipped: int = 0


def _scan_directory(path: str) -> Tuple[List[_DirEntry], List[_FileEntry]]:
    """List visible subdirectories and markdown files of ``path``, sorted by name.

    Directory symlinks are not followed.
    """
    subdirs: List[_DirEntry] = []
    files: List[_FileEntry] = []
    with os.scandir(path) as it:
        for entry in it:
            if is_hidden(entry.name):
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append((entry.name, entry.path))
            elif is_document(entry.name) and entry.is_file():
                files.append((entry.name, entry.path, entry.stat()))
    subdirs.sort()
    files.sort(key=lambda f: f[0])
    return subdirs, files


def _timestamps(st: os.stat_result) -> Tuple[datetime.datetime, datetime.datetime]:
    created = getattr(st, "st_birthtime", None) or st.st_ctime
    return (
        datetime.datetime.fromtimestamp(created, timezone.utc),
        datetime.datetime.fromtimestamp(st.st_mtime, timezone.utc),
    )


async def process_root_directory(
    store: CatalogStore, root_path: str, alias: str
) -> WalkStats:
    """Register everything under ``root_path`` that the catalog does not know yet.

    The root itself is registered under ``alias`` when no directory with
    its path exists. Existing rows are never modified or deleted, so
    calling this repeatedly is safe.

    Args:
        store: Catalog to write to.
        root_path: Canonical absolute path of the root directory.
        alias: Display name of the root.

    Returns:
        Counts of what was added.

    Raises:
        DocumentReadError: The root directory itself cannot be listed.
        StorageError: A catalog write failed.
    """
    stats = WalkStats()
    root = await _ensure_directory(store, root_path, alias, None, stats)

    await _process_directory(store, root, stats, is_root=True)

    if stats.directories_added or stats.documents_added:
        logger.info(
            f"Walked root '{alias}': {stats.directories_added} directories, "
            f"{stats.documents_added} documents added"
        )
    return stats


async def _ensure_directory(
    store: CatalogStore,
    path: str,
    name: str,
    parent: Optional[uuid.UUID],
    stats: WalkStats,
) -> Directory:
    """Return the directory row at ``path``, inserting it when missing.

    A concurrent pass may insert the same path between the lookup and the
    insert; its row is then used as is.
    """
    existing = await store.get_dir_by_path(path)
    if existing is not None:
        return existing
    try:
        directory = await store.insert_directory(path, name, parent)
    except ConstraintViolationError as e:
        if not e.is_unique_violation:
            raise
        existing = await store.get_dir_by_path(path)
        if existing is None:
            raise
        logger.debug(f"Directory {path} was registered concurrently")
        return existing
    stats.directories_added += 1
    if parent is None:
        logger.info(f"Registered root '{name}' at {path}")
    return directory


async def _process_directory(
    store: CatalogStore, directory: Directory, stats: WalkStats, is_root: bool = False
) -> None:
    try:
        subdirs, files = await anyio.to_thread.run_sync(_scan_directory, directory.path)
    except OSError as e:
        if is_root:
            raise DocumentReadError(
                f"Cannot list root directory {directory.path}",
                path=directory.path,
                original_error=e,
            ) from e
        logger.warning(f"Cannot list directory {directory.path}, skipping: {e}")
        return

    await _register_documents(store, directory, files, stats)

    for name, path in subdirs:
        child = await _ensure_directory(store, path, name, directory.id, stats)
        await _process_directory(store, child, stats)


async def _register_documents(
    store: CatalogStore,
    directory: Directory,
    files: List[_FileEntry],
    stats: WalkStats,
) -> None:
    if not files:
        return
    known = {
        doc.file_name
        for doc in await store.list_existing(directory.id, [name for name, _, _ in files])
    }

    for name, path, st in files:
        if name in known:
            continue

        try:
            meta = await anyio.to_thread.run_sync(DocumentMeta.read_from_file, path)
        except DocumentReadError as e:
            logger.warning(f"Skipping unreadable document {path}: {e}")
            stats.documents_skipped += 1
            continue
        except DocumentParseError as e:
            logger.warning(f"Indexing {path} without metadata: {e}")
            meta = DocumentMeta()

        custom_id = meta.custom_id
        if custom_id and await store.get_doc_id_path_by_custom_id(custom_id):
            logger.warning(
                f"Custom id '{custom_id}' of {path} is already taken, indexing without it"
            )
            custom_id = None

        created_at, updated_at = _timestamps(st)
        inserted = await store.insert_document(
            Document(
                id=generate_id(),
                file_name=name,
                directory=directory.id,
                path=path,
                title=meta.title,
                custom_id=custom_id,
                created_at=created_at,
                updated_at=updated_at,
            )
        )
        if inserted:
            stats.documents_added += 1
