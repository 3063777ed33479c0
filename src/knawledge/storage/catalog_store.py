"""Catalog store: the directories/documents tables and every query on them."""

import logging
import uuid
from datetime import timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

import anyio
from sqlalchemy import Text, cast, delete, literal, null, select, union
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (DBAPIError, IntegrityError, OperationalError,
                            SQLAlchemyError)
from sqlalchemy.orm import Session

from knawledge.exceptions import (ConstraintViolationError, ErrorCode,
                                  StorageError)
from knawledge.models.db_models import (DBDirectory, DBDocument,
                                        get_session_factory, init_db)
from knawledge.models.schema import (Directory, DirectoryEntry, Document,
                                     EntryKind, ensure_timezone_aware)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INDEX_FILE_NAME = "index.md"


def _convert_error(operation: str, error: SQLAlchemyError, write: bool) -> StorageError:
    """Map a SQLAlchemy failure onto the catalog's error kinds."""
    if isinstance(error, IntegrityError):
        text = str(error.orig).lower()
        if "unique" in text or "duplicate key" in text:
            code = ErrorCode.STORAGE_UNIQUE_VIOLATION
        else:
            code = ErrorCode.STORAGE_INTEGRITY_VIOLATION
        return ConstraintViolationError(
            f"Constraint violated during {operation}",
            operation=operation,
            code=code,
            original_error=error,
        )
    if isinstance(error, OperationalError) or (
        isinstance(error, DBAPIError) and error.connection_invalidated
    ):
        code = ErrorCode.STORAGE_CONNECTION_FAILED
    else:
        code = ErrorCode.STORAGE_WRITE_FAILED if write else ErrorCode.STORAGE_READ_FAILED
    return StorageError(
        f"Catalog {operation} failed",
        operation=operation,
        code=code,
        original_error=error,
    )


def _to_entry(row: Any) -> DirectoryEntry:
    return DirectoryEntry(
        id=row.id,
        parent=row.parent,
        name=row.name,
        kind=EntryKind(row.kind),
        title=row.title,
        custom_id=row.custom_id,
    )


def _to_document(db_doc: DBDocument) -> Document:
    return Document(
        id=db_doc.id,
        file_name=db_doc.file_name,
        directory=db_doc.directory,
        path=db_doc.path,
        title=db_doc.title,
        custom_id=db_doc.custom_id,
        created_at=ensure_timezone_aware(db_doc.created_at),
        updated_at=ensure_timezone_aware(db_doc.updated_at),
    )


class CatalogStore:
    """Typed async access to the catalog of directories and documents.

    Every operation is a single statement in its own session and commit;
    related writes are never wrapped in one transaction. Callers that
    need consistency across several writes must be safe to re-run.

    The blocking SQLAlchemy work is dispatched to the shared worker-thread
    pool, so the store can be shared freely between tasks.
    """

    def __init__(self, engine: Optional[Engine] = None, db_url: Optional[str] = None):
        """Initialize the store.

        Args:
            engine: Pre-configured SQLAlchemy engine to share. When None, one
                    is created with ``init_db(db_url)``.
            db_url: Database URL used when no engine is given.
        """
        self.engine = engine if engine is not None else init_db(db_url)
        self.session_factory = get_session_factory(self.engine)

    async def _run(
        self, operation: str, fn: Callable[[Session], T], write: bool = False
    ) -> T:
        def _call() -> T:
            with self.session_factory() as session:
                try:
                    result = fn(session)
                    if write:
                        session.commit()
                    return result
                except SQLAlchemyError as e:
                    session.rollback()
                    raise _convert_error(operation, e, write) from e

        return await anyio.to_thread.run_sync(_call)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_directory(
        self, path: str, name: str, parent: Optional[uuid.UUID] = None
    ) -> Directory:
        """Insert a directory row.

        Raises:
            ConstraintViolationError: ``path`` already exists, or ``parent``
                does not reference an existing directory.
        """
        def _insert(session: Session) -> Directory:
            db_dir = DBDirectory(
                path=path, name=name, parent=str(parent) if parent else None
            )
            session.add(db_dir)
            session.flush()
            return Directory.model_validate(db_dir)

        directory = await self._run("insert_directory", _insert, write=True)
        logger.debug(f"Inserted directory {directory.id} at {path}")
        return directory

    async def insert_document(self, document: Document) -> bool:
        """Insert a document, doing nothing if it conflicts with an existing row.

        A conflicting row (same id, path or custom id) is left exactly as it
        was. A missing owning directory is still an error.

        Returns:
            True if a row was inserted, False if a conflict skipped it.

        Raises:
            ConstraintViolationError: ``document.directory`` does not exist.
        """
        values = {
            "id": str(document.id),
            "file_name": document.file_name,
            "directory": str(document.directory),
            "path": document.path,
            "title": document.title,
            "custom_id": document.custom_id,
            "created_at": document.created_at.astimezone(timezone.utc),
            "updated_at": document.updated_at.astimezone(timezone.utc),
        }

        def _insert(session: Session) -> bool:
            if session.get_bind().dialect.name == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert
            result = session.execute(
                insert(DBDocument).values(**values).on_conflict_do_nothing()
            )
            return result.rowcount == 1

        return await self._run("insert_document", _insert, write=True)

    async def remove_dir(self, path: str) -> None:
        """Delete the directory at ``path`` and, by cascade, its subtree.

        A missing row is not an error.
        """
        def _delete(session: Session) -> None:
            session.execute(delete(DBDirectory).where(DBDirectory.path == path))

        await self._run("remove_dir", _delete, write=True)

    async def remove_file(self, path: str) -> None:
        """Delete the document at ``path``. A missing row is not an error."""
        def _delete(session: Session) -> None:
            session.execute(delete(DBDocument).where(DBDocument.path == path))

        await self._run("remove_file", _delete, write=True)

    remove_file_by_path = remove_file

    async def trim_roots(self, keep_paths: Sequence[str]) -> int:
        """Delete every root whose path is not in ``keep_paths``.

        Subdirectories and documents of a trimmed root go with it.

        Returns:
            Number of roots removed.
        """
        keep = list(keep_paths)

        def _trim(session: Session) -> int:
            result = session.execute(
                delete(DBDirectory).where(
                    DBDirectory.parent.is_(None), DBDirectory.path.not_in(keep)
                )
            )
            return result.rowcount or 0

        removed = await self._run("trim_roots", _trim, write=True)
        if removed:
            logger.info(f"Trimmed {removed} root directories no longer configured")
        return removed

    # ------------------------------------------------------------------
    # Document lookups
    # ------------------------------------------------------------------

    async def get_index_path(self) -> Optional[str]:
        """Path of the document named ``index.md``, if any.

        An index that sits directly in a root wins over nested ones; among
        equals the lexicographically smallest path is returned.
        """
        def _query(session: Session) -> Optional[str]:
            return session.scalar(
                select(DBDocument.path)
                .join(DBDirectory, DBDocument.directory == DBDirectory.id)
                .where(DBDocument.file_name == INDEX_FILE_NAME)
                .order_by(DBDirectory.parent.is_not(None), DBDocument.path)
                .limit(1)
            )

        return await self._run("get_index_path", _query)

    async def get_document_path(self, id: uuid.UUID) -> Optional[str]:
        """Path of the document with primary id ``id``."""
        def _query(session: Session) -> Optional[str]:
            return session.scalar(
                select(DBDocument.path).where(DBDocument.id == str(id))
            )

        return await self._run("get_document_path", _query)

    get_doc_path = get_document_path

    async def get_document_path_by_custom_id(self, custom_id: str) -> Optional[str]:
        """Path of the document whose custom id is ``custom_id``."""
        found = await self.get_doc_id_path_by_custom_id(custom_id)
        return found[1] if found else None

    async def get_doc_id_path_by_custom_id(
        self, custom_id: str
    ) -> Optional[Tuple[uuid.UUID, str]]:
        """Primary id and path of the document whose custom id is ``custom_id``."""
        def _query(session: Session) -> Optional[Tuple[uuid.UUID, str]]:
            row = session.execute(
                select(DBDocument.id, DBDocument.path).where(
                    DBDocument.custom_id == custom_id
                )
            ).first()
            return (uuid.UUID(row.id), row.path) if row else None

        return await self._run("get_doc_id_path_by_custom_id", _query)

    async def get_document_by_path(self, path: str) -> Optional[Document]:
        def _query(session: Session) -> Optional[Document]:
            db_doc = session.scalar(select(DBDocument).where(DBDocument.path == path))
            return _to_document(db_doc) if db_doc else None

        return await self._run("get_document_by_path", _query)

    async def get_all_file_paths(self) -> List[str]:
        """Paths of every document in the catalog."""
        def _query(session: Session) -> List[str]:
            return list(session.scalars(select(DBDocument.path)))

        return await self._run("get_all_file_paths", _query)

    async def list_existing(
        self, directory_id: uuid.UUID, file_names: Sequence[str]
    ) -> List[Document]:
        """Documents of ``directory_id`` whose file name is in ``file_names``."""
        names = list(file_names)
        if not names:
            return []

        def _query(session: Session) -> List[Document]:
            rows = session.scalars(
                select(DBDocument).where(
                    DBDocument.file_name.in_(names),
                    DBDocument.directory == str(directory_id),
                )
            )
            return [_to_document(row) for row in rows]

        return await self._run("list_existing", _query)

    # ------------------------------------------------------------------
    # Directory lookups
    # ------------------------------------------------------------------

    async def list_root_paths(self) -> List[str]:
        """Paths of all directories without a parent."""
        def _query(session: Session) -> List[str]:
            return list(
                session.scalars(
                    select(DBDirectory.path).where(DBDirectory.parent.is_(None))
                )
            )

        return await self._run("list_root_paths", _query)

    async def get_all_dir_paths(self) -> List[str]:
        """Paths of every directory in the catalog, roots included."""
        def _query(session: Session) -> List[str]:
            return list(session.scalars(select(DBDirectory.path)))

        return await self._run("get_all_dir_paths", _query)

    async def _get_directory(self, operation: str, *criteria: Any) -> Optional[Directory]:
        def _query(session: Session) -> Optional[Directory]:
            db_dir = session.scalars(
                select(DBDirectory).where(*criteria).order_by(DBDirectory.path).limit(1)
            ).first()
            return Directory.model_validate(db_dir) if db_dir else None

        return await self._run(operation, _query)

    async def get_dir_by_path(self, path: str) -> Optional[Directory]:
        return await self._get_directory("get_dir_by_path", DBDirectory.path == path)

    async def get_root_by_path(self, path: str) -> Optional[Directory]:
        return await self._get_directory(
            "get_root_by_path", DBDirectory.path == path, DBDirectory.parent.is_(None)
        )

    async def get_root_dir_by_name(self, name: str) -> Optional[Directory]:
        return await self._get_directory(
            "get_root_dir_by_name", DBDirectory.name == name, DBDirectory.parent.is_(None)
        )

    async def get_dir_by_name_and_parent(
        self, name: str, parent_id: uuid.UUID
    ) -> Optional[Directory]:
        return await self._get_directory(
            "get_dir_by_name_and_parent",
            DBDirectory.name == name,
            DBDirectory.parent == str(parent_id),
        )

    # ------------------------------------------------------------------
    # Hierarchy listings
    # ------------------------------------------------------------------

    @staticmethod
    def _directory_rows(*criteria: Any):
        return select(
            DBDirectory.id,
            DBDirectory.parent,
            DBDirectory.name,
            literal(EntryKind.DIRECTORY.value, Text).label("kind"),
            cast(null(), Text).label("title"),
            cast(null(), Text).label("custom_id"),
        ).where(*criteria)

    @staticmethod
    def _document_rows(*criteria: Any):
        return select(
            DBDocument.id,
            DBDocument.directory.label("parent"),
            DBDocument.file_name.label("name"),
            literal(EntryKind.FILE.value, Text).label("kind"),
            DBDocument.title,
            DBDocument.custom_id,
        ).where(*criteria)

    async def list_roots_with_entries(self) -> List[DirectoryEntry]:
        """Every root plus the documents and directories directly inside one.

        Entries with a parent come before the roots themselves; within
        that, directories precede files and names sort ascending.
        """
        root_ids = select(DBDirectory.id).where(DBDirectory.parent.is_(None))
        entries = union(
            self._document_rows(DBDocument.directory.in_(root_ids)),
            self._directory_rows(DBDirectory.parent.in_(root_ids)),
            self._directory_rows(DBDirectory.parent.is_(None)),
        ).subquery()
        stmt = select(entries).order_by(
            entries.c.parent.desc().nulls_last(), entries.c.kind, entries.c.name
        )

        def _query(session: Session) -> List[DirectoryEntry]:
            return [_to_entry(row) for row in session.execute(stmt)]

        return await self._run("list_roots_with_entries", _query)

    async def list_entries(self, directory_id: uuid.UUID) -> List[DirectoryEntry]:
        """Documents and subdirectories directly inside ``directory_id``."""
        key = str(directory_id)
        entries = union(
            self._document_rows(DBDocument.directory == key),
            self._directory_rows(DBDirectory.parent == key),
        ).subquery()
        stmt = select(entries).order_by(entries.c.kind, entries.c.name)

        def _query(session: Session) -> List[DirectoryEntry]:
            return [_to_entry(row) for row in session.execute(stmt)]

        return await self._run("list_entries", _query)
