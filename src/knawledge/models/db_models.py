"""SQLAlchemy database models for the knawledge catalog."""
import datetime
import uuid
from typing import Optional

from sqlalchemy import (Column, DateTime, ForeignKey, String, Text,
                        create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from knawledge.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBDirectory(Base):
    """Database model for a directory. Rows without a parent are roots."""
    __tablename__ = "directories"
    id = Column(String(36), primary_key=True, default=_new_id)
    path = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    parent = Column(
        String(36),
        ForeignKey("directories.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        """Return string representation of directory."""
        return f"<Directory(id='{self.id}', path='{self.path}')>"


class DBDocument(Base):
    """Database model for a document."""
    __tablename__ = "documents"
    id = Column(String(36), primary_key=True, default=_new_id)
    file_name = Column(Text, nullable=False, index=True)
    directory = Column(
        String(36),
        ForeignKey("directories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    path = Column(Text, unique=True, nullable=False)
    title = Column(Text, nullable=True)
    custom_id = Column(Text, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of document."""
        return f"<Document(id='{self.id}', path='{self.path}')>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the catalog engine and make sure the schema exists.

    SQLite connections get foreign key enforcement switched on (SQLite
    ignores FOREIGN KEY and ON DELETE CASCADE otherwise) and, for file
    databases, WAL journaling so readers do not block the sync writer.
    Other backends use a regular pre-pinged connection pool.

    Args:
        db_url: SQLAlchemy URL. Defaults to ``config.get_db_url()``.
    """
    url = db_url or config.get_db_url()

    if url.startswith("sqlite"):
        in_memory = url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url
        engine_kwargs = {"connect_args": {"check_same_thread": False}}
        if in_memory:
            # One shared connection, otherwise each checkout sees an empty db
            engine_kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **engine_kwargs)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()
    else:
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
        )

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
