"""Common test fixtures for the knawledge catalog."""

import os
import tempfile
from pathlib import Path

import pytest

from knawledge.models.db_models import init_db
from knawledge.observability import metrics
from knawledge.services.document_service import DocumentService
from knawledge.storage.catalog_store import CatalogStore


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def temp_dirs():
    """Create temporary directories for notes and database."""
    with tempfile.TemporaryDirectory() as notes_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            # Canonical form, tmp dirs can sit behind symlinks (macOS)
            yield Path(os.path.realpath(notes_dir)), Path(os.path.realpath(db_dir))


@pytest.fixture
def engine(temp_dirs):
    """File-backed SQLite engine with the catalog schema."""
    _, db_dir = temp_dirs
    engine = init_db(f"sqlite:///{db_dir / 'test_knawledge.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    """Create a test catalog store."""
    return CatalogStore(engine=engine)


def write_document(path: Path, body: str, **front_matter) -> Path:
    """Write a markdown document, with front matter when keys are given."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = []
    if front_matter:
        lines.append("---")
        lines.extend(f"{key}: {value}" for key, value in front_matter.items())
        lines.append("---")
    lines.append(body)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def note_tree(temp_dirs):
    """A small note tree.

    notes/
        index.md             title "Home"
        guide.md             id "guide"
        projects/
            alpha.md         id "alpha"
            deep/beta.md     heading title only
        .hidden/secret.md    ignored
        .draft.md            ignored
        readme.txt           ignored
    """
    notes_dir, _ = temp_dirs
    write_document(notes_dir / "index.md", "Welcome.", title="Home")
    write_document(notes_dir / "guide.md", "# Guide\n\nHow to.", id="guide")
    write_document(
        notes_dir / "projects" / "alpha.md",
        "Alpha body.",
        title="Alpha",
        id="alpha",
        tags="one, two",
    )
    write_document(notes_dir / "projects" / "deep" / "beta.md", "# Beta\n\nBeta body.")
    write_document(notes_dir / ".hidden" / "secret.md", "Hidden.")
    write_document(notes_dir / ".draft.md", "Draft.")
    (notes_dir / "readme.txt").write_text("not markdown", encoding="utf-8")
    return notes_dir


@pytest.fixture
def document_service(store, note_tree):
    """Create a test DocumentService mirroring the note tree as 'notes'."""
    return DocumentService(store, title="Test Notes", directories={"notes": str(note_tree)})


@pytest.fixture
def make_document():
    """The ``write_document`` helper, for tests that build their own trees."""
    return write_document
