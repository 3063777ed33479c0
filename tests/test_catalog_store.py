"""Tests for the catalog store against a real SQLite database."""
import datetime
import uuid
from datetime import timezone

import pytest

from knawledge.exceptions import ConstraintViolationError, ErrorCode
from knawledge.models.schema import Document, EntryKind

pytestmark = pytest.mark.anyio


def make_doc(directory, path, custom_id=None, title=None, **kwargs) -> Document:
    return Document(
        file_name=path.rsplit("/", 1)[-1],
        directory=directory.id,
        path=path,
        title=title,
        custom_id=custom_id,
        **kwargs,
    )


class TestDirectories:
    """Tests for directory rows."""

    async def test_insert_root(self, store):
        root = await store.insert_directory("/notes", "notes")
        assert root.is_root
        assert root.name == "notes"
        assert await store.get_dir_by_path("/notes") == root
        assert await store.get_root_by_path("/notes") == root
        assert await store.get_root_dir_by_name("notes") == root

    async def test_insert_child(self, store):
        root = await store.insert_directory("/notes", "notes")
        child = await store.insert_directory("/notes/sub", "sub", root.id)
        assert child.parent == root.id
        assert await store.get_dir_by_name_and_parent("sub", root.id) == child
        # A child is not a root
        assert await store.get_root_by_path("/notes/sub") is None

    async def test_duplicate_path_is_unique_violation(self, store):
        await store.insert_directory("/notes", "notes")
        with pytest.raises(ConstraintViolationError) as exc_info:
            await store.insert_directory("/notes", "again")
        assert exc_info.value.is_unique_violation
        assert exc_info.value.operation == "insert_directory"

    async def test_missing_parent_is_integrity_violation(self, store):
        with pytest.raises(ConstraintViolationError) as exc_info:
            await store.insert_directory("/orphan", "orphan", uuid.uuid4())
        assert exc_info.value.code == ErrorCode.STORAGE_INTEGRITY_VIOLATION
        assert await store.get_dir_by_path("/orphan") is None

    async def test_lookups_miss(self, store):
        assert await store.get_dir_by_path("/nowhere") is None
        assert await store.get_root_dir_by_name("nowhere") is None
        assert await store.get_dir_by_name_and_parent("x", uuid.uuid4()) is None

    async def test_path_listings(self, store):
        root = await store.insert_directory("/notes", "notes")
        await store.insert_directory("/notes/sub", "sub", root.id)
        await store.insert_directory("/other", "other")
        assert sorted(await store.list_root_paths()) == ["/notes", "/other"]
        assert sorted(await store.get_all_dir_paths()) == ["/notes", "/notes/sub", "/other"]


class TestDocuments:
    """Tests for document rows."""

    async def test_insert_and_resolve(self, store):
        root = await store.insert_directory("/notes", "notes")
        doc = make_doc(root, "/notes/a.md", custom_id="a", title="A")
        await store.insert_document(doc)

        assert await store.get_document_path(doc.id) == "/notes/a.md"
        assert await store.get_doc_path(doc.id) == "/notes/a.md"
        assert await store.get_document_path_by_custom_id("a") == "/notes/a.md"
        assert await store.get_doc_id_path_by_custom_id("a") == (doc.id, "/notes/a.md")

    async def test_unknown_lookups_return_none(self, store):
        assert await store.get_document_path(uuid.uuid4()) is None
        assert await store.get_document_path_by_custom_id("nope") is None
        assert await store.get_doc_id_path_by_custom_id("nope") is None
        assert await store.get_document_by_path("/nope.md") is None

    async def test_insert_is_idempotent(self, store):
        root = await store.insert_directory("/notes", "notes")
        doc = make_doc(root, "/notes/a.md", custom_id="a")
        assert await store.insert_document(doc) is True
        assert await store.insert_document(doc) is False
        assert await store.get_all_file_paths() == ["/notes/a.md"]

    async def test_conflicting_insert_keeps_existing_row(self, store):
        root = await store.insert_directory("/notes", "notes")
        first = make_doc(root, "/notes/a.md", title="First")
        await store.insert_document(first)

        # Same path under a new id, then a new path reusing a custom id
        assert not await store.insert_document(make_doc(root, "/notes/a.md", title="Second"))
        assert await store.insert_document(make_doc(root, "/notes/b.md", custom_id="x"))
        assert not await store.insert_document(make_doc(root, "/notes/c.md", custom_id="x"))

        stored = await store.get_document_by_path("/notes/a.md")
        assert stored.id == first.id
        assert stored.title == "First"
        assert await store.get_document_path_by_custom_id("x") == "/notes/b.md"
        assert sorted(await store.get_all_file_paths()) == [
            "/notes/a.md",
            "/notes/b.md",
        ]

    async def test_insert_without_directory_fails(self, store):
        doc = Document(file_name="a.md", directory=uuid.uuid4(), path="/a.md")
        with pytest.raises(ConstraintViolationError) as exc_info:
            await store.insert_document(doc)
        assert not exc_info.value.is_unique_violation

    async def test_timestamps_are_utc_aware(self, store):
        root = await store.insert_directory("/notes", "notes")
        created = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        updated = datetime.datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        await store.insert_document(
            make_doc(root, "/notes/a.md", created_at=created, updated_at=updated)
        )
        stored = await store.get_document_by_path("/notes/a.md")
        assert stored.created_at == created
        assert stored.updated_at == updated
        assert stored.created_at.tzinfo is not None

    async def test_list_existing(self, store):
        root = await store.insert_directory("/notes", "notes")
        sub = await store.insert_directory("/notes/sub", "sub", root.id)
        await store.insert_document(make_doc(root, "/notes/a.md"))
        await store.insert_document(make_doc(root, "/notes/b.md"))
        await store.insert_document(make_doc(sub, "/notes/sub/a.md"))

        existing = await store.list_existing(root.id, ["a.md", "c.md"])
        assert [d.path for d in existing] == ["/notes/a.md"]
        assert await store.list_existing(root.id, []) == []

    async def test_remove_file(self, store):
        root = await store.insert_directory("/notes", "notes")
        await store.insert_document(make_doc(root, "/notes/a.md"))
        await store.remove_file("/notes/a.md")
        assert await store.get_all_file_paths() == []
        # Missing rows are not an error
        await store.remove_file_by_path("/notes/a.md")


class TestRemoval:
    """Tests for cascading removal and root trimming."""

    async def test_remove_dir_cascades(self, store):
        root = await store.insert_directory("/notes", "notes")
        sub = await store.insert_directory("/notes/sub", "sub", root.id)
        deep = await store.insert_directory("/notes/sub/deep", "deep", sub.id)
        await store.insert_document(make_doc(root, "/notes/a.md"))
        await store.insert_document(make_doc(deep, "/notes/sub/deep/b.md"))

        await store.remove_dir("/notes/sub")

        assert sorted(await store.get_all_dir_paths()) == ["/notes"]
        assert await store.get_all_file_paths() == ["/notes/a.md"]
        await store.remove_dir("/notes/sub")

    async def test_trim_roots(self, store):
        keep = await store.insert_directory("/keep", "keep")
        drop = await store.insert_directory("/drop", "drop")
        await store.insert_directory("/drop/sub", "sub", drop.id)
        await store.insert_document(make_doc(keep, "/keep/a.md"))
        await store.insert_document(make_doc(drop, "/drop/b.md"))

        assert await store.trim_roots(["/keep"]) == 1
        assert await store.get_all_dir_paths() == ["/keep"]
        assert await store.get_all_file_paths() == ["/keep/a.md"]

    async def test_trim_roots_ignores_non_roots(self, store):
        root = await store.insert_directory("/notes", "notes")
        await store.insert_directory("/notes/sub", "sub", root.id)
        # Only roots are candidates, a kept list naming just the root is enough
        assert await store.trim_roots(["/notes"]) == 0
        assert len(await store.get_all_dir_paths()) == 2

    async def test_trim_all_roots(self, store):
        await store.insert_directory("/a", "a")
        await store.insert_directory("/b", "b")
        assert await store.trim_roots([]) == 2
        assert await store.list_root_paths() == []


class TestIndex:
    """Tests for index.md lookup."""

    async def test_no_index(self, store):
        root = await store.insert_directory("/notes", "notes")
        await store.insert_document(make_doc(root, "/notes/a.md"))
        assert await store.get_index_path() is None

    async def test_root_index_wins_over_nested(self, store):
        root = await store.insert_directory("/b", "b")
        sub = await store.insert_directory("/b/a", "a", root.id)
        await store.insert_document(make_doc(sub, "/b/a/index.md"))
        await store.insert_document(make_doc(root, "/b/index.md"))
        assert await store.get_index_path() == "/b/index.md"

    async def test_smallest_path_among_roots(self, store):
        second = await store.insert_directory("/z", "z")
        first = await store.insert_directory("/m", "m")
        await store.insert_document(make_doc(second, "/z/index.md"))
        await store.insert_document(make_doc(first, "/m/index.md"))
        assert await store.get_index_path() == "/m/index.md"


class TestListings:
    """Tests for the hierarchy listings."""

    async def test_list_entries_orders_directories_first(self, store):
        root = await store.insert_directory("/notes", "notes")
        await store.insert_document(make_doc(root, "/notes/b.md", title="B", custom_id="b"))
        await store.insert_document(make_doc(root, "/notes/a.md"))
        await store.insert_directory("/notes/zeta", "zeta", root.id)
        await store.insert_directory("/notes/alpha", "alpha", root.id)

        entries = await store.list_entries(root.id)

        assert [(e.kind, e.name) for e in entries] == [
            (EntryKind.DIRECTORY, "alpha"),
            (EntryKind.DIRECTORY, "zeta"),
            (EntryKind.FILE, "a.md"),
            (EntryKind.FILE, "b.md"),
        ]
        assert all(e.parent == root.id for e in entries)
        b = entries[3]
        assert (b.title, b.custom_id) == ("B", "b")
        assert entries[0].title is None

    async def test_list_entries_of_unknown_directory(self, store):
        assert await store.list_entries(uuid.uuid4()) == []

    async def test_list_roots_with_entries(self, store):
        one = await store.insert_directory("/one", "one")
        two = await store.insert_directory("/two", "two")
        sub = await store.insert_directory("/one/sub", "sub", one.id)
        await store.insert_document(make_doc(one, "/one/a.md"))
        await store.insert_document(make_doc(two, "/two/b.md"))
        # Grandchildren are not part of the listing
        await store.insert_document(make_doc(sub, "/one/sub/c.md"))
        await store.insert_directory("/one/sub/deep", "deep", sub.id)

        entries = await store.list_roots_with_entries()

        assert {e.name for e in entries} == {"one", "two", "sub", "a.md", "b.md"}
        # Children first, roots last
        roots = [e for e in entries if e.parent is None]
        assert entries[-2:] == roots
        assert [r.name for r in roots] == ["one", "two"]
        # Entries of one parent are grouped, directories before files
        children_of_one = [e for e in entries if e.parent == one.id]
        assert [e.name for e in children_of_one] == ["sub", "a.md"]
        positions = [i for i, e in enumerate(entries) if e.parent == one.id]
        assert positions == list(range(positions[0], positions[0] + len(positions)))

    async def test_list_roots_with_entries_empty(self, store):
        assert await store.list_roots_with_entries() == []
