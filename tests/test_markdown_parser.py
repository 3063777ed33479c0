"""Tests for markdown front matter parsing."""
import uuid

import pytest

from knawledge.exceptions import DocumentParseError, DocumentReadError
from knawledge.models.schema import DocumentData, DocumentMeta
from knawledge.storage.markdown_parser import MarkdownParser


class TestParse:
    """Tests for MarkdownParser.parse."""

    def setup_method(self):
        self.parser = MarkdownParser()

    def test_front_matter_fields(self):
        content = (
            "---\n"
            "title: Design Notes\n"
            "id: design\n"
            "tags: [arch, db]\n"
            "status: draft\n"
            "---\n"
            "Body text.\n"
        )
        meta, body = self.parser.parse(content)
        assert meta.title == "Design Notes"
        assert meta.custom_id == "design"
        assert meta.tags == ["arch", "db"]
        assert meta.extra == {"status": "draft"}
        assert body.strip() == "Body text."

    def test_no_front_matter(self):
        meta, body = self.parser.parse("Just text.\n")
        assert meta == DocumentMeta()
        assert body.strip() == "Just text."

    def test_title_from_heading(self):
        meta, _ = self.parser.parse("Intro\n\n# The Heading\n\n## Sub\n")
        assert meta.title == "The Heading"

    def test_front_matter_title_wins(self):
        meta, _ = self.parser.parse("---\ntitle: Explicit\n---\n# Heading\n")
        assert meta.title == "Explicit"

    def test_comma_separated_tags(self):
        meta, _ = self.parser.parse("---\ntags: a, b ,, c\n---\n")
        assert meta.tags == ["a", "b", "c"]

    def test_numeric_custom_id_is_text(self):
        meta, _ = self.parser.parse("---\nid: 42\n---\n")
        assert meta.custom_id == "42"

    def test_blank_custom_id_ignored(self):
        meta, _ = self.parser.parse("---\nid: '  '\n---\n")
        assert meta.custom_id is None

    def test_invalid_yaml(self):
        with pytest.raises(DocumentParseError) as exc_info:
            self.parser.parse("---\ntitle: [oops\n---\nBody\n", path="/notes/bad.md")
        assert exc_info.value.path == "/notes/bad.md"


class TestReadFromDisk:
    """Tests for reading documents from files."""

    def test_read_document(self, tmp_path):
        path = tmp_path / "note.md"
        path.write_text("---\nid: note\n---\n# Note\n\nText.\n", encoding="utf-8")
        doc_id = uuid.uuid4()

        data = DocumentData.read_from_disk(doc_id, str(path))

        assert data.id == doc_id
        assert data.meta.custom_id == "note"
        assert data.meta.title == "Note"
        assert "Text." in data.content
        assert "---" not in data.content

    def test_read_meta(self, tmp_path):
        path = tmp_path / "note.md"
        path.write_text("---\ntitle: Only Meta\n---\n", encoding="utf-8")
        assert DocumentMeta.read_from_file(str(path)).title == "Only Meta"

    def test_missing_file(self, tmp_path):
        missing = str(tmp_path / "missing.md")
        with pytest.raises(DocumentReadError) as exc_info:
            MarkdownParser().read_meta(missing)
        assert exc_info.value.path == missing
        assert isinstance(exc_info.value.original_error, OSError)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "bad.md"
        path.write_bytes(b"\xff\xfe\xfa")
        with pytest.raises(DocumentReadError):
            MarkdownParser().read_document(uuid.uuid4(), str(path))
