"""Tests for the data models used by the Zettelhub index."""
import datetime
import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from zettelhub.exceptions import ErrorCode, MalformedMetadataError
from zettelhub.models.schema import (
    IndexedNote,
    Link,
    LinkType,
    Note,
    SearchResult,
    as_string_list,
    generate_id,
    serialize_metadata,
)


class TestNoteModel:
    """Tests for the Note model."""

    def test_note_creation(self, tmp_path):
        note = Note(id="aaaa1111", path=tmp_path / "a.md", title="Plan", body="text")
        assert note.id == "aaaa1111"
        assert note.path == tmp_path / "a.md"
        assert note.metadata == {}

    def test_generated_id(self, tmp_path):
        note = Note(path=tmp_path / "a.md")
        assert len(note.id) == 8
        assert int(note.id, 16) >= 0

    def test_id_validation(self, tmp_path):
        """Ids must be non-empty and safe as a path component."""
        for bad in ("", "   ", " abc", "a/b", "a\\b", "..", "a\nb"):
            with pytest.raises(ValidationError):
                Note(id=bad, path=tmp_path / "a.md")

    def test_path_made_absolute(self):
        note = Note(id="aaaa1111", path=Path("notes") / ".." / "a.md")
        assert note.path.is_absolute()
        assert note.path == Path(os.path.abspath("a.md"))

    def test_none_title_and_body(self, tmp_path):
        note = Note(id="aaaa1111", path=tmp_path / "a.md", title=None, body=None)
        assert note.title == ""
        assert note.body == ""

    def test_description(self, tmp_path):
        note = Note(
            id="aaaa1111", path=tmp_path / "a.md", body="body",
            metadata={"description": "see [[x]]"},
        )
        assert note.description == "see [[x]]"
        assert Note(id="aaaa1111", path=tmp_path / "a.md").description == ""


class TestIndexedNote:
    """Tests for derived fields of stored notes."""

    def test_display_title_fallbacks(self):
        assert IndexedNote(id="a", path="x/p.md", title=" T ").display_title == "T"
        assert IndexedNote(id="a", path="x/p.md", filename="p.md").display_title == "p"
        assert IndexedNote(id="a", path="x/q.md").display_title == "q"
        assert IndexedNote(id="abcd1234", path="", filename=".md").display_title == "abcd1234"

    def test_metadata_properties(self):
        note = IndexedNote(
            id="a", path="a.md",
            metadata={"type": "permanent", "date": "2024-01-05", "aliases": "Plan"},
        )
        assert note.note_type == "permanent"
        assert note.date == "2024-01-05"
        assert note.aliases == ["Plan"]
        assert IndexedNote(id="a", path="a.md").note_type == ""


class TestMetadataSerialization:
    """Tests for the JSON metadata blob."""

    def test_dates_become_iso_strings(self):
        blob = serialize_metadata("aaaa1111", {
            "date": datetime.date(2024, 1, 5),
            "updated": datetime.datetime(2024, 1, 5, 10, 30),
            "title": "Café",
        })
        data = json.loads(blob)
        assert data["date"] == "2024-01-05"
        assert data["updated"] == "2024-01-05T10:30:00"
        assert "Café" in blob

    def test_unserializable_value(self):
        with pytest.raises(MalformedMetadataError) as exc_info:
            serialize_metadata("aaaa1111", {"x": object()})
        assert exc_info.value.code == ErrorCode.METADATA_MALFORMED

    def test_nan_rejected(self):
        with pytest.raises(MalformedMetadataError):
            serialize_metadata("aaaa1111", {"x": float("nan")})

    def test_as_string_list(self):
        assert as_string_list(None) == []
        assert as_string_list("a") == ["a"]
        assert as_string_list(["a", None, 2]) == ["a", "2"]


class TestValueModels:
    """Tests for links and search results."""

    def test_link_is_frozen(self):
        link = Link(source_id="a", target_id="b", link_type=LinkType.WIKILINK)
        with pytest.raises(ValidationError):
            link.target_id = "c"

    def test_link_type_values(self):
        assert LinkType("wikilink") is LinkType.WIKILINK
        assert LinkType.MARKDOWN.value == "markdown"

    def test_tag_summary(self):
        assert SearchResult(id="a", tags=["x", "y"]).tag_summary == "x, y"
        assert SearchResult(id="a").tag_summary == ""

    def test_generate_id_unique(self):
        assert len({generate_id() for _ in range(50)}) == 50
