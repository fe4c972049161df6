"""Tests for tag extraction."""

import pytest

from zettelhub.config import DEFAULT_TAG_EXCLUDE_PATTERNS
from zettelhub.models.schema import Note, TagSource
from zettelhub.services.tag_extractor import TagExtractor, strip_code


@pytest.fixture
def extractor():
    return TagExtractor(
        lowercase=True,
        min_length=1,
        max_length=50,
        exclude_patterns=DEFAULT_TAG_EXCLUDE_PATTERNS,
    )


class TestFrontmatterTags:
    """Tests for tags declared in front matter."""

    def test_list_is_normalised_and_deduplicated(self, extractor):
        assert extractor.frontmatter_tags(["Python", "#ml", " python "]) == ["python", "ml"]

    def test_comma_separated_string(self, extractor):
        assert extractor.frontmatter_tags("a, b,,#C") == ["a", "b", "c"]

    def test_non_string_values_stringified(self, extractor):
        assert extractor.frontmatter_tags([2024, None, "x"]) == ["2024", "x"]

    def test_missing(self, extractor):
        assert extractor.frontmatter_tags(None) == []

    def test_case_preserved_when_not_lowercasing(self):
        extractor = TagExtractor(lowercase=False, exclude_patterns=[])
        assert extractor.frontmatter_tags(["Python"]) == ["Python"]


class TestBodyTags:
    """Tests for #tags written in the body."""

    def test_basic_tags(self, extractor):
        assert extractor.body_tags("Intro #Python and #ml-ops.") == ["python", "ml-ops"]

    def test_headings_are_not_tags(self, extractor):
        assert extractor.body_tags("# Title\n## Section\n") == []

    def test_code_is_ignored(self, extractor):
        body = (
            "Use `#inline` here\n"
            "```\n#fenced\n```\n"
            "~~~python\n#tilde\n~~~\n"
            "after #real\n"
        )
        assert extractor.body_tags(body) == ["real"]

    def test_words_entities_and_numbers_are_not_tags(self, extractor):
        assert extractor.body_tags("issue#12 &#123; #123 #1st") == []

    def test_hex_colours_with_digits_excluded(self, extractor):
        assert extractor.body_tags("#a1b #abc123 #a1b2c3 #design") == ["design"]

    def test_anchor_links_are_not_tags(self, extractor):
        assert extractor.body_tags("[jump](#section) #kept") == ["kept"]

    def test_overlong_tags_never_match(self, extractor):
        assert extractor.body_tags("#" + "a" * 51) == []
        assert extractor.body_tags("#" + "a" * 50) == ["a" * 50]

    def test_length_bounds(self):
        extractor = TagExtractor(min_length=3, max_length=5, exclude_patterns=[])
        assert extractor.body_tags("#ab #abc #abcdef") == ["abc"]

    def test_deduplicated_after_lowercasing(self, extractor):
        assert extractor.body_tags("#Idea and #idea") == ["idea"]

    def test_custom_exclusions(self):
        extractor = TagExtractor(exclude_patterns=[r"^todo$"])
        assert extractor.body_tags("#todo #done") == ["done"]


class TestExtract:
    """Tests for extraction from a whole note."""

    def test_sources_recorded(self, extractor, tmp_path):
        note = Note(
            id="aaaa1111",
            path=tmp_path / "a.md",
            body="Body #python #draft",
            metadata={"tags": ["python", "123"]},
        )
        tags = extractor.extract(note)

        assert [(t.name, t.source) for t in tags] == [
            ("python", TagSource.FRONTMATTER),
            ("123", TagSource.FRONTMATTER),
            ("python", TagSource.BODY),
            ("draft", TagSource.BODY),
        ]
        assert all(t.note_id == "aaaa1111" for t in tags)

    def test_normalize_query_tag(self, extractor):
        assert extractor.normalize("  #Python ") == "python"


def test_strip_code_keeps_surrounding_text():
    assert strip_code("a `b` c") == "a  c"
