"""Tests for reference extraction from markdown text."""

from zettelhub.services.link_extractor import (
    extract_links,
    extract_markdown_urls,
    extract_wikilinks,
    is_internal_url,
)


class TestWikilinks:
    """Tests for [[wikilink]] extraction."""

    def test_targets_in_first_appearance_order(self):
        text = "Start [[Beta]] then [[alpha]] and [[Beta]] again"
        assert extract_wikilinks(text) == ["Beta", "alpha"]

    def test_targets_are_stripped(self):
        assert extract_wikilinks("[[  Project Plan  ]]") == ["Project Plan"]

    def test_empty_targets_dropped(self):
        assert extract_wikilinks("[[ ]] [[real]]") == ["real"]

    def test_display_text_kept_for_resolver(self):
        assert extract_wikilinks("See [[bbbb2222|Kickoff]]") == ["bbbb2222|Kickoff"]

    def test_no_links(self):
        assert extract_wikilinks("") == []
        assert extract_wikilinks("plain [text] only") == []

    def test_closing_brackets_end_target(self):
        """A literal ]] cannot appear inside a wikilink target."""
        assert extract_wikilinks("[[a]]b]]") == ["a"]


class TestMarkdownUrls:
    """Tests for [text](url) extraction."""

    def test_relative_urls_extracted_and_deduplicated(self):
        text = "[B](b.md) and [C](sub/c.md) and [B again](b.md)"
        assert extract_markdown_urls(text) == ["b.md", "sub/c.md"]

    def test_external_and_anchor_urls_excluded(self):
        text = (
            "[web](https://example.com/b.md) [mail](mailto:me@example.com) "
            "[anchor](#section) [empty]() [upper](HTTP://EXAMPLE.COM) [ok](notes/x.md)"
        )
        assert extract_markdown_urls(text) == ["notes/x.md"]

    def test_urls_are_stripped(self):
        assert extract_markdown_urls("[x]( b.md )") == ["b.md"]

    def test_is_internal_url(self):
        assert is_internal_url("../b.md")
        assert not is_internal_url("")
        assert not is_internal_url("#top")
        assert not is_internal_url("file:///tmp/b.md")


class TestExtractLinks:
    """Tests for combined extraction."""

    def test_both_kinds(self):
        links = extract_links("[[Kickoff]] and [plan](plan.md)")
        assert links.wikilinks == ["Kickoff"]
        assert links.markdown_urls == ["plan.md"]

    def test_wikilink_is_not_a_markdown_link(self):
        links = extract_links("[[Kickoff]]")
        assert links.markdown_urls == []
