"""Tests for resolving references to note ids."""

import pytest

from zettelhub.services.index_service import IndexService
from zettelhub.services.resolver import Resolver, ScanResolver


@pytest.fixture
def resolver(index_service, notebook):
    return ScanResolver(index_service.notes, notebook)


class TestWikilinkResolution:
    """Tests for id, title and alias lookup."""

    def test_resolves_by_id(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="Project Plan")
        assert resolver.resolve_wikilink("aaaa1111") == "aaaa1111"

    def test_id_lookup_ignores_case(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="Project Plan")
        assert resolver.resolve_wikilink("AAAA1111") == "aaaa1111"

    def test_resolves_by_title_ignoring_case_and_whitespace(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="  Project Plan ")
        assert resolver.resolve_wikilink(" project plan ") == "aaaa1111"

    def test_title_tie_picks_lowest_id(self, resolver, seed_note):
        seed_note("bbbb0000", "b.md", title="Same")
        seed_note("aaaa0000", "a.md", title="Same")
        assert resolver.resolve_wikilink("same") == "aaaa0000"

    def test_display_text_ignored(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="Project Plan")
        assert resolver.resolve_wikilink("Project Plan|the plan") == "aaaa1111"
        assert resolver.resolve_wikilink("aaaa1111|Plan") == "aaaa1111"

    def test_resolves_by_alias_string(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="Project Plan", metadata={"aliases": "PP"})
        assert resolver.resolve_wikilink("pp") == "aaaa1111"

    def test_resolves_by_alias_list(self, resolver, seed_note):
        seed_note("cccc3333", "c.md", title="Kickoff", metadata={"aliases": ["Start", "Begin"]})
        assert resolver.resolve_wikilink("BEGIN") == "cccc3333"

    def test_title_wins_over_alias(self, resolver, seed_note):
        seed_note("aaaa0001", "a.md", title="Other", metadata={"aliases": ["Topic"]})
        seed_note("bbbb0002", "b.md", title="Topic")
        assert resolver.resolve_wikilink("topic") == "bbbb0002"

    def test_unresolved_returns_none(self, resolver, seed_note):
        seed_note("aaaa1111", "a.md", title="Project Plan")
        assert resolver.resolve_wikilink("Nobody") is None
        assert resolver.resolve_wikilink("ffff0000") is None
        assert resolver.resolve_wikilink("  ") is None


class TestMarkdownPathResolution:
    """Tests for relative markdown link resolution."""

    def test_resolves_relative_to_note_directory(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        current = notebook / "notes" / "a.md"
        assert resolver.resolve_markdown_path("b.md", current) == "bbbb2222"

    def test_matching_ignores_case_and_md_suffix(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        current = notebook / "notes" / "a.md"
        assert resolver.resolve_markdown_path("B.MD", current) == "bbbb2222"
        assert resolver.resolve_markdown_path("b", current) == "bbbb2222"
        assert resolver.resolve_markdown_path("./b.md", current) == "bbbb2222"

    def test_backslash_separators(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        assert resolver.resolve_markdown_path("notes\\b.md", notebook / "a.md") == "bbbb2222"

    def test_parent_directory_links(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        current = notebook / "other" / "x.md"
        assert resolver.resolve_markdown_path("../notes/b.md", current) == "bbbb2222"

    def test_falls_back_to_notebook_root(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        current = notebook / "other" / "x.md"
        assert resolver.resolve_markdown_path("notes/b.md", current) == "bbbb2222"

    def test_no_root_fallback_for_parent_links(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "notes/b.md")
        current = notebook / "deep" / "er" / "x.md"
        assert resolver.resolve_markdown_path("../notes/b.md", current) is None

    def test_rejects_paths_outside_notebook(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "b.md")
        assert resolver.resolve_markdown_path("../b.md", notebook / "a.md") is None

    def test_unmatched_returns_none(self, resolver, seed_note, notebook):
        seed_note("bbbb2222", "b.md")
        assert resolver.resolve_markdown_path("missing.md", notebook / "a.md") is None


class TestCustomResolver:
    """A different resolver can be injected into the engine."""

    def test_injected_resolver_is_used(self, engine, notebook, make_note):
        class EverythingIsB(Resolver):
            def resolve_wikilink(self, target):
                return "bbbb2222"

            def resolve_markdown_path(self, url, current_note_path):
                return None

        service = IndexService(engine=engine, notebook_path=notebook, resolver=EverythingIsB())
        service.index_note(make_note("b.md", "bbbb2222", title="B", body="b"))
        report = service.index_note(make_note("a.md", "aaaa1111", title="A", body="[[whatever]]"))

        assert [link.target_id for link in report.links] == ["bbbb2222"]
