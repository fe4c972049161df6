"""Extraction of note references from markdown text.

Two syntaxes are recognised:

- wikilinks ``[[target]]`` or ``[[target|display]]``
- markdown links ``[text](relative/path.md)``

Extraction is purely syntactic; resolving a reference to a note id is
the resolver's job. A literal ``]]`` cannot appear inside a wikilink.
"""
import re
from typing import List, NamedTuple

from zettelhub.utils import has_uri_scheme

WIKILINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")
MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]*)\]\(([^)]*)\)")


class ExtractedLinks(NamedTuple):
    """References found in a text, each list de-duplicated in order."""

    wikilinks: List[str]
    markdown_urls: List[str]


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def extract_wikilinks(text: str) -> List[str]:
    """Stripped inner texts of every ``[[...]]``, empty ones dropped."""
    if not text:
        return []
    targets = [m.group(1).strip() for m in WIKILINK_PATTERN.finditer(text)]
    return _unique([t for t in targets if t])


def is_internal_url(url: str) -> bool:
    """True for URLs that may point at another note.

    Empty URLs, same-page anchors (``#section``) and anything with a URI
    scheme (``https:``, ``mailto:``, ``file:``) are external.
    """
    return bool(url) and not url.startswith("#") and not has_uri_scheme(url)


def extract_markdown_urls(text: str) -> List[str]:
    """Stripped URLs of every internal ``[text](url)`` link."""
    if not text:
        return []
    urls = [m.group(2).strip() for m in MARKDOWN_LINK_PATTERN.finditer(text)]
    return _unique([u for u in urls if is_internal_url(u)])


def extract_links(text: str) -> ExtractedLinks:
    """Extract both kinds of references from ``text``."""
    return ExtractedLinks(
        wikilinks=extract_wikilinks(text),
        markdown_urls=extract_markdown_urls(text),
    )
