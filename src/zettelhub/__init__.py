"""
Zettelhub index - the note-indexing and link-graph engine of a markdown notebook.

Notes are indexed into SQLite (with FTS5 full-text search), wikilinks and
relative markdown links are resolved into stable note ids, and a rendered
"Backlinks" section is maintained inside the referenced note files.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zettelhub-index")
except PackageNotFoundError:
    __version__ = "0.3.0"
