"""Utility functions for the Zettelhub index."""
import os
import posixpath
import re
from typing import Optional

# An explicit URI scheme (http:, mailto:, file:, ...) marks an external link
URI_SCHEME_PATTERN = re.compile(r"\A[a-z][a-z0-9+.\-]*:", re.IGNORECASE)

_MD_SUFFIX = re.compile(r"\.md\Z", re.IGNORECASE)
_REPEATED_SLASHES = re.compile(r"/+")

# Fenced code block (``` or ~~~); an unclosed fence runs to the end of the text
FENCED_CODE_BLOCK = re.compile(
    r"^[ \t]*(`{3,}|~{3,})[^\n]*\n.*?(?:^[ \t]*\1[ \t]*$|\Z)",
    re.MULTILINE | re.DOTALL,
)


def has_uri_scheme(url: str) -> bool:
    """Return True if the URL starts with an explicit URI scheme."""
    return bool(URI_SCHEME_PATTERN.match(url))


def to_posix(path: str) -> str:
    """Use forward slashes regardless of the platform separator."""
    return path.replace(os.sep, "/").replace("\\", "/")


def normalize_note_path(path: str) -> str:
    """Normalise a notebook-relative path for comparison.

    Collapses repeated slashes, converts separators to ``/`` and strips a
    trailing ``.md`` (any case). Case is preserved; callers compare with
    ``casefold()``.

    Examples:
        "notes//b.md" -> "notes/b"
        "notes\\\\B.MD" -> "notes/B"
    """
    return _MD_SUFFIX.sub("", _REPEATED_SLASHES.sub("/", to_posix(path)))


def same_note_path(a: str, b: str) -> bool:
    """Compare two notebook-relative paths the way links are matched."""
    return normalize_note_path(a).casefold() == normalize_note_path(b).casefold()


def notebook_relative(absolute_path: str, notebook_path: str) -> Optional[str]:
    """Return ``absolute_path`` relative to the notebook, or None if outside it.

    Both arguments must be absolute. The result always uses ``/``.
    """
    root = os.path.normpath(notebook_path)
    target = os.path.normpath(absolute_path)
    if target != root and not target.startswith(root.rstrip(os.sep) + os.sep):
        return None
    return to_posix(os.path.relpath(target, root))


def relative_link(from_dir: str, to_path: str) -> str:
    """Relative URL from a notebook-relative directory to a notebook-relative file."""
    start = from_dir or "."
    return posixpath.relpath(to_posix(to_path), to_posix(start))


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Prevents SQL LIKE pattern injection where user input containing
    '%' or '_' could match unintended patterns.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\\\% complete'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
