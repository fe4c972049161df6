"""Markdown parsing for notebook notes.

Two views of a note file are needed: a parsed one (metadata dict plus
body) for indexing, and a raw one (front matter text kept byte-for-byte
plus body) for rewriting a file without disturbing its front matter.
"""
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import frontmatter

from zettelhub.models.schema import NOTE_ID_PATTERN, Note

logger = logging.getLogger(__name__)

FRONT_MATTER_PATTERN = re.compile(
    r"\A---\r?\n(?:.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)
_ID_IN_FILENAME = re.compile(r"(?<![0-9a-f])([0-9a-f]{8})(?![0-9a-f])", re.IGNORECASE)


def split_front_matter(content: str) -> Tuple[str, str]:
    """Split raw file content into ``(front_matter, body)``.

    The front matter string includes both ``---`` delimiter lines and is
    returned untouched; it is empty when the file has none.
    """
    match = FRONT_MATTER_PATTERN.match(content)
    if not match:
        return "", content
    return match.group(0), content[match.end():]


def join_front_matter(front_matter: str, body: str) -> str:
    """Inverse of ``split_front_matter``."""
    return f"{front_matter}{body}"


class MarkdownParser:
    """Parses notebook markdown files into ``Note`` values."""

    def parse(self, content: str, path: Union[str, Path]) -> Note:
        """Parse a note from markdown content with optional YAML front matter.

        The id comes from the ``id`` front matter key, else from an 8 hex
        character token in the filename. The title comes from the ``title``
        key, else the first ``# `` heading of the body.

        Raises:
            ValueError: If no id can be determined.
            yaml.YAMLError: If the front matter is not valid YAML.
        """
        post = frontmatter.loads(content)
        metadata: Dict[str, Any] = dict(post.metadata)
        path = Path(path)

        note_id = self._note_id(metadata, path)
        if not note_id:
            raise ValueError(f"Note ID missing from front matter and filename: {path}")

        title = metadata.get("title")
        if not title:
            for line in post.content.split("\n"):
                if line.startswith("# "):
                    title = line[2:].strip()
                    break

        return Note(
            id=note_id,
            path=path,
            title=str(title) if title else "",
            body=post.content,
            metadata=metadata,
        )

    @staticmethod
    def _note_id(metadata: Dict[str, Any], path: Path) -> Optional[str]:
        value = metadata.get("id")
        if value is not None and str(value).strip():
            return str(value).strip()
        match = _ID_IN_FILENAME.search(path.stem)
        if match and NOTE_ID_PATTERN.match(match.group(1)):
            return match.group(1).lower()
        return None


def load_note(path: Union[str, Path], parser: Optional[MarkdownParser] = None) -> Note:
    """Read and parse a note file.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not UTF-8.
        ValueError: If the note has no id.
        yaml.YAMLError: If the front matter is not valid YAML.
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    return (parser or MarkdownParser()).parse(content, path)
