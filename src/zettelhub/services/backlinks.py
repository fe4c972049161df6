"""Rendering and writing of the ``## Backlinks`` section of note files."""
import logging
import posixpath
import re
from typing import Iterable, List, NamedTuple, Optional

from zettelhub.storage.link_repository import LinkRepository
from zettelhub.storage.note_files import NoteFiles
from zettelhub.storage.note_repository import NoteRepository
from zettelhub.utils import FENCED_CODE_BLOCK, relative_link

logger = logging.getLogger(__name__)

BACKLINKS_HEADING = "## Backlinks"
BACKLINKS_HEADING_PATTERN = re.compile(r"^## Backlinks[ \t]*$", re.MULTILINE)


class BacklinkEntry(NamedTuple):
    """One rendered backlink: ``- [text](url)``."""

    text: str
    url: str


def escape_link_text(value: str) -> str:
    return value.replace("\\", "\\\\").replace("]", "\\]")


def escape_link_url(value: str) -> str:
    """Link destination; wrapped in <...> when it contains whitespace."""
    if any(ch.isspace() for ch in value):
        escaped = value.replace("\\", "\\\\").replace("<", "\\<").replace(">", "\\>")
        return f"<{escaped}>"
    return value.replace("\\", "\\\\").replace(")", "\\)")


def find_backlinks_block(body: str) -> Optional[int]:
    """Offset of the last ``## Backlinks`` heading outside fenced code, or None."""
    fenced = [m.span() for m in FENCED_CODE_BLOCK.finditer(body)]
    start = None
    for match in BACKLINKS_HEADING_PATTERN.finditer(body):
        if any(lo <= match.start() < hi for lo, hi in fenced):
            continue
        start = match.start()
    return start


def strip_backlinks_block(body: str) -> str:
    """Body without its generated backlinks block.

    The block is a rendered view of other notes' links; its entries are
    not references authored in this note.
    """
    start = find_backlinks_block(body)
    return body if start is None else body[:start]


def render_backlinks(body: str, entries: Iterable[BacklinkEntry]) -> str:
    """Return ``body`` with its trailing backlinks block replaced.

    Everything from the last ``## Backlinks`` line to the end of the body
    is the block. The content before it is kept as is, apart from
    trailing whitespace at the boundary. With no entries the block is
    removed and the body is otherwise left alone.
    """
    entries = list(entries)
    start = find_backlinks_block(body)
    if start is None and not entries:
        return body

    kept = body if start is None else body[:start]
    kept = kept.rstrip()
    if not entries:
        return f"{kept}\n" if kept else ""

    lines = [BACKLINKS_HEADING, ""]
    lines.extend(
        f"- [{escape_link_text(e.text)}]({escape_link_url(e.url)})" for e in entries
    )
    block = "\n".join(lines) + "\n"
    return f"{kept}\n\n{block}" if kept else block


class BacklinkWriter:
    """Keeps the backlinks section of a note file in sync with the index."""

    def __init__(
        self,
        notes: NoteRepository,
        links: LinkRepository,
        files: NoteFiles,
    ):
        self.notes = notes
        self.links = links
        self.files = files

    def entries_for(self, note_id: str, note_path: str) -> List[BacklinkEntry]:
        """Backlink entries for a note, one per distinct source, ordered by id."""
        source_ids = self.links.source_ids(note_id)
        sources = self.notes.get_many(source_ids)
        note_dir = posixpath.dirname(note_path)
        entries = []
        for source_id in source_ids:
            source = sources.get(source_id)
            if source is None:
                logger.debug(f"Backlink source {source_id} of {note_id} is not indexed")
                continue
            entries.append(
                BacklinkEntry(
                    text=source.display_title,
                    url=relative_link(note_dir, source.path),
                )
            )
        return entries

    def update(self, note_id: str) -> bool:
        """Rewrite a note's backlinks section if it is out of date.

        Returns:
            True if the note file was written. Notes missing from the index
            or from disk are skipped.
        """
        note_path = self.notes.get_path(note_id)
        if note_path is None:
            return False

        path = self.files.absolute(note_path)
        if not path.is_file():
            logger.debug(f"Skipping backlinks for {note_id}: {path} does not exist")
            return False

        entries = self.entries_for(note_id, note_path)
        written = self.files.rewrite_body(
            path, lambda body: render_backlinks(body, entries)
        )
        if written:
            logger.info(f"Updated backlinks of {note_id} ({len(entries)} entries)")
        return written

    def update_many(self, note_ids: Iterable[str]) -> List[str]:
        """Update several notes in order; returns the ids whose files changed.

        A note whose file cannot be read or written is logged and skipped.
        """
        changed = []
        for note_id in dict.fromkeys(note_ids):
            try:
                if self.update(note_id):
                    changed.append(note_id)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not update backlinks of {note_id}: {e}")
        return changed
