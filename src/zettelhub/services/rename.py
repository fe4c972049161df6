"""Propagation of note renames to the markdown links pointing at them."""
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from zettelhub.exceptions import RenameWriteError
from zettelhub.services.link_extractor import MARKDOWN_LINK_PATTERN, is_internal_url
from zettelhub.storage.link_repository import LinkRepository
from zettelhub.storage.note_files import NoteFiles
from zettelhub.storage.note_repository import NoteRepository
from zettelhub.utils import notebook_relative, relative_link, same_note_path, to_posix

logger = logging.getLogger(__name__)


def rewrite_links_for_rename(
    body: str,
    source_path: Union[str, Path],
    notebook_path: Union[str, Path],
    old_rel: str,
    new_rel: str,
) -> str:
    """Point markdown links at ``old_rel`` to ``new_rel`` instead.

    Each ``[text](url)`` whose URL, resolved from the directory of
    ``source_path``, is the old note path (ignoring case and a ``.md``
    suffix) gets the relative path from that directory to ``new_rel``.
    Link text, wikilinks and all other text are left as they are.

    Args:
        body: Markdown body of the linking note.
        source_path: Absolute path of the linking note.
        notebook_path: Absolute notebook root.
        old_rel: Previous notebook-relative path of the renamed note.
        new_rel: New notebook-relative path of the renamed note.
    """
    if not body:
        return body

    notebook = os.path.abspath(str(notebook_path))
    source_dir = os.path.dirname(os.path.abspath(str(source_path)))
    source_rel_dir = notebook_relative(source_dir, notebook)
    if source_rel_dir is None:
        return body
    if source_rel_dir == ".":
        source_rel_dir = ""
    new_url = relative_link(source_rel_dir, to_posix(new_rel))

    def replace(match: re.Match) -> str:
        url = match.group(2).strip()
        if not is_internal_url(url):
            return match.group(0)
        target = notebook_relative(
            os.path.abspath(os.path.join(source_dir, url)), notebook
        )
        if target is None or not same_note_path(target, old_rel):
            return match.group(0)
        return f"[{match.group(1)}]({new_url})"

    return MARKDOWN_LINK_PATTERN.sub(replace, body)


@dataclass
class RenameReport:
    """Outcome of propagating one rename."""

    note_id: str
    old_path: str
    new_path: str
    updated: List[str] = field(default_factory=list)
    failures: List[RenameWriteError] = field(default_factory=list)


class RenamePropagator:
    """Rewrites markdown links in the notes that link to a renamed note."""

    def __init__(
        self,
        notes: NoteRepository,
        links: LinkRepository,
        files: NoteFiles,
    ):
        self.notes = notes
        self.links = links
        self.files = files

    def propagate(self, note_id: str, old_rel: str, new_rel: str) -> RenameReport:
        """Rewrite every backlink source of ``note_id`` for its new path.

        Sources whose file is missing are skipped. A source that cannot be
        read or written is logged and recorded in ``failures``; the
        remaining sources are still processed.
        """
        report = RenameReport(note_id=note_id, old_path=old_rel, new_path=new_rel)
        source_ids = self.links.source_ids(note_id)
        logger.info(
            f"Rename detected for {note_id}: {old_rel} -> {new_rel}, "
            f"checking {len(source_ids)} backlink source(s)"
        )

        sources = self.notes.get_many(source_ids)
        for source_id in source_ids:
            source = sources.get(source_id)
            if source is None:
                continue
            # A note linking to itself is already at its new location
            source_rel = new_rel if source_id == note_id else source.path
            path = self.files.absolute(source_rel)
            if not path.is_file():
                logger.debug(f"Backlink source {source_id} missing on disk: {path}")
                continue
            try:
                written = self.files.rewrite_body(
                    path,
                    lambda body: rewrite_links_for_rename(
                        body, path, self.files.notebook_path, old_rel, new_rel
                    ),
                )
            except (OSError, UnicodeDecodeError) as e:
                error = RenameWriteError(source_id, str(path), original_error=e)
                logger.warning(f"{error.message}: {e}")
                report.failures.append(error)
                continue
            if written:
                report.updated.append(source_id)
                logger.debug(f"Updated links in backlink source {path}")
        return report
