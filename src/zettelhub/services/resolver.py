"""Resolution of wikilink targets and markdown URLs to note ids."""
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from zettelhub.models.schema import NOTE_ID_PATTERN, as_string_list
from zettelhub.storage.note_repository import NoteRepository
from zettelhub.utils import has_uri_scheme, normalize_note_path, notebook_relative

logger = logging.getLogger(__name__)


class Resolver(ABC):
    """Maps references written in a note to the ids of indexed notes."""

    @abstractmethod
    def resolve_wikilink(self, target: str) -> Optional[str]:
        """Resolve the inner text of a ``[[...]]`` reference."""

    @abstractmethod
    def resolve_markdown_path(
        self, url: str, current_note_path: Union[str, Path]
    ) -> Optional[str]:
        """Resolve a markdown link URL written in the note at ``current_note_path``."""


class ScanResolver(Resolver):
    """Resolver backed by lookups and full scans of the notes table.

    Alias and path matching scan every note row, so resolution cost grows
    linearly with the notebook. Inject another ``Resolver`` into
    ``IndexService`` to change the strategy.
    """

    def __init__(self, notes: NoteRepository, notebook_path: Union[str, Path]):
        self.notes = notes
        self.notebook_path = os.path.abspath(str(notebook_path))

    def resolve_wikilink(self, target: str) -> Optional[str]:
        """Resolve by id, then by title, then by alias.

        Anything after the first ``|`` is display text and ignored. Title
        and alias matching ignore case and surrounding whitespace.
        """
        name = target.strip().split("|", 1)[0].strip()
        if not name:
            return None

        if NOTE_ID_PATTERN.match(name):
            note = self.notes.get(name.lower()) or self.notes.get(name)
            if note:
                return note.id

        note = self.notes.get_by_title(name)
        if note:
            return note.id

        wanted = name.lower()
        for note_id, metadata in self.notes.iter_metadata():
            aliases = as_string_list(metadata.get("aliases"))
            if any(alias.strip().lower() == wanted for alias in aliases):
                return note_id
        return None

    def resolve_markdown_path(
        self, url: str, current_note_path: Union[str, Path]
    ) -> Optional[str]:
        """Resolve a relative URL against the note's directory.

        Falls back to the notebook root for plain relative URLs (no
        ``..``, not absolute, no scheme) that do not match from the
        note's directory.
        """
        url = url.strip()
        if not url:
            return None

        note_dir = os.path.dirname(os.path.abspath(str(current_note_path)))
        found = self._match_path(os.path.join(note_dir, url))
        if found:
            return found

        if ".." in url or os.path.isabs(url) or url.startswith("/") or has_uri_scheme(url):
            return None
        return self._match_path(os.path.join(self.notebook_path, url))

    def _match_path(self, candidate: str) -> Optional[str]:
        relative = notebook_relative(os.path.abspath(candidate), self.notebook_path)
        if relative is None:
            return None
        wanted = normalize_note_path(relative).casefold()
        for note_id, path in self.notes.iter_paths():
            if normalize_note_path(path).casefold() == wanted:
                return note_id
        return None
