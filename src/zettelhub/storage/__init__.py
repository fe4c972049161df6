"""Storage layer for the Zettelhub index."""

from zettelhub.storage.fts_index import FtsIndex
from zettelhub.storage.link_repository import LinkRepository
from zettelhub.storage.note_files import NoteFiles
from zettelhub.storage.note_repository import NoteRepository
from zettelhub.storage.tag_repository import TagRepository

__all__ = [
    "FtsIndex",
    "NoteRepository",
    "LinkRepository",
    "NoteFiles",
    "TagRepository",
]
