"""Data models for the Zettelhub index."""

import datetime
import json
import os
import re
import secrets
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from zettelhub.exceptions import MalformedMetadataError

# Note ids are 8 lowercase hex characters; lookups accept any case
NOTE_ID_PATTERN = re.compile(r"\A[0-9a-f]{8}\Z", re.IGNORECASE)

# Characters that must never appear in an id (ids end up in filenames)
_UNSAFE_ID_CHARS = re.compile(r"[/\\\x00-\x1f]")


def generate_id() -> str:
    """Generate a random 8 hex character note id."""
    return secrets.token_hex(4)


def validate_note_id(value: str) -> str:
    """Validate that a note id is non-empty and safe as a path component.

    Raises:
        ValueError: If the id is empty or contains separators/control chars
    """
    if not value or not value.strip():
        raise ValueError("Note ID cannot be empty")
    if value != value.strip():
        raise ValueError("Note ID cannot have surrounding whitespace")
    if ".." in value or _UNSAFE_ID_CHARS.search(value):
        raise ValueError("Note ID cannot contain path separators or '..'")
    return value


def _json_default(value: Any) -> Any:
    # YAML front matter yields date/datetime objects for unquoted dates
    if isinstance(value, (datetime.date, datetime.datetime, datetime.time)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_metadata(note_id: str, metadata: Dict[str, Any]) -> str:
    """Serialize note metadata to the JSON blob stored in the notes table.

    Raises:
        MalformedMetadataError: If the metadata cannot be represented as JSON.
    """
    try:
        return json.dumps(metadata, default=_json_default, ensure_ascii=False,
                          allow_nan=False)
    except (TypeError, ValueError) as e:
        raise MalformedMetadataError(note_id, original_error=e) from e


def as_string_list(value: Any) -> List[str]:
    """Normalise a metadata value that may be a single item or a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


class LinkType(str, Enum):
    """How a reference was written in the source note."""

    WIKILINK = "wikilink"  # [[target]] or [[target|display]]
    MARKDOWN = "markdown"  # [text](relative/path.md)


class TagSource(str, Enum):
    """Where a tag was found."""

    FRONTMATTER = "frontmatter"
    BODY = "body"


class Link(BaseModel):
    """A resolved link between two notes."""

    source_id: str = Field(..., description="ID of the source note")
    target_id: str = Field(..., description="ID of the target note")
    link_type: LinkType = Field(..., description="Syntax the link was written in")
    context: Optional[str] = Field(
        default=None, description="Reference text as written in the source"
    )

    model_config = {"frozen": True}


class Tag(BaseModel):
    """A tag attached to a note, with provenance."""

    note_id: str
    name: str
    source: TagSource

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.name


class Note(BaseModel):
    """A parsed note as handed to the engine by its collaborators."""

    id: str = Field(default_factory=generate_id, description="Stable note id")
    path: Path = Field(..., description="Absolute path of the note file")
    title: str = Field(default="", description="Title of the note")
    body: str = Field(default="", description="Markdown body without front matter")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Front matter key-value data"
    )

    model_config = {"validate_assignment": True}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is safe for filesystem use."""
        return validate_note_id(v)

    @field_validator("title", "body", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        """Treat a missing title or body as empty text."""
        return "" if v is None else v

    @field_validator("path")
    @classmethod
    def absolute_path(cls, v: Path) -> Path:
        """Store the path absolute and normalised."""
        return Path(os.path.abspath(os.path.expanduser(str(v))))

    @property
    def description(self) -> str:
        value = self.metadata.get("description")
        return "" if value is None else str(value)


class IndexedNote(BaseModel):
    """A note row as persisted in the index."""

    id: str
    path: str = Field(..., description="Path relative to the notebook root")
    title: str = ""
    body: str = ""
    filename: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def note_type(self) -> str:
        value = self.metadata.get("type")
        return "" if value is None else str(value)

    @property
    def date(self) -> str:
        value = self.metadata.get("date")
        return "" if value is None else str(value)

    @property
    def aliases(self) -> List[str]:
        return as_string_list(self.metadata.get("aliases"))

    @property
    def display_title(self) -> str:
        """Title, else the filename without .md, else the id."""
        title = self.title.strip()
        if title:
            return title
        stem = re.sub(r"\.md\Z", "", self.filename or os.path.basename(self.path))
        return stem or self.id


class LinkedNote(BaseModel):
    """One end of a link, as listed by outgoing-link and backlink queries."""

    id: str
    link_type: LinkType
    title: str = ""
    path: Optional[str] = None
    broken: bool = False


class SearchResult(BaseModel):
    """A ranked row returned by the query engine."""

    id: str
    type: str = ""
    date: str = ""
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    path: str = ""
    filename: str = ""
    rank: float = 0.0

    @property
    def tag_summary(self) -> str:
        return ", ".join(self.tags)
