"""Tag extraction from note front matter and body text."""
import logging
import re
from typing import Any, Iterable, List, Optional

from zettelhub.config import ZettelhubConfig, config as default_config
from zettelhub.models.schema import Note, Tag, TagSource
from zettelhub.services.backlinks import strip_backlinks_block
from zettelhub.utils import FENCED_CODE_BLOCK

logger = logging.getLogger(__name__)

# #tag: starts with a letter, at most 50 characters, not part of a word
# or an HTML entity (&#123;)
BODY_TAG_PATTERN = re.compile(r"(?<![&\w])#([^\W\d_][\w-]{0,49})(?![\w-])")

# Code is stripped before scanning so `#include` and shell comments are ignored
INLINE_CODE = re.compile(r"(`+)(?!`).*?(?<!`)\1(?!`)")
# Link destinations: [text](#anchor) is not a tag
LINK_DESTINATION = re.compile(r"\]\([^)]*\)")


def strip_code(content: str) -> str:
    """Remove fenced code blocks and inline code spans."""
    content = FENCED_CODE_BLOCK.sub("", content)
    return INLINE_CODE.sub("", content)


class TagExtractor:
    """Extracts front matter and body tags from a note."""

    def __init__(
        self,
        lowercase: Optional[bool] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        exclude_patterns: Optional[Iterable[str]] = None,
        config: Optional[ZettelhubConfig] = None,
    ):
        cfg = config or default_config
        self.lowercase = cfg.tag_lowercase if lowercase is None else lowercase
        self.min_length = cfg.tag_min_length if min_length is None else min_length
        self.max_length = cfg.tag_max_length if max_length is None else max_length
        patterns = (
            cfg.tag_exclude_patterns if exclude_patterns is None else exclude_patterns
        )
        self.exclude = [re.compile(p) for p in patterns]

    def _normalize(self, name: str) -> str:
        return name.lower() if self.lowercase else name

    def normalize(self, name: str) -> str:
        """Normalise a tag name given by a user, e.g. as a query filter."""
        return self._normalize(name.strip().lstrip("#").strip())

    def frontmatter_tags(self, metadata_tags: Any) -> List[str]:
        """Tags declared in front matter, as a list or a comma-separated string."""
        if metadata_tags is None:
            return []
        if isinstance(metadata_tags, str):
            raw = metadata_tags.split(",")
        elif isinstance(metadata_tags, (list, tuple, set)):
            raw = [str(t) for t in metadata_tags if t is not None]
        else:
            raw = [str(metadata_tags)]

        names = []
        for item in raw:
            name = item.strip().lstrip("#").strip()
            if name:
                names.append(self._normalize(name))
        return list(dict.fromkeys(names))

    def body_tags(self, body: str) -> List[str]:
        """``#tags`` written in the body, outside code and link destinations."""
        if not body:
            return []
        text = LINK_DESTINATION.sub("]()", strip_code(body))
        names = []
        for match in BODY_TAG_PATTERN.finditer(text):
            name = self._normalize(match.group(1))
            if not self.min_length <= len(name) <= self.max_length:
                continue
            if any(p.search(name) for p in self.exclude):
                logger.debug(f"Ignoring excluded body tag '#{name}'")
                continue
            names.append(name)
        return list(dict.fromkeys(names))

    def extract(self, note: Note) -> List[Tag]:
        """All tags of a note; front matter tags first.

        The generated backlinks block is not scanned: it holds other
        notes' titles.
        """
        tags = [
            Tag(note_id=note.id, name=name, source=TagSource.FRONTMATTER)
            for name in self.frontmatter_tags(note.metadata.get("tags"))
        ]
        tags.extend(
            Tag(note_id=note.id, name=name, source=TagSource.BODY)
            for name in self.body_tags(strip_backlinks_block(note.body))
        )
        return tags
