"""Repository for tag storage and retrieval."""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from zettelhub.models.db_models import DBTag
from zettelhub.models.schema import Tag, TagSource

logger = logging.getLogger(__name__)


class TagRepository:
    """Repository for the ``tags`` table.

    Each row records one tag occurrence on a note together with where it
    was found (front matter or body). A note's tags are replaced as a whole
    whenever the note is indexed.
    """

    def __init__(self, session_factory):
        """Initialize the tag repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def replace_for_note(self, session: Session, note_id: str, tags: Iterable[Tag]) -> int:
        """Delete a note's tags and insert ``tags`` in the caller's session.

        Duplicate ``(tag, source)`` pairs are inserted once.

        Returns:
            Number of tag rows inserted.
        """
        session.execute(delete(DBTag).where(DBTag.note_id == note_id))
        seen = set()
        for tag in tags:
            key = (tag.name, tag.source.value)
            if key in seen:
                continue
            seen.add(key)
            session.add(DBTag(note_id=note_id, tag=tag.name, source=tag.source.value))
        session.flush()
        return len(seen)

    def get_tags_for_note(self, note_id: str) -> List[Tag]:
        """Get a note's tags ordered by name then source."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBTag)
                .where(DBTag.note_id == note_id)
                .order_by(DBTag.tag, DBTag.source)
            ).all()
            return [
                Tag(note_id=row.note_id, name=row.tag, source=TagSource(row.source))
                for row in rows
            ]

    def get_with_counts(
        self, source: Optional[TagSource] = None
    ) -> Dict[str, Dict[str, int]]:
        """Get all tags with their usage counts per source.

        Args:
            source: Only count occurrences from this source.

        Returns:
            ``{tag: {"frontmatter": n, "body": n}}`` sorted by tag name.
        """
        stmt = select(DBTag.tag, DBTag.source, func.count(DBTag.note_id)).group_by(
            DBTag.tag, DBTag.source
        )
        if source is not None:
            stmt = stmt.where(DBTag.source == source.value)

        with self.session_factory() as session:
            rows = session.execute(stmt.order_by(DBTag.tag)).all()

        counts: Dict[str, Dict[str, int]] = {}
        for tag, tag_source, count in rows:
            entry = counts.setdefault(
                tag, {TagSource.FRONTMATTER.value: 0, TagSource.BODY.value: 0}
            )
            entry[tag_source] = count
        return counts
