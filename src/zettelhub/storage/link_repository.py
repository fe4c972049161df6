"""Repository for link storage and retrieval."""
import logging
from typing import Iterable, List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from zettelhub.models.db_models import DBLink, DBNote
from zettelhub.models.schema import Link, LinkedNote, LinkType

logger = logging.getLogger(__name__)


class LinkRepository:
    """Repository for the ``links`` table.

    A note's outgoing links are owned by it: they are only ever replaced
    as a whole, inside the transaction that indexes the note.
    """

    def __init__(self, session_factory: sessionmaker):
        """Initialize the link repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    @staticmethod
    def _to_model(db_link: DBLink) -> Link:
        return Link(
            source_id=db_link.source_id,
            target_id=db_link.target_id,
            link_type=LinkType(db_link.link_type),
            context=db_link.context,
        )

    def replace_outgoing(self, session: Session, source_id: str, links: Iterable[Link]) -> int:
        """Delete every outgoing link of ``source_id`` and insert ``links``.

        Runs in the caller's session; nothing is visible to other
        connections until the caller commits.

        Returns:
            Number of links inserted.
        """
        session.execute(delete(DBLink).where(DBLink.source_id == source_id))
        count = 0
        for link in links:
            if link.source_id != source_id:
                raise ValueError(
                    f"Link source {link.source_id} does not belong to {source_id}"
                )
            session.add(
                DBLink(
                    source_id=link.source_id,
                    target_id=link.target_id,
                    link_type=link.link_type.value,
                    context=link.context,
                )
            )
            count += 1
        session.flush()
        return count

    def get_outgoing(self, note_id: str) -> List[Link]:
        """Get all outgoing links of a note, in insertion order."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBLink).where(DBLink.source_id == note_id).order_by(DBLink.id)
            ).all()
            return [self._to_model(link) for link in db_links]

    def get_incoming(self, note_id: str) -> List[Link]:
        """Get all links pointing at a note, ordered by source id."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBLink)
                .where(DBLink.target_id == note_id)
                .order_by(DBLink.source_id, DBLink.id)
            ).all()
            return [self._to_model(link) for link in db_links]

    def target_ids(self, source_id: str) -> List[str]:
        """Distinct target ids of a note's outgoing links, first-seen order."""
        targets = [link.target_id for link in self.get_outgoing(source_id)]
        return list(dict.fromkeys(targets))

    def source_ids(self, target_id: str) -> List[str]:
        """Distinct ids of notes linking to ``target_id``, sorted by id."""
        with self.session_factory() as session:
            return list(
                session.scalars(
                    select(DBLink.source_id)
                    .where(DBLink.target_id == target_id)
                    .distinct()
                    .order_by(DBLink.source_id)
                ).all()
            )

    def _linked_notes(self, note_id: str, direction: str) -> List[LinkedNote]:
        if direction == "outgoing":
            own, other = DBLink.source_id, DBLink.target_id
        else:
            own, other = DBLink.target_id, DBLink.source_id

        with self.session_factory() as session:
            rows = session.execute(
                select(other, DBLink.link_type, DBNote.title, DBNote.path)
                .select_from(DBLink)
                .outerjoin(DBNote, DBNote.id == other)
                .where(own == note_id)
                .order_by(DBLink.link_type, DBNote.title, other)
            ).all()

        return [
            LinkedNote(
                id=other_id,
                link_type=LinkType(link_type),
                title=title or other_id,
                path=path,
                broken=path is None,
            )
            for other_id, link_type, title, path in rows
        ]

    def get_outgoing_notes(self, note_id: str) -> List[LinkedNote]:
        """Outgoing links joined with their targets (``broken`` if missing)."""
        return self._linked_notes(note_id, "outgoing")

    def get_backlink_notes(self, note_id: str) -> List[LinkedNote]:
        """Incoming links joined with their sources (``broken`` if missing)."""
        return self._linked_notes(note_id, "incoming")
