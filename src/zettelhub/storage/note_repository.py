"""Repository for note rows in the index."""

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from zettelhub.exceptions import BulkOperationError
from zettelhub.models.db_models import DBNote, get_session_factory
from zettelhub.models.schema import IndexedNote

logger = logging.getLogger(__name__)


def _load_metadata(note_id: str, raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning(f"Stored metadata of note {note_id} is not valid JSON")
        return {}
    return value if isinstance(value, dict) else {}


class NoteRepository:
    """Repository for the ``notes`` table.

    The index is a cache of the markdown files on disk: every row is written
    by the indexing engine and can be rebuilt by re-indexing the notebook.
    The full-text table is maintained by triggers, so nothing here ever
    writes ``notes_fts`` directly.
    """

    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine returned by ``init_db``.
            session_factory: Optional shared session factory.
        """
        self.engine = engine
        self.session_factory = session_factory or get_session_factory(engine)

    @staticmethod
    def _to_model(db_note: DBNote) -> IndexedNote:
        return IndexedNote(
            id=db_note.id,
            path=db_note.path,
            title=db_note.title or "",
            body=db_note.body or "",
            filename=db_note.filename or "",
            metadata=_load_metadata(db_note.id, db_note.meta),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, note_id: str) -> Optional[IndexedNote]:
        """Get a note row by id."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, note_id)
            return self._to_model(db_note) if db_note else None

    def get_by_title(self, title: str) -> Optional[IndexedNote]:
        """Get the note whose trimmed title equals ``title``, ignoring case.

        When several notes share a title the lowest id wins.
        """
        wanted = title.strip().lower()
        if not wanted:
            return None
        with self.session_factory() as session:
            db_note = session.scalars(
                select(DBNote)
                .where(func.lower(func.trim(DBNote.title)) == wanted)
                .order_by(DBNote.id)
                .limit(1)
            ).first()
            return self._to_model(db_note) if db_note else None

    def get_many(self, note_ids: Iterable[str]) -> Dict[str, IndexedNote]:
        """Get several note rows keyed by id; unknown ids are absent."""
        ids = list(dict.fromkeys(note_ids))
        if not ids:
            return {}
        with self.session_factory() as session:
            rows = session.scalars(select(DBNote).where(DBNote.id.in_(ids))).all()
            return {row.id: self._to_model(row) for row in rows}

    def get_path(self, note_id: str) -> Optional[str]:
        """Get the stored notebook-relative path of a note."""
        with self.session_factory() as session:
            return session.scalar(select(DBNote.path).where(DBNote.id == note_id))

    def iter_paths(self) -> Iterator[Tuple[str, str]]:
        """Full scan of ``(id, path)`` in id order, for path matching."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBNote.id, DBNote.path).order_by(DBNote.id)
            ).all()
        for note_id, path in rows:
            yield note_id, path or ""

    def iter_metadata(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Full scan of ``(id, metadata)`` in id order, for alias matching."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBNote.id, DBNote.meta).order_by(DBNote.id)
            ).all()
        for note_id, raw in rows:
            yield note_id, _load_metadata(note_id, raw)

    def all_ids(self) -> List[str]:
        """All indexed note ids, sorted."""
        with self.session_factory() as session:
            return list(session.scalars(select(DBNote.id).order_by(DBNote.id)).all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        session: Session,
        note_id: str,
        path: str,
        metadata_json: str,
        title: str,
        body: str,
        filename: str,
    ) -> bool:
        """Insert or update a note row within the caller's session.

        Updates go through the ORM (UPDATE, never REPLACE) so the FTS
        triggers see a proper update of the same row.

        Returns:
            True if the row was newly created.
        """
        db_note = session.get(DBNote, note_id)
        created = db_note is None
        if created:
            db_note = DBNote(id=note_id)
            session.add(db_note)
        db_note.path = path
        db_note.meta = metadata_json
        db_note.title = title
        db_note.body = body
        db_note.filename = filename
        session.flush()
        return created

    def remove(self, note_ids: List[str]) -> int:
        """Remove notes and everything attached to them in one transaction.

        Deletes, in order: links from or to the notes, their tags, then the
        note rows (the FTS trigger drops the search entries). Either all of
        it is committed or none of it is.

        Returns:
            Number of note rows removed.

        Raises:
            BulkOperationError: If the transaction fails (it is rolled back).
        """
        ids = list(dict.fromkeys(note_ids))
        if not ids:
            return 0

        params = {f"id{i}": note_id for i, note_id in enumerate(ids)}
        placeholders = ", ".join(f":{name}" for name in params)
        try:
            with self.session_factory() as session:
                session.execute(
                    text(
                        f"DELETE FROM links WHERE source_id IN ({placeholders}) "
                        f"OR target_id IN ({placeholders})"
                    ),
                    params,
                )
                session.execute(
                    text(f"DELETE FROM tags WHERE note_id IN ({placeholders})"),
                    params,
                )
                result = session.execute(
                    text(f"DELETE FROM notes WHERE id IN ({placeholders})"),
                    params,
                )
                session.commit()
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Bulk removal failed: {e}")
            raise BulkOperationError(
                f"Database removal failed: {e}",
                operation="bulk_remove",
                total_count=len(ids),
                failed_ids=ids,
                original_error=e,
            ) from e

        logger.info(f"Removed {removed} notes from the index")
        return removed
