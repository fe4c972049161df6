"""FTS5 full-text search index for notebook notes.

Encapsulates FTS5 query preparation, integrity checking and recovery.
The index itself is kept in sync by triggers on the notes table.
"""
import logging
import re
import sqlite3
from typing import Any, Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError

from zettelhub.models.db_models import rebuild_fts_index

logger = logging.getLogger(__name__)

FTS5_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}


class FtsIndex:
    """FTS5 full-text search index.

    Args:
        engine: SQLAlchemy engine used for database access.
        session_factory: Callable returning a context-manager session.
    """

    def __init__(
        self,
        engine: Any,
        session_factory: Callable,
    ) -> None:
        self.engine = engine
        self._session_factory = session_factory

    def prepare_query(self, query: str, literal: Optional[bool] = None) -> str:
        """Turn user input into an FTS5 MATCH expression.

        Args:
            query: Search text (plain words or FTS5 syntax).
            literal: None = auto-detect, True = quote as a phrase,
                False = pass FTS5 syntax through.
        """
        if literal is None:
            literal = self._should_escape(query)
        if literal:
            return self._escape_query(query)
        return query

    def rebuild(self) -> int:
        """Rebuild the FTS5 index from the notes table."""
        count = rebuild_fts_index(self.engine)
        logger.info(f"FTS5 index rebuilt with {count} notes")
        return count

    def integrity_check(self) -> bool:
        """Run the FTS5 integrity check; True when the index is consistent."""
        try:
            with self._session_factory() as session:
                session.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                )
            return True
        except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
            logger.error(f"FTS5 integrity check failed: {e}")
            return False

    def ensure_consistent(self) -> bool:
        """Rebuild the index if the integrity check fails.

        Returns:
            True if a rebuild was performed.
        """
        if self.integrity_check():
            return False
        logger.warning("FTS5 index out of sync, rebuilding")
        self.rebuild()
        return True

    # ------------------------------------------------------------------
    # Query escaping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _should_escape(query: str) -> bool:
        """Auto-detect whether a query needs FTS5 escaping."""
        words = query.upper().split()
        if any(kw in words for kw in FTS5_KEYWORDS):
            return False
        if query.count('"') >= 2:
            return False
        if re.search(r"\b\w+\*", query):
            return False
        if re.search(r"\b\w+:", query):
            return False
        return True

    @staticmethod
    def _escape_query(query: str) -> str:
        """Escape query for FTS5 literal matching (quoted phrase)."""
        result = query.replace('"', '""')
        result = re.sub(r"[*^]", "", result)
        return f'"{result}"'
