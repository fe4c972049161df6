"""Query engine: ranked full-text search with metadata filters."""
import calendar
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from zettelhub.config import ZettelhubConfig, config as default_config
from zettelhub.exceptions import ErrorCode, SearchError
from zettelhub.models.schema import SearchResult
from zettelhub.services.tag_extractor import TagExtractor
from zettelhub.storage.fts_index import FtsIndex
from zettelhub.utils import escape_like_pattern

logger = logging.getLogger(__name__)

_DAY = re.compile(r"\A\d{4}-\d{2}-\d{2}\Z")
_MONTH = re.compile(r"\A\d{4}-\d{2}\Z")
_GLOB_CHARS = re.compile(r"[*?\[]")

# First ten characters of the date: "2024-01-05T10:00" filters as a day
_DATE_EXPR = "substr(json_extract(n.metadata, '$.date'), 1, 10)"


def _metadata_tags(metadata: Dict[str, Any]) -> List[str]:
    tags = metadata.get("tags")
    if tags is None:
        return []
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",") if t.strip()]
    if isinstance(tags, list):
        return [str(t).strip() for t in tags if t is not None and str(t).strip()]
    return [str(tags)]


def build_date_filter(value: str) -> Tuple[str, Dict[str, str]]:
    """SQL condition and parameters for a date filter.

    Accepts a day (``2024-01-05``), a month (``2024-01``) or an inclusive
    range (``2024-01-01:2024-01-31``). A month as the end of a range
    covers the whole month.
    """
    value = value.strip()
    if ":" in value:
        start, end = (part.strip() for part in value.split(":", 1))
        if _MONTH.match(end):
            year, month = int(end[:4]), int(end[5:])
            if 1 <= month <= 12:
                end = f"{end}-{calendar.monthrange(year, month)[1]:02d}"
        return (
            f"{_DATE_EXPR} BETWEEN :date_from AND :date_to",
            {"date_from": start, "date_to": end},
        )
    if _MONTH.match(value):
        return f"substr({_DATE_EXPR}, 1, 7) = :date", {"date": value}
    if not _DAY.match(value):
        logger.debug(f"Date filter '{value}' is not YYYY-MM-DD, comparing as given")
    return f"{_DATE_EXPR} = :date", {"date": value}


def build_path_filter(value: str) -> Tuple[str, Dict[str, str]]:
    """SQL condition for a path filter: a GLOB pattern or a substring."""
    if _GLOB_CHARS.search(value):
        return "n.path GLOB :path", {"path": value}
    return (
        "n.path LIKE :path ESCAPE '\\'",
        {"path": f"%{escape_like_pattern(value)}%"},
    )


class QueryEngine:
    """Runs ranked queries over the notes index.

    Filters are combined with AND. With search text, results come from
    the FTS5 table ordered by bm25 rank; without it, newest notes first.
    """

    def __init__(
        self,
        session_factory,
        fts: FtsIndex,
        tag_extractor: Optional[TagExtractor] = None,
        config: Optional[ZettelhubConfig] = None,
    ):
        self.session_factory = session_factory
        self.fts = fts
        self.config = config or default_config
        self.tag_extractor = tag_extractor or TagExtractor(config=self.config)

    def query(
        self,
        text_query: Optional[str] = None,
        type: Optional[str] = None,
        tag: Optional[str] = None,
        date: Optional[str] = None,
        path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """Search the index.

        Args:
            text_query: Full-text search; plain words are matched as a phrase,
                FTS5 syntax (AND/OR/NOT, quotes, ``prefix*``, ``column:``)
                is passed through.
            type: Exact value of the ``type`` metadata key.
            tag: Tag carried by the note, from front matter or body. A tag
                that is empty once normalised (``"#"``) matches nothing.
            date: Day, month or ``start:end`` range on the ``date`` key.
            path: Substring of the relative path, or a GLOB pattern.
            limit: Maximum results (default from config).

        Raises:
            SearchError: If the full-text expression is invalid.
            ValueError: If ``limit`` is not positive.
        """
        limit = self.config.search_limit if limit is None else limit
        if limit < 1:
            raise ValueError("limit must be >= 1")

        where: List[str] = []
        params: Dict[str, Any] = {"limit": limit}

        if type:
            where.append("json_extract(n.metadata, '$.type') = :type")
            params["type"] = type
        if tag:
            normalized = self.tag_extractor.normalize(tag)
            if not normalized:
                logger.debug(f"Tag filter '{tag}' is empty after normalisation")
                return []
            where.append(
                "EXISTS (SELECT 1 FROM tags t WHERE t.note_id = n.id AND t.tag = :tag)"
            )
            params["tag"] = normalized
        if date and date.strip():
            condition, date_params = build_date_filter(date)
            where.append(condition)
            params.update(date_params)
        if path:
            condition, path_params = build_path_filter(path)
            where.append(condition)
            params.update(path_params)

        has_text = bool(text_query and text_query.strip())
        if has_text:
            params["query"] = self.fts.prepare_query(text_query.strip())
            where.insert(0, "notes_fts MATCH :query")
            sql = f"""
                SELECT n.id, n.path, n.title, n.metadata, n.filename,
                       bm25(notes_fts) AS rank
                FROM notes_fts
                JOIN notes n ON n.id = notes_fts.id
                WHERE {" AND ".join(where)}
                ORDER BY rank, n.id
                LIMIT :limit
            """
        else:
            where_sql = f"WHERE {' AND '.join(where)}" if where else ""
            sql = f"""
                SELECT n.id, n.path, n.title, n.metadata, n.filename, 0.0 AS rank
                FROM notes n
                {where_sql}
                ORDER BY json_extract(n.metadata, '$.date') DESC, n.title, n.id
                LIMIT :limit
            """

        try:
            with self.session_factory() as session:
                rows = session.execute(text(sql), params).fetchall()
        except OperationalError as e:
            if has_text:
                logger.warning(f"Invalid full-text query '{text_query}': {e}")
                raise SearchError(
                    f"Invalid search expression: {e.orig}",
                    query=text_query,
                    code=ErrorCode.SEARCH_INVALID_QUERY,
                ) from e
            raise SearchError(f"Search failed: {e}", code=ErrorCode.SEARCH_FAILED) from e

        results = [self._to_result(row) for row in rows]
        logger.debug(f"Query returned {len(results)} results")
        return results

    @staticmethod
    def _to_result(row) -> SearchResult:
        note_id, path, title, raw_metadata, filename, rank = row
        try:
            metadata = json.loads(raw_metadata) if raw_metadata else {}
        except ValueError:
            metadata = {}
        if not isinstance(metadata, dict):
            metadata = {}
        return SearchResult(
            id=note_id,
            type=str(metadata.get("type") or ""),
            date=str(metadata.get("date") or ""),
            title=title or "",
            tags=_metadata_tags(metadata),
            path=path or "",
            filename=filename or "",
            rank=float(rank or 0.0),
        )
