"""The indexing engine: keeps the index, link graph and note files consistent."""
import logging
import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import yaml
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from zettelhub.config import ZH_DIRNAME, ZettelhubConfig, config as default_config
from zettelhub.exceptions import (
    ErrorCode,
    NoteValidationError,
    StorageError,
    ZettelhubError,
)
from zettelhub.models.db_models import get_session_factory, init_db
from zettelhub.models.schema import (
    Link,
    LinkedNote,
    LinkType,
    Note,
    SearchResult,
    TagSource,
    serialize_metadata,
)
from zettelhub.observability import timed_operation, traced
from zettelhub.services.backlinks import BacklinkWriter, strip_backlinks_block
from zettelhub.services.link_extractor import extract_links
from zettelhub.services.rename import RenamePropagator, RenameReport
from zettelhub.services.resolver import Resolver, ScanResolver
from zettelhub.services.search_service import QueryEngine
from zettelhub.services.tag_extractor import TagExtractor
from zettelhub.storage.fts_index import FtsIndex
from zettelhub.storage.link_repository import LinkRepository
from zettelhub.storage.markdown_parser import MarkdownParser, load_note
from zettelhub.storage.note_files import NoteFiles
from zettelhub.storage.note_repository import NoteRepository
from zettelhub.storage.tag_repository import TagRepository
from zettelhub.utils import notebook_relative

logger = logging.getLogger(__name__)


@dataclass
class IndexReport:
    """What one ``index_note`` or ``update_links_for_note`` call did."""

    note_id: str
    path: str
    created: bool = False
    links: List[Link] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    tag_count: int = 0
    backlinks_updated: List[str] = field(default_factory=list)
    rename: Optional[RenameReport] = None

    @property
    def link_count(self) -> int:
        return len(self.links)


@dataclass
class ReindexSummary:
    """Outcome of a notebook reindex."""

    found: int = 0
    indexed: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    removed: List[str] = field(default_factory=list)


class IndexService:
    """Facade over the index store, link graph and note file writers.

    Args:
        engine: Engine from ``init_db``; created from config when omitted.
        notebook_path: Notebook root; from config when omitted.
        resolver: Reference resolver; ``ScanResolver`` when omitted.
        tag_extractor: Tag extractor; built from config when omitted.
        config: Configuration used for every default above.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        notebook_path: Optional[Union[str, Path]] = None,
        resolver: Optional[Resolver] = None,
        tag_extractor: Optional[TagExtractor] = None,
        config: Optional[ZettelhubConfig] = None,
    ):
        self.config = config or default_config
        self.notebook_path = (
            Path(os.path.abspath(str(notebook_path)))
            if notebook_path is not None
            else self.config.get_notebook_path()
        )
        self.engine = engine or init_db(self.config.get_db_url())
        self.session_factory = get_session_factory(self.engine)

        self.notes = NoteRepository(self.engine, self.session_factory)
        self.links = LinkRepository(self.session_factory)
        self.tags = TagRepository(self.session_factory)
        self.fts = FtsIndex(self.engine, self.session_factory)
        self.files = NoteFiles(self.notebook_path)
        self.parser = MarkdownParser()

        self.resolver = resolver or ScanResolver(self.notes, self.notebook_path)
        self.tag_extractor = tag_extractor or TagExtractor(config=self.config)
        self.backlink_writer = BacklinkWriter(self.notes, self.links, self.files)
        self.renames = RenamePropagator(self.notes, self.links, self.files)
        self.query_engine = QueryEngine(
            self.session_factory, self.fts, self.tag_extractor, self.config
        )

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _relative_path(self, note: Note) -> str:
        relative = notebook_relative(str(note.path), str(self.notebook_path))
        if relative is None or relative == ".":
            raise NoteValidationError(
                f"Note path {note.path} is outside the notebook {self.notebook_path}",
                note_id=note.id,
                field="path",
                code=ErrorCode.NOTE_OUTSIDE_NOTEBOOK,
            )
        return relative

    def _resolve_links(self, note: Note) -> Tuple[List[Link], List[str]]:
        """Resolve the references in a note's body and description."""
        text = "\n".join(
            part for part in (strip_backlinks_block(note.body), note.description) if part
        )
        extracted = extract_links(text)

        candidates = [
            (target, LinkType.WIKILINK, self.resolver.resolve_wikilink(target))
            for target in extracted.wikilinks
        ]
        candidates.extend(
            (url, LinkType.MARKDOWN, self.resolver.resolve_markdown_path(url, note.path))
            for url in extracted.markdown_urls
        )

        links: List[Link] = []
        unresolved: List[str] = []
        seen = set()
        for reference, link_type, target_id in candidates:
            if target_id is None:
                logger.debug(f"Unresolved {link_type.value} in {note.id}: {reference!r}")
                unresolved.append(reference)
                continue
            if (target_id, link_type) in seen:
                continue
            seen.add((target_id, link_type))
            links.append(
                Link(
                    source_id=note.id,
                    target_id=target_id,
                    link_type=link_type,
                    context=reference,
                )
            )
        return links, unresolved

    def _replace_links(self, note: Note, links: List[Link], tags=None) -> int:
        """Replace outgoing links (and tags when given) in one transaction."""
        try:
            with self.session_factory() as session:
                self.links.replace_outgoing(session, note.id, links)
                tag_count = (
                    self.tags.replace_for_note(session, note.id, tags)
                    if tags is not None
                    else 0
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to store links of note {note.id}: {e}",
                operation="replace_links",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        return tag_count

    def _refresh_backlinks(
        self, note_id: str, old_targets: Iterable[str], links: Iterable[Link]
    ) -> List[str]:
        affected = [note_id, *old_targets, *(link.target_id for link in links)]
        return self.backlink_writer.update_many(affected)

    @traced("index_note")
    def index_note(self, note: Note) -> IndexReport:
        """Index a note and bring dependent note files up to date.

        Steps, in order: rename propagation (when the stored path differs),
        note upsert, link resolution, atomic replacement of outgoing links
        and tags, then backlink sections of this note and of its old and
        new link targets.

        Raises:
            NoteValidationError: If the note lies outside the notebook.
            MalformedMetadataError: If the metadata cannot be stored; nothing
                is written in that case.
            StorageError: If the database write fails.
        """
        relative = self._relative_path(note)
        metadata_json = serialize_metadata(note.id, note.metadata)
        report = IndexReport(note_id=note.id, path=relative)

        old_path = self.notes.get_path(note.id)
        if old_path is not None and old_path != relative:
            report.rename = self.renames.propagate(note.id, old_path, relative)

        old_targets = self.links.target_ids(note.id)

        try:
            with self.session_factory() as session:
                report.created = self.notes.upsert(
                    session,
                    note_id=note.id,
                    path=relative,
                    metadata_json=metadata_json,
                    title=note.title,
                    body=note.body,
                    filename=posixpath.basename(relative),
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to store note {note.id}: {e}",
                operation="upsert_note",
                path=relative,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        report.links, report.unresolved = self._resolve_links(note)
        tags = self.tag_extractor.extract(note)
        report.tag_count = self._replace_links(note, report.links, tags)
        report.backlinks_updated = self._refresh_backlinks(
            note.id, old_targets, report.links
        )

        logger.info(
            f"Indexed note {note.id} ({relative}): {report.link_count} links, "
            f"{len(report.unresolved)} unresolved, {report.tag_count} tags"
        )
        return report

    @traced("update_links_for_note")
    def update_links_for_note(self, note: Note) -> Optional[IndexReport]:
        """Re-resolve a note's links and refresh backlinks; row and tags untouched.

        Returns:
            None if the note is not in the index.
        """
        path = self.notes.get_path(note.id)
        if path is None:
            return None

        report = IndexReport(note_id=note.id, path=path)
        old_targets = self.links.target_ids(note.id)
        report.links, report.unresolved = self._resolve_links(note)
        self._replace_links(note, report.links)
        report.backlinks_updated = self._refresh_backlinks(
            note.id, old_targets, report.links
        )
        return report

    @traced("remove")
    def remove(self, ids: Iterable[str]) -> int:
        """Remove notes from the index with their links and tags.

        Notes that were linked from the removed ones get their backlinks
        sections refreshed. Empty input is a no-op.

        Returns:
            Number of notes removed.

        Raises:
            BulkOperationError: If the removal transaction fails.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return 0

        removing = set(ids)
        affected = [
            target
            for note_id in ids
            for target in self.links.target_ids(note_id)
            if target not in removing
        ]
        removed = self.notes.remove(ids)
        self.backlink_writer.update_many(affected)
        return removed

    def indexed_note_ids(self) -> List[str]:
        """Ids of every note in the index."""
        return self.notes.all_ids()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @traced("query")
    def query(
        self,
        text: Optional[str] = None,
        type: Optional[str] = None,
        tag: Optional[str] = None,
        date: Optional[str] = None,
        path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """Ranked search; see ``QueryEngine.query``."""
        return self.query_engine.query(
            text_query=text, type=type, tag=tag, date=date, path=path, limit=limit
        )

    def resolve(self, reference: str) -> Optional[str]:
        """Resolve an id, title or alias to a note id."""
        return self.resolver.resolve_wikilink(reference)

    def outgoing_links(self, note_id: str) -> List[LinkedNote]:
        """Notes a note links to; targets missing from the index are ``broken``."""
        return self.links.get_outgoing_notes(note_id)

    def backlinks(self, note_id: str) -> List[LinkedNote]:
        """Notes linking to a note."""
        return self.links.get_backlink_notes(note_id)

    def tag_counts(
        self, source: Optional[Union[TagSource, str]] = None
    ) -> Dict[str, Dict[str, int]]:
        """Tag usage counts split by source, optionally for one source only."""
        if source is not None and not isinstance(source, TagSource):
            source = TagSource(source)
        return self.tags.get_with_counts(source)

    # ------------------------------------------------------------------
    # Reindex
    # ------------------------------------------------------------------

    def find_note_files(self) -> List[Path]:
        """Every ``*.md`` file under the notebook outside the ``.zh`` directory."""
        files = []
        for path in self.notebook_path.rglob("*.md"):
            relative = path.relative_to(self.notebook_path)
            if ZH_DIRNAME in relative.parts[:-1] or not path.is_file():
                continue
            files.append(path)
        return sorted(files)

    def _load(self, path: Path) -> Note:
        return load_note(path, self.parser)

    def reindex(self, paths: Optional[Iterable[Union[str, Path]]] = None) -> ReindexSummary:
        """Index note files from disk in two passes.

        Pass one indexes every file; a file that cannot be read, parsed or
        stored is recorded in ``failures`` and skipped. For a full reindex
        (no ``paths``), ids no longer found on disk are then removed. Pass
        two re-reads the files and re-resolves their links, so references
        to notes indexed later in pass one resolve.
        """
        files = (
            self.find_note_files()
            if paths is None
            else [Path(os.path.abspath(str(p))) for p in paths]
        )
        summary = ReindexSummary(found=len(files))

        with timed_operation("reindex", files=len(files)) as op:
            for path in files:
                try:
                    note = self._load(path)
                    self.index_note(note)
                except (ZettelhubError, OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"Failed to index {path}: {e}")
                    summary.failures[str(path)] = str(e)
                    continue
                summary.indexed.append(note.id)

            if paths is None:
                on_disk = set(summary.indexed)
                orphans = [i for i in self.indexed_note_ids() if i not in on_disk]
                if orphans:
                    self.remove(orphans)
                    summary.removed = orphans
                    logger.info(f"Removed {len(orphans)} orphaned index entries")

            for path in files:
                if str(path) in summary.failures:
                    continue
                try:
                    self.update_links_for_note(self._load(path))
                except (ZettelhubError, OSError, ValueError, yaml.YAMLError) as e:
                    logger.debug(f"Links pass skipped {path}: {e}")

            op["indexed"] = len(summary.indexed)
            op["failed"] = len(summary.failures)
            op["removed"] = len(summary.removed)

        logger.info(
            f"Reindexed {len(summary.indexed)} of {summary.found} files "
            f"({len(summary.failures)} failed, {len(summary.removed)} removed)"
        )
        return summary
