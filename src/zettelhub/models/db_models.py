"""SQLAlchemy database models for the Zettelhub index."""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import (Column, Index, Integer, PrimaryKeyConstraint, String,
                        Text, create_engine, event, inspect, text)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from zettelhub.config import config
from zettelhub.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for an indexed note."""
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True)
    path = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes, so the attribute differs
    meta = Column("metadata", Text, nullable=False, default="{}")
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    filename = Column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Note(id='{self.id}', path='{self.path}')>"


class DBLink(Base):
    """Database model for a resolved link between notes."""
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(String(255), nullable=False)
    target_id = Column(String(255), nullable=False)
    link_type = Column(String(50), nullable=False)
    context = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_links_source_id", "source_id"),
        Index("idx_links_target_id", "target_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Link(source='{self.source_id}', "
            f"target='{self.target_id}', type='{self.link_type}')>"
        )


class DBTag(Base):
    """Database model for a tag occurrence on a note."""
    __tablename__ = "tags"
    note_id = Column(String(255), nullable=False)
    tag = Column(String(255), nullable=False)
    source = Column(String(20), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("note_id", "tag", "source", name="pk_tags"),
        Index("idx_tags_tag", "tag"),
    )

    def __repr__(self) -> str:
        return f"<Tag(note='{self.note_id}', tag='{self.tag}', source='{self.source}')>"


# Columns added to the notes table after its first release
_NOTES_MIGRATION_COLUMNS = {
    "title": "TEXT NOT NULL DEFAULT ''",
    "body": "TEXT NOT NULL DEFAULT ''",
    "filename": "TEXT NOT NULL DEFAULT ''",
}

# The trigger computes the indexed text, so writers only ever touch `notes`.
_FULL_TEXT_EXPR = """
    COALESCE({row}.body, '') ||
    CASE WHEN COALESCE(json_extract({row}.metadata, '$.description'), '') = ''
         THEN ''
         ELSE char(10) || json_extract({row}.metadata, '$.description')
    END
"""


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create (or open) the index database with hardened configuration.

    Applies SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - busy timeout so a concurrent writer waits instead of failing
    - QueuePool with pre-ping to detect stale connections

    Then creates missing tables, runs migrations and (re)creates the FTS5
    table and its sync triggers.

    Raises:
        StoreUnavailableError: If the database cannot be created or opened.
    """
    url = db_url or config.get_db_url()
    db_path = _sqlite_file(url)
    if db_path is not None:
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(
                f"Cannot create database directory {db_path.parent}",
                path=str(db_path),
                original_error=e,
            ) from e

    try:
        if db_path is None:
            # In-memory databases live and die with one connection
            engine = create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_pre_ping=True,
            )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        Base.metadata.create_all(engine)
        _migrate_notes_columns(engine)
        init_fts5(engine)
    except SQLAlchemyError as e:
        raise StoreUnavailableError(
            f"Cannot open index database: {e}",
            path=str(db_path) if db_path else url,
            original_error=e,
        ) from e

    logger.debug(f"Index database ready: {url}")
    return engine


def _sqlite_file(url: str) -> Optional[Path]:
    """Return the file path of a sqlite URL, or None for in-memory databases."""
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return None
    path = url[len(prefix):]
    if not path or path == ":memory:":
        return None
    return Path(path)


def _migrate_notes_columns(engine: Engine) -> None:
    """Migration: add columns missing from older notes tables.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.
    """
    inspector = inspect(engine)
    columns = {col["name"] for col in inspector.get_columns("notes")}
    missing = [name for name in _NOTES_MIGRATION_COLUMNS if name not in columns]
    if not missing:
        return

    with engine.connect() as conn:
        for name in missing:
            logger.info(f"Migrating notes table: adding column '{name}'")
            conn.execute(text(
                f"ALTER TABLE notes ADD COLUMN {name} {_NOTES_MIGRATION_COLUMNS[name]}"
            ))
        conn.commit()


def init_fts5(engine: Engine) -> None:
    """Initialize the FTS5 full-text search table and its sync triggers.

    The FTS table holds title, filename and full text (body plus the
    metadata description) keyed by the unindexed note id. Triggers are
    dropped and recreated so changed definitions reach existing databases.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                id UNINDEXED,
                title,
                filename,
                full_text
            )
        """))

        for trigger in ("fts_insert", "fts_update", "fts_delete"):
            conn.execute(text(f"DROP TRIGGER IF EXISTS {trigger}"))

        conn.execute(text(f"""
            CREATE TRIGGER fts_insert AFTER INSERT ON notes BEGIN
                INSERT INTO notes_fts(id, title, filename, full_text)
                VALUES (NEW.id, COALESCE(NEW.title, ''), COALESCE(NEW.filename, ''),
                        {_FULL_TEXT_EXPR.format(row="NEW")});
            END
        """))

        conn.execute(text(f"""
            CREATE TRIGGER fts_update AFTER UPDATE ON notes BEGIN
                DELETE FROM notes_fts WHERE id = OLD.id;
                INSERT INTO notes_fts(id, title, filename, full_text)
                VALUES (NEW.id, COALESCE(NEW.title, ''), COALESCE(NEW.filename, ''),
                        {_FULL_TEXT_EXPR.format(row="NEW")});
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER fts_delete AFTER DELETE ON notes BEGIN
                DELETE FROM notes_fts WHERE id = OLD.id;
            END
        """))

        conn.commit()


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild the FTS5 index from existing notes.

    Useful after restoring a database file or when FTS gets out of sync.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("DELETE FROM notes_fts"))
        conn.execute(text(f"""
            INSERT INTO notes_fts(id, title, filename, full_text)
            SELECT id, COALESCE(title, ''), COALESCE(filename, ''),
                   {_FULL_TEXT_EXPR.format(row="notes")}
            FROM notes
        """))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes_fts")).scalar()

    return count


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
