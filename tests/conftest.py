"""Common test fixtures for the Zettelhub index."""

import json
import posixpath

import pytest
import yaml

from zettelhub.config import ZettelhubConfig, config
from zettelhub.models.db_models import init_db
from zettelhub.models.schema import Note
from zettelhub.services.index_service import IndexService


@pytest.fixture
def notebook(tmp_path):
    """Create an empty notebook directory."""
    path = tmp_path / "notebook"
    path.mkdir()
    return path


@pytest.fixture
def test_config(notebook, monkeypatch):
    """Point the global config at the test notebook (auto-restored)."""
    monkeypatch.setattr(config, "notebook_path", notebook)
    monkeypatch.setattr(config, "database_path", None)
    yield config


@pytest.fixture
def engine(notebook):
    """File-backed index database inside the notebook."""
    engine = init_db(f"sqlite:///{notebook / '.zh' / 'index.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def index_service(engine, notebook):
    """IndexService over the test notebook with default settings."""
    return IndexService(
        engine=engine,
        notebook_path=notebook,
        config=ZettelhubConfig(notebook_path=notebook),
    )


def render_note_file(note_id: str, title: str, body: str, metadata: dict) -> str:
    front = {"id": note_id}
    if title:
        front["title"] = title
    front.update(metadata)
    return f"---\n{yaml.safe_dump(front, sort_keys=False)}---\n{body}"


@pytest.fixture
def make_note(notebook):
    """Write a note file and return the matching ``Note`` value."""

    def _make(rel_path, note_id, title="", body="", **metadata):
        path = notebook / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_note_file(note_id, title, body, metadata), encoding="utf-8")
        return Note(id=note_id, path=path, title=title, body=body, metadata=metadata)

    return _make


@pytest.fixture
def seed_note(index_service):
    """Insert a note row directly, without touching files or links."""

    def _seed(note_id, path, title="", metadata=None, body=""):
        with index_service.session_factory() as session:
            index_service.notes.upsert(
                session,
                note_id=note_id,
                path=path,
                metadata_json=json.dumps(metadata or {}),
                title=title,
                body=body,
                filename=posixpath.basename(path),
            )
            session.commit()

    return _seed
