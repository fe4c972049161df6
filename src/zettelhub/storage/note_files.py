"""Reading and rewriting note files on disk.

Every modification of a user's note file goes through
``NoteFiles.write_if_changed``.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Union

from zettelhub.storage.markdown_parser import join_front_matter, split_front_matter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class NoteFiles:
    """Note file access rooted at the notebook directory."""

    def __init__(self, notebook_path: PathLike):
        self.notebook_path = Path(notebook_path)

    def absolute(self, relative_path: str) -> Path:
        """Absolute path of a notebook-relative path."""
        return self.notebook_path / relative_path

    def read(self, path: PathLike) -> str:
        """Read a note file as UTF-8 text, newlines untranslated."""
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def write_if_changed(self, path: PathLike, content: str) -> bool:
        """Atomically replace a note file's content if it differs.

        The content is written to a temporary file in the same directory
        and moved into place with ``os.replace``.

        Returns:
            True if the file was written.
        """
        path = Path(path)
        try:
            if self.read(path) == content:
                return False
        except FileNotFoundError:
            pass

        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if path.exists():
                os.chmod(tmp_name, path.stat().st_mode & 0o7777)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Rewrote note file {path}")
        return True

    def rewrite_body(self, path: PathLike, render: Callable[[str], str]) -> bool:
        """Apply ``render`` to a file's body, keeping its front matter verbatim.

        Returns:
            True if the file was written.
        """
        front_matter, body = split_front_matter(self.read(path))
        new_body = render(body)
        if new_body == body:
            return False
        return self.write_if_changed(path, join_front_matter(front_matter, new_body))
