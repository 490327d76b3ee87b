"""
Folder-as-project storage.

A workspace is a directory holding ``diagram.svg``, ``diagram.links.json``
and the linked documents (conventionally under ``docs/``). All paths handed
to a workspace are relative to its root and may not climb out of it.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Optional

from diagramdocs.models import SUPPORTED_EXTENSIONS
from diagramdocs.validation import DiagramDocsError

logger = logging.getLogger("diagramdocs.workspace")

DOCS_DIR = "docs"


class WorkspaceError(DiagramDocsError):
    """No workspace is open, or a path escapes the workspace root."""


class UnsupportedDocumentError(DiagramDocsError):
    """The file extension is not one of the linkable document types."""


class Workspace:
    """File-system storage rooted at one directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()
        self.name = self.root.name

    def __repr__(self) -> str:
        return f"Workspace({str(self.root)!r})"

    def resolve(self, relative_path: str) -> Path:
        """Map a workspace-relative path to an absolute one.

        Raises WorkspaceError for empty paths or ``..`` segments.
        """
        parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
        if not parts or any(p == ".." for p in parts):
            raise WorkspaceError(f"Invalid workspace path '{relative_path}'.")
        return self.root.joinpath(*parts)

    # ----- sync primitives (run in worker threads) -----

    def _read_text(self, relative_path: str) -> Optional[str]:
        path = self.resolve(relative_path)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _read_bytes(self, relative_path: str) -> Optional[bytes]:
        path = self.resolve(relative_path)
        if not path.is_file():
            return None
        return path.read_bytes()

    def _write_text(self, relative_path: str, content: str) -> None:
        path = self.resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)

    # ----- async storage interface -----

    async def read_text(self, relative_path: str) -> Optional[str]:
        """Return file contents, or None if the file does not exist."""
        return await asyncio.to_thread(self._read_text, relative_path)

    async def read_bytes(self, relative_path: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read_bytes, relative_path)

    async def write_text(self, relative_path: str, content: str) -> None:
        await asyncio.to_thread(self._write_text, relative_path, content)
        logger.debug("Wrote %s (%d chars)", relative_path, len(content))

    def exists(self, relative_path: str) -> bool:
        try:
            return self.resolve(relative_path).is_file()
        except WorkspaceError:
            return False

    def find_first(self, filename: str) -> Optional[str]:
        """Locate *filename* in the root, then in ``docs/``."""
        for candidate in (filename, f"{DOCS_DIR}/{filename}"):
            if self.exists(candidate):
                return candidate
        return None

    def list_doc_files(self) -> list[str]:
        """Relative paths of every file under ``docs/`` (or the root)."""
        base = self.root / DOCS_DIR
        if not base.is_dir():
            base = self.root
        out = [
            p.relative_to(self.root).as_posix()
            for p in sorted(base.rglob("*"))
            if p.is_file()
        ]
        return out

    def copy_into_docs(self, source: str | Path) -> str:
        """Copy an external file into ``docs/`` and return its relative path.

        An existing file of the same name and size is reused; otherwise a
        unique ``name (n).ext`` is chosen.
        """
        src = Path(source).expanduser()
        ext = src.suffix.lower().lstrip(".")
        if ext not in SUPPORTED_EXTENSIONS:
            raise UnsupportedDocumentError(f"Unsupported file type: {src.name}")
        if not src.is_file():
            raise WorkspaceError(f"File '{source}' not found.")
        docs = self.root / DOCS_DIR
        docs.mkdir(parents=True, exist_ok=True)

        existing = docs / src.name
        if existing.is_file() and existing.stat().st_size == src.stat().st_size:
            return f"{DOCS_DIR}/{src.name}"

        name = src.name
        n = 0
        while (docs / name).exists():
            n += 1
            name = f"{src.stem} ({n}){src.suffix}"
        shutil.copyfile(src, docs / name)
        logger.info("Copied %s into %s/%s", src, DOCS_DIR, name)
        return str(PurePosixPath(DOCS_DIR, name))


class WorkspaceSession:
    """Process-wide record of the last opened workspace.

    Initialised by :meth:`open` when the user opens a folder. There is no
    teardown: the workspace stays current until another one is opened.
    """

    def __init__(self) -> None:
        self._current: Optional[Workspace] = None

    @property
    def current(self) -> Optional[Workspace]:
        return self._current

    def open(self, root: str | Path) -> Workspace:
        path = Path(root).expanduser()
        if not path.is_dir():
            raise WorkspaceError(f"Workspace folder '{root}' does not exist.")
        self._current = Workspace(path)
        logger.info("Opened workspace %s", self._current.root)
        return self._current

    def require(self) -> Workspace:
        if self._current is None:
            raise WorkspaceError("No workspace is open.")
        return self._current
