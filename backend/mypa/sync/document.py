"""Document handles — the external ToDo.md the coordinator syncs against.

A handle exposes async ``read()`` / ``write()`` returning a
``DocumentSnapshot`` (content + modification signal). ``FileDocumentHandle``
runs blocking file I/O in the default executor so the event loop never
blocks; writes go through a temp file and an atomic rename so a crash never
leaves a half-written document.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Protocol

from pydantic import BaseModel

from mypa.markdown.parser import parse_document
from mypa.models.document import ParsedDocument

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


class DocumentSnapshot(BaseModel):
    content: str
    modified_at: float  # POSIX mtime
    content_hash: str

    @classmethod
    def of(cls, content: str, modified_at: float) -> DocumentSnapshot:
        return cls(content=content, modified_at=modified_at, content_hash=content_hash(content))

    @property
    def signature(self) -> tuple[str, float]:
        """External modification signal: (content hash, mtime)."""
        return self.content_hash, self.modified_at


class DocumentHandle(Protocol):
    name: str

    async def read(self) -> DocumentSnapshot: ...

    async def write(self, content: str) -> DocumentSnapshot: ...


# Stand-in for a file picker: returns a handle, or None if the user cancelled.
DocumentOpener = Callable[[], Awaitable["DocumentHandle | None"]]


class FileDocumentHandle:
    """A Markdown file on the local filesystem."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = self.path.name

    def _read_sync(self) -> DocumentSnapshot:
        content = self.path.read_text(encoding="utf-8")
        return DocumentSnapshot.of(content, self.path.stat().st_mtime)

    def _write_sync(self, content: str) -> DocumentSnapshot:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            "w", encoding="utf-8", delete=False, dir=self.path.parent,
            prefix=f".{self.path.name}.", suffix=".tmp",
        ) as tmp:
            tmp.write(content)
            tmp_path = Path(tmp.name)
        try:
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        return DocumentSnapshot.of(content, self.path.stat().st_mtime)

    async def read(self) -> DocumentSnapshot:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync)

    async def write(self, content: str) -> DocumentSnapshot:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._write_sync, content)

    def __repr__(self) -> str:
        return f"FileDocumentHandle({str(self.path)!r})"


def open_file_document(path: str | Path, create: bool = True) -> DocumentOpener:
    """Build an opener for ``path``.

    With ``create`` a missing file is created empty; otherwise opening it
    raises FileNotFoundError.
    """

    async def _open() -> FileDocumentHandle:
        target = Path(path).expanduser()
        if not target.exists():
            if not create:
                raise FileNotFoundError(f"Document not found: {target}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.touch()
            logger.info("Created empty document at %s", target)
        return FileDocumentHandle(target)

    return _open


class DocumentCache:
    """Parsed view of a handle, re-parsed only when its signature changes."""

    def __init__(self, handle: DocumentHandle) -> None:
        self.handle = handle
        self.snapshot: DocumentSnapshot | None = None
        self.document: ParsedDocument | None = None

    async def load(self) -> ParsedDocument:
        snapshot = await self.handle.read()
        if self.document is not None and self.snapshot is not None \
                and self.snapshot.signature == snapshot.signature:
            logger.debug("Document %s unchanged, using cache", self.handle.name)
            return self.document
        logger.debug("Document %s changed, parsing", self.handle.name)
        self.snapshot = snapshot
        self.document = parse_document(snapshot.content)
        return self.document

    def remember(self, snapshot: DocumentSnapshot, document: ParsedDocument) -> None:
        """Record what was just written so the next load is a cache hit."""
        self.snapshot = snapshot
        self.document = document
