"""Tests for FileDocumentHandle, open_file_document and DocumentCache."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from mypa.sync.document import (
    DocumentCache,
    DocumentSnapshot,
    FileDocumentHandle,
    content_hash,
    open_file_document,
)


def test_snapshot_signature():
    snap = DocumentSnapshot.of("hello", 123.0)
    assert snap.content_hash == content_hash("hello")
    assert snap.signature == (content_hash("hello"), 123.0)
    assert content_hash("hello") != content_hash("hello ")


@pytest.mark.asyncio
async def test_read_and_write(tmp_path):
    path = tmp_path / "ToDo.md"
    path.write_text("before", encoding="utf-8")
    handle = FileDocumentHandle(path)

    snap = await handle.read()
    assert snap.content == "before"

    written = await handle.write("after ✅")
    assert path.read_text(encoding="utf-8") == "after ✅"
    assert written.content_hash == content_hash("after ✅")
    assert (await handle.read()).signature == written.signature


@pytest.mark.asyncio
async def test_write_leaves_no_temp_files(tmp_path):
    handle = FileDocumentHandle(tmp_path / "ToDo.md")
    await handle.write("one")
    await handle.write("two")
    assert [p.name for p in tmp_path.iterdir()] == ["ToDo.md"]


@pytest.mark.asyncio
async def test_failed_replace_keeps_original(tmp_path):
    path = tmp_path / "ToDo.md"
    path.write_text("original", encoding="utf-8")
    handle = FileDocumentHandle(path)

    with patch("mypa.sync.document.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            await handle.write("new")

    assert path.read_text(encoding="utf-8") == "original"
    assert [p.name for p in tmp_path.iterdir()] == ["ToDo.md"]


def test_open_creates_missing_file(tmp_path):
    path = tmp_path / "nested" / "ToDo.md"
    handle = asyncio.run(open_file_document(path)())
    assert path.exists()
    assert handle.name == "ToDo.md"


def test_open_without_create_raises(tmp_path):
    opener = open_file_document(tmp_path / "missing.md", create=False)
    with pytest.raises(FileNotFoundError):
        asyncio.run(opener())


class TestDocumentCache:

    @pytest.mark.asyncio
    async def test_reuses_parse_until_file_changes(self, todo_file):
        cache = DocumentCache(FileDocumentHandle(todo_file))
        first = await cache.load()
        assert await cache.load() is first

        todo_file.write_text(
            "# 2025-02-01 (Local: Australia/Sydney)\n## 📌 Priorities\n- [ ] New\n",
            encoding="utf-8",
        )
        second = await cache.load()
        assert second is not first
        assert [s.date for s in second.sections] == ["2025-02-01"]

    @pytest.mark.asyncio
    async def test_remember_makes_next_load_a_hit(self, tmp_path):
        handle = FileDocumentHandle(tmp_path / "ToDo.md")
        cache = DocumentCache(handle)
        snapshot = await handle.write("")
        marker = (await cache.load()).model_copy()
        cache.remember(snapshot, marker)
        assert await cache.load() is marker
