"""Tests for the local file store."""

import json

import pytest

from nanoscout.files.store import FileStore
from nanoscout.utils.helpers import safe_filename


class TestFileStore:
    """Test saving and looking up stored files."""

    @pytest.mark.asyncio
    async def test_save_bytes(self, file_store):
        record = await file_store.save_bytes(b"hello", name="note.txt", source="telegram")

        assert record.size == 5
        assert record.mime_type == "text/plain"
        assert record.source == "telegram"
        assert record.path.endswith(f"{record.id}__note.txt")
        with open(record.path, "rb") as f:
            assert f.read() == b"hello"

    @pytest.mark.asyncio
    async def test_metadata_sidecar(self, file_store):
        record = await file_store.save_bytes(b"\x89PNG", name="pic.png", mime_type="image/png")

        meta = json.loads((file_store.base_path / f"{record.id}.json").read_text())

        assert meta["mimeType"] == "image/png"
        assert meta["createdAt"]

    @pytest.mark.asyncio
    async def test_get(self, file_store):
        record = await file_store.save_bytes(b"data", name="blob")

        found = file_store.get(record.id)

        assert found.id == record.id
        assert found.mime_type == "application/octet-stream"
        assert found.to_reference().path == record.path
        assert file_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_unsafe_names_are_sanitized(self, file_store):
        record = await file_store.save_bytes(b"x", name="../../etc/pass wd")

        assert record.name == "../../etc/pass wd"
        assert record.path.startswith(str(file_store.base_path))
        assert record.path.endswith("__pass_wd")

    @pytest.mark.asyncio
    async def test_save_from_path(self, tmp_path):
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF-1.4")
        store = FileStore(tmp_path / "store")

        record = await store.save_from_path(source)

        assert record.name == "report.pdf"
        assert record.mime_type == "application/pdf"
        assert record.size == 8
        assert source.exists()

    @pytest.mark.asyncio
    async def test_corrupt_metadata(self, file_store):
        record = await file_store.save_bytes(b"x", name="a.txt")
        (file_store.base_path / f"{record.id}.json").write_text("{oops")

        assert file_store.get(record.id) is None


def test_safe_filename():
    assert safe_filename("hello world.txt") == "hello_world.txt"
    assert safe_filename("...") == "file"
    assert len(safe_filename("a" * 500)) == 120
