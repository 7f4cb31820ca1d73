# tests/parser/test_archive_reader.py
import io
import zipfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from bundle_parser.model import Archive
from bundle_parser.services.archive_reader_service import ArchiveReadError, ArchiveReaderService


def test_read_zip_bytes_skips_directories():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("img/", b"")
        zf.writestr("index.html", "<html></html>")
        zf.writestr("img/logo.png", b"png")
    raw = buffer.getvalue()

    archive = ArchiveReaderService().read_zip_bytes(raw, "ad_300x250.zip")

    assert sorted(archive.files) == ["img/logo.png", "index.html"]
    assert archive.mode == "zip"
    assert archive.raw_bytes == raw
    assert archive.lower_case_index["img/logo.png"] == "img/logo.png"


def test_corrupt_zip_raises():
    """Een kapotte upload geeft een ArchiveReadError, geen zipfile-exceptie."""
    with pytest.raises(ArchiveReadError):
        ArchiveReaderService().read_zip_bytes(b"this is not a zip", "broken.zip")


def test_corrupt_deflate_stream_raises(write_broken_zip):
    """Een beschadigde deflate-stroom (zlib.error) wordt ook een ArchiveReadError."""
    with pytest.raises(ArchiveReadError, match="Could not read archive"):
        ArchiveReaderService().read(write_broken_zip())


def test_unreadable_directory_raises(tmp_path, monkeypatch):
    root = tmp_path / "creative"
    root.mkdir()
    (root / "index.html").write_text("<html></html>", encoding="utf-8")

    def refuse(self):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "read_bytes", refuse)
    with pytest.raises(ArchiveReadError, match="Could not read folder"):
        ArchiveReaderService().read(root)


def test_read_from_disk(write_zip):
    path = write_zip({"index.html": "<html></html>"}, name="ad_728x90.adz")
    archive = ArchiveReaderService().read(path)
    assert archive.name == "ad_728x90.adz"
    assert archive.paths == ["index.html"]


def test_read_directory(tmp_path):
    root = tmp_path / "creative"
    (root / "img").mkdir(parents=True)
    (root / "index.html").write_text("<html></html>", encoding="utf-8")
    (root / "img" / "a.png").write_bytes(b"x")

    archive = ArchiveReaderService().read(root)

    assert archive.mode == "folder"
    assert archive.raw_bytes == b""
    assert sorted(archive.files) == ["img/a.png", "index.html"]


def test_missing_and_unsupported_paths(tmp_path):
    with pytest.raises(ArchiveReadError):
        ArchiveReaderService().read(tmp_path / "nope.zip")

    other = tmp_path / "notes.txt"
    other.write_text("x")
    with pytest.raises(ArchiveReadError):
        ArchiveReaderService().read(other)


def test_bundle_id_is_content_based():
    a = Archive.from_files("a.zip", {"index.html": b"1"})
    b = Archive.from_files("a.zip", {"index.html": b"1"})
    c = Archive.from_files("a.zip", {"index.html": b"2"})
    assert a.id == b.id
    assert a.id != c.id
    assert len(a.id) == 16


def test_backslashes_are_normalized():
    archive = Archive.from_files("a.zip", {"img\\logo.png": b"x"})
    assert archive.paths == ["img/logo.png"]
    assert archive.lookup("IMG/LOGO.PNG") == "img/logo.png"


def test_incomplete_lower_case_index_is_rejected():
    with pytest.raises(ValidationError):
        Archive(id="x", name="a.zip", files={"A.png": b"x"}, lower_case_index={"other.png": "other.png"})


def test_read_text_strips_bom_and_replaces_invalid_bytes():
    archive = Archive.from_files("a.zip", {"index.html": "\ufeff<html>".encode("utf-8") + b"\xff"})
    text = archive.read_text("index.html")
    assert text.startswith("<html>")
    assert "\ufffd" in text
