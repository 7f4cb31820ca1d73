# tests/conftest.py
import io
import zipfile
from typing import Dict, Union

import pytest

from bundle_parser.model import Archive

FileMap = Dict[str, Union[str, bytes]]


def _as_bytes(files: FileMap) -> Dict[str, bytes]:
    return {path: data.encode("utf-8") if isinstance(data, str) else data for path, data in files.items()}


def build_zip(files: FileMap) -> bytes:
    """Bouwt een echte zip in het geheugen."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, data in _as_bytes(files).items():
            zf.writestr(path, data)
    return buffer.getvalue()


@pytest.fixture
def make_archive():
    """Fabriek voor in-memory Archives; raw_bytes is een echte zip van dezelfde bestanden."""
    def _make(files: FileMap, name: str = "creative_300x250.zip", mode: str = "zip") -> Archive:
        raw = build_zip(files) if mode == "zip" else b""
        return Archive.from_files(name=name, files=_as_bytes(files), raw_bytes=raw, mode=mode)
    return _make


SIMPLE_INDEX = """<!DOCTYPE html>
<html>
<head>
<meta name="ad.size" content="width=300, height=250">
<script>var clickTag = "https://www.example.com";</script>
</head>
<body>
<a href="javascript:window.open(window.clickTag)"><img src="logo.png"></a>
</body>
</html>
"""


@pytest.fixture
def simple_files() -> FileMap:
    """Een minimale, correcte CM360 creative."""
    return {"index.html": SIMPLE_INDEX, "logo.png": b"\x89PNG\r\n\x1a\n" + b"\x00" * 64}


@pytest.fixture
def write_zip(tmp_path):
    """Schrijft een zip naar een tijdelijke map en geeft het pad terug."""
    def _write(files: FileMap, name: str = "creative_300x250.zip"):
        path = tmp_path / name
        path.write_bytes(build_zip(files))
        return path
    return _write


def corrupt_deflate(raw: bytes) -> bytes:
    """Overschrijft de gecomprimeerde data van het eerste zip-item met een ongeldig deflate-blok."""
    with zipfile.ZipFile(io.BytesIO(raw)) as zf:
        info = zf.infolist()[0]
    data = bytearray(raw)
    offset = info.header_offset
    name_len = int.from_bytes(data[offset + 26:offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28:offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    # BFINAL=1, BTYPE=11 (gereserveerd): zlib weigert dit blok
    data[start:start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(data)


@pytest.fixture
def write_broken_zip(tmp_path):
    """Schrijft een zip met een kapotte deflate-stroom; de centrale directory is nog geldig."""
    def _write(name: str = "broken_300x250.zip"):
        path = tmp_path / name
        path.write_bytes(corrupt_deflate(build_zip({"index.html": "<html><body>" + "x" * 500 + "</body></html>"})))
        return path
    return _write
