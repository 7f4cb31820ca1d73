# src/bundle_parser/services/archive_reader_service.py
import io
import logging
import zipfile
import zlib
from pathlib import Path
from typing import Dict, Union

from bundle_parser.model import Archive

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".zip", ".adz")

# Everything zipfile may raise on damaged or unsupported entries
ZIP_READ_ERRORS = (
    zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error,
    NotImplementedError, EOFError, ValueError, RuntimeError, OSError
)


class ArchiveReadError(Exception):
    """Raised when an upload cannot be turned into an Archive."""


class ArchiveReaderService:
    """
    Turns an uploaded creative (zip/adz file or an extracted folder) into an
    immutable Archive. Directory entries are skipped and backslashes become
    forward slashes.
    """

    def read(self, source: Union[str, Path]) -> Archive:
        path = Path(source)
        if not path.exists():
            raise ArchiveReadError(f"Path does not exist: {path}")
        if path.is_dir():
            return self.read_directory(path)
        if path.suffix.lower() in ARCHIVE_SUFFIXES:
            try:
                raw = path.read_bytes()
            except OSError as e:
                raise ArchiveReadError(f"Could not read file '{path.name}': {e}") from e
            return self.read_zip_bytes(raw, path.name)
        raise ArchiveReadError(f"Unsupported upload (expected .zip/.adz or folder): {path.name}")

    def read_zip_bytes(self, raw: bytes, name: str) -> Archive:
        """
        Reads a zip held in memory.

        Args:
            raw: The compressed archive bytes.
            name: The upload's file name (used by naming checks).

        Returns:
            Archive: mode 'zip', with `raw_bytes` kept for size checks.
        """
        files: Dict[str, bytes] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(raw)) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    files[info.filename.replace("\\", "/")] = zf.read(info)
        except ZIP_READ_ERRORS as e:
            raise ArchiveReadError(f"Could not read archive '{name}': {e}") from e

        logger.debug("Read %d entries from %s", len(files), name)
        return Archive.from_files(name=name, files=files, raw_bytes=raw, mode="zip")

    def read_directory(self, root: Path) -> Archive:
        """Reads an extracted creative folder. Packaging checks will flag it as not zipped."""
        files: Dict[str, bytes] = {}
        try:
            for item in sorted(root.rglob("*")):
                if item.is_file():
                    files[item.relative_to(root).as_posix()] = item.read_bytes()
        except OSError as e:
            raise ArchiveReadError(f"Could not read folder '{root.name}': {e}") from e

        logger.debug("Read %d files from folder %s", len(files), root)
        return Archive.from_files(name=root.name, files=files, mode="folder")
