# ============================================
# file: src/bundle_parser/model.py
# ============================================
from __future__ import annotations

import hashlib
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ReferenceType = Literal["image", "script", "stylesheet", "media", "font", "anchor"]
SizeMethod = Literal["meta", "gwd-admetadata", "css-rule", "css-media", "css-file", "inline-style"]
ArchiveMode = Literal["zip", "folder"]


class Archive(BaseModel):
    """
    Immutable in-memory view of one creative bundle.

    Paths always use forward slashes. Every key of `files` has an entry in
    `lower_case_index` (lowercased path -> real path) so lookups can be done
    case-insensitively, the way ad servers resolve assets.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    raw_bytes: bytes = b""
    files: Dict[str, bytes] = Field(default_factory=dict)
    lower_case_index: Dict[str, str] = Field(default_factory=dict)
    mode: ArchiveMode = "zip"

    @model_validator(mode="before")
    @classmethod
    def normalize_paths(cls, data):
        if not isinstance(data, dict):
            return data
        files = {
            str(path).replace("\\", "/"): content
            for path, content in (data.get("files") or {}).items()
        }
        data = dict(data)
        data["files"] = files
        if not data.get("lower_case_index"):
            data["lower_case_index"] = {path.lower(): path for path in files}
        return data

    @model_validator(mode="after")
    def check_index(self) -> "Archive":
        missing = [p for p in self.files if p.lower() not in self.lower_case_index]
        if missing:
            raise ValueError(f"lower_case_index is missing entries for: {', '.join(missing[:5])}")
        return self

    @classmethod
    def from_files(
            cls,
            name: str,
            files: Dict[str, bytes],
            raw_bytes: bytes = b"",
            mode: ArchiveMode = "zip",
            bundle_id: Optional[str] = None
    ) -> "Archive":
        """Builds an archive and derives a content-based id when none is given."""
        if bundle_id is None:
            digest = hashlib.sha1(name.encode("utf-8"))
            for path in sorted(files):
                digest.update(path.encode("utf-8"))
                digest.update(files[path])
            bundle_id = digest.hexdigest()[:16]
        return cls(id=bundle_id, name=name, raw_bytes=raw_bytes, files=files, mode=mode)

    @property
    def paths(self) -> List[str]:
        return list(self.files.keys())

    def lookup(self, path: str) -> Optional[str]:
        """Returns the real archive path for a case-insensitive match, if any."""
        return self.lower_case_index.get(path.lower())

    def read_text(self, path: str) -> str:
        data = self.files.get(path, b"")
        return data.decode("utf-8", errors="replace").replace("\ufeff", "")


class Reference(BaseModel):
    """A single asset reference found in the entry document or its stylesheets."""
    model_config = ConfigDict(populate_by_name=True)

    from_path: str = Field(alias="from")
    type: ReferenceType
    url: str
    normalized: Optional[str] = None
    in_zip: bool = False
    external: bool = False
    secure: bool = False
    line: Optional[int] = None

    @model_validator(mode="after")
    def external_has_no_path(self) -> "Reference":
        if self.external and self.normalized is not None:
            raise ValueError("external references cannot carry a normalized path")
        return self


class AdSizeSource(BaseModel):
    """Provenance of a detected ad size."""
    method: SizeMethod
    snippet: Optional[str] = None
    path: Optional[str] = None


class AdSize(BaseModel):
    width: int
    height: int
    source: Optional[AdSizeSource] = None

    @field_validator("width", "height")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("ad dimensions must be positive")
        return v

    @property
    def token(self) -> str:
        return f"{self.width}x{self.height}"


class DiscoveryResult(BaseModel):
    primary: Optional[str] = None
    html_candidates: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    ad_size: Optional[AdSize] = None
    references: List[Reference] = Field(default_factory=list)
