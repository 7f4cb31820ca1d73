# src/bundle_parser/services/primary_discovery_service.py
import logging
import re
from typing import List

from bundle_parser.model import Archive, DiscoveryResult

logger = logging.getLogger(__name__)

HTML_FILE_PATTERN = re.compile(r"\.html?$", re.IGNORECASE)
AD_SIZE_META_PATTERN = re.compile(r"meta[^>]+name=[\"']ad\.size[\"']", re.IGNORECASE)
INDEX_FILE_PATTERN = re.compile(r"/index\.html?$", re.IGNORECASE)


def _depth_key(path: str):
    return len(path.split("/")), len(path)


class PrimaryDiscoveryService:
    """Chooses the entry HTML document of a bundle."""

    def discover(self, archive: Archive) -> DiscoveryResult:
        html_files = [p for p in archive.files if HTML_FILE_PATTERN.search(p)]
        if not html_files:
            return DiscoveryResult(messages=["No HTML files present"])
        if len(html_files) == 1:
            return DiscoveryResult(primary=html_files[0], html_candidates=html_files)

        # Prefer the document that declares its size
        with_meta = [p for p in html_files if AD_SIZE_META_PATTERN.search(archive.read_text(p))]
        if len(with_meta) == 1:
            return DiscoveryResult(primary=with_meta[0], html_candidates=html_files)
        if with_meta:
            chosen = sorted(with_meta, key=_depth_key)[0]
            return DiscoveryResult(
                primary=chosen,
                html_candidates=html_files,
                messages=[f"Multiple HTMLs with ad.size meta; chose {chosen}"]
            )

        chosen = self._fallback(html_files)
        logger.debug("No ad.size meta in %d HTML files, falling back to %s", len(html_files), chosen)
        return DiscoveryResult(
            primary=chosen,
            html_candidates=html_files,
            messages=[f"Multiple HTML files without ad.size meta; chose fallback {chosen}"]
        )

    @staticmethod
    def _fallback(paths: List[str]) -> str:
        index_files = [p for p in paths if INDEX_FILE_PATTERN.search("/" + p)]
        if index_files:
            return sorted(index_files, key=_depth_key)[0]
        return sorted(paths, key=_depth_key)[0]
