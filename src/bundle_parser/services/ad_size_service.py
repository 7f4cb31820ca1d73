# src/bundle_parser/services/ad_size_service.py
import json
import logging
import re
from typing import Any, List, NamedTuple, Optional

from bs4 import BeautifulSoup

from bundle_parser.model import AdSize, AdSizeSource, Archive
from bundle_parser.services.reference_resolver_service import ReferenceResolverService, is_stylesheet_link
from bundle_parser.utils.css_utils import CssUtils

logger = logging.getLogger(__name__)

META_CONTENT_PATTERN = re.compile(r"width\s*=\s*(\d+)\s*,\s*height\s*=\s*(\d+)", re.IGNORECASE)
META_NAME_PATTERN = re.compile(r"^(\d{2,4})\s*x\s*(\d{2,4})$", re.IGNORECASE)
CSS_WIDTH_PATTERN = re.compile(r"width\s*:\s*(\d{2,4})px", re.IGNORECASE)
CSS_HEIGHT_PATTERN = re.compile(r"height\s*:\s*(\d{2,4})px", re.IGNORECASE)
CSS_MEDIA_PATTERN = re.compile(r"@media[^{}]*\{[^}]*\}", re.IGNORECASE)
CSS_BLOCK_PATTERN = re.compile(r"\{[^{}]*\}")

# Smaller values are decorative (borders, icons), never the creative itself
MIN_CSS_DIMENSION = 10


class CssSnippet(NamedTuple):
    text: str
    kind: str  # 'css-rule' | 'inline-style' | 'css-file'
    path: Optional[str]


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number == number and number not in (float("inf"), float("-inf")) else None


class AdSizeService:
    """
    Recovers the declared creative dimensions of an entry document.

    Strategies run in order and the first hit wins: the `ad.size` meta tag,
    a meta tag named `WxH`, Google Web Designer ad metadata, and finally CSS.
    Within CSS the candidate with the largest area is chosen.
    """

    def __init__(self, archive: Optional[Archive] = None):
        self.archive = archive

    def detect(self, soup: BeautifulSoup, path: str) -> Optional[AdSize]:
        size = self._from_meta(soup, path) or self._from_gwd_metadata(soup, path)
        if size:
            return size

        best: Optional[AdSize] = None
        for snippet in self.collect_css_snippets(soup, path):
            candidate = self.parse_css_size(snippet)
            if candidate and (best is None or self._area(candidate) > self._area(best)):
                best = candidate

        if best is None:
            logger.debug("No ad size detected in %s", path)
        return best

    # --- Strategy 1 and 2 ---

    @staticmethod
    def _from_meta(soup: BeautifulSoup, path: str) -> Optional[AdSize]:
        meta = soup.find("meta", attrs={"name": "ad.size"})
        if meta:
            m = META_CONTENT_PATTERN.search(meta.get("content") or "")
            if m and int(m.group(1)) > 0 and int(m.group(2)) > 0:
                return AdSize(
                    width=int(m.group(1)),
                    height=int(m.group(2)),
                    source=AdSizeSource(method="meta", snippet=CssUtils.normalize_snippet(str(meta)), path=path)
                )

        for el in soup.find_all("meta", attrs={"name": True}):
            name = el.get("name")
            if not isinstance(name, str):
                continue
            m = META_NAME_PATTERN.match(name)
            if m and int(m.group(1)) > 0 and int(m.group(2)) > 0:
                return AdSize(
                    width=int(m.group(1)),
                    height=int(m.group(2)),
                    source=AdSizeSource(method="meta", snippet=CssUtils.normalize_snippet(str(el)), path=path)
                )
        return None

    # --- Strategy 3 ---

    @staticmethod
    def _from_gwd_metadata(soup: BeautifulSoup, path: str) -> Optional[AdSize]:
        node = soup.find("script", attrs={"type": "text/gwd-admetadata"})
        if not node:
            return None
        raw = node.get_text().strip()
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("Ignoring unparsable gwd-admetadata in %s: %s", path, e)
            return None

        props = data.get("creativeProperties") if isinstance(data, dict) else None
        if not isinstance(props, dict):
            return None
        width = _to_number(props["maxWidth"] if props.get("maxWidth") is not None else props.get("minWidth"))
        height = _to_number(props["maxHeight"] if props.get("maxHeight") is not None else props.get("minHeight"))
        if width is None or height is None or round(width) <= 0 or round(height) <= 0:
            return None
        return AdSize(
            width=round(width),
            height=round(height),
            source=AdSizeSource(method="gwd-admetadata", snippet=CssUtils.normalize_snippet(raw), path=path)
        )

    # --- Strategy 4 ---

    def collect_css_snippets(self, soup: BeautifulSoup, path: str) -> List[CssSnippet]:
        """Style blocks, then inline styles, then linked stylesheets (one level)."""
        snippets: List[CssSnippet] = []
        for style in soup.find_all("style"):
            css = style.get_text()
            if css:
                snippets.append(CssSnippet(css, "css-rule", path))
        for el in soup.find_all(style=True):
            css = el.get("style")
            if isinstance(css, str) and css:
                snippets.append(CssSnippet(css, "inline-style", path))

        if self.archive is None:
            return snippets
        for el in soup.find_all("link"):
            href = el.get("href")
            if not is_stylesheet_link(el) or not isinstance(href, str) or CssUtils.is_external(href):
                continue
            target = ReferenceResolverService.resolve_local(path, href.strip())
            real = self.archive.lookup(target) if target else None
            if real:
                snippets.append(CssSnippet(self.archive.read_text(real), "css-file", real))
        return snippets

    @classmethod
    def parse_css_size(cls, snippet: CssSnippet) -> Optional[AdSize]:
        """
        Largest-area width/height pair in one piece of CSS.

        @media blocks are scanned first, then plain rule blocks; the whole
        text is only considered when no block produced a candidate.
        """
        if not snippet.text:
            return None
        block_method = "css-file" if snippet.kind == "css-file" else "css-rule"
        best: Optional[AdSize] = None

        def consider(source: str, method: str) -> None:
            nonlocal best
            candidate = cls._candidate(source, method, snippet.path)
            if candidate and (best is None or cls._area(candidate) > cls._area(best)):
                best = candidate

        for m in CSS_MEDIA_PATTERN.finditer(snippet.text):
            consider(m.group(0), "css-media")
        for m in CSS_BLOCK_PATTERN.finditer(snippet.text):
            consider(m.group(0), block_method)
        if best is None:
            consider(snippet.text, snippet.kind)
        return best

    @staticmethod
    def _candidate(source: str, method: str, path: Optional[str]) -> Optional[AdSize]:
        w = CSS_WIDTH_PATTERN.search(source)
        h = CSS_HEIGHT_PATTERN.search(source)
        if not w or not h:
            return None
        width, height = int(w.group(1)), int(h.group(1))
        if width < MIN_CSS_DIMENSION or height < MIN_CSS_DIMENSION:
            return None
        return AdSize(
            width=width,
            height=height,
            source=AdSizeSource(method=method, snippet=CssUtils.normalize_snippet(source), path=path)
        )

    @staticmethod
    def _area(size: AdSize) -> int:
        return size.width * size.height
