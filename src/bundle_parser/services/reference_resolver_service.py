# src/bundle_parser/services/reference_resolver_service.py
import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from bundle_parser.model import Archive, Reference, ReferenceType
from bundle_parser.utils.css_utils import CssUtils

logger = logging.getLogger(__name__)

NON_LOCAL_PATTERN = re.compile(r"^(?:https?:|data:|javascript:)", re.IGNORECASE)
QUERY_OR_FRAGMENT_PATTERN = re.compile(r"[?#].*$", re.DOTALL)

# CreateJS/Animate exports load assets from a JS manifest instead of markup
CREATEJS_DIRECT_PATTERN = re.compile(r"\{\s*src\s*:\s*[\"']([^\"'?]+)(?:\?[^\"']*)?[\"']", re.IGNORECASE)
CREATEJS_VAR_PATTERN = re.compile(
    r"manifest\s*:\s*\[\s*\{[^}]*src\s*:\s*(?:ansiraObj\.)?([\w.]+)\s*,", re.IGNORECASE
)

# (from, type, url, line)
RawReference = Tuple[str, ReferenceType, str, Optional[int]]

MARKUP_SOURCES: List[Tuple[str, str, ReferenceType]] = [
    ("img", "src", "image"),
    ("gwd-image", "source", "image"),
    ("video", "src", "media"),
    ("audio", "src", "media"),
    ("source", "src", "media"),
]


def is_stylesheet_link(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "stylesheet" in [r.lower() for r in rel]


class ReferenceResolverService:
    """
    Builds the dependency list of an entry document.

    Every asset reference (markup attributes, inline and embedded CSS, one
    level of linked stylesheets and CreateJS manifests) is resolved against
    the directory of the file that references it and looked up
    case-insensitively in the archive.
    """

    def __init__(self, archive: Archive):
        self.archive = archive

    @staticmethod
    def resolve_local(from_path: str, url: str) -> Optional[str]:
        """
        Resolves a URL to an archive path relative to `from_path`.

        Returns None for http(s):, data: and javascript: URLs. A leading '/'
        is archive-root-relative. Each '..' pops the preceding segment; a
        '..' with nothing left to pop is dropped, so '../../a.png' from a
        root document resolves to 'a.png' rather than failing.
        """
        if NON_LOCAL_PATTERN.match(url):
            return None
        url = QUERY_OR_FRAGMENT_PATTERN.sub("", url)

        if url.startswith("/"):
            combined = url[1:]
        else:
            if url.startswith("./"):
                url = url[2:]
            from_dir = "/".join(from_path.split("/")[:-1])
            combined = f"{from_dir}/{url}" if from_dir else url

        parts: List[str] = []
        for segment in combined.split("/"):
            if not segment or segment == ".":
                continue
            if segment == "..":
                if parts:
                    parts.pop()
                continue
            parts.append(segment)
        return "/".join(parts)

    def resolve_references(self, soup: BeautifulSoup, html: str, primary: str) -> List[Reference]:
        """
        Collects and resolves all references reachable from the entry document.

        Args:
            soup: The parsed entry document.
            html: The raw entry document text (manifest scanning works on it).
            primary: Archive path of the entry document.

        Returns:
            List[Reference]: one entry per markup occurrence, in discovery order.
        """
        raw: List[RawReference] = []

        for tag_name, attr, ref_type in MARKUP_SOURCES:
            for el in soup.find_all(tag_name):
                self._push_attr(raw, el, attr, ref_type, primary)

        stylesheet_links = [el for el in soup.find_all("link") if is_stylesheet_link(el)]
        for el in stylesheet_links:
            self._push_attr(raw, el, "href", "stylesheet", primary)
        for el in soup.find_all("script"):
            self._push_attr(raw, el, "src", "script", primary)
        for el in soup.find_all("a"):
            self._push_attr(raw, el, "href", "anchor", primary)

        for el in soup.find_all(style=True):
            style = el.get("style") or ""
            for url, _ in CssUtils.extract_urls(style):
                raw.append((primary, "font", url, el.sourceline))

        for style in soup.find_all("style"):
            css = style.get_text()
            for url, offset in CssUtils.extract_urls(css):
                line = style.sourceline + css.count("\n", 0, offset) if style.sourceline else None
                raw.append((primary, "font", url, line))

        # Linked stylesheets are followed one level; their url() values resolve from the CSS file
        for _, ref_type, url, _ in list(raw):
            if ref_type != "stylesheet" or CssUtils.is_external(url):
                continue
            target = self.resolve_local(primary, url)
            real = self.archive.lookup(target) if target else None
            if not real:
                continue
            css_text = self.archive.read_text(real)
            for css_url, offset in CssUtils.extract_urls(css_text):
                raw.append((real, "font", css_url, CssUtils.line_at(css_text, offset)))

        raw.extend(self._manifest_references(html, primary))

        references = [self._build(*item) for item in raw]
        logger.debug(
            "Resolved %d references from %s (%d packaged)",
            len(references), primary, sum(1 for r in references if r.in_zip)
        )
        return references

    @staticmethod
    def _push_attr(raw: List[RawReference], el: Tag, attr: str, ref_type: ReferenceType, primary: str) -> None:
        value = el.get(attr)
        if not isinstance(value, str) or not value.strip():
            return
        raw.append((primary, ref_type, value.strip(), el.sourceline))

    @staticmethod
    def _manifest_references(html: str, primary: str) -> List[RawReference]:
        found: List[RawReference] = []
        for match in CREATEJS_DIRECT_PATTERN.finditer(html):
            asset = match.group(1)
            if "/" in asset or "." in asset:
                found.append((primary, "image", asset, CssUtils.line_at(html, match.start())))

        for match in CREATEJS_VAR_PATTERN.finditer(html):
            var_name = match.group(1)
            value = re.search(rf"{re.escape(var_name)}\s*:\s*[\"']([^\"']+)[\"']", html, re.IGNORECASE)
            if value:
                found.append((primary, "image", value.group(1), CssUtils.line_at(html, value.start())))
        return found

    def _build(self, from_path: str, ref_type: ReferenceType, url: str, line: Optional[int]) -> Reference:
        external = CssUtils.is_external(url)
        normalized = None
        in_zip = False
        if not external:
            normalized = self.resolve_local(from_path, url)
            if normalized is not None:
                in_zip = self.archive.lookup(normalized) is not None

        return Reference(
            from_path=from_path,
            type=ref_type,
            url=url,
            normalized=normalized,
            in_zip=in_zip,
            external=external,
            secure=CssUtils.is_secure(url),
            line=line
        )
