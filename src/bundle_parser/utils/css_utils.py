# src/bundle_parser/utils/css_utils.py
import re
from typing import List, Optional, Tuple

CSS_URL_PATTERN = re.compile(r"url\(([^)]+)\)", re.IGNORECASE)
STYLE_BLOCK_PATTERN = re.compile(r"<style[^>]*>([\s\S]*?)</style>", re.IGNORECASE)
CSS_COMMENT_PATTERN = re.compile(r"/\*[\s\S]*?\*/")
LINE_SPLIT_PATTERN = re.compile(r"\r?\n")

EXTERNAL_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
SECURE_URL_PATTERN = re.compile(r"^https://", re.IGNORECASE)


class CssUtils:
    """Small text helpers shared by the resolver, the ad-size detector and the checks."""

    @staticmethod
    def extract_urls(css_text: str) -> List[Tuple[str, int]]:
        """
        Returns every `url(...)` value with its character offset.
        Surrounding quotes are stripped; empty values are skipped.
        """
        found = []
        for match in CSS_URL_PATTERN.finditer(css_text or ""):
            raw = match.group(1).strip()
            raw = re.sub(r"^['\"]|['\"]$", "", raw)
            if raw:
                found.append((raw, match.start()))
        return found

    @staticmethod
    def style_blocks(html: str) -> List[str]:
        """Contents of every <style> element in raw HTML text."""
        return [m.group(1) or "" for m in STYLE_BLOCK_PATTERN.finditer(html or "")]

    @staticmethod
    def remove_comments(css_text: str) -> str:
        return CSS_COMMENT_PATTERN.sub("", css_text or "")

    @staticmethod
    def normalize_snippet(text: Optional[str], max_len: int = 160) -> Optional[str]:
        """Collapses whitespace and truncates to `max_len` characters plus an ellipsis."""
        if not text:
            return None
        collapsed = re.sub(r"\s+", " ", text).strip()
        if not collapsed:
            return None
        return collapsed[:max_len] + "…" if len(collapsed) > max_len else collapsed

    @staticmethod
    def line_at(text: str, offset: int) -> int:
        """1-based line number of a character offset."""
        return text.count("\n", 0, offset) + 1

    @staticmethod
    def split_lines(text: str) -> List[str]:
        return LINE_SPLIT_PATTERN.split(text)

    @staticmethod
    def is_external(url: str) -> bool:
        return bool(EXTERNAL_URL_PATTERN.match(url or ""))

    @staticmethod
    def is_secure(url: str) -> bool:
        return bool(SECURE_URL_PATTERN.match(url or ""))
