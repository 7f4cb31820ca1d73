# src/bundle_auditor/checks/rules/validation.py
import logging
import re
import xml.etree.ElementTree as ET
from typing import List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from bundle_auditor.checks.core import CheckContext, CheckOutcome, check_spec
from bundle_auditor.model import Offender
from bundle_auditor.services.load_phase_service import unreferenced_paths

logger = logging.getLogger(__name__)

BACKUP_HINT = re.compile(r"backup|old|copy|_v\d+|\.bak", re.IGNORECASE)
SOURCE_HINT = re.compile(r"\.(psd|ai|sketch|fig)$", re.IGNORECASE)
DOCS_HINT = re.compile(r"readme|notes|todo", re.IGNORECASE)
MARKUP_FILES = re.compile(r"\.(?:html?|svg|css)$", re.IGNORECASE)


def _is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(urljoin("https://x", url))
        # Touching .port validates the netloc
        parsed.port
    except ValueError:
        return False
    return True


@check_spec(
    id="invalid-url-ref",
    title="Invalid URL References",
    description="Validates all URL references are valid and resolvable",
    profiles=["CM360", "IAB"],
    priority="required"
)
def check_invalid_url_refs(ctx: CheckContext) -> CheckOutcome:
    bad: List[Offender] = []
    for ref in ctx.partial.references:
        if not _is_valid_url(ref.url):
            bad.append(Offender(path=ref.from_path, line=ref.line, detail=f"Invalid URL: {ref.url}"))
            continue

        if ref.in_zip and ref.normalized:
            real = ctx.archive.lookup(ref.normalized)
            if not real or real not in ctx.archive.files:
                bad.append(Offender(path=ref.from_path, line=ref.line, detail=f"Missing packaged asset: {ref.url}"))

        if not ref.external and ref.url.startswith("/"):
            bad.append(Offender(path=ref.from_path, line=ref.line, detail=f"Absolute path not packaged: {ref.url}"))

    if bad:
        messages = [
            f"{len(bad)} invalid/broken reference(s)",
            "Fix these references to ensure all assets load",
            "Check for typos, case sensitivity, and missing files",
        ]
        return "FAIL", messages, bad
    return "PASS", ["All references valid", "No broken or invalid URL references found"], []


@check_spec(
    id="orphaned-assets",
    title="Orphaned Assets (Not Referenced)",
    description="Identifies files in bundle not referenced by entry HTML",
    profiles=["CM360", "IAB"],
    priority="advisory"
)
def check_orphaned_assets(ctx: CheckContext) -> CheckOutcome:
    orphans = unreferenced_paths(ctx.archive, ctx.partial.references, ctx.primary or "")
    if not orphans:
        return "PASS", ["All files referenced by entry", "No orphaned files detected"], []

    if ctx.entry_name:
        messages = [f"{len(orphans)} file(s) not referenced by entry file: {ctx.entry_name}"]
    else:
        messages = [f"{len(orphans)} file(s) not referenced by entry"]
    messages.append("These files may be unused and can be removed")
    messages.append("Or they may be loaded dynamically (verify if intentional)")
    if any(BACKUP_HINT.search(p) for p in orphans):
        messages.append("Tip: Remove backup/old versions")
    if any(SOURCE_HINT.search(p) for p in orphans):
        messages.append("Tip: Remove source files (.psd, .ai, etc.)")
    if any(DOCS_HINT.search(p) for p in orphans):
        messages.append("Tip: Remove documentation files")

    return "WARN", messages, [Offender(path=p) for p in orphans[:50]]


def _markup_problem(path: str, text: str) -> str:
    low = path.lower()
    if re.search(r"\.html?$", low):
        try:
            BeautifulSoup(text, "html.parser")
        except Exception as e:
            logger.debug("HTML parse failure in %s: %s", path, e)
            return "HTML parse exception"
    elif low.endswith(".svg"):
        try:
            ET.fromstring(text)
        except ET.ParseError as e:
            logger.debug("SVG parse failure in %s: %s", path, e)
            return "SVG parser error"
    elif low.endswith(".css"):
        opens, closes = text.count("{"), text.count("}")
        if opens != closes:
            return f"Unmatched braces {{{opens}}} vs }}{closes}"
    return ""


@check_spec(
    id="invalid-markup",
    title="Invalid Markup (HTML/CSS/SVG)",
    description="Heuristic syntax validation for HTML, CSS, and SVG files",
    profiles=["CM360", "IAB"],
    priority="recommended"
)
def check_invalid_markup(ctx: CheckContext) -> CheckOutcome:
    invalid = []
    for path, text in ctx.iter_texts(MARKUP_FILES):
        problem = _markup_problem(path, text)
        if problem:
            invalid.append(Offender(path=path, detail=problem))

    if invalid:
        messages = [
            f"{len(invalid)} file(s) with syntax issues (heuristic)",
            "Review flagged files for syntax errors",
            "Run validators/linters for detailed diagnostics",
        ]
        return "WARN", messages, invalid[:100]
    return "PASS", ["No syntax issues detected", "All HTML/CSS/SVG files appear valid"], []
