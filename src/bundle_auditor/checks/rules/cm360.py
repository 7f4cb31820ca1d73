# src/bundle_auditor/checks/rules/cm360.py
import logging
import re
from typing import List, Optional, Pattern, Set

from bundle_parser.utils.css_utils import CssUtils
from bundle_auditor.checks.core import HTML_FILES, JS_HTML_FILES, CODE_FILES, CheckContext, CheckOutcome, check_spec
from bundle_auditor.model import Offender

logger = logging.getLogger(__name__)

# --- clickTag signals ---
CT_VAR = re.compile(r"\b(?:window\.)?(clicktag|clickTag|clickTAG)\d*\b", re.IGNORECASE)
CT_VAR_WINDOW = re.compile(r"\bwindow\.(clicktag|clickTag|clickTAG)\d*\b", re.IGNORECASE)
CT_OPEN = re.compile(r"window\.open\s*\(\s*(?:window\.)?(clickTAG|clickTag)\d*\b", re.IGNORECASE)
CT_OPEN_LOOSE = re.compile(r"window\.open\s*\(\s*([^)]*)\)", re.IGNORECASE)
CT_ALIAS_DECL = re.compile(r"\b(?:var|let|const)\s+([A-Za-z_$][\w$]*)\s*=\s*[^;]*clicktag\d*[^;]*;", re.IGNORECASE)
CT_ALIAS_ASSIGN = re.compile(r"\b([A-Za-z_$][\w$]*)\s*=\s*[^;]*clicktag\d*[^;]*;", re.IGNORECASE)
ENABLER_EXIT = re.compile(r"\b(?:studio\.)?Enabler\.(?:exit|dynamicExit)\s*\(", re.IGNORECASE)
ANCHOR_HREF_JS = re.compile(
    r"<a\b[^>]*\bhref=[\"']\s*javascript:\s*window\.open\s*\([^\"']*(?:window\.)?(clickTAG|clickTag)\d*",
    re.IGNORECASE
)
ANCHOR_ONCLICK = re.compile(
    r"<a\b[^>]*\bonclick=[\"'][^\"']*(?:window\.)?open\s*\([^\"']*(?:window\.)?(clickTAG|clickTag)\d*",
    re.IGNORECASE
)
ASSIGN_LOCATION = re.compile(r"(window|document|top)\.location\s*=\s*(?:window\.)?(clickTAG|clickTag)\d*", re.IGNORECASE)
CT_URL_VALUE = re.compile(
    r"(?:var|let|const)?\s*(?:window\.)?(clicktag|clickTag|clickTAG)\s*=\s*[\"']([^\"']+)[\"']",
    re.IGNORECASE
)
IDENTIFIER = re.compile(r"^([A-Za-z_$][\w$]*)$")

# --- cross-frame and storage ---
PARENT_TOP_GLOBAL = re.compile(r"(^|[^.$\w])(?:window\.)?(?:parent|top)\.(?!(?:postMessage|\$iframe)\b)", re.IGNORECASE)
DOC_DOMAIN = re.compile(r"document\.domain\s*=", re.IGNORECASE)
STORAGE_APIS = re.compile(r"(localStorage|sessionStorage|indexedDB|openDatabase)\b", re.IGNORECASE)
GWD_SIGNATURES = re.compile(r"gwd-page-wrapper|GWD_preventAutoplay|gwd-google", re.IGNORECASE)

HARDCODED_PATTERNS = [
    ("window.open", re.compile(r"window\.open\s*\(\s*['\"]https?://", re.IGNORECASE)),
    ("location.assign", re.compile(r"location\.(href|replace)\s*=\s*['\"]https?://", re.IGNORECASE)),
    ("top.location", re.compile(r"top\.location(?:\.href)?\s*=\s*['\"]https?://", re.IGNORECASE)),
    ("parent.location", re.compile(r"parent\.location(?:\.href)?\s*=\s*['\"]https?://", re.IGNORECASE)),
    ("clickTag assign", re.compile(r"\bclickTAG?\s*=\s*['\"]https?://", re.IGNORECASE)),
]
ANCHOR_HARDCODED = re.compile(r"<a[^>]+href=[\"']https?://[^\"]+[\"'][^>]*>", re.IGNORECASE)

HTTP_ATTRIBUTE = re.compile(r"(?:src|href)=[\"'](http://[^\"']+)[\"']", re.IGNORECASE)
AD_SIZE_META = re.compile(r"<meta\s+name=[\"']ad\.size[\"']\s+content=[\"']([^\"']+)[\"']", re.IGNORECASE)


def _compile_extra_patterns(patterns: List[str]) -> List[Pattern]:
    compiled = []
    for raw in patterns:
        try:
            compiled.append(re.compile(raw, re.IGNORECASE))
        except re.error as e:
            logger.debug("Ignoring invalid clickTag pattern %r: %s", raw, e)
    return compiled


def _alias_names(text: str) -> Set[str]:
    """Variables assigned from a clickTag, e.g. `var exitUrl = clickTag;`."""
    names = {m.group(1) for m in CT_ALIAS_DECL.finditer(text) if m.group(1)}
    for m in CT_ALIAS_ASSIGN.finditer(text):
        prev = text[m.start() - 1] if m.start() > 0 else ""
        if prev in (".", "$", "]"):
            continue
        names.add(m.group(1))
    return names


@check_spec(
    id="clicktag",
    title="ClickTag Present and Used",
    description="CM360: Global clickTag present and used via window.open(clickTag).",
    profiles=["CM360"],
    priority="required"
)
def check_click_tag(ctx: CheckContext) -> CheckOutcome:
    extra_patterns = _compile_extra_patterns(ctx.settings.click_tag_patterns)
    has_click_tag = has_window_click_tag = has_open = has_enabler_exit = False
    offenders: List[Offender] = []

    for path, text in ctx.iter_texts(JS_HTML_FILES):
        seen: Set[str] = set()
        aliases = _alias_names(text)

        def record(line_no: int, kind: str, line: str, key: Optional[str] = None) -> None:
            key = key or f"{line_no}:{kind}"
            if key in seen:
                return
            seen.add(key)
            offenders.append(Offender(path=path, line=line_no, kind=kind, detail=line.strip()))

        for i, line in enumerate(CssUtils.split_lines(text), start=1):
            if CT_VAR.search(line) or any(p.search(line) for p in extra_patterns):
                has_click_tag = True
                record(i, "var", line)
            if CT_VAR_WINDOW.search(line):
                has_window_click_tag = True
                record(i, "varw", line)
            if CT_OPEN.search(line):
                has_open = True
                record(i, "open", line)

            for m in CT_OPEN_LOOSE.finditer(line):
                arg = (m.group(1) or "").strip()
                if not arg:
                    continue
                uses_var = re.search("clicktag", arg, re.IGNORECASE) is not None
                ident = IDENTIFIER.match(arg)
                alias = ident.group(1) if ident else ""
                if not uses_var and alias not in aliases:
                    continue
                if uses_var:
                    if f"{i}:open" in seen:
                        continue
                    has_open = True
                    record(i, "open", line)
                else:
                    has_open = True
                    record(i, "open-alias", line, key=f"{i}:open-alias:{alias or arg}")

            if ENABLER_EXIT.search(line):
                has_enabler_exit = True
                record(i, "enabler", line)
            if ANCHOR_HREF_JS.search(line):
                has_open = True
                record(i, "ahref", line)
            if ANCHOR_ONCLICK.search(line):
                has_open = True
                record(i, "aonclick", line)
            if ASSIGN_LOCATION.search(line):
                has_open = True
                record(i, "assign", line)

    passed = has_enabler_exit or (has_click_tag and has_open)
    warned = not passed and (has_click_tag or has_window_click_tag or has_open or has_enabler_exit)
    severity = "PASS" if passed else ("WARN" if warned else "FAIL")

    messages = ["clickTag detected" if (has_click_tag or has_window_click_tag or has_enabler_exit) else "clickTag not detected"]
    if passed:
        messages.append("clickTag referenced for redirect")
    for off in offenders:
        if off.kind == "var" and off.detail:
            m = CT_URL_VALUE.search(off.detail)
            if m:
                messages.append(f"URL temporarily set to '{m.group(2)}'")
                break

    return severity, messages, offenders


@check_spec(
    id="entry-html",
    title="Single Entry HTML & References",
    description="CM360: Exactly one HTML entry file, all other files must be referenced.",
    profiles=["CM360"],
    priority="required"
)
def check_entry_html(ctx: CheckContext) -> CheckOutcome:
    html_files = [p for p in ctx.files if HTML_FILES.search(p)]

    referenced = {r.normalized.lower() for r in ctx.partial.references if r.in_zip and r.normalized}
    if ctx.primary:
        referenced.add(ctx.primary.lower())

    unreferenced = [
        Offender(path=p, detail="Not referenced by entry file")
        for p in ctx.files
        if p not in html_files and p.lower() not in referenced
    ]

    messages = [
        f"Entry HTML files: {len(html_files)} (expected 1)",
        f"Unreferenced files: {len(unreferenced)}",
    ]
    if len(html_files) > 1:
        messages.append("Multiple HTML files detected - only one entry HTML allowed")
    elif not html_files:
        messages.append("No HTML entry file found - creative must have index.html")
    if unreferenced:
        listed = ", ".join(o.path for o in unreferenced[:5])
        more = f" and {len(unreferenced) - 5} more..." if len(unreferenced) > 5 else ""
        messages.append(f"Files not referenced: {listed}{more}")

    if len(html_files) != 1:
        severity = "FAIL"
    else:
        severity = "WARN" if unreferenced else "PASS"
    return severity, messages, unreferenced


def _line_offenders(ctx: CheckContext, matches) -> List[Offender]:
    offenders = []
    for path, text in ctx.iter_texts(JS_HTML_FILES):
        for i, line in enumerate(CssUtils.split_lines(text), start=1):
            if matches(line):
                offenders.append(Offender(path=path, line=i, detail=line.strip()))
    return offenders


def _samples(offenders: List[Offender]) -> str:
    return ", ".join(f"{o.path}:{o.line}" for o in offenders[:3])


@check_spec(
    id="iframe-safe",
    title="Iframe Safe (No Cross-Frame DOM)",
    description="CM360: No access to parent/top frame DOM (window.parent.*, window.top.*, document.domain).",
    profiles=["CM360"],
    priority="required"
)
def check_iframe_safe(ctx: CheckContext) -> CheckOutcome:
    offenders = _line_offenders(ctx, lambda line: DOC_DOMAIN.search(line) or PARENT_TOP_GLOBAL.search(line))

    messages = [f"Cross-frame access references: {len(offenders)}"]
    if offenders:
        messages.append("Detected window.parent.*, window.top.*, or document.domain")
        messages.append("Allowed: parent.postMessage(), parent.$iframe (pharmaceutical only)")
        messages.append(f"Examples: {_samples(offenders)}")
    return ("FAIL" if offenders else "PASS"), messages, offenders


@check_spec(
    id="no-webstorage",
    title="No Web Storage APIs",
    description="CM360: No use of localStorage, sessionStorage, indexedDB, or openDatabase.",
    profiles=["CM360"],
    priority="required"
)
def check_no_web_storage(ctx: CheckContext) -> CheckOutcome:
    offenders = _line_offenders(ctx, STORAGE_APIS.search)

    messages = [f"Storage API references: {len(offenders)}"]
    if offenders:
        messages.append("Web Storage APIs detected (localStorage, sessionStorage, indexedDB, openDatabase)")
        messages.append("Use CM360 frequency capping instead, or contact trafficking team")
        messages.append(f"Found in: {_samples(offenders)}")
    return ("FAIL" if offenders else "PASS"), messages, offenders


@check_spec(
    id="gwd-env-check",
    title="GWD Environment Check",
    description="CM360: Verify Google Web Designer exports use correct environment configuration.",
    profiles=["CM360"],
    priority="recommended"
)
def check_gwd_environment(ctx: CheckContext) -> CheckOutcome:
    offenders = [
        Offender(path=path, detail="GWD signature found")
        for path, text in ctx.iter_texts(HTML_FILES)
        if GWD_SIGNATURES.search(text)
    ]
    if not offenders:
        return "PASS", ["No Google Web Designer signatures detected"], []

    messages = [
        "Google Web Designer export detected",
        "Verify environment configuration for CM360",
        'Should be exported as "Publish to DoubleClick Studio"',
        f"Found in {len(offenders)} file(s)",
    ]
    return "WARN", messages, offenders


@check_spec(
    id="hardcoded-click",
    title="Hard Coded Click Tag Check",
    description="CM360: No hard-coded clickthrough URLs. Use dynamic clickTag variables.",
    profiles=["CM360"],
    priority="required"
)
def check_hardcoded_click(ctx: CheckContext) -> CheckOutcome:
    offenders: List[Offender] = []
    for path, text in ctx.iter_texts(JS_HTML_FILES):
        for i, line in enumerate(CssUtils.split_lines(text), start=1):
            for name, pattern in HARDCODED_PATTERNS:
                if pattern.search(line):
                    offenders.append(Offender(path=path, line=i, detail=f"{name} with hard-coded URL"))
                    break

        if HTML_FILES.search(path):
            for m in ANCHOR_HARDCODED.finditer(text):
                offenders.append(Offender(path=path, line=CssUtils.line_at(text, m.start()), detail="<a> with hard-coded href"))

    if not offenders:
        return "PASS", ["No hard-coded click tags present"], []
    messages = [
        f"{len(offenders)} hard-coded clickthrough(s) detected",
        "Use dynamic clickTag variables instead",
        'Example: window.open(clickTag) or Enabler.exit("exit1")',
    ]
    return "FAIL", messages, offenders


@check_spec(
    id="https-only",
    title="HTTPS Only",
    description="CM360: All external resource references must use HTTPS (no http://).",
    profiles=["CM360"],
    priority="required"
)
def check_https_only(ctx: CheckContext) -> CheckOutcome:
    offenders: List[Offender] = []
    for path, text in ctx.iter_texts(CODE_FILES):
        urls = list(dict.fromkeys(m.group(1) for m in HTTP_ATTRIBUTE.finditer(text)))
        if urls:
            more = f" and {len(urls) - 3} more" if len(urls) > 3 else ""
            offenders.append(Offender(path=path, detail=f"HTTP URLs found: {', '.join(urls[:3])}{more}"))

    if not offenders:
        return "PASS", ["All external resources use HTTPS protocol"], []

    sample = ", ".join(o.path for o in offenders[:3])
    messages = [
        f"{len(offenders)} file(s) contain HTTP references",
        "All external URLs must use https:// (not http://)",
        f"Files with HTTP URLs: {sample}{' ...' if len(offenders) > 3 else ''}",
    ]
    return "FAIL", messages, offenders


@check_spec(
    id="primary-asset",
    title="Primary File and Size",
    description="CM360: Entry file must be index.html and contain ad.size meta tag.",
    profiles=["CM360"],
    priority="required"
)
def check_primary_asset(ctx: CheckContext) -> CheckOutcome:
    primary = ctx.primary or ""
    is_index = primary.lower() == "index.html"

    ad_size_value = None
    if is_index:
        m = AD_SIZE_META.search(ctx.html_text)
        if m:
            ad_size_value = m.group(1)

    messages = [
        "Entry file: index.html" if is_index else f"Entry file: {primary or '(none)'} (expected index.html)",
        f"ad.size meta tag present: {ad_size_value}" if ad_size_value
        else "ad.size meta tag missing (required for CM360 ingestion)",
    ]
    return ("PASS" if is_index and ad_size_value else "FAIL"), messages, []
