# src/bundle_auditor/checks/rules/iab.py
import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from bundle_parser.utils.css_utils import CssUtils
from bundle_auditor.checks.core import JS_HTML_FILES, CheckContext, CheckOutcome, check_spec
from bundle_auditor.model import Offender

logger = logging.getLogger(__name__)

INDEX_NAME = re.compile(r"^index\.html?$", re.IGNORECASE)
VIDEO_FILES = re.compile(r"\.(?:mp4|webm|ogg|mov)$", re.IGNORECASE)
JS_CSS_FILES = re.compile(r"\.(?:js|css)$", re.IGNORECASE)
CSS_FILES = re.compile(r"\.css$", re.IGNORECASE)
IMAGE_FILES = re.compile(r"\.(?:png|jpe?g|gif|webp)$", re.IGNORECASE)
BACKUP_IMAGE = re.compile(r"(^|/)backup\.(?:png|jpe?g|gif)$", re.IGNORECASE)

LIBRARY_SIGNATURES: List[Tuple[str, re.Pattern]] = [
    ("CreateJS", re.compile(r"createjs\.", re.IGNORECASE)),
    ("GSAP", re.compile(r"gsap\(|TweenMax|TweenLite", re.IGNORECASE)),
    ("PixiJS", re.compile(r"pixi\.js", re.IGNORECASE)),
    ("jQuery", re.compile(r"jquery|\$\(", re.IGNORECASE)),
]

MEASUREMENT_HOSTS = [
    "doubleclick.net",
    "google-analytics.com",
    "googletagmanager.com",
    "facebook.com",
    "pixel.facebook.com",
    "adsrvr.org",
    "adnxs.com",
    "quantserve.com",
    "scorecardresearch.com",
    "moatads.com",
    "imrworldwide.com",
    "krxd.net",
]

# --- animation ---
ANIMATION_DURATION = re.compile(r"(?:^|;|\n|\{)\s*(?:-webkit-)?animation-duration\s*:\s*([^;\n\r]+)[;\n\r]", re.IGNORECASE)
ANIMATION_ITERATIONS = re.compile(r"(?:^|;|\n|\{)\s*(?:-webkit-)?animation-iteration-count\s*:\s*([^;\n\r]+)[;\n\r]", re.IGNORECASE)
ANIMATION_SHORTHAND = re.compile(r"(?:^|;|\n|\{)\s*(?:-webkit-)?animation\s*:\s*([^;\n\r]+)[;\n\r]", re.IGNORECASE)
DURATION_TOKEN = re.compile(r"^([\d.]+)(ms|s)$", re.IGNORECASE)
INFINITE_LOOPS = 9999

# --- border ---
BORDER_DECLARATION = re.compile(r"\bborder(?:-top|-right|-bottom|-left)?\s*:\s*([^;{}]+)", re.IGNORECASE)
BORDER_SHORTHAND_IN_HTML = re.compile(r"\bborder\s*:\s*\d+px\s+(solid|dashed|double)\b", re.IGNORECASE)
BORDER_STYLE = re.compile(r"\b(solid|dashed|dotted|double|groove|ridge|inset|outset)\b")
BORDER_KEYWORD_WIDTH = re.compile(r"\b(thin|medium|thick)\b")
BORDER_POSITIVE_PX = re.compile(r"(?:^|[^0-9.])(?:[1-9]\d*(?:\.\d+)?|0*\.\d*[1-9]\d*)px\b")
ZERO_VALUE = re.compile(r"^0(px|)$")
EDGE_THICKNESS = re.compile(r"^([1-9]|1[0-6])(px)?$")
TRANSPARENT_COLOR = re.compile(r"transparent|rgba\(0,\s*0,\s*0,\s*0\)", re.IGNORECASE)
VISIBLE_COLOR = re.compile(r"#|rgb|hsl|\bblack\b|\bwhite\b|\bred\b|\bblue\b|\bgreen\b|\byellow\b|\bgray\b", re.IGNORECASE)


@check_spec(
    id="hostedCount",
    title="Hosted File Count",
    description="IAB: Reports total number of hosted files (informational).",
    profiles=["IAB"],
    priority="advisory"
)
def check_hosted_count(ctx: CheckContext) -> CheckOutcome:
    count = len(ctx.files)
    messages = [f"Files: {count}"]
    if count > ctx.settings.hosted_count_recommended:
        messages.append(f"Consider reducing file count (<{ctx.settings.hosted_count_recommended} recommended)")
    return "PASS", messages, []


@check_spec(
    id="hostedSize",
    title="Hosted File Size",
    description="IAB: Total uncompressed file size must be <=2.5MB.",
    profiles=["IAB"],
    priority="required"
)
def check_hosted_size(ctx: CheckContext) -> CheckOutcome:
    cap = ctx.settings.hosted_size_kb
    total_kb = round(ctx.partial.total_bytes / 1024)
    messages = [f"Uncompressed {total_kb} KB", f"Target: <= {cap} KB"]
    if total_kb > cap:
        messages.append(f"Over limit by {total_kb - cap} KB")
        messages.append("Optimize images, minify code, remove unused assets")
        return "FAIL", messages, []
    return "PASS", messages, []


@check_spec(
    id="cssEmbedded",
    title="CSS Embedded",
    description="IAB: CSS must be embedded via style tags or inline styles (no external CSS).",
    profiles=["IAB"],
    priority="required"
)
def check_css_embedded(ctx: CheckContext) -> CheckOutcome:
    has_style_tag = re.search(r"<style[\s>]", ctx.html_text, re.IGNORECASE) is not None
    inline_styles = len(re.findall(r" style=", ctx.html_text, re.IGNORECASE))

    messages = []
    if has_style_tag:
        messages.append("Style tags present")
    if inline_styles:
        messages.append(f"{inline_styles} inline style attribute(s)")
    if not has_style_tag and not inline_styles:
        messages.extend(["No embedded CSS detected", "Add <style> tags or inline styles"])
        return "FAIL", messages, []
    return "PASS", messages, []


@check_spec(
    id="indexFile",
    title="Index File Check",
    description="IAB: index.html must be present at root level.",
    profiles=["IAB"],
    priority="required"
)
def check_index_file(ctx: CheckContext) -> CheckOutcome:
    if any(INDEX_NAME.match(p.split("/")[-1]) for p in ctx.files):
        return "PASS", ["index.html present"], []
    return "FAIL", ["index.html not found at root", "Rename entry file to index.html", "Place at root level of ZIP"], []


@check_spec(
    id="video",
    title="Has Video",
    description="IAB: Detects presence of video files (informational).",
    profiles=["IAB"],
    priority="advisory"
)
def check_video(ctx: CheckContext) -> CheckOutcome:
    videos = [p for p in ctx.files if VIDEO_FILES.search(p)]
    messages = [f"{len(videos)} video file(s)"] if videos else ["No video files"]
    return "PASS", messages, [Offender(path=p, detail="Video file") for p in videos]


@check_spec(
    id="html5lib",
    title="HTML5 Library",
    description="IAB: Avoid third-party libraries (CreateJS, GSAP, PixiJS, jQuery).",
    profiles=["IAB"],
    priority="required"
)
def check_html5_library(ctx: CheckContext) -> CheckOutcome:
    text = "\n".join(body for _, body in ctx.iter_texts(JS_HTML_FILES))
    libs = [name for name, pattern in LIBRARY_SIGNATURES if pattern.search(text)]
    if not libs:
        return "PASS", ["None detected"], []
    messages = [
        ", ".join(libs),
        "Third-party libraries detected",
        "Use vanilla JavaScript for better performance",
        "Consider CSS animations or Web Animations API",
    ]
    return "FAIL", messages, []


def _looks_minified(text: str) -> bool:
    """Minified files have very long lines or many dense lines."""
    lines = CssUtils.split_lines(text)
    if any(len(line) > 2000 for line in lines):
        return True
    dense = [
        line for line in lines
        if len(line) > 200 and len(re.sub(r"\s+", "", line)) / len(line) > 0.98
    ]
    return len(dense) > 20


@check_spec(
    id="minified",
    title="CSS/JS Minified",
    description="IAB: All JavaScript and CSS files must be minified.",
    profiles=["IAB"],
    priority="required"
)
def check_minified(ctx: CheckContext) -> CheckOutcome:
    counts: Dict[str, List[int]] = {"js": [0, 0], "css": [0, 0]}
    offenders: List[Offender] = []
    for path, text in ctx.iter_texts(JS_CSS_FILES):
        kind = "css" if CSS_FILES.search(path) else "js"
        counts[kind][1] += 1
        if _looks_minified(text):
            counts[kind][0] += 1
        else:
            offenders.append(Offender(path=path, detail="not minified (heuristic)"))

    messages = [
        f"JS minified: {counts['js'][0]}/{counts['js'][1]}",
        f"CSS minified: {counts['css'][0]}/{counts['css'][1]}",
    ]
    if offenders:
        messages.append("Non-minified files detected")
        messages.append("Use build tools (Webpack, Vite, etc.) to minify")
        return "FAIL", messages, offenders
    return "PASS", messages, []


@check_spec(
    id="measurement",
    title="Measurement Pixels",
    description="IAB: Limit measurement pixel references (<5 recommended).",
    profiles=["IAB"],
    priority="recommended"
)
def check_measurement(ctx: CheckContext) -> CheckOutcome:
    limit = ctx.settings.measurement_fail_count
    offenders: List[Offender] = []
    for ref in ctx.partial.references:
        if not ref.external:
            continue
        try:
            host = (urlparse(urljoin("https://x", ref.url)).hostname or "").lower()
        except ValueError:
            continue
        if any(h in host for h in MEASUREMENT_HOSTS):
            offenders.append(Offender(path=ref.from_path, line=ref.line, detail=ref.url))

    count = len(offenders)
    messages = [f"{count} known tracking reference(s)", f"Target: < {limit}"]
    if count >= limit:
        messages.extend(["Too many measurement pixels", "Consolidate tracking or use ad server"])
        return "FAIL", messages, offenders
    if count:
        messages.append("Consider consolidating tracking pixels")
        return "WARN", messages, offenders
    return "PASS", messages, []


@check_spec(
    id="relative-refs",
    title="Relative Paths For Packaged Assets",
    description="IAB: Packaged assets should use relative paths (not absolute).",
    profiles=["IAB"],
    priority="recommended"
)
def check_relative_paths(ctx: CheckContext) -> CheckOutcome:
    offenders = [
        Offender(path=ref.from_path, line=ref.line, detail=ref.url)
        for ref in ctx.partial.references
        if ref.in_zip and (ref.url.startswith("/") or CssUtils.is_external(ref.url))
    ]
    if not offenders:
        return "PASS", ["All packaged asset references are relative"], []
    messages = [
        f"{len(offenders)} absolute path reference(s) found",
        "Use relative paths for packaged assets",
        'Example: "./images/banner.jpg" instead of "/images/banner.jpg"',
    ]
    return "WARN", messages, offenders


@check_spec(
    id="imagesOptimized",
    title="Images Optimized",
    description="IAB: Large PNGs (>300KB) should be JPEG or WebP.",
    profiles=["IAB"],
    priority="recommended"
)
def check_images_optimized(ctx: CheckContext) -> CheckOutcome:
    cap_kb = ctx.settings.png_max_kb
    offenders = []
    for path in ctx.files:
        if not IMAGE_FILES.search(path) or not path.lower().endswith(".png"):
            continue
        size = len(ctx.archive.files[path])
        if size > cap_kb * 1024:
            offenders.append(Offender(path=path, detail=f"PNG {round(size / 1024)} KB - consider JPEG/WebP"))

    if not offenders:
        return "PASS", ["OK"], []
    messages = [
        f"{len(offenders)} image(s) could be optimized",
        f"Large PNGs detected (>{cap_kb}KB)",
        "Convert photos to JPEG, or compress PNGs",
        "Use WebP for best compression",
    ]
    return "FAIL", messages, offenders


@check_spec(
    id="iframes",
    title="Iframe Count",
    description="IAB: Avoid iframes when possible (performance/security).",
    profiles=["IAB"],
    priority="recommended"
)
def check_iframes(ctx: CheckContext) -> CheckOutcome:
    count = len(re.findall(r"<iframe\b", ctx.html_text, re.IGNORECASE))
    messages = [f"iframes (static HTML): {count}"]
    if count:
        messages.extend(["Iframes detected", "Consider using direct HTML instead", "Iframes add complexity and overhead"])
        return "WARN", messages, []
    return "PASS", messages, []


@check_spec(
    id="no-backup-in-zip",
    title="No Backup Image Inside ZIP",
    description="IAB/CM360: Backup images should be separate, not packaged in ZIP.",
    profiles=["IAB"],
    priority="recommended"
)
def check_no_backup_in_zip(ctx: CheckContext) -> CheckOutcome:
    backups = [p for p in ctx.files if BACKUP_IMAGE.search(p)]
    if not backups:
        return "PASS", ["No backup image in ZIP"], []
    messages = [
        f"Found: {backups[0]}",
        "Backup images should be uploaded separately",
        "Remove backup from creative ZIP",
        "Upload backup to ad server independently",
    ]
    return "WARN", messages, [Offender(path=p, detail="backup image found in ZIP") for p in backups[:5]]


@check_spec(
    id="host-requests-initial",
    title="Initial Host Requests",
    description="IAB: Creative should contact <=10 unique hosts on initial load (performance).",
    profiles=["IAB"],
    priority="recommended"
)
def check_host_requests(ctx: CheckContext) -> CheckOutcome:
    cap = ctx.settings.max_initial_requests
    initial = ctx.partial.initial_requests
    messages = [f"Initial requests: {initial} / {cap}"]
    if initial > cap:
        messages.extend([
            f"Exceeded host request limit ({initial - cap} over)",
            "Each additional host adds DNS lookup latency",
            "Consolidate resources on fewer domains",
        ])
        return "FAIL", messages, []
    messages.append("Within host request limit")
    return "PASS", messages, []


# --- animation-cap ---

def _duration_seconds(token: str) -> float:
    s = (token or "").strip()
    m = re.match(r"^([\d.]+)\s*s$", s, re.IGNORECASE)
    if m:
        return _float(m.group(1))
    m = re.match(r"^([\d.]+)\s*ms$", s, re.IGNORECASE)
    if m:
        return _float(m.group(1)) / 1000
    return _float(s)


def _float(value: str) -> float:
    m = re.match(r"^\s*[-+]?(\d+\.?\d*|\.\d+)", value or "")
    return float(m.group(0)) if m else 0.0


def scan_css_animations(css_texts: List[str]) -> Tuple[float, int, bool]:
    """
    Longest animation duration (seconds), highest iteration count and
    whether any animation loops forever, across the given CSS texts.
    """
    max_duration = 0.0
    max_loops = 1
    infinite = False

    for text in css_texts:
        for m in ANIMATION_DURATION.finditer(text):
            for part in m.group(1).split(","):
                max_duration = max(max_duration, _duration_seconds(part))

        for m in ANIMATION_ITERATIONS.finditer(text):
            for part in m.group(1).split(","):
                raw = part.strip().lower()
                if raw == "infinite":
                    infinite = True
                    max_loops = max(max_loops, INFINITE_LOOPS)
                elif re.match(r"^[-+]?(\d+\.?\d*|\.\d+)", raw):
                    max_loops = max(max_loops, round(_float(raw)))

        for m in ANIMATION_SHORTHAND.finditer(text):
            for block in m.group(1).split(","):
                tokens = re.sub(r"\([^)]*\)", "", block.strip()).split()
                for tok in tokens:
                    if DURATION_TOKEN.match(tok):
                        max_duration = max(max_duration, _duration_seconds(tok))
                    elif tok.lower() == "infinite":
                        infinite = True
                        max_loops = max(max_loops, INFINITE_LOOPS)
                    elif tok.isdigit():
                        max_loops = max(max_loops, int(tok))

    return max_duration, max_loops, infinite


@check_spec(
    id="animation-cap",
    title="Animation Length Cap",
    description="IAB: Animations must run <=15 seconds OR <=3 loops.",
    profiles=["IAB"],
    priority="required"
)
def check_animation_cap(ctx: CheckContext) -> CheckOutcome:
    max_seconds = ctx.settings.animation_max_seconds
    max_allowed_loops = ctx.settings.animation_max_loops

    css_texts = CssUtils.style_blocks(ctx.html_text)
    css_texts += [text for _, text in ctx.iter_texts(CSS_FILES)]
    css_texts.append(ctx.html_text)
    duration, loops, infinite = scan_css_animations(css_texts)

    runtime = ctx.runtime
    tracking = runtime.animation_tracking if runtime else None
    if tracking == "pending":
        return "WARN", ["Analyzing JavaScript animations...", "Duration tracking in progress"], []

    nothing_static = duration == 0 and not infinite and loops <= 1
    if nothing_static and runtime and (
            runtime.anim_max_duration_s is not None or runtime.anim_max_loops is not None or runtime.anim_infinite
    ):
        duration = max(0.0, runtime.anim_max_duration_s or 0.0)
        loops = max(1, runtime.anim_max_loops or 1)
        infinite = runtime.anim_infinite

    messages = []
    if duration == 0 and not infinite and loops <= 1:
        if tracking == "detected":
            messages.append("JS animation detected but duration not captured")
        else:
            messages.append("No CSS animation detected (JS animation or unsupported syntax)")
    else:
        messages.append(f"Max animation duration ~{duration:.2f} s")
        messages.append(f"Max loops {'infinite' if infinite else loops}")
        if tracking == "detected":
            messages.append("JS animation tracking active")

    violates = (infinite or loops > max_allowed_loops) and duration > max_seconds
    if violates:
        messages.append(f"Animation exceeds {max_seconds:g}s limit")
        messages.append(f"Limit to <={max_seconds:g} seconds OR <={max_allowed_loops} loops")
        return "FAIL", messages, []
    return "PASS", messages, []


# --- border ---

def _visible_border(value: str) -> bool:
    value = (value or "").lower().replace("!important", "").strip()
    if not value or re.search(r"\b(none|hidden)\b", value):
        return False
    if not BORDER_STYLE.search(value):
        return False
    return bool(BORDER_KEYWORD_WIDTH.search(value) or BORDER_POSITIVE_PX.search(value))


def _parse_style(style: str) -> Dict[str, str]:
    parsed = {}
    for part in style.split(";"):
        key, sep, value = part.partition(":")
        if not sep or not key.strip() or not value.strip():
            continue
        parsed[key.strip().lower()] = value.split(":")[0].strip().lower()
    return parsed


def _is_zero(value: Optional[str]) -> bool:
    return bool(value) and (ZERO_VALUE.match(value) is not None or value == "0")


def _is_edge_thickness(value: Optional[str]) -> bool:
    return bool(value) and EDGE_THICKNESS.match(value) is not None


def _is_full(value: Optional[str]) -> bool:
    return value == "100%"


def _is_visible_color(value: Optional[str]) -> bool:
    return bool(value) and not TRANSPARENT_COLOR.search(value) and VISIBLE_COLOR.search(value) is not None


def _css_border_offenders(ctx: CheckContext) -> List[Offender]:
    sources: List[Tuple[str, str]] = []
    for idx, block in enumerate(CssUtils.style_blocks(ctx.html_text), start=1):
        label = f"{ctx.primary} <style #{idx}>" if ctx.primary else f"<style #{idx}>"
        sources.append((label, block))
    sources.extend(ctx.iter_texts(CSS_FILES))

    offenders = []
    for label, text in sources:
        for i, line in enumerate(CssUtils.split_lines(text), start=1):
            for m in BORDER_DECLARATION.finditer(line):
                if not _visible_border(m.group(1)):
                    continue
                snippet = re.sub(r"\s+", " ", line[m.start():min(len(line), m.end() + 24)]).strip()
                offenders.append(Offender(path=label, line=i, detail=snippet))
                break
    return offenders


def _edge_line_offenders(ctx: CheckContext) -> Tuple[int, List[Offender]]:
    """Absolutely positioned 1-16px lines along the creative edges (the GWD border pattern)."""
    soup = BeautifulSoup(ctx.html_text, "html.parser")
    sides = set()
    offenders = []
    path = ctx.primary or "(inline)"

    for el in soup.find_all(style=True):
        st = _parse_style(el.get("style") or "")
        if st.get("position") != "absolute":
            continue
        background = st.get("background-color") or st.get("background") or ""
        if not _is_visible_color(background):
            continue

        classes = el.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        marker = el.name + (f"#{el.get('id')}" if el.get("id") else "") + "".join(f".{c}" for c in classes)

        horizontal = _is_zero(st.get("left")) and _is_full(st.get("width")) and _is_edge_thickness(st.get("height"))
        vertical = _is_zero(st.get("top")) and _is_full(st.get("height")) and _is_edge_thickness(st.get("width"))
        if horizontal and _is_zero(st.get("top")):
            side, thickness = "top", st.get("height")
        elif horizontal and _is_zero(st.get("bottom")):
            side, thickness = "bottom", st.get("height")
        elif vertical and _is_zero(st.get("left")):
            side, thickness = "left", st.get("width")
        elif vertical and _is_zero(st.get("right")):
            side, thickness = "right", st.get("width")
        else:
            continue

        sides.add(side)
        offenders.append(Offender(path=path, detail=f"{marker} {side} line {thickness}"))
    return len(sides), offenders


@check_spec(
    id="border",
    title="Border Present",
    description="IAB: Creative should have visible border (CSS or edge lines).",
    profiles=["IAB"],
    priority="required"
)
def check_border(ctx: CheckContext) -> CheckOutcome:
    css_offenders = _css_border_offenders(ctx)
    has_border = bool(css_offenders) or BORDER_SHORTHAND_IN_HTML.search(ctx.html_text) is not None
    detected_via = ["Detected via CSS border"] if has_border else []

    edge_count, edge_offenders = _edge_line_offenders(ctx)
    if edge_count >= 3:
        has_border = True
        detected_via.append(f"Detected via {edge_count} edge lines")

    sides = ctx.runtime.border_sides if ctx.runtime else 0
    css_rules = ctx.runtime.border_css_rules if ctx.runtime else 0
    if sides >= 3 or css_rules > 0:
        has_border = True
        detected_via.append(f"Detected at runtime ({sides} sides, {css_rules} css rule(s))")

    messages = [
        f"Border detected: {'yes' if has_border else 'no'}",
        f"Sides detected: {sides}",
        f"CSS rules: {css_rules}",
    ] + detected_via

    if not has_border:
        messages.extend([
            "No border detected",
            "Add CSS border or edge lines (GWD style)",
            "Example: border: 1px solid #000;",
        ])
        return "WARN", messages, edge_offenders[:4]

    evidence = css_offenders + edge_offenders
    if not evidence and (sides or css_rules):
        evidence = [Offender(path="(runtime)", detail=f"Runtime detected {sides} side(s), {css_rules} css rule(s)")]
    return "PASS", messages, evidence[:100]


@check_spec(
    id="iabWeight",
    title="Weight Budgets",
    description="IAB: Ad weight budgets (initial/polite compressed, zip package) per configured settings. Exceeding caps fails.",
    profiles=["CM360", "IAB"],
    priority="required"
)
def check_weight_budgets(ctx: CheckContext) -> CheckOutcome:
    settings = ctx.settings
    initial_kb = ctx.partial.initial_bytes / 1024
    polite_kb = ctx.partial.subsequent_bytes / 1024
    zip_kb = (ctx.partial.zipped_bytes or len(ctx.archive.raw_bytes)) / 1024
    total_kb = ctx.partial.total_bytes / 1024

    initial_ok = initial_kb <= settings.iab_initial_load_kb
    polite_ok = polite_kb <= settings.iab_subsequent_load_kb
    zip_over = zip_kb > settings.iab_max_zipped_kb

    messages = [
        f"Initial load {initial_kb:.1f}KB {'within' if initial_ok else 'exceeds'} cap {settings.iab_initial_load_kb:g}KB",
        f"Subsequent (polite) load {polite_kb:.1f}KB {'within' if polite_ok else 'exceeds'} cap "
        f"{settings.iab_subsequent_load_kb:g}KB",
        f"Compressed creative size {zip_kb:.1f}KB "
        f"{'exceeds recommended max' if zip_over else 'within recommended max'} {settings.iab_max_zipped_kb:g}KB",
        f"Total uncompressed {total_kb:.1f}KB (initial + subsequent)",
    ]
    if not initial_ok:
        messages.append("Reduce initial load: inline critical CSS, defer images")
    if not polite_ok:
        messages.append("Reduce polite load: compress images, minify scripts")
    return ("PASS" if initial_ok and polite_ok else "FAIL"), messages, []
