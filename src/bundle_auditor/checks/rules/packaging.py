# src/bundle_auditor/checks/rules/packaging.py
import re
from typing import Dict, List

from bundle_auditor.checks.core import CheckContext, CheckOutcome, check_spec
from bundle_auditor.model import Offender

WRAPPER_HINTS = [
    re.compile(r"unzip", re.IGNORECASE),
    re.compile(r"for[-_]?delivery", re.IGNORECASE),
    re.compile(r"delivery", re.IGNORECASE),
    re.compile(r"_zip", re.IGNORECASE),
    re.compile(r"_final", re.IGNORECASE),
]
NESTED_ARCHIVE = re.compile(r"\.(?:zip|adz)$", re.IGNORECASE)
EXTENSION = re.compile(r"\.[a-z0-9]+$")

ALLOWED_EXTENSIONS = [
    ".html", ".htm", ".js", ".css",
    ".jpg", ".jpeg", ".gif", ".png", ".svg",
    ".json", ".xml",
    ".eot", ".otf", ".ttf", ".woff", ".woff2",
]

BANNED_FILE_TYPES: Dict[str, str] = {
    ".db": "OS artifact (Thumbs.db, .DS_Store)",
    ".ds_store": "macOS artifact",
    ".ini": "Windows configuration file",
    ".zip": "Archive file (extract contents)",
    ".rar": "Archive file (extract contents)",
    ".7z": "Archive file (extract contents)",
    ".tar": "Archive file (extract contents)",
    ".gz": "Archive file (extract contents)",
    ".exe": "Executable file",
    ".dll": "Windows library file",
    ".bat": "Batch script",
    ".sh": "Shell script",
    ".app": "macOS application",
    ".pdf": "PDF document",
    ".doc": "Word document",
    ".docx": "Word document",
    ".xls": "Excel spreadsheet",
    ".xlsx": "Excel spreadsheet",
    ".ppt": "PowerPoint presentation",
    ".pptx": "PowerPoint presentation",
    ".psd": "Photoshop source file",
    ".ai": "Illustrator source file",
    ".sketch": "Sketch source file",
    ".fig": "Figma source file",
    ".fla": "Flash source file",
    ".swf": "Flash file (deprecated)",
    ".mp4": "Video file (use streaming service)",
    ".mov": "Video file (use streaming service)",
    ".avi": "Video file (use streaming service)",
    ".mp3": "Audio file (usually not supported)",
    ".wav": "Audio file (usually not supported)",
}

# Spaces, hyphens, underscores and dots are accepted by the CM360 validator
DISALLOWED_CHARS = re.compile(r"[%#?;\\:*\"|<>]")


def _extension(path: str) -> str:
    m = EXTENSION.search(path.lower())
    return m.group(0) if m else ""


def _is_macos_metadata(path: str) -> bool:
    return "__MACOSX" in path or path.startswith("._")


@check_spec(
    id="pkg-format",
    title="Packaging Format",
    description="CM360: Upload must be ZIP/ADZ with no nested archives, files at top level.",
    profiles=["CM360"],
    priority="required"
)
def check_packaging(ctx: CheckContext) -> CheckOutcome:
    files = ctx.files
    is_zip = ctx.archive.mode == "zip"
    nested = [p for p in files if NESTED_ARCHIVE.search(p)]

    root_files = [p for p in files if "/" not in p]
    top_dirs = list(dict.fromkeys(p.split("/")[0] for p in files if "/" in p))
    wrapper_dirs = [d for d in top_dirs if any(rx.search(d) for rx in WRAPPER_HINTS)]
    single_top_dir = top_dirs[0] if len(top_dirs) == 1 else None

    messages = [
        f"Package: {'ZIP/ADZ' if is_zip else 'not ZIP/ADZ'}",
        f"Nested archives: {len(nested)}",
        f"Top-level: {len(root_files)} file(s), {len(top_dirs)} folder(s)",
    ]
    if wrapper_dirs:
        messages.append(f"Wrapper folders detected: {', '.join(wrapper_dirs[:5])}")
    if single_top_dir and not root_files:
        messages.append(
            f'All content inside single folder: "{single_top_dir}" - zip the folder\'s contents, not the folder'
        )

    offenders = [
        Offender(path=p, detail="Nested archive (.zip/.adz) - remove inner ZIP and include its files at top level")
        for p in nested
    ]
    severity = "FAIL" if (not is_zip or nested) else "PASS"
    return severity, messages, offenders


@check_spec(
    id="allowed-ext",
    title="Allowed File Extensions",
    description="CM360: Only typical creative extensions allowed (html, js, css, images, fonts, etc.)",
    profiles=["CM360"],
    priority="required"
)
def check_allowed_extensions(ctx: CheckContext) -> CheckOutcome:
    bad: List[Offender] = []
    for path in ctx.files:
        if _is_macos_metadata(path):
            bad.append(Offender(path=path, detail="macOS metadata file (__MACOSX or ._*)"))
            continue

        ext = _extension(path)
        if ext in BANNED_FILE_TYPES:
            bad.append(Offender(path=path, detail=f"{BANNED_FILE_TYPES[ext]} - explicitly banned"))
        elif not ext or ext not in ALLOWED_EXTENSIONS:
            bad.append(Offender(path=path, detail=f"Unsupported extension: {ext}" if ext else "(no extension)"))

    if not bad:
        return "PASS", ["All file extensions allowed"], []

    messages = [
        f"Disallowed/banned files: {len(bad)}",
        "Allowed: " + ", ".join(ALLOWED_EXTENSIONS[:10]) + ", etc.",
    ]
    found_types = [e for e in dict.fromkeys(_extension(o.path) for o in bad) if e]
    if found_types:
        messages.append(f"Banned types found: {', '.join(found_types[:5])}")
    return "FAIL", messages, bad


@check_spec(
    id="file-limits",
    title="File Count and Upload Size",
    description="CM360: Maximum 100 files and 10MB compressed size.",
    profiles=["CM360"],
    priority="required"
)
def check_file_limits(ctx: CheckContext) -> CheckOutcome:
    max_files = ctx.settings.max_file_count
    max_bytes = ctx.settings.max_zip_bytes

    count = len(ctx.files)
    zip_bytes = ctx.partial.zipped_bytes or len(ctx.archive.raw_bytes)
    over_count = count > max_files
    over_size = zip_bytes > max_bytes

    messages = [
        f"Files: {count} / {max_files}",
        f"Zip size: {zip_bytes / 1024:.1f} KB / {max_bytes / 1024:.1f} KB",
    ]
    if over_count:
        messages.append(f"File count exceeds limit by {count - max_files} files")
    if over_size:
        messages.append(f"ZIP size exceeds limit by {(zip_bytes - max_bytes) / 1024:.1f} KB")

    return ("FAIL" if over_count or over_size else "PASS"), messages, []


@check_spec(
    id="bad-filenames",
    title="Problematic Filenames",
    description="CM360: No special characters in filenames. ZIP name must include size token.",
    profiles=["CM360"],
    priority="required"
)
def check_filenames(ctx: CheckContext) -> CheckOutcome:
    disallowed: List[Offender] = []
    for path in ctx.files:
        name = path.split("/")[-1] or path
        chars = list(dict.fromkeys(DISALLOWED_CHARS.findall(name)))
        if chars:
            disallowed.append(Offender(path=path, detail=f"illegal character(s): {' '.join(chars)}"))

    bundle_name = ctx.partial.bundle_name or ctx.archive.name
    size = ctx.partial.ad_size
    size_ok = True
    size_offenders: List[Offender] = []
    if size and bundle_name:
        expected = size.token
        pattern = re.compile(rf"(^|[^0-9]){size.width}\s*[xX]\s*{size.height}([^0-9]|$)")
        if pattern.search(bundle_name):
            size_message = f"Correct dimensions found in file name ({expected})"
        else:
            size_ok = False
            size_message = f'Expected {expected} in ZIP name "{bundle_name}"'
            size_offenders.append(Offender(path=bundle_name, detail=f"missing {expected}"))
    else:
        size_message = "Creative dimensions unavailable for filename check"

    messages = [
        f"Disallowed characters found in {len(disallowed)} file(s)" if disallowed else "No disallowed characters",
        size_message,
    ]
    severity = "FAIL" if disallowed or not size_ok else "PASS"
    return severity, messages, (disallowed + size_offenders)[:200]
