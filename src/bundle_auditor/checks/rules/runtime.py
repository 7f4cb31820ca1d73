# src/bundle_auditor/checks/rules/runtime.py
"""
Checks that read the summary of an external preview run.

The preview runner loads the creative in a browser and reports counters (dialogs,
cookies, long tasks, timings). When no summary is supplied these checks
keep their 'nothing observed' verdict and say that nothing was measured.
"""
import math
import re
from typing import List, Optional

from bundle_auditor.checks.core import CheckContext, CheckOutcome, check_spec
from bundle_auditor.model import RuntimeSummary

NO_RUNTIME_DATA = "Runtime data not available"
CPU_WINDOW_MS = 3000


def _runtime(ctx: CheckContext) -> RuntimeSummary:
    return ctx.runtime or RuntimeSummary()


def _with_runtime_note(ctx: CheckContext, messages: List[str]) -> List[str]:
    return messages if ctx.runtime else messages + [NO_RUNTIME_DATA]


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


@check_spec(
    id="dialogs",
    title="Dialogs and Modals",
    description="IAB: No use of alert(), confirm(), or prompt().",
    profiles=["IAB"],
    priority="required"
)
def check_dialogs(ctx: CheckContext) -> CheckOutcome:
    count = _runtime(ctx).dialogs
    messages = [f"Count: {count}"]
    if count > 0:
        messages.extend(["Dialog calls detected (alert/confirm/prompt)", "Use custom UI elements instead"])
        return "FAIL", messages, []
    return "PASS", _with_runtime_note(ctx, messages), []


@check_spec(
    id="cookies",
    title="Cookies Dropped",
    description="IAB: No cookies may be set by the creative.",
    profiles=["IAB"],
    priority="required"
)
def check_cookies(ctx: CheckContext) -> CheckOutcome:
    count = _runtime(ctx).cookies
    messages = [f"Cookie sets: {count}"]
    if count > 0:
        messages.extend([
            "Cookie writes detected",
            "Use ad server frequency capping instead",
            "Remove all document.cookie writes",
        ])
        return "FAIL", messages, []
    return "PASS", _with_runtime_note(ctx, messages), []


@check_spec(
    id="localStorage",
    title="Local Storage",
    description="IAB: No use of localStorage API (runtime detection).",
    profiles=["IAB"],
    priority="required"
)
def check_local_storage(ctx: CheckContext) -> CheckOutcome:
    count = _runtime(ctx).local_storage
    messages = [f"setItem calls: {count}"]
    if count > 0:
        messages.extend([
            "localStorage usage detected",
            "Remove all localStorage.setItem() calls",
            "Use ad server frequency capping",
        ])
        return "FAIL", messages, []
    return "PASS", _with_runtime_note(ctx, messages), []


@check_spec(
    id="syntaxErrors",
    title="Syntax Errors",
    description="IAB: No uncaught JavaScript errors may occur.",
    profiles=["IAB"],
    priority="required"
)
def check_syntax_errors(ctx: CheckContext) -> CheckOutcome:
    errors = _runtime(ctx).errors
    messages = [f"Uncaught errors: {errors}"]
    if errors > 0:
        messages.extend([
            "JavaScript errors detected",
            "Check browser console for details",
            "Fix all errors before trafficking",
        ])
        return "FAIL", messages, []
    return "PASS", _with_runtime_note(ctx, messages), []


@check_spec(
    id="no-document-write",
    title="Avoid document.write()",
    description="IAB: Avoid document.write() and document.writeln().",
    profiles=["IAB"],
    priority="recommended"
)
def check_no_document_write(ctx: CheckContext) -> CheckOutcome:
    writes = _runtime(ctx).document_writes
    if writes > 0:
        return "WARN", [
            f"Calls detected: {writes}",
            "document.write() is deprecated",
            "Use DOM APIs instead (innerHTML, createElement, etc.)",
        ], []
    return "PASS", _with_runtime_note(ctx, ["No document.write usage detected"]), []


@check_spec(
    id="jquery",
    title="Uses jQuery",
    description="IAB: Avoid jQuery - use vanilla JavaScript instead.",
    profiles=["IAB"],
    priority="recommended"
)
def check_jquery(ctx: CheckContext) -> CheckOutcome:
    if _runtime(ctx).jquery:
        return "WARN", ["Detected", "jQuery adds ~30KB+ to file size", "Use vanilla JavaScript for better performance"], []
    return "PASS", _with_runtime_note(ctx, ["Not detected"]), []


@check_spec(
    id="cpu-budget",
    title="CPU Busy Budget",
    description="IAB: Creative should use <=30% CPU in first 3 seconds (Long Tasks API).",
    profiles=["IAB"],
    priority="recommended"
)
def check_cpu_budget(ctx: CheckContext) -> CheckOutcome:
    runtime = _runtime(ctx)
    budget = ctx.settings.cpu_budget_pct

    if runtime.cpu_tracking == "pending":
        return "WARN", ["Measuring CPU usage...", "Collecting Long Tasks data"], []

    if not _finite(runtime.long_tasks_ms):
        return "WARN", [NO_RUNTIME_DATA, "Preview not yet measured - reload to collect CPU budget metrics"], []

    busy_ms = max(0, min(CPU_WINDOW_MS, round(runtime.long_tasks_ms)))
    pct = round(busy_ms / CPU_WINDOW_MS * 100)
    messages = [f"Main thread busy ~{pct}% (long tasks {busy_ms} ms / {CPU_WINDOW_MS} ms)", "Measured in preview"]
    if pct > budget:
        messages.extend([
            f"Exceeded CPU budget ({pct - budget}% over)",
            "Optimize JavaScript and animations",
            "Use CSS animations when possible",
        ])
        return "FAIL", messages, []
    messages.append("Within CPU budget")
    return "PASS", messages, []


@check_spec(
    id="timeToRender",
    title="Time to Render",
    description="IAB: First visible content should appear within 500ms.",
    profiles=["IAB"],
    priority="recommended"
)
def check_time_to_render(ctx: CheckContext) -> CheckOutcome:
    target = ctx.settings.time_to_render_ms
    visual = _runtime(ctx).visual_start

    if not _finite(visual):
        return "WARN", ["Not captured", f"Target: < {target:g} ms", "Preview needed for timing measurement"], []

    messages = [f"Render start ~{round(visual)} ms", f"Target: < {target:g} ms"]
    if visual >= target:
        messages.extend([
            f"Slow render ({round(visual - target)}ms over target)",
            "Optimize critical render path",
            "Inline critical CSS, defer JavaScript",
        ])
        return "WARN", messages, []
    messages.append("Fast visual start")
    return "PASS", messages, []


@check_spec(
    id="domContentLoaded",
    title="DOMContentLoaded",
    description="IAB: DOM should be ready (DOMContentLoaded) within 1000ms.",
    profiles=["IAB"],
    priority="recommended"
)
def check_dom_content_loaded(ctx: CheckContext) -> CheckOutcome:
    target = ctx.settings.dom_content_loaded_ms
    dcl = _runtime(ctx).dom_content_loaded

    if not _finite(dcl):
        return "PASS", ["Not captured", "Preview needed for DCL measurement"], []

    messages = [f"DCL {round(dcl)} ms", f"Target: < {target:g} ms"]
    if dcl >= target:
        messages.extend([
            f"Slow DOMContentLoaded ({round(dcl - target)}ms over target)",
            "Optimize HTML parsing and script execution",
            "Use async/defer for scripts, reduce DOM complexity",
        ])
        return "FAIL", messages, []
    messages.append("Fast DOMContentLoaded")
    return "PASS", messages, []


@check_spec(
    id="timing",
    title="Timing Metrics",
    description="Reports DOMContentLoaded, Time to Render, and Frames observed",
    profiles=["CM360", "IAB"],
    priority="advisory"
)
def check_timing(ctx: CheckContext) -> CheckOutcome:
    runtime = _runtime(ctx)
    messages = [
        f"DOMContentLoaded {round(runtime.dom_content_loaded)} ms"
        if _finite(runtime.dom_content_loaded) else "DOMContentLoaded not captured",
        f"Time to Render ~{round(runtime.visual_start)} ms"
        if _finite(runtime.visual_start) else "Time to Render not captured",
        f"Frames observed {runtime.frames}" if runtime.frames is not None else "Frames not tracked",
    ]
    return "PASS", messages, []


@check_spec(
    id="creativeRendered",
    title="Creative Rendered",
    description="Validates the creative renders successfully (not blank or failed)",
    profiles=["CM360", "IAB"],
    priority="required"
)
def check_creative_rendered(ctx: CheckContext) -> CheckOutcome:
    runtime = _runtime(ctx)
    frames = runtime.frames or 0
    ok_runtime = frames > 0 or _finite(runtime.visual_start)
    ok_static = bool(ctx.html_text) and re.search(r"<body[\s>]", ctx.html_text, re.IGNORECASE) is not None

    if ok_runtime:
        messages = ["Rendered (preview confirmed)"]
        if frames > 0:
            messages.append(f"{frames} frame(s) captured")
        if _finite(runtime.visual_start):
            messages.append(f"Visual start at {round(runtime.visual_start)}ms")
        return "PASS", messages, []
    if ok_static:
        return "PASS", ["Rendered (static HTML structure detected)", "Preview recommended for confirmation"], []
    return "FAIL", [
        "No render signal captured",
        "Creative may be blank or failed to render",
        "Check for JavaScript errors or missing content",
    ], []


@check_spec(
    id="runtimeIframes",
    title="Runtime Iframes",
    description="Detects iframes created or observed at runtime",
    profiles=["CM360", "IAB"],
    priority="advisory"
)
def check_runtime_iframes(ctx: CheckContext) -> CheckOutcome:
    count = _runtime(ctx).runtime_iframes
    if count > 0:
        return "WARN", [
            f"{count} iframe(s) created/observed at runtime",
            "Review if this is intentional",
            "Dynamic iframes may bypass static checks",
        ], []
    return "PASS", _with_runtime_note(ctx, ["No runtime iframes detected", "All iframes (if any) are static"]), []
