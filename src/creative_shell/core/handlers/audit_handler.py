# src/creative_shell/core/handlers/audit_handler.py
import argparse
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from tqdm.auto import tqdm

from bundle_auditor.checks.registry import CheckRegistry
from bundle_auditor.controllers.audit_controller import AuditController
from bundle_auditor.controllers.report_controller import ReportController
from bundle_auditor.model import BundleResult, CheckOptions, RuntimeSummary
from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.managers.config_manager import config_manager
from creative_shell.core.services.json_service import to_json
from creative_shell.core.utils.path_utils import PathUtils

logger = logging.getLogger(__name__)

COMMAND_HIERARCHY = None

SEVERITY_ICONS = {"FAIL": "❌", "WARN": "⚠️ ", "PASS": "✅"}

audit_help_text = """
  audit <path>... [--profile CM360|IAB] [--priority <tier> ...] [--include <id> ...]
        [--exclude <id> ...] [--sequential] [--timeout <s>] [--runtime <runtime.json>]
        [--workers <n>] [--export <file.csv|json|xlsx>] [--json]
                      Audit one or more creative bundles (.zip/.adz or folders).
""".strip("\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="audit", description="Audit HTML5 creative bundles.")
    parser.add_argument("paths", nargs="+", help="Bundle files (.zip/.adz) or extracted folders.")
    parser.add_argument("--profile", choices=["CM360", "IAB"], default=None, help="Only run checks of this profile.")
    parser.add_argument("--priority", nargs="+", choices=["required", "recommended", "advisory"], default=[])
    parser.add_argument("--include", nargs="+", default=[], help="Only run these check ids.")
    parser.add_argument("--exclude", nargs="+", default=[], help="Skip these check ids.")
    parser.add_argument("--sequential", action="store_true", help="Run checks one after another.")
    parser.add_argument("--timeout", type=float, default=None, help="Per-check timeout in seconds.")
    parser.add_argument("--runtime", default=None, help="JSON summary from a preview run.")
    parser.add_argument("--workers", type=int, default=None, help="Worker processes for bulk audits.")
    parser.add_argument("--export", default=None, help="Write findings to .csv, .json or .xlsx.")
    parser.add_argument("--json", action="store_true", help="Print full results as JSON.")
    return parser


def _load_runtime(path: str) -> RuntimeSummary:
    with open(path, "r", encoding="utf-8") as f:
        return RuntimeSummary.model_validate(json.load(f))


def handle_audit(args: List[str], ctx: ShellContext, _stdin: Optional[str] = None) -> int:
    """
    Audits the given bundles and prints a per-bundle summary.

    Returns:
        0 when every bundle was audited, 1 on argument, config or read errors.
    """
    try:
        parsed_args = _build_parser().parse_args(args)
    except SystemExit:
        return 1

    try:
        settings = config_manager.audit_settings()
    except ValidationError as e:
        print(f"❌ Invalid audit configuration: {e}")
        return 1
    if parsed_args.profile:
        settings = settings.model_copy(update={"profile": parsed_args.profile})

    defaults = config_manager.check_options()
    options = CheckOptions(
        profile=parsed_args.profile,
        priority=parsed_args.priority,
        include=parsed_args.include,
        exclude=parsed_args.exclude,
        parallel=defaults.parallel and not parsed_args.sequential,
        timeout=parsed_args.timeout if parsed_args.timeout else defaults.timeout
    )

    known_ids = set(CheckRegistry.get_all_check_ids())
    unknown = [cid for cid in options.include + options.exclude if cid not in known_ids]
    if unknown:
        print(f"⚠️  Unknown check id(s) ignored: {', '.join(unknown)}")

    runtime = None
    if parsed_args.runtime:
        try:
            runtime = _load_runtime(parsed_args.runtime)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            print(f"❌ Could not load runtime summary '{parsed_args.runtime}': {e}")
            return 1

    workers = parsed_args.workers or int(config_manager.get_nested("audit.workers", 1))
    paths = [str(Path(p).expanduser()) for p in parsed_args.paths]
    controller = AuditController(settings, options)

    if not parsed_args.json:
        print(f"🚀 Auditing {len(paths)} bundle(s)...")

    pbar = tqdm(total=len(paths), desc="Auditing", unit="bundle", disable=len(paths) < 2 or parsed_args.json)

    def progress_update(current, total):
        pbar.n = current
        pbar.refresh()

    start = time.perf_counter()
    summary = controller.run_audit(paths, workers=workers, runtime=runtime, progress_callback=progress_update)
    duration = time.perf_counter() - start
    pbar.close()

    ctx.remember_results(controller.results)

    if parsed_args.json:
        print(to_json(controller.results))
    else:
        for result in controller.results:
            _print_result(result, detailed=len(paths) == 1)
        _print_summary(summary, duration)

    for error in controller.errors:
        print(f"❌ {error['path']}: {error['error']}")

    if parsed_args.export and controller.results:
        try:
            out_path = ReportController(controller.results).export(PathUtils.resolve_export_path(parsed_args.export))
            print(f"✅ Report exported to: {out_path}")
        except (ValueError, OSError) as e:
            print(f"❌ Error exporting: {e}")
            return 1

    return 1 if controller.errors else 0


def _print_result(result: BundleResult, detailed: bool) -> None:
    size = result.ad_size.token if result.ad_size else "unknown size"
    s = result.summary
    print(f"\n{SEVERITY_ICONS[s.status]} {result.bundle_name}  [{size}]  primary: {result.primary or '-'}")
    print(f"   {s.fails} fail, {s.warns} warn, {s.passes} pass | "
          f"initial {result.initial_bytes / 1024:.1f} KB, subload {result.subsequent_bytes / 1024:.1f} KB, "
          f"zip {result.zipped_bytes / 1024:.1f} KB")
    for message in result.discovery_messages:
        print(f"   ℹ️  {message}")

    if not detailed:
        return
    for finding in result.findings:
        if finding.severity == "PASS":
            continue
        print(f"   {SEVERITY_ICONS[finding.severity]} {finding.id}: {finding.title}")
        for message in finding.messages:
            print(f"        {message}")
        for offender in finding.offenders[:5]:
            where = f"{offender.path}:{offender.line}" if offender.line else offender.path
            print(f"        - {where} {offender.detail or ''}".rstrip())
        if len(finding.offenders) > 5:
            print(f"        ... {len(finding.offenders) - 5} more")


def _print_summary(summary, duration: float) -> None:
    print("\n" + "=" * 60)
    print("📊 AUDIT SUMMARY")
    print("=" * 60)
    print(f"Bundles:             {summary.get('total_bundles', 0)}")
    print(f"Audited:             {summary.get('audited', 0)}")
    print(f"Unreadable:          {summary.get('failed_to_read', 0)}")
    print(f"FAIL / WARN / PASS:  {summary.get('fail', 0)} / {summary.get('warn', 0)} / {summary.get('pass', 0)}")
    print(f"Duration:            {duration:.2f} seconds")
    print("=" * 60 + "\n")
