# src/creative_shell/core/handlers/checks_handler.py
import argparse
import logging
from typing import List, Optional

from bundle_auditor.checks.registry import CheckRegistry
from bundle_auditor.model import CheckOptions
from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.services.json_service import to_json

logger = logging.getLogger(__name__)

COMMAND_HIERARCHY = None

checks_help_text = """
  checks [--profile CM360|IAB] [--priority required|recommended|advisory ...] [--json]
                      List the registered checks in execution order.
""".strip("\n")


def handle_checks(args: List[str], ctx: ShellContext, _stdin: Optional[str] = None) -> int:
    parser = argparse.ArgumentParser(prog="checks", description="List the registered checks.")
    parser.add_argument("--profile", choices=["CM360", "IAB"], default=None)
    parser.add_argument("--priority", nargs="+", choices=["required", "recommended", "advisory"], default=[])
    parser.add_argument("--json", action="store_true", help="Print the catalogue as JSON.")

    try:
        parsed_args = parser.parse_args(args)
    except SystemExit:
        return 1

    options = CheckOptions(profile=parsed_args.profile, priority=parsed_args.priority)
    checks = CheckRegistry.get_filtered_checks(options)

    if parsed_args.json:
        print(to_json([
            {
                "id": c.id,
                "title": c.title,
                "profiles": c.profiles,
                "priority": c.priority,
                "description": c.description,
            }
            for c in checks
        ]))
        return 0

    print(f"{'ID':<22} | {'PROFILES':<10} | {'PRIORITY':<11} | TITLE")
    print("-" * 80)
    for c in checks:
        print(f"{c.id:<22} | {'/'.join(c.profiles):<10} | {c.priority:<11} | {c.title}")
    print(f"\n{len(checks)} check(s)")
    return 0
