# tests/shell/test_handlers.py
import json

import pandas as pd
import pytest

from bundle_auditor.checks.registry import CheckRegistry
from creative_shell import app
from creative_shell.core.command_registry import COMMAND_HELP_TEXTS, CommandRegistry, register_all_commands
from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.handlers.audit_handler import handle_audit
from creative_shell.core.handlers.checks_handler import handle_checks
from creative_shell.core.handlers.help_handler import handle_help
from creative_shell.core.handlers.quit_handler import handle_quit


@pytest.fixture
def ctx():
    return ShellContext()


def test_register_all_commands():
    """Alle *_handler modules worden gevonden en geregistreerd."""
    register_all_commands()
    assert {"audit", "checks", "config", "help", "quit"} <= set(CommandRegistry)
    assert "audit" in COMMAND_HELP_TEXTS


def test_help_lists_every_command(ctx, capsys):
    register_all_commands()
    assert handle_help([], ctx) == 0
    out = capsys.readouterr().out
    assert "Creative Shell - Help" in out
    for name in ("audit", "checks", "config"):
        assert f"  {name}" in out


def test_quit_returns_exit_code(ctx):
    assert handle_quit([], ctx) == 130


def test_checks_json(ctx, capsys):
    assert handle_checks(["--json"], ctx) == 0
    catalogue = json.loads(capsys.readouterr().out)
    assert [c["id"] for c in catalogue] == CheckRegistry.get_all_check_ids()


def test_checks_table_filtered_by_priority(ctx, capsys):
    assert handle_checks(["--priority", "required"], ctx) == 0
    out = capsys.readouterr().out
    expected = len(CheckRegistry.get_checks_by_priority("required"))
    assert f"{expected} check(s)" in out


def test_checks_bad_argument(ctx):
    assert handle_checks(["--profile", "DV360"], ctx) == 1


def test_audit_json_output(ctx, capsys, write_zip, simple_files):
    path = write_zip(simple_files)
    assert handle_audit([str(path), "--include", "clicktag", "pkg-format", "--json"], ctx) == 0

    results = json.loads(capsys.readouterr().out)
    assert len(results) == 1
    assert results[0]["bundle_name"] == path.name
    assert [f["id"] for f in results[0]["findings"]] == ["clicktag", "pkg-format"]
    assert "pass" in results[0]["summary"]
    assert len(ctx.last_results) == 1


def test_audit_prints_details_for_single_bundle(ctx, capsys, write_zip):
    path = write_zip({"index.html": "<html><body>no click</body></html>"})
    assert handle_audit([str(path), "--include", "clicktag"], ctx) == 0
    out = capsys.readouterr().out
    assert "AUDIT SUMMARY" in out
    assert "clicktag" in out


def test_audit_export(ctx, capsys, write_zip, simple_files, tmp_path):
    path = write_zip(simple_files)
    report = tmp_path / "reports" / "audit.csv"
    assert handle_audit([str(path), "--include", "clicktag", "--export", str(report)], ctx) == 0
    assert "Report exported" in capsys.readouterr().out
    assert len(pd.read_csv(report)) == 1


def test_audit_unreadable_bundle_returns_error(ctx, capsys, tmp_path):
    assert handle_audit([str(tmp_path / "missing.zip")], ctx) == 1
    assert "does not exist" in capsys.readouterr().out


def test_audit_warns_on_unknown_check_id(ctx, capsys, write_zip, simple_files):
    path = write_zip(simple_files)
    handle_audit([str(path), "--include", "clicktag", "no-such-check"], ctx)
    assert "Unknown check id(s) ignored: no-such-check" in capsys.readouterr().out


def test_audit_with_runtime_summary(ctx, capsys, write_zip, simple_files, tmp_path):
    summary_file = tmp_path / "runtime.json"
    summary_file.write_text(json.dumps({"dialogs": 2}))
    path = write_zip(simple_files)

    assert handle_audit([str(path), "--include", "dialogs", "--runtime", str(summary_file), "--json"], ctx) == 0
    finding = json.loads(capsys.readouterr().out)[0]["findings"][0]
    assert finding["severity"] == "FAIL"


def test_audit_bad_runtime_file(ctx, capsys, write_zip, simple_files, tmp_path):
    summary_file = tmp_path / "runtime.json"
    summary_file.write_text("{not json")
    assert handle_audit([str(write_zip(simple_files)), "--runtime", str(summary_file)], ctx) == 1


def test_execute_line_dispatches(ctx, capsys):
    register_all_commands()
    assert app.execute_line("checks --json", ctx) == 0
    assert app.execute_line("", ctx) == 0
    assert app.execute_line("nonsense", ctx) == 1
    assert app.execute_line('audit "unclosed', ctx) == 1


def test_main_one_shot(capsys):
    assert app.main(["checks"]) == 0
    assert app.main(["quit"]) == 0
    assert app.main(["nonsense"]) == 1


def test_context_keeps_only_last_run(ctx, capsys, write_zip, simple_files):
    """Elke audit vervangt de bewaarde resultaten van de vorige run."""
    first = write_zip(simple_files, name="a_300x250.zip")
    second = write_zip(simple_files, name="b_300x250.zip")

    handle_audit([str(first), str(second), "--include", "clicktag", "--workers", "1"], ctx)
    assert [r.bundle_name for r in ctx.last_results] == ["a_300x250.zip", "b_300x250.zip"]

    handle_audit([str(second), "--include", "clicktag"], ctx)
    assert [r.bundle_name for r in ctx.last_results] == ["b_300x250.zip"]
    assert repr(ctx) == "<ShellContext results=1>"
