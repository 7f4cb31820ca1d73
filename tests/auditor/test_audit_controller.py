# tests/auditor/test_audit_controller.py
from unittest.mock import MagicMock

import pytest

from bundle_auditor.checks.registry import CheckRegistry
from bundle_auditor.controllers.audit_controller import AuditController, _worker_audit_bundle
from bundle_auditor.model import AuditSettings, CheckOptions, Finding, RuntimeSummary


def test_audit_bundle_scenario(make_archive, simple_files):
    """Volledige pipeline: discovery, parsing, metrics, checks en aggregatie."""
    result = AuditController().audit_bundle(make_archive(simple_files))

    assert result.primary == "index.html"
    assert result.ad_size.token == "300x250"
    assert result.ad_size.source.method == "meta"

    images = [r for r in result.references if r.type == "image"]
    assert len(images) == 1
    assert images[0].in_zip and images[0].normalized == "logo.png"

    assert result.initial_requests == 2
    assert result.subsequent_requests == 0
    assert result.zipped_bytes > 0

    assert len(result.findings) == len(CheckRegistry.all())
    assert result.summary.total_findings == len(result.findings)
    expected = "FAIL" if any(f.severity == "FAIL" for f in result.findings) else (
        "WARN" if any(f.severity == "WARN" for f in result.findings) else "PASS")
    assert result.summary.status == expected


def test_audit_is_idempotent(make_archive, simple_files):
    archive = make_archive(dict(simple_files, **{"extra.js": "var a = 1;"}))
    controller = AuditController()
    first = controller.audit_bundle(archive, options=CheckOptions(parallel=False))
    second = controller.audit_bundle(archive, options=CheckOptions(parallel=False))
    assert first.model_dump() == second.model_dump()
    assert first.summary.orphan_count == 1


def test_bundle_without_html_still_runs_all_checks(make_archive):
    result = AuditController().audit_bundle(make_archive({"logo.png": b"x"}))
    assert result.primary is None
    assert result.references == []
    assert result.ad_size is None
    assert result.discovery_messages == ["No HTML files present"]
    assert len(result.findings) == len(CheckRegistry.all())
    assert result.summary.status == "FAIL"


def test_options_filter_findings(make_archive, simple_files):
    options = CheckOptions(include=["clicktag", "iabWeight"], parallel=False)
    result = AuditController(options=options).audit_bundle(make_archive(simple_files))
    assert [f.id for f in result.findings] == ["clicktag", "iabWeight"]


def test_missing_assets_are_counted(make_archive):
    result = AuditController().audit_bundle(make_archive({"index.html": '<img src="a.png"><img src="b.png">', "a.png": b"x"}))
    assert result.summary.missing_asset_count == 1


def test_run_audit_collects_errors(tmp_path, write_zip, simple_files):
    good = write_zip(simple_files, name="good_300x250.zip")
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"not a zip")

    calls = []
    controller = AuditController()
    summary = controller.run_audit(
        [str(good), str(bad)], workers=1, progress_callback=lambda i, total: calls.append((i, total))
    )

    assert summary["total_bundles"] == 2
    assert summary["audited"] == 1
    assert summary["failed_to_read"] == 1
    assert controller.errors[0]["path"] == str(bad)
    assert calls == [(1, 2), (2, 2)]


@pytest.mark.parametrize("workers", [1, 2])
def test_corrupt_bundle_does_not_stop_the_run(write_broken_zip, write_zip, simple_files, workers):
    """Een kapotte deflate-stroom wordt een foutregel; de volgende bundel wordt nog steeds geaudit."""
    broken = write_broken_zip()
    good = write_zip(simple_files, name="good_300x250.zip")

    controller = AuditController(options=CheckOptions(include=["clicktag"]))
    summary = controller.run_audit([str(broken), str(good)], workers=workers)

    assert summary["audited"] == 1
    assert summary["failed_to_read"] == 1
    assert controller.errors[0]["path"] == str(broken)
    assert [r.bundle_name for r in controller.results] == ["good_300x250.zip"]


def test_unexpected_error_is_recorded_per_bundle(write_zip, simple_files, monkeypatch):
    """Ook een onverwachte fout tijdens de audit stopt een sequentiële run niet."""
    paths = [str(write_zip(simple_files, name=f"ad{i}_300x250.zip")) for i in range(2)]
    controller = AuditController()
    original = controller.audit_bundle

    def flaky(archive, runtime=None, options=None):
        if archive.name == "ad0_300x250.zip":
            raise KeyError("boom")
        return original(archive, runtime=runtime, options=options)

    monkeypatch.setattr(controller, "audit_bundle", flaky)
    summary = controller.run_audit(paths, workers=1)

    assert summary["audited"] == 1
    assert controller.errors[0]["path"] == paths[0]
    assert "boom" in controller.errors[0]["error"]

def test_run_audit_with_worker_processes(write_zip, simple_files):
    paths = [str(write_zip(simple_files, name=f"ad{i}_300x250.zip")) for i in range(2)]

    controller = AuditController(AuditSettings(), CheckOptions(include=["iabWeight"]))
    summary = controller.run_audit(paths, workers=2, runtime=RuntimeSummary(dialogs=1))

    assert summary["audited"] == 2
    assert [r.bundle_name for r in controller.results] == ["ad0_300x250.zip", "ad1_300x250.zip"]
    assert all(len(r.findings) == 1 for r in controller.results)


def test_worker_returns_error_dict(tmp_path):
    outcome = _worker_audit_bundle(str(tmp_path / "missing.zip"), {}, {}, None)
    assert outcome["path"].endswith("missing.zip")
    assert "does not exist" in outcome["error"]


def test_engine_receives_context_and_options(make_archive, simple_files):
    """De controller geeft context en opties door en aggregeert wat de engine teruggeeft."""
    options = CheckOptions(profile="IAB")
    controller = AuditController(options=options)
    controller.engine = MagicMock()
    controller.engine.run_checks.return_value = [
        Finding(id="a", title="A", severity="WARN", messages=[], offenders=[]),
        Finding(id="b", title="B", severity="PASS", messages=[], offenders=[]),
    ]

    result = controller.audit_bundle(make_archive(simple_files))

    context, passed_options = controller.engine.run_checks.call_args.args
    assert passed_options is options
    assert context.is_iab_profile is True
    assert context.entry_name == "index.html"
    assert result.summary.status == "WARN"
    assert [f.id for f in result.findings] == ["a", "b"]
