# tests/auditor/test_aggregation.py
import pytest

from bundle_parser.model import Reference
from bundle_auditor.model import Finding
from bundle_auditor.services.aggregation_service import aggregate, count_missing_assets, worst


def _finding(severity, check_id="x"):
    return Finding(id=check_id, title=check_id, severity=severity)


@pytest.mark.parametrize("severities, expected", [
    (["PASS", "WARN", "FAIL"], "FAIL"),
    (["FAIL"] + ["PASS"] * 40, "FAIL"),
    (["WARN", "PASS", "WARN"], "WARN"),
    (["PASS", "PASS"], "PASS"),
    ([], "PASS"),
])
def test_status_precedence(severities, expected):
    summary = aggregate([_finding(s) for s in severities])
    assert summary.status == expected
    assert summary.total_findings == len(severities)
    assert summary.fails + summary.warns + summary.passes == len(severities)


def test_summary_serializes_pass_alias():
    data = aggregate([_finding("PASS")], orphan_count=2, missing_asset_count=1).model_dump(by_alias=True)
    assert data["pass"] == 1
    assert data["orphan_count"] == 2
    assert data["missing_asset_count"] == 1


def test_worst():
    assert worst("PASS", "WARN") == "WARN"
    assert worst("FAIL", "WARN") == "FAIL"
    assert worst("PASS", "PASS") == "PASS"


def test_count_missing_assets():
    refs = [
        Reference(from_path="index.html", type="image", url="a.png", normalized="a.png", in_zip=True),
        Reference(from_path="index.html", type="image", url="gone.png", normalized="gone.png", in_zip=False),
        Reference(from_path="index.html", type="anchor", url="page.html", normalized="page.html", in_zip=False),
        Reference(from_path="index.html", type="script", url="https://cdn/x.js", external=True),
    ]
    assert count_missing_assets(refs) == 1
