# src/bundle_auditor/services/aggregation_service.py
from typing import List

from bundle_parser.model import Reference
from bundle_auditor.model import SEVERITY_ORDER, BundleSummary, Finding, Severity


def worst(a: Severity, b: Severity) -> Severity:
    """Returns the more severe of two severities (PASS < WARN < FAIL)."""
    return a if SEVERITY_ORDER[a] >= SEVERITY_ORDER[b] else b


def count_missing_assets(references: List[Reference]) -> int:
    return sum(
        1 for ref in references
        if not ref.external and ref.type != "anchor" and ref.normalized is not None and not ref.in_zip
    )


def aggregate(findings: List[Finding], orphan_count: int = 0, missing_asset_count: int = 0) -> BundleSummary:
    """
    Derives the bundle summary from its findings.
    Any FAIL makes the bundle FAIL, otherwise any WARN makes it WARN.
    """
    fails = sum(1 for f in findings if f.severity == "FAIL")
    warns = sum(1 for f in findings if f.severity == "WARN")
    passes = sum(1 for f in findings if f.severity == "PASS")

    status: Severity = "PASS"
    if fails:
        status = "FAIL"
    elif warns:
        status = "WARN"

    return BundleSummary(
        status=status,
        total_findings=len(findings),
        fails=fails,
        warns=warns,
        passes=passes,
        orphan_count=orphan_count,
        missing_asset_count=missing_asset_count
    )
