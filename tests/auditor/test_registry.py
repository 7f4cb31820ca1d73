# tests/auditor/test_registry.py
import pytest

from bundle_auditor.checks.core import CheckDefinition, check_spec
from bundle_auditor.checks.registry import RULES, CheckRegistry
from bundle_auditor.model import CheckOptions


def test_registry_is_complete_and_unique():
    ids = CheckRegistry.get_all_check_ids()
    assert len(ids) == len(RULES) == 43
    assert len(set(ids)) == len(ids)
    assert ids[0] == "clicktag"
    assert ids[-1] == "iabWeight"


def test_lookup_by_id():
    check = CheckRegistry.get_check_by_id("hostedSize")
    assert check.title == "Hosted File Size"
    assert check.profiles == ["IAB"]
    assert CheckRegistry.get_check_by_id("does-not-exist") is None


def test_profile_filter():
    cm360 = CheckRegistry.get_checks_by_profile("CM360")
    iab = CheckRegistry.get_checks_by_profile("IAB")
    assert all("CM360" in c.profiles for c in cm360)
    assert all("IAB" in c.profiles for c in iab)
    # Checks voor beide profielen zitten in beide lijsten
    assert "iabWeight" in {c.id for c in cm360} & {c.id for c in iab}


def test_priority_filter():
    advisory = CheckRegistry.get_checks_by_priority("advisory")
    assert {"orphaned-assets", "timing", "runtimeIframes"} <= {c.id for c in advisory}
    assert all(c.priority == "advisory" for c in advisory)


def test_filtered_checks_keep_declaration_order():
    options = CheckOptions(profile="CM360", priority=["required"], exclude=["clicktag"])
    selected = [c.id for c in CheckRegistry.get_filtered_checks(options)]
    all_ids = CheckRegistry.get_all_check_ids()

    assert "clicktag" not in selected
    assert selected == [i for i in all_ids if i in selected]


def test_include_filter():
    options = CheckOptions(include=["https-only", "pkg-format"])
    assert [c.id for c in CheckRegistry.get_filtered_checks(options)] == ["pkg-format", "https-only"]


def test_undecorated_rule_is_rejected():
    def plain(ctx):
        return "PASS", [], []

    with pytest.raises(ValueError):
        CheckDefinition(plain)


def test_both_profile_applies_everywhere():
    @check_spec(id="any", title="Any", description="d", profiles=["BOTH"])
    def rule(ctx):
        return "PASS", [], []

    check = CheckDefinition(rule)
    assert check.applies_to("CM360") and check.applies_to("IAB")
