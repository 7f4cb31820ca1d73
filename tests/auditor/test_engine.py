# tests/auditor/test_engine.py
import asyncio
import time

import pytest

from bundle_auditor.checks.core import CheckDefinition, check_spec
from bundle_auditor.checks.engine import CheckEngine
from bundle_auditor.checks.registry import CheckRegistry
from bundle_auditor.model import CheckOptions


@check_spec(id="always-throws", title="Always Throws", description="Instrumented failure", profiles=["CM360"])
def always_throws(ctx):
    raise RuntimeError("kaboom")


@check_spec(id="slow-check", title="Slow", description="Sleeps", profiles=["IAB"], priority="advisory")
async def slow_check(ctx):
    await asyncio.sleep(5)
    return "PASS", ["done"], []


@check_spec(id="async-ok", title="Async OK", description="Async rule", profiles=["IAB"])
async def async_ok(ctx):
    await asyncio.sleep(0)
    return "WARN", ["async works"], []


@check_spec(id="blocking-check", title="Blocking", description="Blocks its thread", profiles=["IAB"])
def blocking_check(ctx):
    time.sleep(1.0)
    return "PASS", ["finished"], []


@check_spec(id="sync-ok", title="Sync OK", description="Quick sync rule", profiles=["IAB"])
def sync_ok(ctx):
    return "PASS", ["quick"], []


@pytest.fixture
def context(make_context, simple_files):
    return make_context(simple_files)


@pytest.mark.parametrize("parallel", [True, False])
def test_fault_isolation(context, parallel):
    """Eén check die altijd faalt mag de andere checks niet tegenhouden."""
    checks = CheckRegistry.all() + [CheckDefinition(always_throws)]
    findings = CheckEngine(checks).run_checks(context, CheckOptions(parallel=parallel))

    assert len(findings) == len(checks)
    broken = next(f for f in findings if f.id == "always-throws")
    assert broken.severity == "FAIL"
    assert broken.messages == ["Check failed: kaboom"]
    assert broken.profiles == ["CM360"]
    assert broken.description == "Instrumented failure"


def test_sequential_keeps_registry_order(context):
    findings = CheckEngine().run_checks(context, CheckOptions(parallel=False))
    assert [f.id for f in findings] == CheckRegistry.get_all_check_ids()


def test_findings_carry_metadata(context):
    findings = CheckEngine().run_checks(context)
    by_id = {f.id: f for f in findings}
    assert by_id["iabWeight"].profiles == ["CM360", "IAB"]
    assert by_id["clicktag"].description


def test_timeout_becomes_failure(context):
    engine = CheckEngine([CheckDefinition(slow_check), CheckDefinition(async_ok)])
    findings = engine.run_checks(context, CheckOptions(timeout=0.05))

    slow = next(f for f in findings if f.id == "slow-check")
    assert slow.severity == "FAIL"
    assert slow.messages[0].startswith("Check failed: timed out")
    assert next(f for f in findings if f.id == "async-ok").severity == "WARN"


def test_filters_apply_to_custom_checks(context):
    engine = CheckEngine([CheckDefinition(always_throws), CheckDefinition(async_ok)])
    findings = engine.run_checks(context, CheckOptions(profile="IAB"))
    assert [f.id for f in findings] == ["async-ok"]


def test_run_all_checks_inside_running_loop(context):
    """De async API is bruikbaar vanuit een bestaande event loop."""
    async def runner():
        return await CheckEngine().run_all_checks(context, CheckOptions(include=["indexFile"]))

    findings = asyncio.run(runner())
    assert len(findings) == 1
    assert findings[0].severity == "PASS"


@pytest.mark.parametrize("parallel", [True, False])
def test_timeout_interrupts_blocking_sync_rule(context, parallel):
    """Een synchrone regel die blijft hangen wordt ook afgebroken en blokkeert de rest niet."""
    engine = CheckEngine([CheckDefinition(blocking_check), CheckDefinition(sync_ok)])

    start = time.perf_counter()
    findings = engine.run_checks(context, CheckOptions(timeout=0.1, parallel=parallel))
    elapsed = time.perf_counter() - start

    blocking = next(f for f in findings if f.id == "blocking-check")
    assert blocking.severity == "FAIL"
    assert blocking.messages[0].startswith("Check failed: timed out")
    assert next(f for f in findings if f.id == "sync-ok").messages == ["quick"]
    assert elapsed < 0.9
