# src/bundle_auditor/checks/engine.py
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from bundle_auditor.checks.core import CheckContext, CheckDefinition
from bundle_auditor.checks.registry import CheckRegistry, filter_checks
from bundle_auditor.model import CheckOptions, Finding

logger = logging.getLogger(__name__)


class CheckEngine:
    """
    Runs the registered checks against one bundle context.

    Every check is isolated: an exception or timeout inside one rule becomes
    a FAIL finding for that rule and never stops its siblings, so a run
    always yields exactly one finding per selected check.
    """

    def __init__(self, checks: Optional[List[CheckDefinition]] = None):
        self._checks = checks

    def select(self, options: Optional[CheckOptions]) -> List[CheckDefinition]:
        if self._checks is None:
            return CheckRegistry.get_filtered_checks(options)
        return filter_checks(self._checks, options)

    async def run_all_checks(self, context: CheckContext, options: Optional[CheckOptions] = None) -> List[Finding]:
        """
        Executes the selected checks, concurrently by default.

        Args:
            context: The shared, read-only bundle context.
            options: Filters, execution mode and an optional per-check timeout (seconds).

        Returns:
            List[Finding]: one finding per selected check. Sequential runs keep
            registry order; parallel runs return them in gather order.
        """
        options = options or CheckOptions()
        checks = self.select(options)
        logger.debug(f"Running {len(checks)} checks ({'parallel' if options.parallel else 'sequential'})")

        executor = None
        if options.timeout:
            # Sync rules only yield to wait_for when they run on a worker thread
            executor = ThreadPoolExecutor(max_workers=max(1, len(checks)), thread_name_prefix="check")
        try:
            if options.parallel:
                findings = await asyncio.gather(
                    *(self._run_one(c, context, options.timeout, executor) for c in checks)
                )
                return list(findings)

            findings = []
            for check in checks:
                findings.append(await self._run_one(check, context, options.timeout, executor))
            return findings
        finally:
            if executor is not None:
                # Do not join threads of rules that timed out
                executor.shutdown(wait=False, cancel_futures=True)

    def run_checks(self, context: CheckContext, options: Optional[CheckOptions] = None) -> List[Finding]:
        """Synchronous entry point; owns its own event loop."""
        return asyncio.run(self.run_all_checks(context, options))

    async def _run_one(
            self,
            check: CheckDefinition,
            context: CheckContext,
            timeout: Optional[float],
            executor: Optional[ThreadPoolExecutor] = None
    ) -> Finding:
        try:
            if timeout:
                finding = await asyncio.wait_for(check.execute(context, executor), timeout=timeout)
            else:
                finding = await check.execute(context)
        except asyncio.TimeoutError:
            logger.error(f"Check '{check.id}' timed out after {timeout}s")
            finding = self._failure(check, f"timed out after {timeout}s")
        except Exception as e:
            logger.error(f"Check '{check.id}' failed: {e}")
            finding = self._failure(check, str(e) or e.__class__.__name__)

        logger.debug(f"{check.id}: {finding.severity}")
        return finding.model_copy(update={"profiles": list(check.profiles), "description": check.description})

    @staticmethod
    def _failure(check: CheckDefinition, error: str) -> Finding:
        return Finding(
            id=check.id,
            title=check.title,
            severity="FAIL",
            messages=[f"Check failed: {error}"],
            offenders=[]
        )
