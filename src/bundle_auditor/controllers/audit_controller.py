import logging
from concurrent.futures import ProcessPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from bundle_parser.controllers.parse_controller import ParseController
from bundle_parser.model import Archive
from bundle_parser.services.archive_reader_service import ArchiveReadError, ArchiveReaderService
from bundle_parser.services.primary_discovery_service import PrimaryDiscoveryService
from bundle_auditor.checks.core import CheckContext
from bundle_auditor.checks.engine import CheckEngine
from bundle_auditor.model import AuditSettings, BundleResult, CheckOptions, RuntimeSummary
from bundle_auditor.services.aggregation_service import aggregate, count_missing_assets
from bundle_auditor.services.load_phase_service import CompressedSizeCache, calculate_load_phase_metrics

logger = logging.getLogger(__name__)


def _worker_audit_bundle(
        path: str,
        settings_data: Dict[str, Any],
        options_data: Dict[str, Any],
        runtime_data: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Worker function to read and audit a single bundle in a separate process.
    Returns the serialized BundleResult, or an error dict so the batch continues.
    """
    try:
        archive = ArchiveReaderService().read(path)
        controller = AuditController(AuditSettings(**settings_data), CheckOptions(**options_data))
        runtime = RuntimeSummary.model_validate(runtime_data) if runtime_data else None
        result = controller.audit_bundle(archive, runtime=runtime)
        return {"path": path, "result": result.model_dump()}
    except ArchiveReadError as e:
        logger.error(f"Could not read bundle {path}: {e}")
        return {"path": path, "error": str(e)}
    except Exception as e:
        logger.error(f"Worker failed on {path}: {e}")
        return {"path": path, "error": str(e)}


class AuditController:
    """
    Orchestrates the audit of creative bundles: discovery, parsing,
    load-phase metrics, check execution and aggregation.

    The compressed-size cache lives as long as the controller, i.e. one audit run.
    """

    def __init__(self, settings: Optional[AuditSettings] = None, options: Optional[CheckOptions] = None):
        self.settings = settings or AuditSettings()
        self.options = options or CheckOptions()

        self.discovery = PrimaryDiscoveryService()
        self.parser = ParseController()
        self.engine = CheckEngine()
        self.size_cache = CompressedSizeCache()

        # Results buffers for bulk runs
        self.results: List[BundleResult] = []
        self.errors: List[Dict[str, str]] = []

    def build_context(
            self,
            archive: Archive,
            runtime: Optional[RuntimeSummary] = None,
            options: Optional[CheckOptions] = None
    ) -> CheckContext:
        """
        Runs discovery, parsing and load-phase metrics, and packs the
        partial BundleResult into the read-only context the checks receive.
        """
        options = options or self.options

        discovery = self.discovery.discover(archive)
        primary = discovery.primary
        for message in discovery.messages:
            logger.debug(f"{archive.name}: {message}")

        html_text = archive.read_text(primary) if primary else ""
        parsed = self.parser.parse_primary(archive, primary)
        metrics = calculate_load_phase_metrics(archive, parsed.references, primary or "", self.size_cache)

        partial_result = BundleResult(
            bundle_id=archive.id,
            bundle_name=archive.name,
            primary=primary,
            ad_size=parsed.ad_size,
            references=parsed.references,
            total_bytes=metrics.total_bytes,
            zipped_bytes=len(archive.raw_bytes),
            initial_bytes=metrics.initial_bytes,
            subsequent_bytes=metrics.subload_bytes,
            initial_requests=metrics.initial_requests,
            subsequent_requests=metrics.subload_requests,
            total_requests=metrics.total_requests,
            initial_hosts=metrics.initial_hosts,
            total_hosts=metrics.total_hosts,
            discovery_messages=discovery.messages
        )

        return CheckContext(
            archive=archive,
            partial=partial_result,
            settings=self.settings,
            files=archive.paths,
            primary=primary,
            html_text=html_text,
            entry_name=primary.split("/")[-1] if primary else None,
            is_iab_profile=(options.profile or self.settings.profile) == "IAB",
            runtime=runtime
        )

    def audit_bundle(
            self,
            archive: Archive,
            runtime: Optional[RuntimeSummary] = None,
            options: Optional[CheckOptions] = None
    ) -> BundleResult:
        """
        Audits one in-memory bundle and returns its complete result.

        Args:
            archive: The bundle to audit.
            runtime: Optional counters from an external preview run.
            options: Check filters for this bundle; defaults to the controller's.

        Returns:
            BundleResult: references, ad size, load metrics, findings and summary.
        """
        options = options or self.options
        context = self.build_context(archive, runtime=runtime, options=options)
        partial_result = context.partial

        findings = self.engine.run_checks(context, options)
        summary = aggregate(
            findings,
            orphan_count=partial_result.subsequent_requests,
            missing_asset_count=count_missing_assets(partial_result.references)
        )

        logger.info(
            f"{archive.name}: {summary.status} ({summary.fails} fail, {summary.warns} warn, {summary.passes} pass)"
        )
        return partial_result.model_copy(update={"findings": findings, "summary": summary})

    def audit_path(self, path: str, runtime: Optional[RuntimeSummary] = None) -> BundleResult:
        """Reads a .zip/.adz file or a folder and audits it. Raises ArchiveReadError on unreadable input."""
        return self.audit_bundle(ArchiveReaderService().read(path), runtime=runtime)

    def run_audit(
            self,
            paths: List[str],
            workers: int = 4,
            runtime: Optional[RuntimeSummary] = None,
            progress_callback: Optional[Callable[[int, int], None]] = None
    ) -> Dict[str, Any]:
        """Audits many bundles, in worker processes when more than one worker is requested."""
        self.results = []
        self.errors = []
        total = len(paths)

        if workers <= 1 or total <= 1:
            for i, path in enumerate(paths):
                try:
                    self.results.append(self.audit_path(path, runtime=runtime))
                except ArchiveReadError as e:
                    logger.error(f"Could not read bundle {path}: {e}")
                    self.errors.append({"path": path, "error": str(e)})
                except Exception as e:
                    logger.error(f"Audit failed on {path}: {e}")
                    self.errors.append({"path": path, "error": str(e)})
                if progress_callback:
                    progress_callback(i + 1, total)
            return self._run_summary(total)

        runtime_data = runtime.model_dump(by_alias=True) if runtime else None
        with ProcessPoolExecutor(max_workers=workers) as executor:
            func = partial(
                _worker_audit_bundle,
                settings_data=self.settings.model_dump(),
                options_data=self.options.model_dump(),
                runtime_data=runtime_data
            )
            for i, outcome in enumerate(executor.map(func, paths)):
                if progress_callback:
                    progress_callback(i + 1, total)
                if "error" in outcome:
                    self.errors.append({"path": outcome["path"], "error": outcome["error"]})
                    continue
                self.results.append(BundleResult.model_validate(outcome["result"]))

        return self._run_summary(total)

    def _run_summary(self, total: int) -> Dict[str, Any]:
        statuses = [r.summary.status for r in self.results]
        return {
            "total_bundles": total,
            "audited": len(self.results),
            "failed_to_read": len(self.errors),
            "fail": statuses.count("FAIL"),
            "warn": statuses.count("WARN"),
            "pass": statuses.count("PASS"),
        }
