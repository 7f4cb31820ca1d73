# src/bundle_auditor/checks/registry.py
import logging
from typing import Dict, List, Optional

from bundle_auditor.checks.core import CheckDefinition
from bundle_auditor.checks.rules import cm360, iab, packaging, runtime, validation
from bundle_auditor.model import CheckOptions

logger = logging.getLogger(__name__)

# Declaration order is the order of sequential execution and of reports
RULES = [
    cm360.check_click_tag,
    packaging.check_packaging,
    packaging.check_allowed_extensions,
    packaging.check_file_limits,
    cm360.check_entry_html,
    packaging.check_filenames,
    cm360.check_iframe_safe,
    cm360.check_no_web_storage,
    cm360.check_gwd_environment,
    cm360.check_hardcoded_click,
    iab.check_hosted_count,
    iab.check_hosted_size,
    iab.check_css_embedded,
    iab.check_index_file,
    iab.check_video,
    runtime.check_dialogs,
    runtime.check_cookies,
    runtime.check_local_storage,
    runtime.check_syntax_errors,
    runtime.check_no_document_write,
    runtime.check_jquery,
    iab.check_html5_library,
    iab.check_minified,
    iab.check_measurement,
    iab.check_relative_paths,
    iab.check_images_optimized,
    iab.check_iframes,
    iab.check_no_backup_in_zip,
    iab.check_host_requests,
    runtime.check_cpu_budget,
    runtime.check_time_to_render,
    runtime.check_dom_content_loaded,
    iab.check_animation_cap,
    iab.check_border,
    runtime.check_timing,
    runtime.check_creative_rendered,
    runtime.check_runtime_iframes,
    validation.check_invalid_url_refs,
    validation.check_orphaned_assets,
    validation.check_invalid_markup,
    cm360.check_https_only,
    cm360.check_primary_asset,
    iab.check_weight_budgets,
]


class CheckRegistry:
    """
    Fixed, ordered collection of every check known to the engine.

    Built once on first use and read-only afterwards.
    """

    _checks: List[CheckDefinition] = []
    _by_id: Dict[str, CheckDefinition] = {}
    _loaded: bool = False

    @classmethod
    def load(cls) -> None:
        if cls._loaded:
            return

        checks = [CheckDefinition(rule) for rule in RULES]
        by_id: Dict[str, CheckDefinition] = {}
        for check in checks:
            if check.id in by_id:
                raise ValueError(f"Duplicate check id: {check.id}")
            by_id[check.id] = check

        cls._checks = checks
        cls._by_id = by_id
        cls._loaded = True
        logger.debug(f"Check registry loaded: {len(checks)} checks")

    @classmethod
    def all(cls) -> List[CheckDefinition]:
        cls.load()
        return list(cls._checks)

    @classmethod
    def get_check_by_id(cls, check_id: str) -> Optional[CheckDefinition]:
        cls.load()
        return cls._by_id.get(check_id)

    @classmethod
    def get_all_check_ids(cls) -> List[str]:
        return [c.id for c in cls.all()]

    @classmethod
    def get_checks_by_profile(cls, profile: str) -> List[CheckDefinition]:
        return [c for c in cls.all() if c.applies_to(profile)]

    @classmethod
    def get_checks_by_priority(cls, priority: str) -> List[CheckDefinition]:
        return [c for c in cls.all() if c.priority == priority]

    @classmethod
    def get_filtered_checks(cls, options: Optional[CheckOptions] = None) -> List[CheckDefinition]:
        """
        Applies profile, priority and include/exclude filters, keeping declaration order.
        No options (or empty ones) selects every check.
        """
        return filter_checks(cls.all(), options)


def filter_checks(checks: List[CheckDefinition], options: Optional[CheckOptions]) -> List[CheckDefinition]:
    if options is None:
        return list(checks)
    if options.profile:
        checks = [c for c in checks if c.applies_to(options.profile)]
    if options.priority:
        checks = [c for c in checks if c.priority in options.priority]
    if options.include:
        wanted = set(options.include)
        checks = [c for c in checks if c.id in wanted]
    if options.exclude:
        unwanted = set(options.exclude)
        checks = [c for c in checks if c.id not in unwanted]
    return list(checks)
