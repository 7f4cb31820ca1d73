# src/bundle_auditor/model.py
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bundle_parser.model import AdSize, Reference

logger = logging.getLogger(__name__)

Severity = Literal["PASS", "WARN", "FAIL"]
Profile = Literal["CM360", "IAB", "BOTH"]
Priority = Literal["required", "recommended", "advisory"]

SEVERITY_ORDER: Dict[str, int] = {"PASS": 0, "WARN": 1, "FAIL": 2}
MAX_DETAIL_LENGTH = 200


class Offender(BaseModel):
    """A file (and optionally a line) implicated by a warning or failing check."""
    model_config = ConfigDict(frozen=True)

    path: str
    line: Optional[int] = None
    detail: Optional[str] = None
    kind: Optional[str] = None

    @field_validator("detail", mode="before")
    @classmethod
    def trim_detail(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v)[:MAX_DETAIL_LENGTH]


class Finding(BaseModel):
    """
    One check's verdict for one bundle.
    Created exactly once per check per audit; never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    severity: Severity
    messages: List[str] = Field(default_factory=list)
    offenders: List[Offender] = Field(default_factory=list)
    profiles: Optional[List[Profile]] = None
    description: Optional[str] = None


class LoadPhaseMetrics(BaseModel):
    """
    Initial (referenced) vs. subload (unreferenced) weight of a bundle.
    Phase bytes are gzip sizes; total_bytes is the raw sum of all files.
    """
    initial_bytes: int = 0
    subload_bytes: int = 0
    total_bytes: int = 0
    initial_requests: int = 0
    subload_requests: int = 0
    total_requests: int = 0
    initial_hosts: int = 0
    total_hosts: int = 0


class BundleSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Severity = "PASS"
    total_findings: int = 0
    fails: int = 0
    warns: int = 0
    passes: int = Field(default=0, serialization_alias="pass")
    orphan_count: int = 0
    missing_asset_count: int = 0


class BundleResult(BaseModel):
    """
    The structured outcome of auditing one bundle.
    `summary` is derived from `findings` by the aggregation service only.
    """
    bundle_id: str
    bundle_name: str
    primary: Optional[str] = None
    ad_size: Optional[AdSize] = None
    references: List[Reference] = Field(default_factory=list)
    total_bytes: int = 0
    zipped_bytes: int = 0
    initial_bytes: int = 0
    subsequent_bytes: int = 0
    initial_requests: int = 0
    subsequent_requests: int = 0
    total_requests: int = 0
    initial_hosts: int = 0
    total_hosts: int = 0
    discovery_messages: List[str] = Field(default_factory=list)
    findings: List[Finding] = Field(default_factory=list)
    summary: BundleSummary = Field(default_factory=BundleSummary)


class RuntimeSummary(BaseModel):
    """
    Counters reported by an external preview run that executed the creative.
    Every field is optional; absent data means 'not measured'.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    dialogs: int = 0
    cookies: int = 0
    local_storage: int = Field(default=0, alias="localStorage")
    errors: int = 0
    document_writes: int = Field(default=0, alias="documentWrites")
    jquery: bool = False
    long_tasks_ms: Optional[float] = Field(default=None, alias="longTasksMs")
    cpu_tracking: Optional[str] = Field(default=None, alias="cpuTracking")
    visual_start: Optional[float] = Field(default=None, alias="visualStart")
    dom_content_loaded: Optional[float] = Field(default=None, alias="domContentLoaded")
    frames: Optional[int] = None
    anim_max_duration_s: Optional[float] = Field(default=None, alias="animMaxDurationS")
    anim_max_loops: Optional[int] = Field(default=None, alias="animMaxLoops")
    anim_infinite: bool = Field(default=False, alias="animInfinite")
    animation_tracking: Optional[str] = Field(default=None, alias="animationTracking")
    border_sides: int = Field(default=0, alias="borderSides")
    border_css_rules: int = Field(default=0, alias="borderCssRules")
    runtime_iframes: int = Field(default=0, alias="runtimeIframes")


class AuditSettings(BaseModel):
    """
    User-configurable thresholds, passed opaquely to every check.
    Defaults follow CM360 trafficking limits and the IAB New Ad Portfolio.
    """
    model_config = ConfigDict(extra="ignore")

    profile: Literal["CM360", "IAB"] = "CM360"
    click_tag_patterns: List[str] = Field(default_factory=list)

    # CM360 packaging limits
    max_file_count: int = 100
    max_zip_bytes: int = 10 * 1024 * 1024

    # IAB weight budgets (KB, compressed)
    iab_initial_load_kb: float = 150
    iab_subsequent_load_kb: float = 1000
    iab_max_zipped_kb: float = 200
    hosted_size_kb: int = 2500
    hosted_count_recommended: int = 50

    max_initial_requests: int = 10
    png_max_kb: int = 300
    measurement_fail_count: int = 5

    # Runtime budgets
    cpu_budget_pct: int = 30
    time_to_render_ms: float = 500
    dom_content_loaded_ms: float = 1000
    animation_max_seconds: float = 15
    animation_max_loops: int = 3

    @field_validator("max_file_count", "max_zip_bytes", "hosted_size_kb", "max_initial_requests", "png_max_kb")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("limits cannot be negative")
        return v

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "AuditSettings":
        """Builds settings from a config section (e.g. settings.json 'audit')."""
        return cls(**(data or {}))


class CheckOptions(BaseModel):
    """Filters and execution mode for one engine run. Defaults run every check in parallel."""
    profile: Optional[Literal["CM360", "IAB"]] = None
    priority: List[Priority] = Field(default_factory=list)
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    parallel: bool = True
    timeout: Optional[float] = None
