import asyncio
import inspect
import re
from concurrent.futures import Executor
from typing import Any, Callable, Iterator, List, Optional, Pattern, Tuple

from pydantic import BaseModel, ConfigDict

from bundle_parser.model import Archive
from bundle_auditor.model import AuditSettings, BundleResult, Finding, Offender, Priority, Profile, RuntimeSummary, Severity

# Rules return (severity, messages, offenders); the descriptor wraps it into a Finding
CheckOutcome = Tuple[Severity, List[str], List[Offender]]
CheckRule = Callable[["CheckContext"], Any]

JS_HTML_FILES = re.compile(r"\.(?:js|html?)$", re.IGNORECASE)
HTML_FILES = re.compile(r"\.html?$", re.IGNORECASE)
CODE_FILES = re.compile(r"\.(?:js|html?|css)$", re.IGNORECASE)


def check_spec(
        id: str,
        title: str,
        description: str,
        profiles: List[Profile],
        priority: Priority = "required"
):
    """
    Decorator declaring the identity of a check rule function.
    Picked up by CheckDefinition and the CheckRegistry.
    """
    def decorator(func):
        func.check_id = id
        func.check_title = title
        func.check_description = description
        func.check_profiles = list(profiles)
        func.check_priority = priority
        return func
    return decorator


class CheckContext(BaseModel):
    """
    Everything a check may look at for one bundle.
    Built once per audit and shared read-only by all checks.
    """
    model_config = ConfigDict(frozen=True)

    archive: Archive
    partial: BundleResult
    settings: AuditSettings
    files: List[str]
    primary: Optional[str] = None
    html_text: str = ""
    entry_name: Optional[str] = None
    is_iab_profile: bool = False
    runtime: Optional[RuntimeSummary] = None

    def text_of(self, path: str) -> str:
        return self.archive.read_text(path)

    def iter_texts(self, pattern: Pattern) -> Iterator[Tuple[str, str]]:
        """Yields (path, decoded text) for every archive file whose path matches `pattern`."""
        for path in self.files:
            if pattern.search(path):
                yield path, self.archive.read_text(path)


class CheckDefinition:
    """
    Stateless descriptor binding a rule function to its id, title, profiles and priority.
    """

    def __init__(self, rule: CheckRule):
        if not hasattr(rule, "check_id"):
            raise ValueError(f"{getattr(rule, '__name__', rule)!r} is not decorated with @check_spec")
        self.rule = rule
        self.id: str = rule.check_id
        self.title: str = rule.check_title
        self.description: str = rule.check_description
        self.profiles: List[Profile] = rule.check_profiles
        self.priority: Priority = rule.check_priority

    def applies_to(self, profile: str) -> bool:
        return profile in self.profiles or "BOTH" in self.profiles

    async def execute(self, context: CheckContext, executor: Optional[Executor] = None) -> Finding:
        """
        Runs the rule and wraps its outcome into a Finding.
        With an executor, sync rules run off the event loop so a timeout can interrupt the wait.
        """
        if executor is not None and not inspect.iscoroutinefunction(self.rule):
            loop = asyncio.get_running_loop()
            outcome = await loop.run_in_executor(executor, self.rule, context)
        else:
            outcome = self.rule(context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, Finding):
            return outcome

        severity, messages, offenders = outcome
        return Finding(
            id=self.id,
            title=self.title,
            severity=severity,
            messages=list(messages),
            offenders=list(offenders)
        )

    def __repr__(self) -> str:
        return f"CheckDefinition({self.id!r}, profiles={self.profiles}, priority={self.priority!r})"
