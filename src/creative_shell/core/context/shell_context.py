# src/creative_shell/core/context/shell_context.py
import logging
from typing import Any, List, Optional

from bundle_auditor.model import BundleResult
from creative_shell.core.managers.config_manager import config_manager

logger = logging.getLogger(__name__)


class ShellContext:
    """
    State shared between shell commands: the configuration, the prompt
    session and the results of the last audit run.
    """

    def __init__(self):
        self.config = config_manager
        self.last_results: List[BundleResult] = []
        self.prompt_session: Optional[Any] = None

    def remember_results(self, results: List[BundleResult]) -> None:
        self.last_results = list(results)
        logger.debug("Kept %d audit result(s) for this session", len(self.last_results))

    def __repr__(self) -> str:
        return f"<ShellContext results={len(self.last_results)}>"
