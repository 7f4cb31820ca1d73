# src/creative_shell/core/utils/configure_logging.py
import logging
import sys
from typing import Any, Dict, Optional

from tqdm import tqdm

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s"

# Bundle outcomes are worth seeing; parse tolerances and per-check verdicts are not
DEFAULT_MODULE_LEVELS: Dict[str, str] = {
    "bundle_auditor.controllers": "INFO",
    "bundle_auditor.checks": "WARNING",
    "bundle_parser": "WARNING",
}
DEFAULT_SILENCED: Dict[str, str] = {
    "asyncio": "WARNING",
    "concurrent.futures": "WARNING",
}


class LogWithTqdm(logging.Handler):
    """
    Sends records through `tqdm.write()` on stderr, so bulk-audit
    progress bars are redrawn below the message instead of torn.
    """
    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except Exception:
            self.handleError(record)


def _to_level(level, fallback: int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), fallback)
    return level if isinstance(level, int) else fallback


def configure_logger(general_level='WARNING', module_specific_levels=None, silenced_loggers=None) -> LogWithTqdm:
    """
    Installs the tqdm-aware handler on the root logger and applies levels.

    Project defaults (DEFAULT_MODULE_LEVELS, DEFAULT_SILENCED) are applied
    first; explicit arguments override them per logger name.
    """
    handler = LogWithTqdm()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(_to_level(general_level, logging.WARNING))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    levels = {**DEFAULT_MODULE_LEVELS, **(module_specific_levels or {})}
    for name, level in levels.items():
        logging.getLogger(name).setLevel(_to_level(level, logging.INFO))

    # Muzzle noisy loggers by setting their level high
    silenced = {**DEFAULT_SILENCED, **(silenced_loggers or {})}
    for name, level in silenced.items():
        logging.getLogger(name).setLevel(_to_level(level, logging.CRITICAL))

    return handler


def configure_from_settings(debug_section: Optional[Dict[str, Any]]) -> LogWithTqdm:
    """Applies the 'debug' section of settings.json (level, modules, silenced)."""
    section = debug_section or {}
    return configure_logger(
        section.get("level", "WARNING"),
        section.get("modules"),
        section.get("silenced")
    )
