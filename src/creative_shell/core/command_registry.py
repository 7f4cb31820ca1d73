# src/creative_shell/core/command_registry.py
import importlib
import logging
import pkgutil
from typing import Any, Callable, Dict

from creative_shell.core.utils.path_utils import PathUtils

logger = logging.getLogger(__name__)

HANDLERS_PACKAGE = "creative_shell.core.handlers"

# The central registries, populated on first use.
CommandRegistry: Dict[str, Callable[..., int]] = {}
COMMAND_HIERARCHY: Dict[str, Any] = {}
COMMAND_HELP_TEXTS: Dict[str, str] = {}


def register_command(name: str, handler: Callable[..., int]) -> None:
    """Adds a command and its handler function to the registry."""
    CommandRegistry[name] = handler
    logger.debug("Registered command '%s'", name)


def _iter_handler_modules():
    handlers_dir = PathUtils.get_handlers_dir()
    for module_info in pkgutil.iter_modules([str(handlers_dir)], prefix=f"{HANDLERS_PACKAGE}."):
        if module_info.name.endswith("_handler"):
            yield module_info.name


def register_all_commands() -> None:
    """
    Imports every `*_handler` module and registers its `handle_<name>`
    functions, `COMMAND_HIERARCHY` and `<name>_help_text` strings.
    """
    if CommandRegistry:
        return

    for module_name in sorted(_iter_handler_modules()):
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error("Failed to load handler module %s: %s", module_name, e, exc_info=True)
            continue

        hierarchy = getattr(module, "COMMAND_HIERARCHY", None)
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if attr_name.startswith("handle_") and callable(attr):
                command_name = attr_name.replace("handle_", "")
                register_command(command_name, attr)
                COMMAND_HIERARCHY[command_name] = hierarchy
            elif attr_name.endswith("_help_text") and isinstance(attr, str):
                COMMAND_HELP_TEXTS[attr_name.replace("_help_text", "")] = attr

    logger.debug("Successfully registered %d handlers and built command hierarchy.", len(CommandRegistry))
