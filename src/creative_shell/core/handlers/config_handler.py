# src/creative_shell/core/handlers/config_handler.py
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.managers.config_manager import config_manager

logger = logging.getLogger(__name__)

COMMAND_HIERARCHY: Dict[str, Optional[Dict[str, Any]]] = {
    "list": None,
    "get": None,
    "set": None,
    "reset": None,
}

config_help_text = """
  config list                Show the current configuration as JSON.
  config get <key>           Show one value (e.g., audit.iab_initial_load_kb).
  config set <key> <value>   Set a config value for the session (e.g., audit.profile IAB).
  config reset               Reload the configuration from settings.json.
""".strip("\n")


def handle_config(args: List[str], ctx: ShellContext, _stdin: Optional[str] = None) -> int:
    """Handles the 'config' command for viewing and modifying session configuration."""
    if not args:
        print(config_help_text)
        return 1

    command = args[0]

    if command == "list":
        print(json.dumps(config_manager.get_all(), indent=2))
        return 0

    if command == "get":
        if len(args) < 2:
            print("Usage: config get <key>")
            return 1
        value = config_manager.get_nested(args[1])
        if value is None:
            print(f"❌ Unknown config key: '{args[1]}'.")
            return 1
        print(json.dumps(value, indent=2) if isinstance(value, (dict, list)) else value)
        return 0

    if command == "set":
        if len(args) < 3:
            print("Usage: config set <key> <value>")
            return 1
        key_path = args[1]
        value = " ".join(args[2:])

        if value.startswith('"') and value.endswith('"'):
            value = value[1:-1]

        previous = config_manager.get_nested(key_path)
        if not config_manager.set_nested(key_path, value):
            print(f"❌ Error: Failed to set config value for key '{key_path}'.")
            return 1

        if key_path.startswith("audit."):
            try:
                config_manager.audit_settings()
            except ValidationError as e:
                # Roll back values the audit layer would reject
                config_manager.set_nested(key_path, previous)
                print(f"❌ Invalid value for '{key_path}': {e.errors()[0]['msg']}")
                return 1

        new_value = config_manager.get_nested(key_path)
        print(f"✅ Config updated: {key_path} = {new_value} (type: {type(new_value).__name__})")
        return 0

    if command == "reset":
        config_manager.reset()
        print("✅ Configuration has been reset to the values from settings.json.")
        return 0

    print(f"Unknown command: 'config {command}'.")
    return 1
