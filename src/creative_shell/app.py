from __future__ import annotations

import logging
import shlex
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory

from creative_shell.core.command_registry import COMMAND_HIERARCHY, CommandRegistry, register_all_commands
from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.managers.config_manager import config_manager
from creative_shell.core.utils.configure_logging import configure_from_settings
from creative_shell.core.utils.path_utils import PathUtils

# Initialize logging based on configuration
configure_from_settings(config_manager.get_nested("debug"))
logger = logging.getLogger(__name__)


def execute_line(line: str, ctx: ShellContext) -> int:
    """Parses one command line and dispatches it to its handler."""
    try:
        parts = shlex.split(line)
    except ValueError as e:
        print(f"❌ Could not parse command: {e}")
        return 1
    if not parts:
        return 0

    name, args = parts[0], parts[1:]
    handler = CommandRegistry.get(name)
    if handler is None:
        print(f"Unknown command: '{name}'. Type 'help' for a list of commands.")
        return 1
    return handler(args, ctx)


def _completion_words() -> list[str]:
    words = set(CommandRegistry.keys())
    for hierarchy in COMMAND_HIERARCHY.values():
        if isinstance(hierarchy, dict):
            words.update(hierarchy.keys())
    return sorted(words)


def start_shell(ctx: ShellContext) -> None:
    """Starts the interactive REPL (Read-Eval-Print Loop)."""
    print("Welcome to Creative Shell (type 'help' for commands)")

    history_path = PathUtils.get_shell_history_file()
    session = PromptSession(
        history=FileHistory(str(history_path)),
        completer=WordCompleter(_completion_words(), sentence=True),
        complete_while_typing=True
    )
    ctx.prompt_session = session
    logger.info("Shell startup; history file at: %s", history_path)

    try:
        while True:
            try:
                line = session.prompt("Creative>> ").strip()
            except (EOFError, KeyboardInterrupt):
                break

            if not line:
                continue

            if execute_line(line, ctx) == 130:  # Explicit quit
                break
    finally:
        print("Bye!")


def main(argv: list[str] | None = None) -> int:
    """Entrypoint: runs one command when arguments are given, otherwise the interactive shell."""
    argv = sys.argv[1:] if argv is None else argv
    register_all_commands()
    ctx = ShellContext()

    if argv:
        handler = CommandRegistry.get(argv[0])
        if handler is None:
            print(f"Unknown command: '{argv[0]}'. Known commands: {', '.join(sorted(CommandRegistry))}")
            return 1
        code = handler(list(argv[1:]), ctx)
        return 0 if code == 130 else code

    start_shell(ctx)
    return 0


if __name__ == "__main__":
    sys.exit(main())
