# src/creative_shell/core/handlers/help_handler.py
from creative_shell.core.context.shell_context import ShellContext
from creative_shell.core.utils.helptext import get_help_text

help_help_text = "  help                Show this help text."


def handle_help(_args, _ctx: ShellContext, _stdin=None) -> int:
    print(get_help_text())
    return 0
