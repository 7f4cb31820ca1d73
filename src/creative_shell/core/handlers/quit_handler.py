# src/creative_shell/core/handlers/quit_handler.py
from creative_shell.core.context.shell_context import ShellContext

quit_help_text = "  quit                Exit the shell."


def handle_quit(_args, _ctx: ShellContext, _stdin=None) -> int:
    """Signals the shell to stop."""
    return 130  # Special exit code for 'quit'
