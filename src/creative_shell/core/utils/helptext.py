# src/creative_shell/core/utils/helptext.py
from creative_shell.core.command_registry import COMMAND_HELP_TEXTS

HEADER_HELP_TEXT = """
Creative Shell - Help

Audits HTML5 ad bundles (.zip/.adz or folders) against CM360 and IAB rules.

---
COMMANDS
---
""".strip()


def get_help_text() -> str:
    """
    Assembles the full help text from the header and the help fragments
    of every registered command handler.
    """
    full_help_parts = [HEADER_HELP_TEXT]
    for command_name in sorted(COMMAND_HELP_TEXTS.keys()):
        full_help_parts.append(COMMAND_HELP_TEXTS[command_name])
    return "\n\n".join(full_help_parts)
