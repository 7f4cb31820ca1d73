# src/creative_shell/core/utils/path_utils.py
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class PathUtils:
    """
    A central utility for reliably retrieving important package and user paths.
    """

    # --- Package specific paths

    @staticmethod
    def get_content_root() -> Path:
        """Returns the directory that holds the creative_shell, bundle_parser and bundle_auditor packages."""
        return Path(__file__).resolve().parents[3]

    @staticmethod
    def get_shell_package_root() -> Path:
        return PathUtils.get_content_root() / "creative_shell"

    @staticmethod
    def get_handlers_dir() -> Path:
        return PathUtils.get_shell_package_root() / "core" / "handlers"

    # --- User specific paths ---

    @staticmethod
    def get_shell_history_file() -> Path:
        """
        Returns the path to the shell history file in the user's home directory.
        (e.g., ~/.creative_shell_history)
        """
        return Path.home() / ".creative_shell_history"

    @staticmethod
    def get_user_documents_dir() -> Path:
        """
        Returns the absolute path to the current user's Documents directory.
        """
        return Path.home() / "Documents"

    # --- Helper methods ---

    @staticmethod
    def resolve_export_path(name: str) -> Path:
        """Absolute paths are kept; relative ones land in the Documents folder."""
        path = Path(name).expanduser()
        return path if path.is_absolute() else PathUtils.get_user_documents_dir() / path
