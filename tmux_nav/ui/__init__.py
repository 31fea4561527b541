"""UI components for tmux-nav."""

from .widgets import (
    KeyAssignModal,
    ProjectItem,
    build_status_text,
    format_path,
    table_header,
)
from .styles import APP_CSS

__all__ = [
    "KeyAssignModal",
    "ProjectItem",
    "build_status_text",
    "format_path",
    "table_header",
    "APP_CSS",
]
