"""UI widgets for the tmux-nav picker."""

import os
from pathlib import Path
from typing import Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import ListItem, Static

from ..models import AgentStatus, Project
from ..refresh import (
    CATEGORY_AGENTS,
    CATEGORY_GIT,
    CATEGORY_NOTES,
    CATEGORY_PLANS,
    PickerState,
)
from ..state import PathDisplayMode, ViewMode

HOME = str(Path.home())

AGENT_STATUS_STYLES = {
    AgentStatus.RUNNING: ("●", "green"),
    AgentStatus.IDLE: ("◐", "yellow"),
    AgentStatus.COMPLETED: ("✓", "cyan"),
    AgentStatus.FAILED: ("✗", "red"),
    AgentStatus.ERROR: ("✗", "red"),
    AgentStatus.UNKNOWN: ("?", "dim"),
}

# Table column widths
NAME_WIDTH = 28
BRANCH_WIDTH = 18
GIT_WIDTH = 16


def truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 1] + "…"


def format_path(path: str, mode: PathDisplayMode) -> str:
    if mode == PathDisplayMode.OFF:
        return ""
    if mode == PathDisplayMode.COMPACT and path.startswith(HOME):
        return "~" + path[len(HOME):]
    return path


def tree_indent(project: Project) -> str:
    if project.is_worktree():
        return "  └ " if not project.is_sub_project() else "    └ "
    if project.is_sub_project():
        return "  "
    return ""


def git_summary(project: Project) -> Text:
    """Ahead/behind, change counts and diff size, or empty when unknown."""
    text = Text()
    ext = project.git_status
    if ext is None:
        return text
    status = ext.status
    if status.ahead:
        text.append(f"↑{status.ahead}", style="green")
    if status.behind:
        text.append(f"↓{status.behind}", style="red")
    if status.modified:
        text.append(f" M{status.modified}", style="yellow")
    if status.staged:
        text.append(f" S{status.staged}", style="green")
    if status.untracked:
        text.append(f" ?{status.untracked}", style="dim")
    if ext.lines_added or ext.lines_deleted:
        text.append(f" +{ext.lines_added}", style="green")
        text.append(f"-{ext.lines_deleted}", style="red")
    if not text.plain:
        text.append("✓", style="dim green")
    return text


class ProjectItem(ListItem):
    """One row of the picker list."""

    def __init__(self, project: Project, state: PickerState):
        super().__init__()
        self.project = project
        self.state = state
        self._static: Optional[Static] = None

    def compose(self) -> ComposeResult:
        self._static = Static(self._build_text(100))
        yield self._static

    def on_resize(self, event) -> None:
        """Update text when resized."""
        if self._static:
            self._static.update(self._build_text(self.size.width))

    def _build_text(self, width: int) -> Text:
        if self.state.prefs.view_mode == ViewMode.TABLE:
            return self._build_table_row(width)
        return self._build_tree_row(width)

    def _key_and_marker(self, text: Text):
        key = self.state.key_for(self.project)
        text.append(f"{key or ' '} ", style="bold magenta" if key else "dim")
        if self.state.is_running(self.project):
            current = self.project.identifier() == self.state.current_session
            text.append("● ", style="bold green" if current else "green")
        else:
            text.append("  ")

    def _append_enrichment(self, text: Text):
        project = self.project
        prefs = self.state.prefs

        if prefs.show_branch and project.git_status and project.git_status.status.branch:
            text.append(f"  {project.git_status.status.branch}", style="magenta")
        if prefs.show_git_status:
            if project.git_status is not None:
                text.append("  ")
                text.append_text(git_summary(project))
            elif self.state.is_loading(CATEGORY_GIT):
                text.append("  …", style="dim")
        if prefs.show_claude_sessions and project.agent_session is not None:
            glyph, style = AGENT_STATUS_STYLES[project.agent_session.status]
            text.append(f"  {glyph} {project.agent_session.status.value}", style=style)
            if project.agent_session.duration:
                text.append(f" {project.agent_session.duration}", style="dim")
        if prefs.show_note_counts and project.note_counts is not None and project.note_counts.total:
            text.append(f"  📝{project.note_counts.total}", style="cyan")
        if prefs.show_plan_stats and project.plan_stats is not None and project.plan_stats.total_plans:
            stats = project.plan_stats
            text.append(f"  📋{stats.total_plans}", style="blue")
            if stats.running:
                text.append(f" ▶{stats.running}", style="green")

    def _build_tree_row(self, width: int) -> Text:
        project = self.project
        text = Text()
        self._key_and_marker(text)
        text.append(tree_indent(project), style="dim")

        style = "bold" if project.is_ecosystem() else ""
        if project.is_worktree():
            style = "cyan"
        text.append(project.name, style=style)

        self._append_enrichment(text)

        path = format_path(project.path, self.state.prefs.path_display_mode)
        if path:
            remaining = max(10, width - len(text.plain) - 4)
            text.append(f"  {truncate(path, remaining)}", style="dim")
        return text

    def _build_table_row(self, width: int) -> Text:
        project = self.project
        text = Text()
        self._key_and_marker(text)

        name = truncate(tree_indent(project) + project.name, NAME_WIDTH)
        text.append(f"{name:<{NAME_WIDTH}}", style="bold" if project.is_ecosystem() else "")

        branch = project.git_status.status.branch if project.git_status else ""
        text.append(f" {truncate(branch, BRANCH_WIDTH):<{BRANCH_WIDTH}}", style="magenta")

        summary = git_summary(project)
        summary.truncate(GIT_WIDTH, pad=True)
        text.append(" ")
        text.append_text(summary)

        session = project.agent_session
        if session is not None:
            glyph, style = AGENT_STATUS_STYLES[session.status]
            text.append(f" {glyph} {session.duration:<8}", style=style)
        else:
            text.append(" " * 11)

        path = format_path(project.path, self.state.prefs.path_display_mode)
        if path:
            text.append(f" {truncate(path, max(10, width - len(text.plain) - 2))}", style="dim")
        return text


def table_header() -> Text:
    text = Text(style="bold dim")
    text.append("    ")
    text.append(f"{'NAME':<{NAME_WIDTH}} {'BRANCH':<{BRANCH_WIDTH}} {'GIT':<{GIT_WIDTH}} {'AGENT':<10} PATH")
    return text


def build_status_text(state: PickerState) -> Text:
    """Mode indicators, counts and the loading spinner."""
    text = Text()
    if state.spinner_active:
        text.append(f"{state.spinner} ", style="yellow")

    if state.ecosystem_picker:
        text.append("[ecosystems] ", style="bold cyan")
    focused = state.focused_project
    if focused is not None:
        text.append(f"[focus: {focused.name}] ", style="bold green")
    if state.filter_dirty:
        text.append("[dirty] ", style="bold yellow")
    if state.prefs.worktrees_folded:
        text.append("[folded] ", style="dim")
    if state.query:
        text.append(f"/{state.query} ", style="yellow")

    text.append(f"{len(state.filtered)}/{len(state.projects)} projects", style="dim")
    text.append(f" · {len(state.running)} running", style="dim")

    loading = [c for c in (CATEGORY_GIT, CATEGORY_AGENTS, CATEGORY_NOTES, CATEGORY_PLANS) if state.is_loading(c)]
    if loading:
        text.append(f" · loading {', '.join(loading)}", style="dim")
    return text


class KeyAssignModal(ModalScreen[str]):
    """Waits for a single key press and returns it."""

    DEFAULT_CSS = """
    KeyAssignModal {
        align: center middle;
    }
    #key-assign-box {
        width: 60;
        height: auto;
        border: heavy $accent;
        background: $surface;
        padding: 1 2;
    }
    """

    def __init__(self, project: Project, available_keys: list[str], current: Optional[str] = None):
        super().__init__()
        self.project = project
        self.available_keys = available_keys
        self.current = current

    def compose(self) -> ComposeResult:
        with Vertical(id="key-assign-box"):
            yield Static(id="key-assign-message")

    def on_mount(self):
        text = Text()
        text.append("Assign key to ", style="bold")
        text.append(self.project.name, style="bold cyan")
        text.append(f"\n{os.path.dirname(self.project.path)}\n\n", style="dim")
        if self.current:
            text.append(f"Currently bound to {self.current}\n", style="magenta")
        text.append("Available: ", style="dim")
        text.append(" ".join(self.available_keys))
        text.append("\n\nPress a key, or Esc to cancel", style="dim")
        self.query_one("#key-assign-message", Static).update(text)

    def on_key(self, event):
        event.stop()
        event.prevent_default()
        if event.key == "escape":
            self.dismiss(None)
        elif event.character and event.character in self.available_keys:
            self.dismiss(event.character)
        else:
            self.app.bell()
