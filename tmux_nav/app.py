"""tmux-nav picker TUI application."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Input, ListView, Static

from .cache import ProjectCache
from .config import DATA_DIR, NavConfig, load_config
from .history import AccessHistory
from .keybindings import KeyBindingError, KeyBindingStore
from .manager import KeyManager
from .models import Project
from .providers import get_available_providers
from .providers.base import ProviderError
from .providers.discovery import ProjectDiscovery
from .refresh import (
    CATEGORY_AGENTS,
    CATEGORY_GIT,
    CATEGORY_NOTES,
    CATEGORY_PLANS,
    CATEGORY_PROJECTS,
    CATEGORY_SESSIONS,
    AgentSessionsLoaded,
    ClearFocus,
    CyclePathDisplay,
    EnterEcosystemPicker,
    ExitEcosystemPicker,
    FetchFailed,
    FocusProject,
    GitStatusLoaded,
    KeyMapLoaded,
    LoadState,
    MoveCursor,
    NoteCountsLoaded,
    Orchestrator,
    PickerState,
    PlanStatsLoaded,
    ProjectsLoaded,
    QueryChanged,
    RunningSessionsLoaded,
    SetCursor,
    SpinnerTick,
    Started,
    StartSearch,
    ToggleCategory,
    ToggleDirty,
    ToggleFold,
    ToggleViewMode,
)
from .state import SessionizerState, ViewMode
from .tmux import TmuxClient
from .ui import APP_CSS, KeyAssignModal, ProjectItem, build_status_text, table_header

logger = logging.getLogger(__name__)

RESULT_MESSAGES = {
    CATEGORY_GIT: GitStatusLoaded,
    CATEGORY_AGENTS: AgentSessionsLoaded,
    CATEGORY_NOTES: NoteCountsLoaded,
    CATEGORY_PLANS: PlanStatsLoaded,
}

CLIPBOARD_COMMANDS = (
    ["pbcopy"],
    ["xclip", "-selection", "clipboard"],
    ["xsel", "--clipboard", "--input"],
)

SPINNER_INTERVAL = 0.1

# Fields whose change requires rebuilding the list rows
ROW_FIELDS = ("filtered", "prefs", "key_map", "running", "current_session", "loading")


def copy_to_clipboard(text: str) -> bool:
    for cmd in CLIPBOARD_COMMANDS:
        if shutil.which(cmd[0]) is None:
            continue
        try:
            subprocess.run(cmd, input=text.encode(), check=True)
            return True
        except (OSError, subprocess.CalledProcessError) as e:
            logger.debug(f"{cmd[0]} failed: {e}")
    return False


class NavPicker(App):
    """Project session picker. Exits with the chosen Project, or None."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("enter", "select", "Open"),
        Binding("escape", "back", "Back"),
        Binding("slash", "activate_search", "Search"),
        Binding("d", "toggle_dirty", "Dirty"),
        Binding("w", "toggle_fold", "Fold"),
        Binding("e", "ecosystem_picker", "Ecosystems"),
        Binding("f", "focus_selected", "Focus"),
        Binding("g", "clear_focus", "Unfocus", show=False),
        Binding("X", "kill_session", "Kill"),
        Binding("y", "copy_path", "Copy path", show=False),
        Binding("K", "assign_key", "Set key"),
        Binding("delete", "clear_key", "Clear key", show=False),
        Binding("v", "toggle_view", "View", show=False),
        Binding("p", "cycle_path", "Paths", show=False),
        Binding("1", "toggle_category('git')", "Git", show=False),
        Binding("2", "toggle_category('branch')", "Branch", show=False),
        Binding("3", "toggle_category('claude')", "Agents", show=False),
        Binding("4", "toggle_category('notes')", "Notes", show=False),
        Binding("5", "toggle_category('plans')", "Plans", show=False),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("down", "cursor_down", "Down", show=False),
        Binding("up", "cursor_up", "Up", show=False),
        Binding("home", "cursor_home", "Home", show=False, priority=True),
        Binding("end", "cursor_end", "End", show=False, priority=True),
    ]

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        config_dir: Optional[Path] = None,
        data_dir: Optional[Path] = None,
    ):
        super().__init__()
        self.config = config or load_config(config_dir)
        self.data_dir = data_dir or DATA_DIR

        self.tmux = TmuxClient()
        self.history = AccessHistory(self.data_dir / "access-history.json")
        self.discovery = ProjectDiscovery(self.config, self.history)
        self.project_cache = ProjectCache(self.data_dir / "cache.json")
        self.key_store = KeyBindingStore(KeyManager(self.config, config_dir, self.tmux))
        self.providers = {p.name: p for p in get_available_providers(self.config)}

        prefs = SessionizerState.load(self.data_dir)
        self.orchestrator = Orchestrator(PickerState(prefs=prefs))
        self._saved_prefs = prefs
        self._rendered: Optional[PickerState] = None
        self._spinner_timer = None

    @property
    def state(self) -> PickerState:
        return self.orchestrator.state

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="status-bar")
        yield Input(placeholder="Filter projects... (Enter to keep, Escape to clear)", id="search-input")
        yield Static(table_header(), id="table-header")
        yield ListView(id="project-list")
        yield Static("No projects found. Check search_paths in config.yml.", id="empty-message")
        yield Footer()

    def on_mount(self):
        """Show cached projects immediately, then start the refresh loop."""
        self.title = "tmux-nav"

        categories = (CATEGORY_PROJECTS, CATEGORY_SESSIONS) + tuple(self.providers)
        self._dispatch(Started(cached=tuple(self.project_cache.load()), categories=categories))
        self._dispatch(KeyMapLoaded(self.key_store.lookup()))

        self._spinner_timer = self.set_interval(SPINNER_INTERVAL, self._tick_spinner, pause=True)
        self._update_spinner_timer()
        self.set_interval(self.config.refresh_interval, self._refresh)
        self._refresh()

        self.query_one("#project-list", ListView).focus()

    # -- message flow -----------------------------------------------------

    def _dispatch(self, msg):
        """Apply a message and redraw if the state changed. Main thread only."""
        if not self.orchestrator.dispatch(msg):
            return
        state = self.state
        self.query_one("#status-bar", Static).update(build_status_text(state))
        self._update_spinner_timer()
        if state.prefs != self._saved_prefs:
            state.prefs.save(self.data_dir)
            self._saved_prefs = state.prefs
        self.call_later(self._sync_list)

    def _update_spinner_timer(self):
        if self._spinner_timer is None:
            return
        if self.state.spinner_active:
            self._spinner_timer.resume()
        else:
            self._spinner_timer.pause()

    def _tick_spinner(self):
        self._dispatch(SpinnerTick())

    def _needs_rebuild(self, state: PickerState) -> bool:
        if self._rendered is None:
            return True
        return any(getattr(state, f) is not getattr(self._rendered, f) for f in ROW_FIELDS)

    async def _sync_list(self):
        """Bring the list widget in line with the current state."""
        state = self.state
        if state is self._rendered:
            return

        list_view = self.query_one("#project-list", ListView)
        if self._needs_rebuild(state):
            await list_view.clear()
            await list_view.extend(ProjectItem(p, state) for p in state.filtered)

            header = self.query_one("#table-header", Static)
            header.set_class(state.prefs.view_mode == ViewMode.TABLE, "visible")
            empty = self.query_one("#empty-message", Static)
            empty.set_class(not state.filtered and state.load_state == LoadState.READY, "visible")

        self._rendered = state
        if state.filtered:
            list_view.index = state.cursor
            if list_view.highlighted_child:
                list_view.scroll_to_widget(list_view.highlighted_child, animate=False)

    # -- background fetches ---------------------------------------------

    def _refresh(self):
        """Start one fetch generation."""
        generation = self.orchestrator.next_generation()
        self._fetch_key_map(generation)
        self._fetch_sessions(generation)
        self._fetch_projects(generation)

    @work(thread=True)
    def _fetch_projects(self, generation: int):
        try:
            projects = self.discovery.discover()
        except OSError as e:
            logger.warning(f"Project discovery failed: {e}")
            self.call_from_thread(self._dispatch, FetchFailed(CATEGORY_PROJECTS, generation))
            return
        self.project_cache.save(projects)
        self.call_from_thread(self._dispatch, ProjectsLoaded(tuple(projects), generation=generation))
        for name in self.providers:
            self.call_from_thread(self._fetch_enrichment, name, generation, projects)

    @work(thread=True)
    def _fetch_sessions(self, generation: int):
        sessions = frozenset(self.tmux.list_sessions())
        current = self.tmux.current_session() or ""
        self.call_from_thread(
            self._dispatch, RunningSessionsLoaded(sessions, current, generation=generation)
        )

    @work(thread=True)
    def _fetch_key_map(self, generation: int):
        records = self.key_store.manager.get_sessions()
        self.call_from_thread(self._apply_key_map, records, generation)

    def _apply_key_map(self, records, generation: int):
        self.key_store.set_records(records)
        self._dispatch(KeyMapLoaded(self.key_store.lookup(), generation=generation))

    @work(thread=True)
    def _fetch_enrichment(self, name: str, generation: int, projects: list[Project]):
        provider = self.providers[name]
        try:
            data = provider.fetch(projects)
        except ProviderError as e:
            logger.warning(f"{provider.display_name} fetch failed: {e}")
            self.call_from_thread(self._dispatch, FetchFailed(name, generation))
            return
        self.call_from_thread(self._dispatch, RESULT_MESSAGES[name](data, generation=generation))

    # -- list events -----------------------------------------------------

    @on(ListView.Highlighted, "#project-list")
    def on_project_highlighted(self, event: ListView.Highlighted):
        if event.list_view.index is not None:
            self._dispatch(SetCursor(event.list_view.index))

    @on(ListView.Selected, "#project-list")
    def on_project_selected(self, event: ListView.Selected):
        self.action_select()

    # -- search ----------------------------------------------------------

    def action_activate_search(self):
        """Activate search mode (/)."""
        self._dispatch(StartSearch())
        search_input = self.query_one("#search-input", Input)
        search_input.add_class("visible")
        search_input.value = self.state.query
        search_input.focus()

    @on(Input.Changed, "#search-input")
    def on_search_changed(self, event: Input.Changed):
        self._dispatch(QueryChanged(event.value))

    @on(Input.Submitted, "#search-input")
    def on_search_submitted(self, event: Input.Submitted):
        """Keep the filter and return to the list."""
        search_input = self.query_one("#search-input", Input)
        if not event.value:
            search_input.remove_class("visible")
        self.query_one("#project-list", ListView).focus()

    def _clear_search(self):
        search_input = self.query_one("#search-input", Input)
        search_input.remove_class("visible")
        search_input.value = ""
        self._dispatch(QueryChanged(""))
        self.query_one("#project-list", ListView).focus()

    def action_back(self):
        """Leave the innermost mode (Escape); quit when there is none."""
        search_input = self.query_one("#search-input", Input)
        if search_input.has_focus or self.state.query:
            self._clear_search()
        elif self.state.ecosystem_picker:
            self._dispatch(ExitEcosystemPicker())
        elif self.state.prefs.focused_path:
            self._dispatch(ClearFocus())
        else:
            self.exit(None)

    # -- modes -----------------------------------------------------------

    def action_toggle_dirty(self):
        self.query_one("#search-input", Input).remove_class("visible")
        self._dispatch(ToggleDirty())

    def action_toggle_fold(self):
        self._dispatch(ToggleFold())

    def action_ecosystem_picker(self):
        if self.state.ecosystem_picker:
            self._dispatch(ExitEcosystemPicker())
        else:
            self._dispatch(EnterEcosystemPicker())

    def action_focus_selected(self):
        project = self.state.selected
        if project is not None:
            self._dispatch(FocusProject(project.path))

    def action_clear_focus(self):
        self._dispatch(ClearFocus())

    def action_toggle_category(self, category: str):
        self._dispatch(ToggleCategory(category))

    def action_toggle_view(self):
        self._dispatch(ToggleViewMode())

    def action_cycle_path(self):
        self._dispatch(CyclePathDisplay())

    # -- cursor ----------------------------------------------------------

    def action_cursor_down(self):
        self._dispatch(MoveCursor(1))

    def action_cursor_up(self):
        self._dispatch(MoveCursor(-1))

    def action_cursor_home(self):
        self._dispatch(SetCursor(0))

    def action_cursor_end(self):
        self._dispatch(SetCursor(len(self.state.filtered) - 1))

    # -- project actions -------------------------------------------------

    def action_select(self):
        """Open the selected project, or focus it from the ecosystem picker."""
        project = self.state.selected
        if project is None:
            return
        if self.state.ecosystem_picker:
            self._dispatch(FocusProject(project.path))
            return
        self.exit(result=project)

    def action_copy_path(self):
        project = self.state.selected
        if project is None:
            return
        if copy_to_clipboard(project.path):
            self.notify(f"Copied: {project.path}", title="Path Copied")
        else:
            self.notify(f"Path: {project.path}", title="Copy Failed")

    def action_kill_session(self):
        project = self.state.selected
        if project is None:
            return
        name = project.identifier()
        if not self.state.is_running(project):
            self.notify(f"No session named {name}", severity="warning")
            return

        if name == self.state.current_session:
            visible = [p.identifier() for p in self.state.filtered if self.state.is_running(p)]
            others = [s for s in visible if s != name]
            others += sorted(s for s in self.state.running if s != name and s not in others)
            if not others:
                self.notify("Cannot kill the only running session", severity="warning")
                return
            self.tmux.switch_client(others[0])
        self._kill_session(name)

    @work(thread=True)
    def _kill_session(self, name: str):
        if self.tmux.kill_session(name):
            self.call_from_thread(self.notify, f"Killed {name}")
        else:
            self.call_from_thread(self.notify, f"Failed to kill {name}", severity="error")
        self.call_from_thread(self._fetch_sessions, self.orchestrator.generation)

    def action_assign_key(self):
        project = self.state.selected
        if project is None:
            return
        modal = KeyAssignModal(
            project,
            self.key_store.manager.get_available_keys(),
            current=self.key_store.key_for(project.path),
        )

        def on_key_chosen(key: Optional[str]):
            if not key:
                return
            try:
                self.key_store.assign(project.path, key)
            except KeyBindingError as e:
                self.notify(str(e), severity="error")
                return
            self.notify(f"{key} → {project.name}", title="Key Assigned")
            self._dispatch(KeyMapLoaded(self.key_store.lookup(), generation=self.orchestrator.generation))

        self.push_screen(modal, on_key_chosen)

    def action_clear_key(self):
        project = self.state.selected
        if project is None:
            return
        key = self.key_store.clear(project.path)
        if key is None:
            self.notify(f"{project.name} has no key", severity="warning")
            return
        self.notify(f"Cleared {key} from {project.name}")
        self._dispatch(KeyMapLoaded(self.key_store.lookup(), generation=self.orchestrator.generation))
