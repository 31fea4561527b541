"""Picker state and the reducer that keeps it current.

Background fetches and keystrokes both arrive as immutable messages.
``reduce`` applies one message to a frozen ``PickerState`` and returns
either a new state or the *same object* when nothing visible changed;
``Orchestrator`` holds the current state, counts replacements and drops
results from fetches older than one already received.

Fetch categories:

- projects, keys: always applied, cursor restored by path
- sessions, git, claude, notes, plans: compared with the held value first,
  equal results leave the state untouched
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, ClassVar, Optional

from .filtering import filter_projects, match_quality
from .models import AgentSession, Project, ProjectKind, normalize_path
from .state import CATEGORY_FIELDS, SessionizerState

logger = logging.getLogger(__name__)

CATEGORY_PROJECTS = "projects"
CATEGORY_SESSIONS = "sessions"
CATEGORY_KEYS = "keys"
CATEGORY_GIT = "git"
CATEGORY_AGENTS = "claude"
CATEGORY_NOTES = "notes"
CATEGORY_PLANS = "plans"

ENRICHMENT_CATEGORIES = (CATEGORY_GIT, CATEGORY_AGENTS, CATEGORY_NOTES, CATEGORY_PLANS)

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class LoadState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class PickerState:
    """Everything the picker renders. Replaced, never mutated."""

    # Discovery order, enrichment merged in
    projects: tuple = ()
    # Agent sessions with no matching project
    agent_rows: tuple = ()
    filtered: tuple = ()
    cursor: int = 0

    # Fetched data, keyed by normalized path (running: by identifier)
    running: frozenset = frozenset()
    current_session: str = ""
    git_statuses: dict = field(default_factory=dict)
    agent_sessions: dict = field(default_factory=dict)
    note_counts: dict = field(default_factory=dict)
    plan_stats: dict = field(default_factory=dict)
    key_map: dict = field(default_factory=dict)

    # Loading
    load_state: LoadState = LoadState.IDLE
    loading: dict = field(default_factory=dict)
    spinner_frame: int = 0

    # Modes
    query: str = ""
    ecosystem_picker: bool = False
    filter_dirty: bool = False
    prefs: SessionizerState = field(default_factory=SessionizerState)

    @property
    def focused_project(self) -> Optional[Project]:
        if not self.prefs.focused_path:
            return None
        target = normalize_path(self.prefs.focused_path)
        return next((p for p in self.projects if p.key == target), None)

    @property
    def selected(self) -> Optional[Project]:
        if 0 <= self.cursor < len(self.filtered):
            return self.filtered[self.cursor]
        return None

    @property
    def spinner_active(self) -> bool:
        return self.load_state == LoadState.LOADING and any(self.loading.values())

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_frame % len(SPINNER_FRAMES)]

    def is_loading(self, category: str) -> bool:
        return bool(self.loading.get(category))

    def key_for(self, project: Project) -> Optional[str]:
        return self.key_map.get(project.key)

    def is_running(self, project: Project) -> bool:
        return project.identifier() in self.running


# -- messages -------------------------------------------------------------

@dataclass(frozen=True)
class Started:
    cached: tuple = ()
    categories: tuple = (CATEGORY_PROJECTS, CATEGORY_SESSIONS) + ENRICHMENT_CATEGORIES


@dataclass(frozen=True)
class ProjectsLoaded:
    category: ClassVar[str] = CATEGORY_PROJECTS
    projects: tuple
    generation: int = 0


@dataclass(frozen=True)
class RunningSessionsLoaded:
    category: ClassVar[str] = CATEGORY_SESSIONS
    sessions: frozenset
    current: str = ""
    generation: int = 0


@dataclass(frozen=True)
class KeyMapLoaded:
    category: ClassVar[str] = CATEGORY_KEYS
    key_map: dict
    generation: int = 0


@dataclass(frozen=True)
class GitStatusLoaded:
    category: ClassVar[str] = CATEGORY_GIT
    statuses: dict
    generation: int = 0


@dataclass(frozen=True)
class AgentSessionsLoaded:
    category: ClassVar[str] = CATEGORY_AGENTS
    sessions: dict
    generation: int = 0


@dataclass(frozen=True)
class NoteCountsLoaded:
    category: ClassVar[str] = CATEGORY_NOTES
    counts: dict
    generation: int = 0


@dataclass(frozen=True)
class PlanStatsLoaded:
    category: ClassVar[str] = CATEGORY_PLANS
    stats: dict
    generation: int = 0


@dataclass(frozen=True)
class FetchFailed:
    category: str
    generation: int = 0


FETCH_RESULTS = (
    ProjectsLoaded, RunningSessionsLoaded, KeyMapLoaded, GitStatusLoaded,
    AgentSessionsLoaded, NoteCountsLoaded, PlanStatsLoaded, FetchFailed,
)


@dataclass(frozen=True)
class QueryChanged:
    query: str


@dataclass(frozen=True)
class StartSearch:
    pass


@dataclass(frozen=True)
class ToggleDirty:
    pass


@dataclass(frozen=True)
class ToggleFold:
    pass


@dataclass(frozen=True)
class EnterEcosystemPicker:
    pass


@dataclass(frozen=True)
class ExitEcosystemPicker:
    pass


@dataclass(frozen=True)
class FocusProject:
    path: str


@dataclass(frozen=True)
class ClearFocus:
    pass


@dataclass(frozen=True)
class MoveCursor:
    delta: int


@dataclass(frozen=True)
class SetCursor:
    index: int


@dataclass(frozen=True)
class ToggleCategory:
    category: str


@dataclass(frozen=True)
class CyclePathDisplay:
    pass


@dataclass(frozen=True)
class ToggleViewMode:
    pass


@dataclass(frozen=True)
class SpinnerTick:
    pass


# -- merging --------------------------------------------------------------

def _inherited_agent_sessions(projects: tuple, sessions: dict) -> dict[str, AgentSession]:
    """Sessions running in a worktree also mark the repository it belongs to."""
    inherited: dict[str, AgentSession] = {}
    for p in projects:
        if p.is_worktree() and p.key in sessions and p.parent_path:
            inherited.setdefault(normalize_path(p.parent_path), sessions[p.key])
    return inherited


def merge_enrichment(state: PickerState, projects: tuple) -> PickerState:
    """Rebuild projects and agent rows from the held enrichment maps."""
    inherited = _inherited_agent_sessions(projects, state.agent_sessions)
    status = {c: "loading" if state.is_loading(c) else "ready" for c in ENRICHMENT_CATEGORIES}

    merged = []
    for p in projects:
        merged.append(replace(
            p,
            git_status=state.git_statuses.get(p.key),
            agent_session=state.agent_sessions.get(p.key) or inherited.get(p.key),
            note_counts=state.note_counts.get(p.key),
            plan_stats=state.plan_stats.get(p.key),
            enrichment_status=status,
        ))

    known = {p.key for p in merged}
    agent_rows = tuple(
        Project(
            path=session.path,
            name=os.path.basename(session.path.rstrip(os.sep)) or session.path,
            kind=ProjectKind.STANDALONE_PROJECT,
            agent_session=session,
        )
        for key, session in state.agent_sessions.items()
        if key not in known
    )
    return replace(state, projects=tuple(merged), agent_rows=agent_rows)


def _clamp(index: int, length: int) -> int:
    if length == 0:
        return 0
    return max(0, min(index, length - 1))


def refilter(state: PickerState, keep_selection: bool = True) -> PickerState:
    """Recompute the displayed list.

    With keep_selection the previously selected project is found again by
    path; otherwise the cursor returns to the top.
    """
    previous = state.selected
    focused = state.focused_project

    filtered = filter_projects(
        list(state.projects),
        query=state.query,
        ecosystem_picker=state.ecosystem_picker,
        focused=focused,
        filter_dirty=state.filter_dirty,
        worktrees_folded=state.prefs.worktrees_folded,
        running=state.running,
    )

    # Agent-only rows belong to the unscoped views
    if not state.ecosystem_picker and focused is None and not state.filter_dirty:
        query = state.query.strip().lower()
        filtered.extend(
            row for row in state.agent_rows
            if not query or match_quality(row.name, query) > 0
        )

    cursor = 0
    if keep_selection:
        cursor = _clamp(state.cursor, len(filtered))
        if previous is not None:
            cursor = next(
                (i for i, p in enumerate(filtered) if p.key == previous.key),
                cursor,
            )
    return replace(state, filtered=tuple(filtered), cursor=cursor)


def _done_loading(state: PickerState, category: str) -> dict:
    return {**state.loading, category: False}


# -- handlers -------------------------------------------------------------

def _on_started(state: PickerState, msg: Started) -> PickerState:
    if state.load_state != LoadState.IDLE:
        return state
    loading = {category: True for category in msg.categories}
    state = replace(state, load_state=LoadState.LOADING, loading=loading)
    return refilter(merge_enrichment(state, tuple(msg.cached)), keep_selection=False)


def _on_projects(state: PickerState, msg: ProjectsLoaded) -> PickerState:
    state = replace(
        state,
        load_state=LoadState.READY,
        loading=_done_loading(state, CATEGORY_PROJECTS),
    )
    return refilter(merge_enrichment(state, tuple(msg.projects)))


def _on_running_sessions(state: PickerState, msg: RunningSessionsLoaded) -> PickerState:
    sessions = frozenset(msg.sessions)
    if (sessions == state.running and msg.current == state.current_session
            and not state.is_loading(CATEGORY_SESSIONS)):
        return state
    return refilter(replace(
        state,
        running=sessions,
        current_session=msg.current,
        loading=_done_loading(state, CATEGORY_SESSIONS),
    ))


def _on_key_map(state: PickerState, msg: KeyMapLoaded) -> PickerState:
    return refilter(replace(state, key_map=dict(msg.key_map)))


def _enrichment_handler(attribute: str, payload: str, category: str) -> Callable:
    def handle(state: PickerState, msg) -> PickerState:
        value = dict(getattr(msg, payload))
        if value == getattr(state, attribute) and not state.is_loading(category):
            return state
        state = replace(state, **{attribute: value}, loading=_done_loading(state, category))
        return refilter(merge_enrichment(state, state.projects))
    return handle


def _on_fetch_failed(state: PickerState, msg: FetchFailed) -> PickerState:
    if not state.is_loading(msg.category):
        return state
    state = replace(state, loading=_done_loading(state, msg.category))
    if msg.category in ENRICHMENT_CATEGORIES:
        state = merge_enrichment(state, state.projects)
    return state


def _on_query(state: PickerState, msg: QueryChanged) -> PickerState:
    if msg.query == state.query:
        return state
    return refilter(replace(state, query=msg.query), keep_selection=False)


def _on_start_search(state: PickerState, msg: StartSearch) -> PickerState:
    if not state.filter_dirty:
        return state
    return refilter(replace(state, filter_dirty=False), keep_selection=False)


def _on_toggle_dirty(state: PickerState, msg: ToggleDirty) -> PickerState:
    return refilter(replace(state, filter_dirty=not state.filter_dirty, query=""), keep_selection=False)


def _on_toggle_fold(state: PickerState, msg: ToggleFold) -> PickerState:
    prefs = replace(state.prefs, worktrees_folded=not state.prefs.worktrees_folded)
    return refilter(replace(state, prefs=prefs))


def _on_enter_picker(state: PickerState, msg: EnterEcosystemPicker) -> PickerState:
    if state.ecosystem_picker:
        return state
    return refilter(replace(state, ecosystem_picker=True, query=""), keep_selection=False)


def _on_exit_picker(state: PickerState, msg: ExitEcosystemPicker) -> PickerState:
    if not state.ecosystem_picker:
        return state
    return refilter(replace(state, ecosystem_picker=False, query=""), keep_selection=False)


def _on_focus(state: PickerState, msg: FocusProject) -> PickerState:
    prefs = replace(state.prefs, focused_path=msg.path)
    return refilter(replace(state, prefs=prefs, ecosystem_picker=False, query=""), keep_selection=False)


def _on_clear_focus(state: PickerState, msg: ClearFocus) -> PickerState:
    if not state.prefs.focused_path:
        return state
    prefs = replace(state.prefs, focused_path="")
    return refilter(replace(state, prefs=prefs), keep_selection=False)


def _on_move_cursor(state: PickerState, msg: MoveCursor) -> PickerState:
    return _on_set_cursor(state, SetCursor(state.cursor + msg.delta))


def _on_set_cursor(state: PickerState, msg: SetCursor) -> PickerState:
    cursor = _clamp(msg.index, len(state.filtered))
    if cursor == state.cursor:
        return state
    return replace(state, cursor=cursor)


def _on_toggle_category(state: PickerState, msg: ToggleCategory) -> PickerState:
    attribute = CATEGORY_FIELDS.get(msg.category)
    if attribute is None:
        return state
    prefs = replace(state.prefs, **{attribute: not getattr(state.prefs, attribute)})
    return replace(state, prefs=prefs)


def _on_cycle_path_display(state: PickerState, msg: CyclePathDisplay) -> PickerState:
    prefs = replace(state.prefs, path_display_mode=state.prefs.path_display_mode.next())
    return replace(state, prefs=prefs)


def _on_toggle_view_mode(state: PickerState, msg: ToggleViewMode) -> PickerState:
    prefs = replace(state.prefs, view_mode=state.prefs.view_mode.toggled())
    return replace(state, prefs=prefs)


def _on_spinner_tick(state: PickerState, msg: SpinnerTick) -> PickerState:
    if not state.spinner_active:
        return state
    return replace(state, spinner_frame=(state.spinner_frame + 1) % len(SPINNER_FRAMES))


_HANDLERS: dict[type, Callable] = {
    Started: _on_started,
    ProjectsLoaded: _on_projects,
    RunningSessionsLoaded: _on_running_sessions,
    KeyMapLoaded: _on_key_map,
    GitStatusLoaded: _enrichment_handler("git_statuses", "statuses", CATEGORY_GIT),
    AgentSessionsLoaded: _enrichment_handler("agent_sessions", "sessions", CATEGORY_AGENTS),
    NoteCountsLoaded: _enrichment_handler("note_counts", "counts", CATEGORY_NOTES),
    PlanStatsLoaded: _enrichment_handler("plan_stats", "stats", CATEGORY_PLANS),
    FetchFailed: _on_fetch_failed,
    QueryChanged: _on_query,
    StartSearch: _on_start_search,
    ToggleDirty: _on_toggle_dirty,
    ToggleFold: _on_toggle_fold,
    EnterEcosystemPicker: _on_enter_picker,
    ExitEcosystemPicker: _on_exit_picker,
    FocusProject: _on_focus,
    ClearFocus: _on_clear_focus,
    MoveCursor: _on_move_cursor,
    SetCursor: _on_set_cursor,
    ToggleCategory: _on_toggle_category,
    CyclePathDisplay: _on_cycle_path_display,
    ToggleViewMode: _on_toggle_view_mode,
    SpinnerTick: _on_spinner_tick,
}


def reduce(state: PickerState, msg) -> PickerState:
    """Apply one message. Returns ``state`` itself when nothing changed."""
    handler = _HANDLERS.get(type(msg))
    if handler is None:
        raise TypeError(f"Unknown message: {msg!r}")
    return handler(state, msg)


class Orchestrator:
    """Holds the current picker state and applies messages in arrival order.

    ``version`` counts state replacements; a message that leaves the state
    unchanged does not bump it. Every tick starts a new fetch generation;
    a result tagged with an older generation than the newest one already
    received for its category is dropped.
    """

    def __init__(self, state: Optional[PickerState] = None):
        self.state = state or PickerState()
        self.version = 0
        self.generation = 0
        self._received: dict[str, int] = {}

    def next_generation(self) -> int:
        self.generation += 1
        return self.generation

    def is_stale(self, msg) -> bool:
        if not isinstance(msg, FETCH_RESULTS):
            return False
        return msg.generation < self._received.get(msg.category, 0)

    def dispatch(self, msg) -> bool:
        """Apply a message; True if the state was replaced."""
        if self.is_stale(msg):
            logger.debug(f"Dropping stale {type(msg).__name__} (generation {msg.generation})")
            return False
        if isinstance(msg, FETCH_RESULTS):
            self._received[msg.category] = msg.generation

        new_state = reduce(self.state, msg)
        if new_state is self.state:
            return False
        self.state = new_state
        self.version += 1
        return True
