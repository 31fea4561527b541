"""Filter, sort and group projects for display.

Everything here is a pure function of its arguments: the picker calls
``filter_projects`` after every change to the project list, running
sessions, query or mode toggles, and renders the returned list as-is.

Mode precedence:

1. Ecosystem picker: ecosystems only, alphabetical, each followed by its
   worktrees. Focus and the dirty filter are ignored.
2. Otherwise the working set is narrowed by focus, then by the dirty
   filter, and ordered by one of three views:

   - no query, no focus: active groups first, inactive worktrees hidden
   - no query, focused: focused project, then each child with its worktrees
   - query: name match quality, active bucket before inactive bucket

Discovery order is the only tie-break outside the ecosystem picker.
"""

from collections import defaultdict
from typing import Iterable, Optional

from .models import Project, ProjectKind, normalize_path


# Match quality, highest first
MATCH_EXACT = 3
MATCH_PREFIX = 2
MATCH_CONTAINS = 1
MATCH_NONE = 0


def match_quality(name: str, query: str) -> int:
    """Rate how well a project name matches a lowercased query."""
    lower_name = name.lower()
    if lower_name == query:
        return MATCH_EXACT
    if lower_name.startswith(query):
        return MATCH_PREFIX
    if query in lower_name:
        return MATCH_CONTAINS
    return MATCH_NONE


def filter_projects(
    projects: list[Project],
    query: str = "",
    ecosystem_picker: bool = False,
    focused: Optional[Project] = None,
    filter_dirty: bool = False,
    worktrees_folded: bool = False,
    running: Iterable[str] = (),
) -> list[Project]:
    """Return the ordered list of projects to display.

    Args:
        projects: Every discovered project, in discovery order.
        query: Free-text filter, matched case-insensitively against names.
        ecosystem_picker: Show only ecosystems and their worktrees.
        focused: Project the view is scoped to, if any.
        filter_dirty: Keep only dirty projects and their ancestors.
        worktrees_folded: Hide worktrees under their parents.
        running: Identifiers of live tmux sessions.

    Never raises; dangling parent references are rendered ungrouped.
    """
    query = query.strip().lower()
    running = frozenset(running)

    if ecosystem_picker:
        return _ecosystem_picker_view(projects, query)

    working = narrow_by_focus(projects, focused)
    if filter_dirty:
        working = filter_dirty_projects(projects, working)

    active = active_groups(working, running)

    if not query:
        if focused is None:
            return _default_view(working, active, running)
        return _focused_view(working, focused, worktrees_folded)
    return _search_view(working, query, active, worktrees_folded)


def narrow_by_focus(projects: list[Project], focused: Optional[Project]) -> list[Project]:
    """Restrict the working set to the focused project and its descendants.

    Without focus, sub-projects stay hidden; they are reached by focusing
    their ecosystem.
    """
    if focused is None:
        return [p for p in projects if not p.is_sub_project()]

    focused_key = focused.key
    members: list[Project] = []

    if focused.is_ecosystem():
        if focused.kind == ProjectKind.ECOSYSTEM_WORKTREE and focused.worktree_name:
            # The ecosystem worktree plus matching worktrees of its sub-projects
            scopes = {focused_key, normalize_path(focused.parent_path)} - {""}
            members = [
                p for p in projects
                if p.key != focused_key
                and p.worktree_name == focused.worktree_name
                and normalize_path(p.parent_ecosystem_path) in scopes
            ]
        else:
            members = [
                p for p in projects
                if p.key != focused_key
                and normalize_path(p.parent_ecosystem_path) == focused_key
                and not p.worktree_name
            ]

    scope = [focused] + members
    return scope + _scope_worktrees(projects, scope)


def _scope_worktrees(projects: list[Project], scope: list[Project]) -> list[Project]:
    """Worktrees of the non-worktree projects in scope, in discovery order."""
    scope_keys = {p.key for p in scope}
    parent_keys = {p.key for p in scope if not p.is_worktree()}
    return [
        p for p in projects
        if p.is_worktree()
        and p.kind != ProjectKind.ECOSYSTEM_WORKTREE_SUB_PROJECT_WORKTREE
        and p.key not in scope_keys
        and normalize_path(p.parent_path) in parent_keys
    ]


def filter_dirty_projects(projects: list[Project], working: list[Project]) -> list[Project]:
    """Keep dirty projects of the working set plus every ancestor of a dirty project.

    Ancestors are collected across all projects, so a clean ecosystem stays
    visible when only one of its hidden sub-projects is dirty.
    """
    by_key = {p.key: p for p in projects}
    keep: set[str] = set()

    for project in projects:
        if not project.is_dirty():
            continue
        keep.add(project.key)
        stack = [project]
        while stack:
            current = stack.pop()
            for ancestor in (current.parent_path, current.parent_ecosystem_path):
                ancestor_key = normalize_path(ancestor)
                if not ancestor_key or ancestor_key in keep:
                    continue
                keep.add(ancestor_key)
                if ancestor_key in by_key:
                    stack.append(by_key[ancestor_key])

    return [p for p in working if p.key in keep]


def active_groups(working: list[Project], running: frozenset) -> set[str]:
    """Group keys with at least one member whose session is running."""
    return {
        p.group_key for p in working
        if p.group_key and p.identifier() in running
    }


def _default_view(working: list[Project], active: set[str], running: frozenset) -> list[Project]:
    # sorted() is stable, so groups of equal activity keep discovery order
    ordered = sorted(working, key=lambda p: p.group_key not in active)
    return [p for p in ordered if not p.is_worktree() or p.identifier() in running]


def _focused_view(working: list[Project], focused: Project, worktrees_folded: bool) -> list[Project]:
    worktrees_by_parent: dict[str, list[Project]] = defaultdict(list)
    parents: list[Project] = []

    for p in working:
        if p.key == focused.key:
            continue
        if p.is_worktree():
            worktrees_by_parent[normalize_path(p.parent_path)].append(p)
        else:
            parents.append(p)

    result = [focused]
    for parent in parents:
        result.append(parent)
        if not worktrees_folded:
            result.extend(worktrees_by_parent.get(parent.key, []))

    if not worktrees_folded:
        result[1:1] = worktrees_by_parent.get(focused.key, [])

    # Worktrees whose parent is not displayed are listed ungrouped at the end
    placed = {focused.key} | {p.key for p in parents}
    result.extend(
        p for p in working
        if p.key != focused.key
        and p.is_worktree()
        and normalize_path(p.parent_path) not in placed
    )
    return result


def _search_view(working: list[Project], query: str, active: set[str], worktrees_folded: bool) -> list[Project]:
    quality: dict[str, int] = {}
    matched_parents: set[str] = set()
    parents_with_matching_child: set[str] = set()

    # Pass 1: parents by name
    for p in working:
        if p.is_worktree():
            continue
        quality[p.key] = match_quality(p.name, query)
        if quality[p.key] > MATCH_NONE:
            matched_parents.add(p.key)

    # Pass 2: worktrees pull in their parents
    if not worktrees_folded:
        for p in working:
            if not p.is_worktree():
                continue
            quality[p.key] = match_quality(p.name, query)
            if quality[p.key] > MATCH_NONE:
                parents_with_matching_child.add(normalize_path(p.parent_path))

    # Pass 3: collect
    included = []
    for p in working:
        if p.is_worktree():
            include = not worktrees_folded and (
                quality[p.key] > MATCH_NONE
                or normalize_path(p.parent_path) in matched_parents
            )
        else:
            include = p.key in matched_parents or p.key in parents_with_matching_child
        if include:
            included.append(p)

    active_bucket = [p for p in included if p.group_key in active]
    inactive_bucket = [p for p in included if p.group_key not in active]
    return _order_by_quality(active_bucket, quality) + _order_by_quality(inactive_bucket, quality)


def _order_by_quality(bucket: list[Project], quality: dict[str, int]) -> list[Project]:
    """Parents by descending quality, each followed by its own worktrees."""
    def by_quality(p: Project) -> int:
        return -quality.get(p.key, MATCH_NONE)

    parents = sorted((p for p in bucket if not p.is_worktree()), key=by_quality)
    parent_keys = {p.key for p in parents}
    worktrees_by_parent: dict[str, list[Project]] = defaultdict(list)
    orphans = []
    for p in bucket:
        if not p.is_worktree():
            continue
        parent_key = normalize_path(p.parent_path)
        if parent_key in parent_keys:
            worktrees_by_parent[parent_key].append(p)
        else:
            orphans.append(p)

    result = []
    for parent in parents:
        result.append(parent)
        result.extend(sorted(worktrees_by_parent.get(parent.key, []), key=by_quality))
    result.extend(sorted(orphans, key=by_quality))
    return result


def _ecosystem_picker_view(projects: list[Project], query: str) -> list[Project]:
    mains: dict[str, Project] = {}
    worktrees_by_parent: dict[str, list[Project]] = defaultdict(list)

    for p in projects:
        if not p.is_ecosystem():
            continue
        if query and query not in p.name.lower() and query not in p.path.lower():
            continue
        if p.is_worktree() and p.parent_path:
            worktrees_by_parent[normalize_path(p.parent_path)].append(p)
        else:
            mains.setdefault(p.key, p)

    result = []
    for ecosystem in sorted(mains.values(), key=lambda p: p.name.lower()):
        result.append(ecosystem)
        worktrees = worktrees_by_parent.pop(ecosystem.key, [])
        result.extend(sorted(worktrees, key=lambda p: p.name.lower()))

    # Worktrees whose ecosystem was filtered out by the query
    orphans = [p for group in worktrees_by_parent.values() for p in group]
    result.extend(sorted(orphans, key=lambda p: p.name.lower()))
    return result
