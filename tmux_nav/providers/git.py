"""Git working tree status provider."""

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..models import ExtendedGitStatus, GitStatus, Project, normalize_path
from . import register_provider
from .base import EnrichmentProvider, ProviderError, run_command

logger = logging.getLogger(__name__)

MAIN_BRANCH_CANDIDATES = ("main", "master")


def parse_porcelain_v2(output: str) -> GitStatus:
    """Parse ``git status --porcelain=v2 --branch`` output."""
    branch = ""
    has_upstream = False
    ahead = behind = 0
    modified = staged = untracked = 0

    for line in output.splitlines():
        if line.startswith("# branch.head "):
            branch = line[len("# branch.head "):].strip()
        elif line.startswith("# branch.upstream "):
            has_upstream = True
        elif line.startswith("# branch.ab "):
            for part in line[len("# branch.ab "):].split():
                if part.startswith("+"):
                    ahead = int(part[1:])
                elif part.startswith("-"):
                    behind = int(part[1:])
        elif line.startswith(("1 ", "2 ")):
            xy = line[2:4]
            if xy[0] != ".":
                staged += 1
            if xy[1] != ".":
                modified += 1
        elif line.startswith("u "):
            # Unmerged paths count as modified
            modified += 1
        elif line.startswith("? "):
            untracked += 1

    if branch == "(detached)":
        branch = "HEAD"

    return GitStatus(
        branch=branch,
        has_upstream=has_upstream,
        ahead=ahead,
        behind=behind,
        modified=modified,
        staged=staged,
        untracked=untracked,
        is_dirty=(modified + staged + untracked) > 0,
    )


def parse_numstat(output: str) -> tuple[int, int]:
    """Sum added/deleted lines from ``git diff --numstat``, skipping binary files."""
    added = deleted = 0
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        # Binary files report "-" for both counts
        if parts[0] == "-" or parts[1] == "-":
            continue
        try:
            added += int(parts[0])
            deleted += int(parts[1])
        except ValueError:
            continue
    return added, deleted


def _main_branch(path: str) -> Optional[str]:
    for candidate in MAIN_BRANCH_CANDIDATES:
        try:
            run_command(["git", "-C", path, "rev-parse", "--verify", "--quiet", f"refs/heads/{candidate}"])
            return candidate
        except ProviderError:
            continue
    return None


def get_extended_status(path: str) -> ExtendedGitStatus:
    """Collect status, main-branch divergence and diff line counts for a repo."""
    status = parse_porcelain_v2(
        run_command(["git", "-C", path, "status", "--porcelain=v2", "--branch"])
    )

    main = _main_branch(path)
    if main and status.branch and status.branch != main:
        try:
            output = run_command(["git", "-C", path, "rev-list", "--left-right", "--count", f"{main}...HEAD"])
            behind_main, ahead_main = (int(n) for n in output.split()[:2])
            status = replace(status, ahead_main=ahead_main, behind_main=behind_main)
        except (ProviderError, ValueError) as e:
            logger.debug(f"No main-branch divergence for {path}: {e}")

    lines_added = lines_deleted = 0
    try:
        lines_added, lines_deleted = parse_numstat(
            run_command(["git", "-C", path, "diff", "--numstat", "HEAD"])
        )
    except ProviderError:
        # Repositories without commits have no HEAD to diff against
        pass

    return ExtendedGitStatus(status=status, lines_added=lines_added, lines_deleted=lines_deleted)


@register_provider
class GitStatusProvider(EnrichmentProvider):
    """Branch and working tree status for every project."""

    name = "git"
    display_name = "Git status"
    icon = ""

    max_workers = 10

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def _status_or_none(self, path: str) -> Optional[ExtendedGitStatus]:
        try:
            return get_extended_status(path)
        except ProviderError as e:
            logger.debug(f"git status failed for {path}: {e}")
            return None

    def fetch(self, projects: list[Project]) -> dict[str, ExtendedGitStatus]:
        paths = [p.path for p in projects if Path(p.path).is_dir()]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            statuses = list(pool.map(self._status_or_none, paths))
        return {
            normalize_path(path): status
            for path, status in zip(paths, statuses)
            if status is not None
        }
