#!/usr/bin/env python3
"""tmux-nav - tmux project session picker.

Entry point for the CLI application.
"""

import argparse
import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import DATA_DIR, load_config
from .models import Project, normalize_path, qualify_identifiers

logger = logging.getLogger(__name__)

DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}
DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$")


class DurationError(ValueError):
    """Raised for a duration that is not a number with an optional unit."""


def parse_duration(value: str) -> float:
    """Parse ``500ms``, ``1s``, ``2m``, ``1h`` or bare seconds into seconds."""
    match = DURATION_RE.match(value.strip())
    if not match:
        raise DurationError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * DURATION_UNITS[unit or "s"]


def setup_logging(debug: bool):
    if not debug:
        logging.getLogger().addHandler(logging.NullHandler())
        return
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=DATA_DIR / "debug.log",
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_project(path: str) -> Project:
    """The discovered project at path, or a standalone one named after it."""
    from .cache import load_project_cache
    from .history import AccessHistory
    from .providers.discovery import discover_projects

    target = normalize_path(path)
    for projects in (load_project_cache, lambda: discover_projects(load_config(), AccessHistory())):
        match = next((p for p in projects() if p.key == target), None)
        if match is not None:
            return match
    fallback = Project(path=os.path.abspath(os.path.expanduser(path)), name=Path(target).name)
    # Keep clear of the session names of discovered projects
    return qualify_identifiers(load_project_cache() + [fallback])[-1]


def open_project(project: Project) -> int:
    """Switch to or attach the project's session, creating it first if needed."""
    from .history import AccessHistory
    from .tmux import TmuxClient

    AccessHistory().record_access(project)
    name = project.identifier()
    if not TmuxClient().open_session(name, project.path):
        print(f"Failed to open session {name}", file=sys.stderr)
        return 1
    return 0


def cmd_browse(args) -> int:
    """Launch the TUI picker."""
    from .app import NavPicker

    project = NavPicker().run()
    if project is None:
        return 0
    return open_project(project)


def cmd_sessionize(args) -> int:
    """Open a session for a project directory."""
    if not os.path.isdir(os.path.expanduser(args.path)):
        print(f"Not a directory: {args.path}", file=sys.stderr)
        return 1
    return open_project(resolve_project(args.path))


def known_projects() -> list[Project]:
    """Cached projects, or a fresh discovery when there is no cache."""
    from .cache import load_project_cache
    from .history import AccessHistory
    from .providers.discovery import discover_projects

    return load_project_cache() or discover_projects(load_config(), AccessHistory())


def cmd_history(args) -> int:
    """List recently opened projects, or reopen the latest one."""
    from .history import AccessHistory

    history = AccessHistory()
    recent = history.recent()
    if not recent:
        if args.action == "last":
            print("No session history found", file=sys.stderr)
            return 1
        print("No session history found.")
        return 0

    by_key = {p.key: p for p in known_projects()}
    entries = [(by_key[path], accessed) for path, accessed in recent if path in by_key]

    if args.action == "last":
        cwd = normalize_path(os.getcwd())
        project = next((p for p, _ in entries if p.key != cwd), None)
        if project is None:
            print("No valid recent sessions found", file=sys.stderr)
            return 1
        return open_project(project)

    if not entries:
        print("No session history found.")
        return 0
    for project, accessed in entries[:args.limit]:
        opened = datetime.fromtimestamp(accessed).strftime("%Y-%m-%d %H:%M")
        print(f"{project.identifier():<28} {opened}  {project.path}")
    return 0


def cmd_session(args) -> int:
    """Check for or kill a tmux session by name."""
    from .tmux import TmuxClient

    client = TmuxClient()
    if args.action == "exists":
        if client.session_exists(args.name):
            print(f"Session '{args.name}' exists")
            return 0
        print(f"Session '{args.name}' does not exist", file=sys.stderr)
        return 1

    if not client.kill_session(args.name):
        print(f"Failed to kill session '{args.name}'", file=sys.stderr)
        return 1
    print(f"Session '{args.name}' killed")
    return 0


def _key_store():
    from .keybindings import KeyBindingStore
    from .manager import KeyManager

    return KeyBindingStore(KeyManager(load_config()))


def cmd_key(args) -> int:
    """List, set or clear shortcut keys."""
    from .keybindings import KeyBindingError

    store = _key_store()

    if args.action == "list":
        for record in store.records:
            if record.is_bound:
                print(f"{record.key}  {record.repository_name:<24} {record.project_path}")
            elif args.all:
                print(f"{record.key}  -")
        return 0

    path = os.path.abspath(os.path.expanduser(args.path))
    if args.action == "set":
        try:
            store.assign(path, args.key)
        except KeyBindingError as e:
            print(str(e), file=sys.stderr)
            return 1
        print(f"{args.key} → {path}")
        return 0

    key = store.clear(path)
    if key is None:
        print(f"No key bound to {path}", file=sys.stderr)
        return 1
    print(f"Cleared {key}")
    return 0


def cmd_wait(args) -> int:
    """Block until a tmux session closes."""
    from .tmux import TmuxClient

    try:
        poll_interval = parse_duration(args.poll_interval)
        timeout = parse_duration(args.timeout)
    except DurationError as e:
        print(str(e), file=sys.stderr)
        return 1
    if poll_interval <= 0:
        print("poll interval must be positive", file=sys.stderr)
        return 1

    if TmuxClient().wait_for_session_close(args.session, poll_interval=poll_interval, timeout=timeout):
        return 0
    print(f"Timed out waiting for {args.session}", file=sys.stderr)
    return 1


def cmd_cache(args) -> int:
    """Manage the project cache."""
    from .cache import ProjectCache

    cache = ProjectCache()
    if args.action == "clear":
        if cache.clear():
            print(f"Cleared project cache: {cache.path}")
        else:
            print("No cache file found.")
        return 0

    info = cache.info()
    if info is None:
        print("Project cache: not found")
        return 0
    print(f"Project cache: {cache.path}")
    print(f"  Cached projects: {info['projects']}")
    if info["timestamp"]:
        saved = datetime.fromtimestamp(info["timestamp"]).strftime("%Y-%m-%d %H:%M:%S")
        print(f"  Saved: {saved}")
    print(f"  Size: {info['size'] / 1024:.1f} KB")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Pick a project and open its tmux session",
        prog="tmux-nav",
    )
    parser.add_argument(
        "--version", "-v",
        action="store_true",
        help="Show version"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Write debug logs to {DATA_DIR / 'debug.log'}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("browse", help="Launch TUI picker (default)")

    sessionize_parser = subparsers.add_parser("sessionize", help="Open a session for a directory")
    sessionize_parser.add_argument("path", help="Project directory")

    key_parser = subparsers.add_parser("key", help="Manage shortcut keys")
    key_sub = key_parser.add_subparsers(dest="action", required=True)
    list_parser = key_sub.add_parser("list", help="List bound keys")
    list_parser.add_argument("--all", "-a", action="store_true", help="Include unbound keys")
    set_parser = key_sub.add_parser("set", help="Bind a key to a project")
    set_parser.add_argument("key", help="Key from available_keys")
    set_parser.add_argument("path", help="Project directory")
    clear_parser = key_sub.add_parser("clear", help="Unbind a project's key")
    clear_parser.add_argument("path", help="Project directory")

    history_parser = subparsers.add_parser("history", help="Recently opened projects")
    history_parser.add_argument("action", nargs="?", choices=["last"], help="Reopen the most recent project")
    history_parser.add_argument("--limit", "-n", type=int, default=15, help="Number of entries to list (default 15)")

    session_parser = subparsers.add_parser("session", help="Check for or kill a session")
    session_parser.add_argument("action", choices=["exists", "kill"], help="Session action")
    session_parser.add_argument("name", help="Session name")

    wait_parser = subparsers.add_parser("wait", help="Wait for a session to close")
    wait_parser.add_argument("session", help="Session name")
    wait_parser.add_argument("--poll-interval", default="1s", help="Time between checks (default 1s)")
    wait_parser.add_argument("--timeout", default="0s", help="Give up after this long (default 0s = never)")

    cache_parser = subparsers.add_parser("cache", help="Manage project cache")
    cache_parser.add_argument("action", choices=["clear", "info"], help="Cache action")

    return parser


COMMANDS = {
    "browse": cmd_browse,
    "sessionize": cmd_sessionize,
    "key": cmd_key,
    "history": cmd_history,
    "session": cmd_session,
    "wait": cmd_wait,
    "cache": cmd_cache,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for tmux-nav CLI."""
    args = build_parser().parse_args(argv)

    if args.version:
        from . import __version__
        print(f"tmux-nav {__version__}")
        return 0

    setup_logging(args.debug)
    return COMMANDS[args.command or "browse"](args)


if __name__ == "__main__":
    sys.exit(main())
