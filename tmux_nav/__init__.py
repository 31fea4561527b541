"""tmux-nav - project session picker for tmux."""

__version__ = "0.1.0"
