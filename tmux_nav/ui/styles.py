"""CSS styles for the tmux-nav TUI."""

APP_CSS = """
Screen {
    layout: vertical;
}

#status-bar {
    height: 1;
    padding: 0 1;
    background: $surface;
}

#table-header {
    height: 1;
    padding: 0 1;
    display: none;
}

#table-header.visible {
    display: block;
}

#search-input {
    display: none;
    height: 3;
    border: solid $warning;
    padding: 0 1;
}

#search-input.visible {
    display: block;
}

#project-list {
    height: 1fr;
    border: solid $primary;
}

#empty-message {
    display: none;
    padding: 1 2;
    color: $text-muted;
}

#empty-message.visible {
    display: block;
}

ProjectItem {
    height: 1;
    padding: 0 1;
}

ProjectItem:hover {
    background: $surface-lighten-1;
}

ListView:focus > ListItem.-active {
    background: $primary-darken-1;
}

ListView.-has-focus > ListItem.-active {
    background: $primary;
}

Footer {
    background: $surface;
}
"""
