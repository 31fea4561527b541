"""Note counts per project from a user-configured command."""

from ..models import NoteCounts, Project, normalize_path
from . import register_provider
from .base import EnrichmentProvider, ProviderError, run_json_command

NOTE_FIELDS = {
    "current": "current",
    "issues": "issues",
    "inbox": "inbox",
    "docs": "docs",
    "completed": "completed",
    "review": "review",
    "in_progress": "in_progress",
    "inProgress": "in_progress",
    "other": "other",
}


def parse_note_counts(entry: dict) -> NoteCounts:
    values = {}
    for source, target in NOTE_FIELDS.items():
        if source in entry:
            try:
                values[target] = int(entry[source] or 0)
            except (TypeError, ValueError):
                continue
    return NoteCounts(**values)


@register_provider
class NoteCountsProvider(EnrichmentProvider):
    """Counts keyed by project name, mapped back onto project paths."""

    name = "notes"
    display_name = "Notes"
    icon = "📝"

    def is_available(self) -> bool:
        return bool(self.config.notes_command)

    def fetch(self, projects: list[Project]) -> dict[str, NoteCounts]:
        if not self.config.notes_command:
            return {}
        data = run_json_command(self.config.notes_command)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ProviderError("expected a JSON object keyed by project name")

        counts_by_name = {
            name: parse_note_counts(entry)
            for name, entry in data.items()
            if isinstance(entry, dict)
        }
        return {
            normalize_path(p.path): counts_by_name[p.name]
            for p in projects
            if p.name in counts_by_name
        }
