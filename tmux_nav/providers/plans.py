"""Plan statistics per project from a user-configured command."""

from ..models import PlanStats, Project, normalize_path
from . import register_provider
from .base import EnrichmentProvider, ProviderError, run_json_command

INT_FIELDS = ("total_plans", "running", "pending", "completed", "failed", "todo", "hold", "abandoned")


def parse_plan_stats(entry: dict) -> PlanStats:
    values = {}
    for name in INT_FIELDS:
        try:
            values[name] = int(entry.get(name) or 0)
        except (TypeError, ValueError):
            values[name] = 0
    return PlanStats(
        active_plan=str(entry.get("active_plan") or ""),
        plan_status=str(entry.get("plan_status") or ""),
        **values,
    )


@register_provider
class PlanStatsProvider(EnrichmentProvider):
    """Plan counts keyed by project path."""

    name = "plans"
    display_name = "Plans"
    icon = "📋"

    def is_available(self) -> bool:
        return bool(self.config.plans_command)

    def fetch(self, projects: list[Project]) -> dict[str, PlanStats]:
        if not self.config.plans_command:
            return {}
        data = run_json_command(self.config.plans_command)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ProviderError("expected a JSON object keyed by project path")
        return {
            normalize_path(path): parse_plan_stats(entry)
            for path, entry in data.items()
            if isinstance(entry, dict)
        }
