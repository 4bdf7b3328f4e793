"""Dashboard data service.

Applies the user's filters to one snapshot of project issues and runs the
forecast engine over the result. A new service is created per request, so
nothing here outlives a single load.
"""

import logging
from datetime import datetime
from typing import Optional

from services.forecast import ForecastEngine
from services.github_project import GitHubProjectService, extract_sprints, extract_users

logger = logging.getLogger(__name__)

# Filter value meaning "no filter"
ALL = "all"


def filter_issues(issues, assignee: Optional[str] = None,
                  sprint: Optional[str] = None) -> tuple:
    """Keep issues matching the assignee login and sprint title.

    ``None``, empty or "all" disables a filter.
    """
    def matches(value, selected):
        return not selected or selected == ALL or value == selected

    return tuple(
        issue for issue in issues
        if matches(issue.assignee, assignee)
        and matches(issue.sprint.title if issue.sprint else None, sprint)
    )


class DashboardService:
    """Serves stats and chart series for a GitHub project."""

    def __init__(self, supplier: GitHubProjectService, engine: ForecastEngine):
        self.supplier = supplier
        self.engine = engine
        self._issues_cache = None

    def _get_issues(self, now: datetime) -> tuple:
        """Fetch and normalize the project's issues once per service."""
        if self._issues_cache is None:
            self._issues_cache = tuple(self.supplier.get_issues(fetched_at=now))
        return self._issues_cache

    def _filtered(self, now: datetime, assignee: Optional[str],
                  sprint: Optional[str]) -> tuple:
        issues = filter_issues(self._get_issues(now), assignee, sprint)
        logger.debug(
            f"{len(issues)} issues after filters assignee={assignee!r} sprint={sprint!r}"
        )
        return issues

    def get_stats(self, now: datetime, assignee: Optional[str] = None,
                  sprint: Optional[str] = None) -> Optional[dict]:
        """Sprint statistics, or None when no issues match the filters."""
        issues = self._filtered(now, assignee, sprint)
        if not issues:
            return None
        return self.engine.calculate_stats(issues, now).to_dict()

    def get_burndown(self, now: datetime, assignee: Optional[str] = None,
                     sprint: Optional[str] = None) -> list:
        """Burndown/burnup series for the filtered issues."""
        issues = self._filtered(now, assignee, sprint)
        if not issues:
            return []
        stats = self.engine.calculate_stats(issues, now)
        start = self.engine.series_start(issues, now)
        return [point.to_dict() for point in self.engine.build_burndown(issues, stats, start, now)]

    def get_velocity(self, now: datetime, assignee: Optional[str] = None,
                     sprint: Optional[str] = None) -> list:
        """Daily velocity series for the filtered issues, ending today."""
        issues = self._filtered(now, assignee, sprint)
        start = self.engine.series_start(issues, now)
        return [point.to_dict() for point in self.engine.build_velocity(issues, start, now)]

    def get_issues(self, now: datetime, assignee: Optional[str] = None,
                   sprint: Optional[str] = None) -> dict:
        """Issue list with its story point total."""
        issues = self._filtered(now, assignee, sprint)
        return {
            "issues": [issue.to_dict() for issue in issues],
            "count": len(issues),
            "totalStoryPoints": sum(issue.story_points for issue in issues),
        }

    def get_sprints(self, now: datetime) -> list:
        return [sprint.to_dict() for sprint in extract_sprints(self._get_issues(now))]

    def get_users(self, now: datetime) -> list:
        return [user.to_dict() for user in extract_users(self._get_issues(now))]

    def get_summary(self, now: datetime, assignee: Optional[str] = None,
                    sprint: Optional[str] = None) -> dict:
        """Everything the dashboard page needs from a single fetch."""
        issues = self._filtered(now, assignee, sprint)
        result = self.engine.calculate_all(issues, now).to_dict()

        result.update({
            "issueCount": len(issues),
            "users": self.get_users(now),
            "sprints": self.get_sprints(now),
            "now": now.isoformat(),
        })
        return result
