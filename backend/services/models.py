"""Issue and forecast data records.

Everything here is an immutable snapshot. The forecast engine builds new
records on every call and the API layer serializes them with ``to_dict``,
which produces the camelCase shapes the chart frontend expects.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

DATE_FORMAT = "%Y-%m-%d"

STATE_OPEN = "open"
STATE_CLOSED = "closed"


class IssueDataError(ValueError):
    """Raised when supplier data cannot be turned into a valid Issue."""


def format_day(value) -> str:
    """Format a date or datetime as YYYY-MM-DD."""
    return value.strftime(DATE_FORMAT)


def parse_day(value: str) -> date:
    """Parse a YYYY-MM-DD string."""
    return datetime.strptime(value, DATE_FORMAT).date()


@dataclass(frozen=True)
class Sprint:
    """Iteration an issue belongs to. Descriptive only."""

    id: str
    title: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    duration: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class User:
    """Assignee as shown in the filter list."""

    login: str
    avatar_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {"login": self.login, "avatarUrl": self.avatar_url}


@dataclass(frozen=True)
class Issue:
    """A project item normalized to the shape the forecast engine uses.

    ``closed_at`` is set iff the issue is closed. Timestamps are naive
    datetimes in the dashboard's configured timezone.
    """

    id: str
    title: str
    state: str
    story_points: float
    created_at: datetime
    closed_at: Optional[datetime] = None
    assignee: Optional[str] = None
    assignee_avatar_url: Optional[str] = None
    labels: frozenset = frozenset()
    sprint: Optional[Sprint] = None

    def __post_init__(self):
        if self.state not in (STATE_OPEN, STATE_CLOSED):
            raise IssueDataError(f"Issue {self.id} has unknown state {self.state!r}")
        if self.story_points < 0:
            raise IssueDataError(
                f"Issue {self.id} has negative story points: {self.story_points}"
            )
        if (self.state == STATE_CLOSED) != (self.closed_at is not None):
            raise IssueDataError(
                f"Issue {self.id} is {self.state} but closed_at is {self.closed_at!r}"
            )

    @property
    def is_closed(self) -> bool:
        return self.state == STATE_CLOSED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state,
            "storyPoints": self.story_points,
            "createdAt": self.created_at.isoformat(),
            "closedAt": self.closed_at.isoformat() if self.closed_at else None,
            "assignee": self.assignee,
            "assigneeAvatarUrl": self.assignee_avatar_url,
            "labels": sorted(self.labels),
            "sprint": self.sprint.to_dict() if self.sprint else None,
        }


@dataclass(frozen=True)
class SprintStats:
    """Scalar statistics for a set of issues at a point in time.

    The completion dates are ``None`` when no prediction can be made (no
    completed work, no recent throughput, or nothing left to do).
    """

    total_story_points: float
    completed_story_points: float
    remaining_story_points: float
    completion_rate: float
    velocity: float
    working_day_velocity: float
    days_elapsed: int
    working_days_elapsed: int
    predicted_completion_date: Optional[str] = None
    working_day_completion_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "totalStoryPoints": self.total_story_points,
            "completedStoryPoints": self.completed_story_points,
            "remainingStoryPoints": self.remaining_story_points,
            "completionRate": self.completion_rate,
            "velocity": self.velocity,
            "workingDayVelocity": self.working_day_velocity,
            "daysElapsed": self.days_elapsed,
            "workingDaysElapsed": self.working_days_elapsed,
            "predictedCompletionDate": self.predicted_completion_date,
            "workingDayCompletionDate": self.working_day_completion_date,
        }


@dataclass(frozen=True)
class BurndownPoint:
    """One day of the burndown/burnup chart."""

    date: str
    remaining_story_points: Optional[float]
    completed_story_points: float
    scope_line: float
    is_actual: bool
    is_prediction: bool
    working_day_prediction: Optional[float] = None
    burnup_working_day_prediction: Optional[float] = None

    def to_dict(self) -> dict:
        data = {
            "date": self.date,
            "remainingStoryPoints": self.remaining_story_points,
            "completedStoryPoints": self.completed_story_points,
            "scopeLine": self.scope_line,
            "isActual": self.is_actual,
            "isPrediction": self.is_prediction,
        }
        # Unset predictions are omitted
        if self.working_day_prediction is not None:
            data["workingDayPrediction"] = self.working_day_prediction
        if self.burnup_working_day_prediction is not None:
            data["burnupWorkingDayPrediction"] = self.burnup_working_day_prediction
        return data


@dataclass(frozen=True)
class VelocityPoint:
    """One day of the velocity chart."""

    date: str
    completed_sp: float
    cumulative_sp: float
    velocity: float

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "completedSP": self.completed_sp,
            "cumulativeSP": self.cumulative_sp,
            "velocity": self.velocity,
        }


@dataclass(frozen=True)
class ForecastResult:
    """Stats and both chart series computed from one issue snapshot."""

    stats: Optional[SprintStats]
    burndown: tuple = ()
    velocity: tuple = ()

    def to_dict(self) -> dict:
        return {
            "stats": self.stats.to_dict() if self.stats else None,
            "burndown": [point.to_dict() for point in self.burndown],
            "velocity": [point.to_dict() for point in self.velocity],
        }
