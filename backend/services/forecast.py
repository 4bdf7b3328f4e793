"""Burndown, burnup and velocity forecasting.

Turns a flat list of issues into sprint statistics and per-day chart
series. All methods are pure: ``now`` is always passed in and nothing is
cached between calls, so the same snapshot always yields the same output.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from services.models import (
    BurndownPoint,
    ForecastResult,
    Issue,
    SprintStats,
    VelocityPoint,
    format_day,
    parse_day,
)
from services.working_days import WorkingDayCalendar, iter_days, to_day

logger = logging.getLogger(__name__)

# Recent throughput is measured over this many calendar days
RECENT_VELOCITY_DAYS = 14

# Trailing window for the velocity chart's moving average
VELOCITY_AVERAGE_DAYS = 7

# Calendar days shown past the predicted completion date
DISPLAY_PADDING_DAYS = 7


def _can_predict(completed: float, velocity: float, remaining: float) -> bool:
    """A forecast needs finished work, measurable throughput and work left."""
    return completed > 0 and velocity > 0 and remaining > 0


class ForecastEngine:
    """Computes sprint statistics and chart series from issues."""

    def __init__(self, calendar: Optional[WorkingDayCalendar] = None):
        self.calendar = calendar or WorkingDayCalendar()

    def series_start(self, issues: Iterable[Issue], now: datetime) -> datetime:
        """Earliest creation timestamp, or now when there are no issues."""
        return min((issue.created_at for issue in issues), default=now)

    def calculate_stats(self, issues: Iterable[Issue], now: datetime) -> SprintStats:
        """Aggregate totals, velocities and predicted completion dates."""
        issues = tuple(issues)

        total = sum(issue.story_points for issue in issues)
        completed = sum(issue.story_points for issue in issues if issue.is_closed)
        remaining = total - completed
        completion_rate = completed / total * 100 if total > 0 else 0

        start = self.series_start(issues, now)
        days_elapsed = (to_day(now) - to_day(start)).days + 1
        working_days_elapsed = self.calendar.working_days_between(start, now)

        recent_start = now - timedelta(days=RECENT_VELOCITY_DAYS)
        recent_completed = sum(
            issue.story_points
            for issue in issues
            if issue.closed_at is not None and recent_start < issue.closed_at <= now
        )
        recent_working_days = self.calendar.working_days_between(recent_start, now)
        working_day_velocity = (
            recent_completed / recent_working_days if recent_working_days > 0 else 0
        )

        velocity = completed / days_elapsed if days_elapsed > 0 else 0

        predicted_completion_date = None
        working_day_completion_date = None

        if _can_predict(completed, working_day_velocity, remaining):
            if velocity > 0:
                remaining_days = math.ceil(remaining / velocity)
                predicted_completion_date = format_day(
                    to_day(now) + timedelta(days=remaining_days)
                )

            remaining_working_days = math.ceil(remaining / working_day_velocity)
            working_day_completion_date = format_day(
                self.calendar.add_working_days(now, remaining_working_days)
            )

        return SprintStats(
            total_story_points=total,
            completed_story_points=completed,
            remaining_story_points=remaining,
            completion_rate=completion_rate,
            velocity=velocity,
            working_day_velocity=working_day_velocity,
            days_elapsed=days_elapsed,
            working_days_elapsed=working_days_elapsed,
            predicted_completion_date=predicted_completion_date,
            working_day_completion_date=working_day_completion_date,
        )

    def build_burndown(self, issues: Iterable[Issue], stats: SprintStats,
                       start: datetime, now: datetime) -> list:
        """Build the burndown/burnup series with a working-day forecast.

        Remaining points are measured against the fixed total from ``stats``;
        the scope line grows with issue creation. The forecast starts at
        today's actual values and runs linearly at the recent working-day
        velocity until the predicted completion date, after which it stays
        at the finished state.
        """
        issues = tuple(issues)
        if not issues:
            return []

        today = to_day(now)
        if stats.working_day_completion_date is not None:
            end = parse_day(stats.working_day_completion_date) + timedelta(
                days=DISPLAY_PADDING_DAYS
            )
        else:
            end = today

        total = stats.total_story_points
        days = list(iter_days(start, end))
        points = []

        for day in days:
            is_actual = day <= today
            completed = sum(
                issue.story_points
                for issue in issues
                if issue.closed_at is not None and to_day(issue.closed_at) <= day
            )
            scope = sum(
                issue.story_points
                for issue in issues
                if to_day(issue.created_at) <= day
            )
            points.append(BurndownPoint(
                date=format_day(day),
                remaining_story_points=total - completed if is_actual else None,
                completed_story_points=completed,
                scope_line=scope,
                is_actual=is_actual,
                is_prediction=not is_actual,
            ))

        anchor_index = next(
            (index for index, day in enumerate(days) if day == today), None
        )
        if anchor_index is not None:
            anchor = points[anchor_index]
            points[anchor_index] = replace(
                anchor,
                working_day_prediction=anchor.remaining_story_points,
                burnup_working_day_prediction=anchor.completed_story_points,
            )
            current_remaining = anchor.remaining_story_points
            current_completed = anchor.completed_story_points
        else:
            current_remaining = stats.remaining_story_points
            current_completed = stats.completed_story_points

        velocity = stats.working_day_velocity
        if not _can_predict(current_completed, velocity, current_remaining):
            return points

        days_to_complete = math.ceil(current_remaining / velocity)
        predicted_completion = self.calendar.add_working_days(today, days_to_complete)

        for index, day in enumerate(days):
            point = points[index]
            if not point.is_prediction:
                continue

            if day <= predicted_completion:
                working_days = self.calendar.working_days_between(today, day)
                points[index] = replace(
                    point,
                    working_day_prediction=max(
                        0, current_remaining - velocity * working_days
                    ),
                    burnup_working_day_prediction=min(
                        total, current_completed + velocity * working_days
                    ),
                )
            else:
                points[index] = replace(
                    point,
                    working_day_prediction=0,
                    burnup_working_day_prediction=total,
                )

        return points

    def build_velocity(self, issues: Iterable[Issue], start: datetime,
                       now: datetime) -> list:
        """Daily completions, running total and trailing 7-day average.

        The series always ends today, independent of the burndown window.
        """
        issues = tuple(issues)
        if not issues:
            return []

        closed = [
            (to_day(issue.closed_at), issue.story_points)
            for issue in issues
            if issue.closed_at is not None
        ]

        points = []
        cumulative = 0
        for day in iter_days(start, now):
            completed = sum(sp for closed_day, sp in closed if closed_day == day)
            cumulative += completed

            window_start = day - timedelta(days=VELOCITY_AVERAGE_DAYS)
            weekly = sum(
                sp for closed_day, sp in closed
                if window_start < closed_day <= day
            )

            points.append(VelocityPoint(
                date=format_day(day),
                completed_sp=completed,
                cumulative_sp=cumulative,
                velocity=weekly / VELOCITY_AVERAGE_DAYS,
            ))

        return points

    def calculate_all(self, issues: Iterable[Issue], now: datetime) -> ForecastResult:
        """Stats plus both chart series for one snapshot of issues."""
        issues = tuple(issues)
        if not issues:
            return ForecastResult(stats=None)

        stats = self.calculate_stats(issues, now)
        start = self.series_start(issues, now)

        burndown = self.build_burndown(issues, stats, start, now)
        velocity = self.build_velocity(issues, start, now)
        logger.debug(
            f"Forecast for {len(issues)} issues: {len(burndown)} burndown points, "
            f"{len(velocity)} velocity points"
        )

        return ForecastResult(
            stats=stats,
            burndown=tuple(burndown),
            velocity=tuple(velocity),
        )
