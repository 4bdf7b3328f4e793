"""GitHub Projects (v2) issue supplier.

Fetches every item of an organization project over the GraphQL API and
normalizes the loosely-typed project fields (status, story points,
iteration) into Issue records before the forecast engine sees them.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Optional

import pytz
import requests

from services.models import (
    STATE_CLOSED,
    STATE_OPEN,
    Issue,
    IssueDataError,
    Sprint,
    User,
    format_day,
)

logger = logging.getLogger(__name__)

GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"

DEFAULT_TIMEZONE = "Asia/Tokyo"

# Pause between page requests
PAGE_DELAY_SECONDS = 0.1
PAGE_SIZE = 100

DEFAULT_STORY_POINTS = 1
DEFAULT_SPRINT_DURATION = 11

STATUS_FIELD_NAMES = ["status", "ステータス", "状態", "done", "completed", "完了"]
DONE_STATUS_VALUES = ["done", "完了", "closed", "completed"]
STORY_POINT_FIELD_NAMES = ["story points", "ストーリーポイント", "sp", "points", "point"]
CLOSED_CONTENT_STATES = {"CLOSED", "MERGED"}

PROJECT_ITEMS_QUERY = """
query($org: String!, $projectNumber: Int!, $after: String) {
  organization(login: $org) {
    projectV2(number: $projectNumber) {
      id
      title
      items(first: %d, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          id
          content {
            __typename
            ... on Issue {
              title
              state
              createdAt
              closedAt
              labels(first: 10) { nodes { name color } }
              assignees(first: 5) { nodes { login avatarUrl } }
            }
            ... on PullRequest {
              title
              state
              createdAt
              closedAt
              labels(first: 10) { nodes { name color } }
              assignees(first: 5) { nodes { login avatarUrl } }
            }
          }
          fieldValues(first: 20) {
            nodes {
              __typename
              ... on ProjectV2ItemFieldTextValue {
                text
                field { ... on ProjectV2FieldCommon { name } }
              }
              ... on ProjectV2ItemFieldDateValue {
                date
                field { ... on ProjectV2FieldCommon { name } }
              }
              ... on ProjectV2ItemFieldSingleSelectValue {
                name
                field { ... on ProjectV2FieldCommon { name } }
              }
              ... on ProjectV2ItemFieldIterationValue {
                title
                startDate
                duration
                field { ... on ProjectV2FieldCommon { name } }
              }
              ... on ProjectV2ItemFieldNumberValue {
                number
                field { ... on ProjectV2FieldCommon { name } }
              }
            }
          }
        }
      }
    }
  }
}
""" % PAGE_SIZE


class GitHubProjectError(Exception):
    """Base class for failures reported by the GitHub API."""


class GitHubAPIError(GitHubProjectError):
    """The GraphQL response carried errors."""


class ProjectNotFoundError(GitHubProjectError):
    """The organization project does not exist or is not visible to the token."""


def _field_name(field_value: dict) -> str:
    return ((field_value.get("field") or {}).get("name") or "").lower()


def _matches_any(text: str, candidates: list) -> bool:
    text = (text or "").lower()
    return any(candidate in text for candidate in candidates)


class GitHubProjectService:
    """Loads a project's items and converts them into Issues."""

    def __init__(self, token: str, organization: str, project_number: int,
                 timezone: str = DEFAULT_TIMEZONE):
        self.token = token
        self.organization = organization
        self.project_number = int(project_number)
        self.timezone = pytz.timezone(timezone)
        self._project_cache = None

    def _request(self, query: str, variables: dict) -> dict:
        """POST a GraphQL query and return its ``data`` payload."""
        response = requests.post(
            GITHUB_GRAPHQL_URL,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
            json={"query": query, "variables": variables},
            timeout=30
        )
        response.raise_for_status()
        payload = response.json()

        if payload.get("errors"):
            raise GitHubAPIError(f"GraphQL errors: {payload['errors']}")

        return payload.get("data") or {}

    def fetch_project_data(self) -> dict:
        """Fetch the project title and all of its items, page by page."""
        if self._project_cache is not None:
            return self._project_cache

        all_items = []
        project_id = None
        project_title = None
        cursor = None
        pages = 0

        while True:
            data = self._request(PROJECT_ITEMS_QUERY, {
                "org": self.organization,
                "projectNumber": self.project_number,
                "after": cursor,
            })

            project = (data.get("organization") or {}).get("projectV2")
            if not project:
                raise ProjectNotFoundError(
                    f"Project {self.organization}/{self.project_number} "
                    "not found or access denied"
                )

            if project_id is None:
                project_id = project.get("id")
                project_title = project.get("title")

            items = project.get("items") or {}
            all_items.extend(items.get("nodes") or [])
            pages += 1

            page_info = items.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break

            cursor = page_info.get("endCursor")
            time.sleep(PAGE_DELAY_SECONDS)

        logger.info(
            f"Fetched {len(all_items)} items from {self.organization}/"
            f"{self.project_number} in {pages} page(s)"
        )

        self._project_cache = {
            "id": project_id,
            "title": project_title,
            "items": all_items,
        }
        return self._project_cache

    def now(self) -> datetime:
        """Current wall-clock time in the dashboard timezone (naive)."""
        return datetime.now(self.timezone).replace(tzinfo=None)

    def _parse_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse a GitHub timestamp into a naive local datetime.

        Raises:
            IssueDataError: if the value is present but not a known format
        """
        if not date_str:
            return None

        formats = [
            "%Y-%m-%dT%H:%M:%S%z",      # 2024-01-15T10:30:00Z
            "%Y-%m-%dT%H:%M:%S.%f%z",   # With fractional seconds
            "%Y-%m-%d"                   # Date only (iteration start dates)
        ]

        for fmt in formats:
            try:
                parsed = datetime.strptime(date_str, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(self.timezone).replace(tzinfo=None)
            return parsed

        raise IssueDataError(f"Unrecognized date: {date_str!r}")

    def _resolve_status(self, field_values: list) -> Optional[str]:
        """Find the Status-like single select value, if any."""
        for field_value in field_values:
            if field_value.get("__typename") != "ProjectV2ItemFieldSingleSelectValue":
                continue
            name = field_value.get("name")
            if not name:
                continue
            if (_matches_any(name, STATUS_FIELD_NAMES)
                    or _matches_any(_field_name(field_value), STATUS_FIELD_NAMES)):
                return name
        return None

    def _resolve_story_points(self, field_values: list) -> float:
        """Read story points from a number field named like "Story Points"."""
        for field_value in field_values:
            if field_value.get("__typename") != "ProjectV2ItemFieldNumberValue":
                continue
            name = _field_name(field_value)
            if name and _matches_any(name, STORY_POINT_FIELD_NAMES):
                number = field_value.get("number")
                if number is not None:
                    return float(number)
        return DEFAULT_STORY_POINTS

    def _resolve_sprint(self, field_values: list) -> Optional[Sprint]:
        """Build a Sprint from the iteration field (end = start + duration)."""
        iteration = next(
            (fv for fv in field_values
             if fv.get("__typename") == "ProjectV2ItemFieldIterationValue"),
            None
        )
        if not iteration or not iteration.get("title") or not iteration.get("startDate"):
            return None

        start = self._parse_date(iteration["startDate"])
        duration = iteration.get("duration") or DEFAULT_SPRINT_DURATION
        logger.debug(
            f"Sprint {iteration['title']}: start {iteration['startDate']}, "
            f"duration from API {iteration.get('duration')}, using {duration}"
        )

        return Sprint(
            id=iteration["title"],
            title=iteration["title"],
            start_date=format_day(start),
            end_date=format_day(start + timedelta(days=duration)),
            duration=duration,
        )

    def _convert_item(self, item: dict, fetched_at: datetime) -> Optional[Issue]:
        """Normalize one project item. Drafts and other content are skipped."""
        content = item.get("content")
        if not content or content.get("__typename") not in ("Issue", "PullRequest"):
            return None

        field_values = (item.get("fieldValues") or {}).get("nodes") or []
        status = self._resolve_status(field_values)

        is_done = (
            content.get("state") in CLOSED_CONTENT_STATES
            or _matches_any(status, DONE_STATUS_VALUES)
        )

        created_at = self._parse_date(content.get("createdAt"))
        if created_at is None:
            raise IssueDataError(f"Item {item.get('id')} has no creation date")

        closed_at = None
        if is_done:
            # Done in the project board but still open on GitHub
            closed_at = self._parse_date(content.get("closedAt")) or fetched_at

        assignees = (content.get("assignees") or {}).get("nodes") or []
        labels = (content.get("labels") or {}).get("nodes") or []

        return Issue(
            id=item.get("id"),
            title=content.get("title", ""),
            state=STATE_CLOSED if is_done else STATE_OPEN,
            story_points=self._resolve_story_points(field_values),
            created_at=created_at,
            closed_at=closed_at,
            assignee=assignees[0].get("login") if assignees else None,
            assignee_avatar_url=assignees[0].get("avatarUrl") if assignees else None,
            labels=frozenset(label.get("name") for label in labels if label.get("name")),
            sprint=self._resolve_sprint(field_values),
        )

    def get_issues(self, fetched_at: Optional[datetime] = None) -> list:
        """Fetch the project and return its items as Issues.

        Args:
            fetched_at: Timestamp used as the close date for items that are
                done on the board but carry no ``closedAt``. Defaults to now.
        """
        fetched_at = fetched_at or self.now()
        project = self.fetch_project_data()

        issues = []
        for item in project["items"]:
            issue = self._convert_item(item, fetched_at)
            if issue is not None:
                issues.append(issue)

        skipped = len(project["items"]) - len(issues)
        if skipped:
            logger.info(f"Skipped {skipped} draft or unsupported project items")

        return issues

    def get_field_summary(self) -> dict:
        """Field names seen on project items, for diagnosing field resolution."""
        project = self.fetch_project_data()
        fields = {}
        for item in project["items"]:
            for field_value in (item.get("fieldValues") or {}).get("nodes") or []:
                name = (field_value.get("field") or {}).get("name")
                if not name:
                    continue
                entry = fields.setdefault(name, {
                    "name": name,
                    "type": field_value.get("__typename"),
                    "count": 0,
                })
                entry["count"] += 1

        candidates = [
            name for name, entry in fields.items()
            if entry["type"] == "ProjectV2ItemFieldNumberValue"
            and _matches_any(name, STORY_POINT_FIELD_NAMES)
        ]

        return {
            "projectTitle": project["title"],
            "totalItems": len(project["items"]),
            "fields": sorted(fields.values(), key=lambda f: f["name"]),
            "storyPointCandidates": sorted(candidates),
        }


def extract_sprints(issues: list) -> list:
    """Unique sprints across issues, ordered by start date."""
    sprints = {}
    for issue in issues:
        if issue.sprint:
            sprints[issue.sprint.id] = issue.sprint
    return sorted(sprints.values(), key=lambda s: s.start_date or "")


def extract_users(issues: list) -> list:
    """Unique assignees across issues, ordered by login."""
    users = {}
    for issue in issues:
        if issue.assignee:
            users[issue.assignee] = User(
                login=issue.assignee, avatar_url=issue.assignee_avatar_url
            )
    return [users[login] for login in sorted(users)]
