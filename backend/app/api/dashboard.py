"""Dashboard data API endpoints."""

from datetime import datetime

import pytz
import requests
from flask import Blueprint, request, jsonify

from app import build_calendar, get_dashboard_settings
from services.dashboard import DashboardService
from services.forecast import ForecastEngine
from services.github_project import (
    GitHubAPIError,
    GitHubProjectService,
    ProjectNotFoundError,
)
from services.models import IssueDataError

bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

UPSTREAM_ERRORS = (
    requests.exceptions.RequestException,
    GitHubAPIError,
    ProjectNotFoundError,
    IssueDataError,
)


def get_github_credentials():
    """Extract GitHub connection settings from request headers."""
    token = request.headers.get("X-GitHub-Token")
    organization = request.headers.get("X-GitHub-Organization", "").strip()
    project_number = request.headers.get("X-GitHub-Project")

    if not all([token, organization, project_number]):
        return None, None, None

    return token, organization, project_number


def get_filters():
    """Get optional assignee/sprint filters from query params.

    Query params:
        - assignee: GitHub login, or "all"
        - sprint: Sprint (iteration) title, or "all"
    """
    return request.args.get("assignee"), request.args.get("sprint")


def get_now(timezone):
    """Get the computation time.

    Query params:
        - now: Optional ISO timestamp (e.g., "2024-03-01T09:00:00" or
          "2024-03-01T00:00:00Z") to pin the forecast; defaults to the
          current time

    Returns:
        Naive datetime in the dashboard timezone

    Raises:
        ValueError: if ``now`` is not an ISO timestamp
    """
    tz = pytz.timezone(timezone)
    value = request.args.get("now")
    if not value:
        return datetime.now(tz).replace(tzinfo=None)

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    now = datetime.fromisoformat(value)
    if now.tzinfo is not None:
        now = now.astimezone(tz).replace(tzinfo=None)
    return now


def error_response(error):
    """Map a supplier failure to an error response."""
    if isinstance(error, requests.exceptions.Timeout):
        return jsonify({"error": "Connection to GitHub timed out"}), 504
    if isinstance(error, ProjectNotFoundError):
        return jsonify({"error": str(error)}), 404
    if isinstance(error, IssueDataError):
        return jsonify({"error": f"Invalid project data: {error}"}), 422
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        if error.response.status_code == 401:
            return jsonify({"error": "Invalid credentials"}), 401
    return jsonify({"error": f"GitHub API error: {error}"}), 502


def _prepare():
    """Build the per-request service and computation time.

    Returns (service, now, None) or (None, None, error_response).
    """
    token, organization, project_number = get_github_credentials()

    if not token:
        return None, None, (jsonify({"error": "Missing GitHub credentials in headers"}), 401)

    try:
        project_number = int(project_number)
    except ValueError:
        return None, None, (jsonify({"error": "X-GitHub-Project must be an integer"}), 400)

    settings = get_dashboard_settings()
    try:
        now = get_now(settings["timezone"])
    except ValueError:
        return None, None, (jsonify({"error": "now must be an ISO timestamp"}), 400)

    supplier = GitHubProjectService(
        token, organization, project_number, timezone=settings["timezone"]
    )
    service = DashboardService(supplier, ForecastEngine(build_calendar()))
    return service, now, None


@bp.route("/summary", methods=["GET"])
def get_summary():
    """Get stats, burndown, velocity and filter options in one response.

    Query params:
        - assignee, sprint: Optional filters
        - now: Optional ISO timestamp

    Returns combined object for the dashboard page.
    """
    service, now, error = _prepare()
    if error:
        return error

    assignee, sprint = get_filters()

    try:
        return jsonify({"data": service.get_summary(now, assignee, sprint)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/stats", methods=["GET"])
def get_stats():
    """Get sprint statistics (null when no issues match the filters)."""
    service, now, error = _prepare()
    if error:
        return error

    assignee, sprint = get_filters()

    try:
        return jsonify({"data": service.get_stats(now, assignee, sprint)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/burndown", methods=["GET"])
def get_burndown():
    """Get the burndown/burnup series with working-day forecast."""
    service, now, error = _prepare()
    if error:
        return error

    assignee, sprint = get_filters()

    try:
        return jsonify({"data": service.get_burndown(now, assignee, sprint)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/velocity", methods=["GET"])
def get_velocity():
    """Get daily completed points, running total and 7-day average."""
    service, now, error = _prepare()
    if error:
        return error

    assignee, sprint = get_filters()

    try:
        return jsonify({"data": service.get_velocity(now, assignee, sprint)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/issues", methods=["GET"])
def get_issues():
    """Get the filtered issue list and its story point total."""
    service, now, error = _prepare()
    if error:
        return error

    assignee, sprint = get_filters()

    try:
        return jsonify({"data": service.get_issues(now, assignee, sprint)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/sprints", methods=["GET"])
def get_sprints():
    """Get sprints found on project items, ordered by start date."""
    service, now, error = _prepare()
    if error:
        return error

    try:
        return jsonify({"data": service.get_sprints(now)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)


@bp.route("/users", methods=["GET"])
def get_users():
    """Get assignees found on project items, ordered by login."""
    service, now, error = _prepare()
    if error:
        return error

    try:
        return jsonify({"data": service.get_users(now)})
    except UPSTREAM_ERRORS as e:
        return error_response(e)
