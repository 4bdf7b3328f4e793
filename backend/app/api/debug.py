"""Debug API endpoints for troubleshooting."""

from flask import Blueprint, request, jsonify

from app.api.dashboard import UPSTREAM_ERRORS, error_response
from services.github_project import GitHubProjectService

bp = Blueprint("debug", __name__, url_prefix="/api/debug")


def get_github_credentials():
    """Extract GitHub connection settings from request headers."""
    token = request.headers.get("X-GitHub-Token")
    organization = request.headers.get("X-GitHub-Organization", "").strip()
    project_number = request.headers.get("X-GitHub-Project")

    if not all([token, organization, project_number]):
        return None, None, None

    return token, organization, project_number


@bp.route("/fields", methods=["GET"])
def get_project_fields():
    """List the custom fields seen on project items.

    Shows which number fields would be read as story points, to debug
    items that fall back to the default estimate.
    """
    token, organization, project_number = get_github_credentials()

    if not token:
        return jsonify({"error": "Missing GitHub credentials in headers"}), 401

    try:
        project_number = int(project_number)
    except ValueError:
        return jsonify({"error": "X-GitHub-Project must be an integer"}), 400

    try:
        service = GitHubProjectService(token, organization, project_number)
        return jsonify({"data": service.get_field_summary()})
    except UPSTREAM_ERRORS as e:
        return error_response(e)
