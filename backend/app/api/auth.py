"""Connection validation API endpoints."""

from flask import Blueprint, request, jsonify
import requests

from services.github_project import (
    GitHubAPIError,
    GitHubProjectService,
    ProjectNotFoundError,
)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.route("/validate", methods=["POST"])
def validate_connection():
    """Validate a GitHub token against an organization project.

    Expects JSON body with:
        - token: GitHub personal access token
        - organization: Organization login
        - projectNumber: Project (v2) number

    Returns the project title on success.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    token = data.get("token")
    organization = (data.get("organization") or "").strip()
    project_number = data.get("projectNumber")

    if not all([token, organization, project_number]):
        return jsonify({
            "error": "Missing required fields: token, organization, projectNumber"
        }), 400

    try:
        project_number = int(project_number)
    except (TypeError, ValueError):
        return jsonify({"error": "projectNumber must be an integer"}), 400

    try:
        service = GitHubProjectService(token, organization, project_number)
        project = service.fetch_project_data()

        return jsonify({
            "data": {
                "valid": True,
                "project": {
                    "id": project["id"],
                    "title": project["title"],
                    "itemCount": len(project["items"])
                }
            }
        })

    except requests.exceptions.Timeout:
        return jsonify({"error": "Connection to GitHub timed out"}), 504
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else 500
        if status == 401:
            return jsonify({"error": "Invalid credentials"}), 401
        return jsonify({"error": f"GitHub API error: {status}"}), status
    except ProjectNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except GitHubAPIError as e:
        return jsonify({"error": str(e)}), 502
    except requests.exceptions.RequestException as e:
        return jsonify({"error": f"Failed to connect to GitHub: {str(e)}"}), 500
