"""Local connection settings storage API endpoints.

Stores the GitHub connection (token, organization, project number) in a
local JSON file so the dashboard reopens on the last project.
This is intended for local development only - not for hosted deployments.
"""

import json
import os
from flask import Blueprint, request, jsonify

bp = Blueprint("credentials", __name__, url_prefix="/api/credentials")

# Store credentials in backend/config/ directory (gitignored)
CREDENTIALS_FILE = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "config",
    "credentials.json"
)

REQUIRED_FIELDS = ("token", "organization", "projectNumber")


def _ensure_config_dir():
    """Ensure the config directory exists."""
    config_dir = os.path.dirname(CREDENTIALS_FILE)
    if not os.path.exists(config_dir):
        os.makedirs(config_dir)


def _load_credentials():
    """Load saved connection settings, or {} if missing or incomplete."""
    if not os.path.exists(CREDENTIALS_FILE):
        return {}
    try:
        with open(CREDENTIALS_FILE, "r") as f:
            credentials = json.load(f)
    except (json.JSONDecodeError, IOError):
        return {}

    github = credentials.get("github") or {}
    if not all(github.get(field) for field in REQUIRED_FIELDS):
        return {}
    return credentials


def _save_credentials(credentials):
    """Save connection settings to file."""
    _ensure_config_dir()
    with open(CREDENTIALS_FILE, "w") as f:
        json.dump(credentials, f, indent=2)


@bp.route("", methods=["GET"])
def get_credentials():
    """Get the saved GitHub connection.

    The token is included since this is local-only storage.
    """
    return jsonify({"data": _load_credentials()})


@bp.route("", methods=["POST"])
def save_credentials():
    """Save the GitHub connection.

    Expects JSON body with:
        - github: { token, organization, projectNumber }
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    github = data.get("github") or {}
    missing = [field for field in REQUIRED_FIELDS if not github.get(field)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    credentials = {
        "github": {
            "token": github["token"],
            "organization": github["organization"],
            "projectNumber": github["projectNumber"],
        }
    }
    _save_credentials(credentials)

    return jsonify({"data": credentials})


@bp.route("", methods=["DELETE"])
def clear_credentials():
    """Clear the saved connection (dashboard reset)."""
    if os.path.exists(CREDENTIALS_FILE):
        os.remove(CREDENTIALS_FILE)

    return jsonify({"data": {"cleared": True}})
