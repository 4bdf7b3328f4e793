"""Flask application factory."""

import json
import os
import pytz
from flask import Flask
from flask_cors import CORS

from services.github_project import DEFAULT_TIMEZONE
from services.working_days import DEFAULT_HOLIDAY_COUNTRY, WorkingDayCalendar

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "dashboard-config.json"
)

DEFAULT_SETTINGS = {
    "holidayCountry": DEFAULT_HOLIDAY_COUNTRY,
    "timezone": DEFAULT_TIMEZONE,
    "extraHolidays": [],
}

# Global dashboard settings, replaced wholesale on every load
_dashboard_settings = dict(DEFAULT_SETTINGS)


def load_dashboard_config(app, config_path=None):
    """Load holiday calendar and timezone settings from the config file."""
    global _dashboard_settings
    config_path = config_path or DEFAULT_CONFIG_PATH
    settings = dict(DEFAULT_SETTINGS)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config = json.load(f)
            for key in DEFAULT_SETTINGS:
                if config.get(key) is not None:
                    settings[key] = config[key]
            app.logger.info(
                f"Loaded dashboard config: holidays={settings['holidayCountry']}, "
                f"timezone={settings['timezone']}, "
                f"{len(settings['extraHolidays'])} extra holidays"
            )
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load dashboard config: {e}")
    else:
        app.logger.info("No dashboard-config.json found, using default settings")

    try:
        WorkingDayCalendar.for_country(
            settings["holidayCountry"], settings["extraHolidays"]
        )
    except (NotImplementedError, ValueError) as e:
        app.logger.warning(f"Invalid holiday settings, using defaults: {e}")
        settings["holidayCountry"] = DEFAULT_HOLIDAY_COUNTRY
        settings["extraHolidays"] = []

    try:
        pytz.timezone(settings["timezone"])
    except pytz.UnknownTimeZoneError:
        app.logger.warning(f"Unknown timezone {settings['timezone']}, using {DEFAULT_TIMEZONE}")
        settings["timezone"] = DEFAULT_TIMEZONE

    _dashboard_settings = settings


def get_dashboard_settings():
    """Current dashboard settings."""
    return dict(_dashboard_settings)


def build_calendar():
    """Working-day calendar for the configured holiday country."""
    settings = get_dashboard_settings()
    return WorkingDayCalendar.for_country(
        settings["holidayCountry"], settings["extraHolidays"]
    )


def create_app(config_path=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "POST", "DELETE", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-GitHub-Token", "X-GitHub-Organization", "X-GitHub-Project"
            ]
        }
    })

    # Register blueprints
    from app.api import auth, credentials, dashboard, debug
    app.register_blueprint(auth.bp)
    app.register_blueprint(credentials.bp)
    app.register_blueprint(dashboard.bp)
    app.register_blueprint(debug.bp)

    load_dashboard_config(app, config_path)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
