"""Shared fixtures for forecast dashboard tests."""

import pytest
from datetime import datetime


# Sunday: the 14-day recency window (Mar 3 - Mar 17) holds exactly 10 weekdays
FIXED_NOW = datetime(2024, 3, 17, 12, 0)


@pytest.fixture
def now():
    """Fixed computation time."""
    return FIXED_NOW


@pytest.fixture
def mock_github_credentials():
    """Mock GitHub connection settings for testing."""
    return {
        "token": "ghp_test-token-123",
        "organization": "test-org",
        "project_number": 7
    }


@pytest.fixture
def github_headers():
    """Request headers carrying the GitHub connection."""
    return {
        "X-GitHub-Token": "ghp_test-token-123",
        "X-GitHub-Organization": "test-org",
        "X-GitHub-Project": "7"
    }


@pytest.fixture
def sample_item_closed():
    """Closed issue with story points and an iteration."""
    return {
        "id": "PVTI_1",
        "content": {
            "__typename": "Issue",
            "title": "Implement login",
            "state": "CLOSED",
            "createdAt": "2024-03-04T00:00:00Z",
            "closedAt": "2024-03-06T01:00:00Z",
            "labels": {"nodes": [{"name": "feature", "color": "a2eeef"}]},
            "assignees": {"nodes": [
                {"login": "alice", "avatarUrl": "https://example.com/alice.png"}
            ]}
        },
        "fieldValues": {
            "nodes": [
                {
                    "__typename": "ProjectV2ItemFieldSingleSelectValue",
                    "name": "Done",
                    "field": {"name": "Status"}
                },
                {
                    "__typename": "ProjectV2ItemFieldNumberValue",
                    "number": 4,
                    "field": {"name": "Story Points"}
                },
                {
                    "__typename": "ProjectV2ItemFieldIterationValue",
                    "title": "Sprint 1",
                    "startDate": "2024-03-04",
                    "duration": 14,
                    "field": {"name": "Iteration"}
                }
            ]
        }
    }


@pytest.fixture
def sample_item_open():
    """Open issue with story points, no iteration."""
    return {
        "id": "PVTI_2",
        "content": {
            "__typename": "Issue",
            "title": "Write API docs",
            "state": "OPEN",
            "createdAt": "2024-03-02T01:00:00Z",
            "closedAt": None,
            "labels": {"nodes": []},
            "assignees": {"nodes": [
                {"login": "bob", "avatarUrl": "https://example.com/bob.png"}
            ]}
        },
        "fieldValues": {
            "nodes": [
                {
                    "__typename": "ProjectV2ItemFieldSingleSelectValue",
                    "name": "In Progress",
                    "field": {"name": "Status"}
                },
                {
                    "__typename": "ProjectV2ItemFieldNumberValue",
                    "number": 10,
                    "field": {"name": "SP"}
                }
            ]
        }
    }


@pytest.fixture
def sample_item_done_on_board():
    """Issue moved to a done column but still open on GitHub."""
    return {
        "id": "PVTI_3",
        "content": {
            "__typename": "Issue",
            "title": "Fix flaky test",
            "state": "OPEN",
            "createdAt": "2024-03-04T00:00:00Z",
            "closedAt": None,
            "labels": {"nodes": [{"name": "bug", "color": "d73a4a"}]},
            "assignees": {"nodes": []}
        },
        "fieldValues": {
            "nodes": [
                {
                    "__typename": "ProjectV2ItemFieldSingleSelectValue",
                    "name": "完了",
                    "field": {"name": "ステータス"}
                }
            ]
        }
    }


@pytest.fixture
def sample_item_draft():
    """Draft item, which carries no issue content."""
    return {
        "id": "PVTI_4",
        "content": {"__typename": "DraftIssue"},
        "fieldValues": {"nodes": []}
    }


@pytest.fixture
def sample_project_items(sample_item_closed, sample_item_open,
                         sample_item_done_on_board, sample_item_draft):
    """Collection of project items as returned by the GraphQL API."""
    return [
        sample_item_closed,
        sample_item_open,
        sample_item_done_on_board,
        sample_item_draft
    ]


def make_project_page(items, has_next_page=False, end_cursor=None,
                      title="Roadmap"):
    """Wrap items in the GraphQL ``data`` payload for one page."""
    return {
        "organization": {
            "projectV2": {
                "id": "PVT_kwDOABC",
                "title": title,
                "items": {
                    "pageInfo": {
                        "hasNextPage": has_next_page,
                        "endCursor": end_cursor
                    },
                    "nodes": items
                }
            }
        }
    }


@pytest.fixture
def project_page():
    """Factory for GraphQL project pages."""
    return make_project_page


@pytest.fixture
def app(tmp_path):
    """Create Flask test app."""
    import sys
    import os
    sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

    from app import create_app
    app = create_app(config_path=str(tmp_path / "dashboard-config.json"))
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
