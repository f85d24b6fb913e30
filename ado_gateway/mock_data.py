"""Canned payloads served when no Azure DevOps credential is available."""

from __future__ import annotations

from datetime import datetime, timezone

from .config import settings

MOCK_PROJECT_ID = "12345678-1234-1234-1234-123456789012"
MOCK_WORK_ITEM_ID = 12345


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _organization() -> str:
    return settings.ado_organization or "organization"


def fallback_message(reason: str) -> str:
    return f"Mock data - {reason}. Configure a PAT or managed identity for real data."


def mock_projects() -> list[dict]:
    return [
        {
            "id": MOCK_PROJECT_ID,
            "name": "Sample Project (Mock)",
            "description": "Mock project - Azure authentication needed for real data",
            "url": f"{settings.ado_base_url}/{_organization()}/SampleProject",
            "state": "wellFormed",
            "visibility": "private",
            "last_update_time": _now_iso(),
        }
    ]


def mock_work_item(work_item_id: int) -> dict:
    return {
        "id": work_item_id,
        "title": "Sample Work Item",
        "description": "This is a sample work item for testing",
        "state": "Active",
        "type": "Task",
        "assigned_to": "user@example.com",
        "created_date": "2024-01-01T10:00:00Z",
        "changed_date": _now_iso(),
        "url": f"{settings.ado_base_url}/{_organization()}/Project/_workitems/edit/{work_item_id}",
    }


def mock_created_work_item(project: str, work_item_type: str, title: str) -> dict:
    return {
        "id": MOCK_WORK_ITEM_ID,
        "title": title,
        "type": work_item_type,
        "state": "New",
        "url": f"{settings.ado_base_url}/{_organization()}/{project}/_workitems/edit/{MOCK_WORK_ITEM_ID}",
    }
