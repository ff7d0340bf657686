from typing import Any, Dict, Optional

from app.connectors.base import TimeEntryNormalized
from app.utils.dates import parse_iso_datetime


def _workspace_id(raw: Dict[str, Any]) -> Optional[int]:
    for field in ("workspace_id", "wid"):
        value = raw.get(field)
        if isinstance(value, int):
            return value
    return None


def _clean_tags(tags: Any) -> list:
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",") if t.strip()]
    if isinstance(tags, list):
        return [str(t) for t in tags if isinstance(t, str) and t.strip()]
    return []


class NormalizerService:
    """
    Service responsible for normalizing raw upstream time entries
    into the unified `TimeEntryNormalized` format.
    """

    def normalize_toggl_entry(self, raw: Dict[str, Any]) -> Optional[TimeEntryNormalized]:
        """
        Normalizes a raw Toggl v9 time entry. Returns None if the entry has no id
        or no parseable start timestamp.
        """
        # Example Toggl data structure:
        # {
        #   "id": 42, "workspace_id": 7, "project_id": 11, "description": "Review",
        #   "start": "2024-03-01T09:00:00+00:00", "stop": null, "duration": -1709283600,
        #   "tags": ["billable"]
        # }
        if not isinstance(raw, dict):
            return None
        entry_id = raw.get("id")
        start = parse_iso_datetime(raw.get("start"))
        if entry_id is None or start is None:
            return None

        stop = parse_iso_datetime(raw.get("stop"))
        duration = raw.get("duration")
        if not isinstance(duration, (int, float)):
            duration = int((stop - start).total_seconds()) if stop else -1

        project_id = raw.get("project_id")
        description = raw.get("description")
        return TimeEntryNormalized(
            source_id=str(entry_id),
            source="toggl",
            description=description.strip() if isinstance(description, str) and description.strip() else None,
            start=start,
            stop=stop,
            duration_sec=int(duration),
            workspace_id=_workspace_id(raw),
            project_id=project_id if isinstance(project_id, int) else None,
            tags=_clean_tags(raw.get("tags")),
            raw=raw,
        )
