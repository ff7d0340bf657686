from enum import Enum
from typing import Dict, Optional

class WarningCode(Enum):
    NO_STORED_DAY = "NO_STORED_DAY"
    NO_STORED_WEEK = "NO_STORED_WEEK"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    REFRESH_FAILED = "REFRESH_FAILED"
    PARTIAL_REFRESH = "PARTIAL_REFRESH"
    PERSIST_FAILED = "PERSIST_FAILED"

def explain_warning(code: WarningCode, context: Dict = None) -> str:
    templates = {
        WarningCode.NO_STORED_DAY: "No stored entries for this day yet.",
        WarningCode.NO_STORED_WEEK: "No stored entries for this week yet.",
        WarningCode.COOLDOWN_ACTIVE: "Toggl quota cooldown active. Showing stored data (retry in {retry_after_seconds}s).",
        WarningCode.REFRESH_FAILED: "Refresh failed, showing stored data.",
        WarningCode.PARTIAL_REFRESH: "Partial refresh completed. {count} member(s) used stored data: {members}.",
        WarningCode.PERSIST_FAILED: "Fresh data could not be saved: {detail}.",
    }
    template = templates[code]
    return template.format(**(context or {}))

def join_warnings(*warnings) -> Optional[str]:
    parts = [warning for warning in warnings if warning]
    return " ".join(parts) if parts else None
