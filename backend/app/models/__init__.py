"""Database models."""

from app.models.member import Member
from app.models.project import Project
from app.models.time_entry import TimeEntry
from app.models.daily_member_stat import DailyMemberStat
from app.models.sync_event import SyncEvent
from app.models.cache_snapshot import CacheSnapshot
from app.models.quota_lock import ApiQuotaLock

__all__ = [
    "Member",
    "Project",
    "TimeEntry",
    "DailyMemberStat",
    "SyncEvent",
    "CacheSnapshot",
    "ApiQuotaLock",
]
