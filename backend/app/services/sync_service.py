import asyncio
from typing import Callable, List, Optional
from datetime import date, datetime

from pydantic import BaseModel

import logging

from app.config import settings
from app.connectors.base import BaseConnector, TimeEntryNormalized
from app.connectors.toggl_connector import TogglConnector
from app.constants.read_warnings import WarningCode, explain_warning
from app.errors import StoreUnavailableError
from app.services.history_store import HistoryStore
from app.utils.dates import to_iso, utcnow

log = logging.getLogger(__name__)

ConnectorFactory = Callable[[str], BaseConnector]


def default_connector_factory(api_token: str) -> BaseConnector:
    return TogglConnector({"base_url": settings.toggl_api_base, "api_token": api_token})


def sort_entries_by_start(entries: List[TimeEntryNormalized]) -> List[TimeEntryNormalized]:
    # sorted() is stable, entries starting at the same instant keep upstream order
    return sorted(entries, key=lambda entry: entry.start)


class MemberSyncResult(BaseModel):
    member_name: str
    entries: List[TimeEntryNormalized] = []
    current: Optional[TimeEntryNormalized] = None
    persisted: bool = False
    warning: Optional[str] = None
    synced_at: datetime


class SyncService:
    """
    Pulls one member's entries for a UTC window from the upstream and saves them.

    Upstream errors propagate to the caller untouched so that the reconciler can
    classify them; a failure to save is reported as a warning on the result.
    """

    def __init__(self, connector: BaseConnector, store: HistoryStore):
        self.connector = connector
        self.store = store

    async def _fetch(self, start: datetime, end: datetime, include_current: bool):
        start_iso, end_iso = to_iso(start), to_iso(end)
        if not include_current:
            return await self.connector.fetch_time_entries(start_iso, end_iso), None

        entries, current = await asyncio.gather(
            self.connector.fetch_time_entries(start_iso, end_iso),
            self.connector.fetch_current_entry()
        )
        if current is not None and not (start <= current.start <= end):
            log.debug(f"Running entry {current.source_id} started outside the window, ignoring it")
            current = None
        return entries, current

    async def sync_member(
        self,
        member_name: str,
        scope: str,
        requested_date: date,
        start: datetime,
        end: datetime,
        tz_offset_minutes: int = 0,
        include_current: bool = False,
        now: Optional[datetime] = None
    ) -> MemberSyncResult:
        """Fetch, name and persist one member's entries for [start, end]."""
        now = now or utcnow()
        log.info(f"Refreshing {member_name} ({scope}) for {to_iso(start)} - {to_iso(end)}")
        try:
            entries, current = await self._fetch(start, end, include_current)

            if current is not None and all(entry.source_id != current.source_id for entry in entries):
                entries = entries + [current]

            project_names = await self.connector.fetch_project_names(entries)
            for entry in entries:
                if entry.project_key and not entry.project_name:
                    entry.project_name = project_names.get(entry.project_key)
            if current is not None:
                current = next(entry for entry in entries if entry.source_id == current.source_id)
        finally:
            await self.connector.close()

        entries = sort_entries_by_start(entries)
        log.trace(f"{member_name}: {len(entries)} entries, running={current.source_id if current else None}")

        result = MemberSyncResult(member_name=member_name, entries=entries, current=current, synced_at=now)
        try:
            self.store.persist_snapshot(scope, member_name, requested_date, entries, tz_offset_minutes, now=now)
            result.persisted = True
        except StoreUnavailableError as e:
            log.error(f"Failed to persist refreshed entries for {member_name}: {e}")
            result.warning = explain_warning(WarningCode.PERSIST_FAILED, {"detail": str(e)})
        return result
