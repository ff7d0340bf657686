import asyncio
from typing import Dict, List, Optional, Sequence, Tuple
from enum import Enum
from datetime import date, datetime

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.connectors.base import TimeEntryNormalized
from app.constants.read_warnings import WarningCode, explain_warning, join_warnings
from app.errors import StoreUnavailableError, UpstreamError
from app.models.project import PROJECT_TYPE_NON_WORK, PROJECT_TYPE_WORK, Project
from app.models.time_entry import TimeEntry
from app.schemas.entries import EntriesResponse, EntryOut
from app.schemas.manual_entry import ManualEntryResponse, ManualProjectOut
from app.schemas.team import TeamMemberDay, TeamResponse
from app.schemas.team_week import DaySummary, MemberWeek, TeamWeekResponse
from app.services.history_store import HistoryStore, classify_project_type
from app.services.quota_lock import QuotaLockService, lock_seconds_for
from app.services.snapshot_cache import SnapshotCache
from app.services.sync_service import ConnectorFactory, MemberSyncResult, SyncService, default_connector_factory
from app.services.team_directory import TeamDirectory, TeamMember
from app.utils.dates import (
    as_utc, last_seven_dates, local_date_key, to_iso, utc_day_range, utc_range_for_local_days, utcnow
)
import logging

log = logging.getLogger(__name__)


class ReadState(str, Enum):
    NO_REFRESH_REQUESTED = "no_refresh_requested"
    REFRESH_REQUESTED = "refresh_requested"
    QUOTA_LOCKED = "quota_locked"
    UPSTREAM_SUCCEEDED = "upstream_succeeded"
    UPSTREAM_FAILED = "upstream_failed"


class MemberDayView(BaseModel):
    """One member's entries for a local day, ready to be returned."""
    entries: List[EntryOut] = []
    current: Optional[EntryOut] = None
    total_seconds: int = 0
    cached_at: Optional[datetime] = None


RefreshOutcome = Tuple[TeamMember, Optional[MemberSyncResult], Optional[UpstreamError]]


def _running_seconds(start: datetime, now: datetime) -> int:
    return max(0, int((now - as_utc(start)).total_seconds()))


def entry_out_from_row(row: TimeEntry, project: Optional[Project], now: datetime) -> EntryOut:
    duration = _running_seconds(row.start_at, now) if row.is_running else max(0, row.duration_seconds or 0)
    return EntryOut(
        id=row.source_entry_id,
        source=row.entry_source,
        description=row.description,
        start=to_iso(row.start_at),
        stop=to_iso(row.stop_at),
        duration=duration,
        isRunning=bool(row.is_running),
        projectKey=row.project_key,
        projectName=project.project_name if project else None,
        projectType=project.project_type if project else PROJECT_TYPE_WORK,
        tags=list(row.tags or []),
    )


def entry_out_from_normalized(entry: TimeEntryNormalized, project_type: str, now: datetime) -> EntryOut:
    return EntryOut(
        id=entry.source_id,
        source=entry.source,
        description=entry.description,
        start=to_iso(entry.start),
        stop=to_iso(entry.stop),
        duration=entry.effective_duration(now),
        isRunning=entry.is_running,
        projectKey=entry.project_key,
        projectName=entry.project_name,
        projectType=project_type,
        tags=list(entry.tags),
    )


def build_day_view(entries: List[EntryOut], cached_at: Optional[datetime]) -> MemberDayView:
    """Non-work entries stay listed but do not count towards the total."""
    running = [entry for entry in entries if entry.isRunning]
    return MemberDayView(
        entries=entries,
        current=running[-1] if running else None,
        total_seconds=sum(entry.duration for entry in entries if entry.projectType != PROJECT_TYPE_NON_WORK),
        cached_at=cached_at,
    )


def rank_members(members: List[MemberWeek]) -> List[MemberWeek]:
    return sorted(members, key=lambda member: (-member.totalSeconds, -member.entryCount, member.name.lower()))


def _primary_error(failures: Sequence[Tuple[TeamMember, UpstreamError]]) -> UpstreamError:
    for _, error in failures:
        if error.locks_quota:
            return error
    return failures[0][1]


class ReconciliationService:
    """
    Decides for every read whether to answer from storage, refresh from Toggl,
    or fall back to stored data with a warning.

    Reads without refresh never touch the upstream. Refreshes are skipped
    while the shared quota lock is active. A failed refresh sets the lock on
    402/429 and falls back to stored data; the upstream error is only raised
    when there is nothing stored to show. Team reads refresh every member
    concurrently and degrade member by member.
    """

    def __init__(
        self,
        db: Session,
        team: Optional[TeamDirectory] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        quota_lock: Optional[QuotaLockService] = None,
        snapshot_cache: Optional[SnapshotCache] = None
    ):
        self.db = db
        self.store = HistoryStore(db)
        self.team = team or TeamDirectory()
        self.connector_factory = connector_factory or default_connector_factory
        self.quota_lock = quota_lock or QuotaLockService(db)
        self.snapshot_cache = snapshot_cache or SnapshotCache(db)

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def _member_spellings(self, member: TeamMember) -> List[str]:
        return self.team.resolver.expand_aliases(member.name)

    def _stored_day(self, member: TeamMember, start: datetime, end: datetime, now: datetime) -> MemberDayView:
        rows = self.store.read_entries(self._member_spellings(member), start, end)
        projects = self.store.projects_by_key(row.project_key for row in rows)
        entries = [entry_out_from_row(row, projects.get(row.project_key), now) for row in rows]
        cached_at = max((as_utc(row.synced_at) for row in rows if row.synced_at), default=None)
        return build_day_view(entries, cached_at)

    def _fallback_day(self, member: TeamMember, start: datetime, end: datetime, now: datetime) -> Optional[MemberDayView]:
        """Stored data for a member whose refresh failed, or None when there is none."""
        try:
            view = self._stored_day(member, start, end, now)
        except StoreUnavailableError as e:
            log.error(f"Fallback read for {member.name} failed: {e}")
            return None
        return view if view.entries else None

    def _fresh_project_types(self, result: MemberSyncResult) -> Dict[str, str]:
        types: Dict[str, str] = {}
        if result.persisted:
            try:
                types = self.store.project_types(entry.project_key for entry in result.entries)
            except StoreUnavailableError as e:
                log.warning(f"Could not read project types after refresh: {e}")
        for entry in result.entries:
            if entry.project_key and entry.project_key not in types:
                types[entry.project_key] = classify_project_type(entry.project_name)
        return types

    def _fresh_day(self, result: MemberSyncResult, now: datetime) -> MemberDayView:
        types = self._fresh_project_types(result)
        entries = [
            entry_out_from_normalized(entry, types.get(entry.project_key, PROJECT_TYPE_WORK), now)
            for entry in result.entries
        ]
        return build_day_view(entries, result.synced_at)

    async def _sync(
        self,
        member: TeamMember,
        scope: str,
        requested_date: date,
        start: datetime,
        end: datetime,
        tz_offset_minutes: int,
        include_current: bool,
        now: datetime
    ) -> MemberSyncResult:
        service = SyncService(self.connector_factory(member.token), self.store)
        return await service.sync_member(
            member.name, scope, requested_date, start, end,
            tz_offset_minutes=tz_offset_minutes, include_current=include_current, now=now
        )

    async def _refresh_one(self, member: TeamMember, *args) -> RefreshOutcome:
        try:
            return member, await self._sync(member, *args), None
        except UpstreamError as e:
            log.warning(f"Refresh for {member.name} failed ({e.kind.value}, status={e.status}): {e.message}")
            return member, None, e

    async def _refresh_members(self, members: List[TeamMember], *args) -> List[RefreshOutcome]:
        return await asyncio.gather(*(self._refresh_one(member, *args) for member in members))

    def _register_failure(self, error: UpstreamError, scope: str, member_name: Optional[str], requested_date: date) -> int:
        """Lock the quota on 402/429, record the failure, and return the retry-after hint."""
        retry_after = error.retry_after_seconds or 0
        if error.locks_quota:
            state = self.quota_lock.set_lock(
                error.status,
                lock_seconds_for(error.status, error.retry_after_seconds),
                retry_hint_seconds=error.retry_after_seconds,
                reason=f"Toggl {error.status} {error.kind.value}",
            )
            retry_after = max(retry_after, state.retry_after_seconds)
        self.store.record_error(scope, member_name, requested_date, error.message)
        return retry_after

    def _cooldown_warning(self, retry_after_seconds: int) -> str:
        return explain_warning(WarningCode.COOLDOWN_ACTIVE, {"retry_after_seconds": retry_after_seconds})

    # ------------------------------------------------------------------
    # Single member, one local day
    # ------------------------------------------------------------------

    async def read_member_day(
        self,
        member: TeamMember,
        day: date,
        refresh: bool = False,
        tz_offset_minutes: int = 0
    ) -> EntriesResponse:
        now = utcnow()
        start, end = utc_day_range(day, tz_offset_minutes)
        base = {"member": member.name, "date": day.isoformat()}

        def respond(view: MemberDayView, **labels) -> EntriesResponse:
            return EntriesResponse(
                **base,
                entries=view.entries,
                current=view.current,
                totalSeconds=view.total_seconds,
                entryCount=len(view.entries),
                cachedAt=to_iso(view.cached_at),
                **labels
            )

        if not refresh:
            log.trace(f"{member.name} {day}: {ReadState.NO_REFRESH_REQUESTED.value}")
            view = self._stored_day(member, start, end, now)
            if not view.entries:
                return respond(view, stale=True, warning=explain_warning(WarningCode.NO_STORED_DAY), source="db")
            return respond(view, stale=False, source="db")

        lock = self.quota_lock.get_state(now=now)
        if lock.active:
            log.info(f"{member.name} {day}: {ReadState.QUOTA_LOCKED.value}, serving stored data")
            view = self._stored_day(member, start, end, now)
            return respond(
                view, stale=True, source="db_fallback", cooldownActive=True,
                retryAfterSeconds=lock.retry_after_seconds,
                warning=self._cooldown_warning(lock.retry_after_seconds)
            )

        include_current = start <= now <= end
        try:
            result = await self._sync(member, "entries", day, start, end, tz_offset_minutes, include_current, now)
        except UpstreamError as e:
            log.warning(f"{member.name} {day}: {ReadState.UPSTREAM_FAILED.value} ({e.message})")
            retry_after = self._register_failure(e, "entries", member.name, day)
            view = self._fallback_day(member, start, end, now)
            if view is None:
                raise
            return respond(
                view, stale=True, source="db_fallback", cooldownActive=e.locks_quota,
                retryAfterSeconds=retry_after, warning=explain_warning(WarningCode.REFRESH_FAILED)
            )

        log.trace(f"{member.name} {day}: {ReadState.UPSTREAM_SUCCEEDED.value}")
        return respond(self._fresh_day(result, now), stale=False, source="toggl_sync", warning=result.warning)

    # ------------------------------------------------------------------
    # Whole team, one local day
    # ------------------------------------------------------------------

    def _team_member_day(self, member: TeamMember, view: MemberDayView, stale: bool = False) -> TeamMemberDay:
        return TeamMemberDay(
            name=member.name,
            entries=view.entries,
            current=view.current,
            totalSeconds=view.total_seconds,
            entryCount=len(view.entries),
            stale=stale,
        )

    def _stored_team(self, members: List[TeamMember], start: datetime, end: datetime, now: datetime):
        views = [(member, self._stored_day(member, start, end, now)) for member in members]
        cached_at = max((view.cached_at for _, view in views if view.cached_at), default=None)
        return [self._team_member_day(member, view) for member, view in views], cached_at

    async def read_team_day(self, day: date, refresh: bool = False, tz_offset_minutes: int = 0) -> TeamResponse:
        now = utcnow()
        start, end = utc_day_range(day, tz_offset_minutes)
        members = self.team.members()

        if not refresh:
            stored, cached_at = self._stored_team(members, start, end, now)
            if not any(member.entries for member in stored):
                return TeamResponse(
                    date=day.isoformat(), members=stored, cachedAt=to_iso(cached_at), stale=True,
                    warning=explain_warning(WarningCode.NO_STORED_DAY), source="db"
                )
            return TeamResponse(date=day.isoformat(), members=stored, cachedAt=to_iso(cached_at), source="db")

        lock = self.quota_lock.get_state(now=now)
        if lock.active:
            log.info(f"Team {day}: {ReadState.QUOTA_LOCKED.value}, serving stored data")
            stored, cached_at = self._stored_team(members, start, end, now)
            return TeamResponse(
                date=day.isoformat(), members=stored, cachedAt=to_iso(cached_at), stale=True,
                warning=self._cooldown_warning(lock.retry_after_seconds), source="db_fallback",
                cooldownActive=True, retryAfterSeconds=lock.retry_after_seconds
            )

        include_current = start <= now <= end
        outcomes = await self._refresh_members(
            members, "team", day, start, end, tz_offset_minutes, include_current, now
        )

        results: List[TeamMemberDay] = []
        failures: List[Tuple[TeamMember, UpstreamError]] = []
        persist_warnings: List[str] = []
        fallback_found = False
        for member, result, error in outcomes:
            if error is None:
                results.append(self._team_member_day(member, self._fresh_day(result, now)))
                if result.warning:
                    persist_warnings.append(f"{member.name}: {result.warning}")
                continue
            failures.append((member, error))
            view = self._fallback_day(member, start, end, now)
            fallback_found = fallback_found or view is not None
            results.append(self._team_member_day(member, view or MemberDayView(), stale=True))

        if not failures:
            return TeamResponse(
                date=day.isoformat(), members=results, cachedAt=to_iso(now),
                warning=join_warnings(*persist_warnings), source="toggl_sync"
            )

        retry_after = max(self._register_failure(error, "team", member.name, day) for member, error in failures)
        if len(failures) == len(members) and not fallback_found:
            raise _primary_error(failures)

        warning = explain_warning(WarningCode.PARTIAL_REFRESH, {
            "count": len(failures),
            "members": ", ".join(f"{member.name} ({error.message})" for member, error in failures),
        })
        return TeamResponse(
            date=day.isoformat(), members=results, cachedAt=to_iso(now), stale=True,
            warning=join_warnings(warning, *persist_warnings), source="db_fallback",
            cooldownActive=any(error.locks_quota for _, error in failures), retryAfterSeconds=retry_after
        )

    # ------------------------------------------------------------------
    # Whole team, seven local days
    # ------------------------------------------------------------------

    @staticmethod
    def week_cache_key(end_day: date, tz_offset_minutes: int) -> str:
        return f"team-week:{end_day.isoformat()}:{tz_offset_minutes}"

    def _stored_member_week(self, member: TeamMember, week: List[date]) -> MemberWeek:
        days = {day: DaySummary(date=day.isoformat()) for day in week}
        for stat in self.store.read_daily_stats(self._member_spellings(member), week[0], week[-1]):
            bucket = days.get(stat.stat_date)
            if bucket is None:
                continue
            bucket.seconds += stat.total_seconds
            bucket.entryCount += stat.entry_count
        return self._member_week(member.name, list(days.values()))

    def _fresh_member_week(self, result: MemberSyncResult, week: List[date], tz_offset_minutes: int) -> MemberWeek:
        """Same counting rule as the stored daily stats: finished work entries only."""
        types = self._fresh_project_types(result)
        days = {day: DaySummary(date=day.isoformat()) for day in week}
        for entry in result.entries:
            if entry.is_running or types.get(entry.project_key) == PROJECT_TYPE_NON_WORK:
                continue
            bucket = days.get(local_date_key(entry.start, tz_offset_minutes))
            if bucket is None:
                continue
            bucket.seconds += max(0, entry.duration_sec)
            bucket.entryCount += 1
        return self._member_week(result.member_name, list(days.values()))

    @staticmethod
    def _member_week(name: str, days: List[DaySummary]) -> MemberWeek:
        return MemberWeek(
            name=name,
            totalSeconds=sum(day.seconds for day in days),
            entryCount=sum(day.entryCount for day in days),
            days=days,
        )

    def _week_payload(self, members: List[MemberWeek], cached_at: datetime) -> dict:
        return {"members": [member.model_dump(mode="json") for member in members], "cachedAt": to_iso(cached_at)}

    async def read_team_week(self, end_day: date, refresh: bool = False, tz_offset_minutes: int = 0) -> TeamWeekResponse:
        now = utcnow()
        week = last_seven_dates(end_day)
        members = self.team.members()
        cache_key = self.week_cache_key(end_day, tz_offset_minutes)
        header = {
            "startDate": week[0].isoformat(),
            "endDate": week[-1].isoformat(),
            "weekDates": [day.isoformat() for day in week],
        }

        def has_data(rows: List[MemberWeek]) -> bool:
            return any(row.totalSeconds > 0 or row.entryCount > 0 for row in rows)

        if not refresh:
            cached = self.snapshot_cache.get(cache_key, now=now)
            if cached is not None:
                log.debug(f"Team week {end_day}: serving cached snapshot")
                return TeamWeekResponse(**header, members=cached["members"], cachedAt=cached["cachedAt"], source="db")

            stored = rank_members([self._stored_member_week(member, week) for member in members])
            if not has_data(stored):
                return TeamWeekResponse(
                    **header, members=stored, cachedAt=to_iso(now), stale=True,
                    warning=explain_warning(WarningCode.NO_STORED_WEEK), source="db"
                )
            self.snapshot_cache.set(cache_key, self._week_payload(stored, now), now=now)
            return TeamWeekResponse(**header, members=stored, cachedAt=to_iso(now), source="db")

        lock = self.quota_lock.get_state(now=now)
        if lock.active:
            log.info(f"Team week {end_day}: {ReadState.QUOTA_LOCKED.value}, serving stored data")
            labels = {
                "stale": True, "source": "db_fallback", "cooldownActive": True,
                "retryAfterSeconds": lock.retry_after_seconds,
                "warning": self._cooldown_warning(lock.retry_after_seconds),
            }
            cached = self.snapshot_cache.get(cache_key, allow_stale=True, now=now)
            if cached is not None:
                return TeamWeekResponse(**header, members=cached["members"], cachedAt=cached["cachedAt"], **labels)
            stored = rank_members([self._stored_member_week(member, week) for member in members])
            return TeamWeekResponse(**header, members=stored, cachedAt=to_iso(now), **labels)

        start, end = utc_range_for_local_days(week[0], week[-1], tz_offset_minutes)
        outcomes = await self._refresh_members(
            members, "team_week", end_day, start, end, tz_offset_minutes, False, now
        )

        results: List[MemberWeek] = []
        failures: List[Tuple[TeamMember, UpstreamError]] = []
        persist_warnings: List[str] = []
        fallback_found = False
        for member, result, error in outcomes:
            if error is None:
                results.append(self._fresh_member_week(result, week, tz_offset_minutes))
                if result.warning:
                    persist_warnings.append(f"{member.name}: {result.warning}")
                continue
            failures.append((member, error))
            try:
                fallback = self._stored_member_week(member, week)
            except StoreUnavailableError as e:
                log.error(f"Fallback week read for {member.name} failed: {e}")
                fallback = self._member_week(member.name, [DaySummary(date=day.isoformat()) for day in week])
            fallback_found = fallback_found or has_data([fallback])
            results.append(fallback)

        ranked = rank_members(results)
        if not failures:
            self.snapshot_cache.set(cache_key, self._week_payload(ranked, now), now=now)
            return TeamWeekResponse(
                **header, members=ranked, cachedAt=to_iso(now),
                warning=join_warnings(*persist_warnings), source="toggl_sync"
            )

        retry_after = max(self._register_failure(error, "team_week", member.name, end_day) for member, error in failures)
        if len(failures) == len(members) and not fallback_found:
            raise _primary_error(failures)

        warning = explain_warning(WarningCode.PARTIAL_REFRESH, {
            "count": len(failures),
            "members": ", ".join(f"{member.name} ({error.message})" for member, error in failures),
        })
        return TeamWeekResponse(
            **header, members=ranked, cachedAt=to_iso(now), stale=True,
            warning=join_warnings(warning, *persist_warnings), source="db_fallback",
            cooldownActive=any(error.locks_quota for _, error in failures), retryAfterSeconds=retry_after
        )

    # ------------------------------------------------------------------
    # Manual entries
    # ------------------------------------------------------------------

    def create_manual_entry(
        self,
        member: TeamMember,
        description: Optional[str],
        project_name: Optional[str],
        start_at: datetime,
        duration_seconds: int,
        tz_offset_minutes: int = 0
    ) -> ManualEntryResponse:
        row, project = self.store.create_manual_entry(
            member.name, description, project_name, start_at, duration_seconds, tz_offset_minutes
        )
        log.info(f"Saved manual entry {row.source_entry_id} for {member.name}")
        return ManualEntryResponse(
            member=member.name,
            entry=entry_out_from_row(row, project, utcnow()),
            project=ManualProjectOut(
                key=project.project_key, name=project.project_name, type=project.project_type
            ) if project else None,
        )
