"""Durable store adapter for entries, projects, members and daily aggregates."""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.connectors.base import TimeEntryNormalized
from app.errors import StoreUnavailableError
from app.models.daily_member_stat import DailyMemberStat
from app.models.member import Member
from app.models.project import Project, PROJECT_TYPE_NON_WORK, PROJECT_TYPE_WORK
from app.models.time_entry import TimeEntry
from app.utils.dates import local_date_key, utcnow
from app.utils.sync_event_logger import record_sync_event

log = logging.getLogger(__name__)

NON_WORK_PROJECT_NAMES = {"fitness", "sleep", "non-work", "non work", "non-work-task"}
UNKNOWN_PROJECT_NAME = "Unknown project"

MemberDay = Tuple[str, date]


class Range(NamedTuple):
    """Inclusive range filter for HistoryStore.query."""
    gte: Any = None
    lte: Any = None


def classify_project_type(project_name: Optional[str]) -> str:
    normalized = (project_name or "").strip().lower()
    return PROJECT_TYPE_NON_WORK if normalized in NON_WORK_PROJECT_NAMES else PROJECT_TYPE_WORK


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")[:64]


def stable_positive_hash(value: str) -> int:
    """31-multiplier hash wrapped to signed 32 bits, then made positive."""
    result = 0
    for char in value:
        result = (result * 31 + ord(char)) & 0xFFFFFFFF
    if result >= 0x80000000:
        result -= 0x100000000
    return abs(result) + 1


def manual_project_key(project_name: str) -> str:
    return f"manual:{slugify(project_name) or f'manual-{stable_positive_hash(project_name)}'}"


class HistoryStore:
    """
    Read/write access to the persisted history.

    Writes of entries, projects and stats raise StoreUnavailableError so callers
    can tell that data was not saved. Sync events are best effort and never raise.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    def _insert_construct(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StoreUnavailableError(f"Upserts are not supported on dialect '{dialect}'")
        return insert(model)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Store commit failed: {e}")
            raise StoreUnavailableError(str(e)) from e

    def upsert(
        self,
        model,
        rows: Sequence[Dict[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
        commit: bool = True
    ) -> int:
        """
        Insert rows, merging into existing rows that share the conflict keys.
        Rows repeating a conflict key within one batch collapse to the last one.
        """
        if not rows:
            return 0

        deduped: Dict[Tuple, Dict[str, Any]] = {}
        for row in rows:
            deduped[tuple(row.get(key) for key in conflict_keys)] = row
        values = list(deduped.values())

        if update_columns is None:
            update_columns = [column for column in values[0] if column not in conflict_keys]

        stmt = self._insert_construct(model).values(values)
        if update_columns:
            set_ = {column: stmt.excluded[column] for column in update_columns}
            if "updated_at" in model.__table__.c and "updated_at" not in set_:
                set_["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=set_)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))

        try:
            self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Upsert into {model.__tablename__} failed: {e}")
            raise StoreUnavailableError(str(e)) from e
        if commit:
            self._commit()
        log.trace(f"Upserted {len(values)} row(s) into {model.__tablename__}")
        return len(values)

    def insert(self, model, rows: Sequence[Dict[str, Any]], commit: bool = True) -> int:
        if not rows:
            return 0
        try:
            self.db.add_all([model(**row) for row in rows])
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Insert into {model.__tablename__} failed: {e}")
            raise StoreUnavailableError(str(e)) from e
        if commit:
            self._commit()
        return len(rows)

    def query(
        self,
        model,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None
    ) -> List[Any]:
        """
        Filter values: scalar -> equality, list/tuple/set -> membership,
        Range -> inclusive bounds, None -> IS NULL. Order fields may be
        prefixed with '-' for descending.
        """
        q = self.db.query(model)
        for field, value in (filters or {}).items():
            column = getattr(model, field)
            if isinstance(value, Range):
                if value.gte is not None:
                    q = q.filter(column >= value.gte)
                if value.lte is not None:
                    q = q.filter(column <= value.lte)
            elif isinstance(value, (list, tuple, set, frozenset)):
                q = q.filter(column.in_(list(value)))
            elif value is None:
                q = q.filter(column.is_(None))
            else:
                q = q.filter(column == value)

        for field in order_by or []:
            column = getattr(model, field.lstrip("-"))
            q = q.order_by(column.desc() if field.startswith("-") else column.asc())

        try:
            return q.all()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Query on {model.__tablename__} failed: {e}")
            raise StoreUnavailableError(str(e)) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_entries(self, member_names: Iterable[str], start: datetime, end: datetime) -> List[TimeEntry]:
        """Entries of any of the given spellings started within [start, end], oldest first."""
        names = sorted(set(member_names))
        if not names:
            return []
        return self.query(
            TimeEntry,
            {"member_name": names, "start_at": Range(start, end)},
            order_by=["start_at", "entry_id"]
        )

    def read_daily_stats(self, member_names: Iterable[str], start_date: date, end_date: date) -> List[DailyMemberStat]:
        names = sorted(set(member_names))
        if not names:
            return []
        return self.query(
            DailyMemberStat,
            {"member_name": names, "stat_date": Range(start_date, end_date)},
            order_by=["stat_date", "member_name"]
        )

    def projects_by_key(self, keys: Iterable[str]) -> Dict[str, Project]:
        keys = sorted({key for key in keys if key})
        if not keys:
            return {}
        return {project.project_key: project for project in self.query(Project, {"project_key": keys})}

    def project_types(self, keys: Iterable[str]) -> Dict[str, str]:
        return {key: project.project_type for key, project in self.projects_by_key(keys).items()}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def ensure_member(self, member_name: str, commit: bool = True) -> None:
        self.upsert(Member, [{"member_name": member_name}], ["member_name"], update_columns=[], commit=commit)

    def _project_rows(self, entries: Iterable[TimeEntryNormalized]) -> Tuple[List[dict], List[dict]]:
        named: Dict[str, dict] = {}
        unnamed: Dict[str, dict] = {}
        for entry in entries:
            key = entry.project_key
            if not key:
                continue
            name = (entry.project_name or "").strip()
            row = {
                "project_key": key,
                "workspace_id": entry.workspace_id,
                "project_id": entry.project_id,
                "project_name": name or UNKNOWN_PROJECT_NAME,
                "project_type": classify_project_type(name),
            }
            if name:
                named[key] = row
                unnamed.pop(key, None)
            elif key not in named:
                unnamed[key] = row
        return list(named.values()), list(unnamed.values())

    def _existing_member_days(self, entry_source: str, source_ids: Sequence[str]) -> Set[MemberDay]:
        if not source_ids:
            return set()
        rows = self.query(TimeEntry, {"entry_source": entry_source, "source_entry_id": list(source_ids)})
        return {(row.member_name, row.source_date) for row in rows}

    def persist_snapshot(
        self,
        scope: str,
        member_name: str,
        requested_date: date,
        entries: List[TimeEntryNormalized],
        tz_offset_minutes: int = 0,
        now: Optional[datetime] = None
    ) -> int:
        """
        Save a freshly fetched set of upstream entries for one member: member,
        projects and entries are upserted by natural key, the touched daily stats
        are recomputed, and an 'ok' sync event is appended.
        """
        now = now or utcnow()
        source_ids = [entry.source_id for entry in entries]
        touched = self._existing_member_days("toggl", source_ids)

        entry_rows = []
        for entry in entries:
            source_date = local_date_key(entry.start, tz_offset_minutes)
            touched.add((member_name, source_date))
            entry_rows.append({
                "entry_source": entry.source,
                "source_entry_id": entry.source_id,
                "member_name": member_name,
                "project_key": entry.project_key,
                "description": entry.description,
                "start_at": entry.start,
                "stop_at": entry.stop,
                "duration_seconds": entry.effective_duration(now),
                "is_running": entry.is_running,
                "tags": entry.tags,
                "source_date": source_date,
                "synced_at": now,
                "raw": entry.raw,
            })

        named_projects, unnamed_projects = self._project_rows(entries)
        self.ensure_member(member_name, commit=False)
        self.upsert(Project, named_projects, ["project_key"], update_columns=["project_name"], commit=False)
        self.upsert(Project, unnamed_projects, ["project_key"], update_columns=[], commit=False)
        self.upsert(TimeEntry, entry_rows, ["entry_source", "source_entry_id"], commit=False)
        self._commit()

        self.recompute_daily_stats(touched)
        record_sync_event(
            self.db, scope, requested_date, "ok",
            member_name=member_name, fetched_entries=len(entries)
        )
        log.info(f"Persisted {len(entry_rows)} entries for {member_name} ({scope}, {requested_date})")
        return len(entry_rows)

    def record_error(self, scope: str, member_name: Optional[str], requested_date: date, message: str) -> None:
        record_sync_event(self.db, scope, requested_date, "error", member_name=member_name, error=message)

    def recompute_daily_stats(self, member_days: Iterable[MemberDay]) -> None:
        """
        Rebuild daily_member_stats for each (member, date) from its time entries.
        Running entries and entries of non-work projects are not counted; a day
        with nothing left is deleted.
        """
        member_days = sorted(set(member_days))
        for member_name, stat_date in member_days:
            rows = self.query(
                TimeEntry,
                {"member_name": member_name, "source_date": stat_date, "is_running": False}
            )
            types = self.project_types(row.project_key for row in rows)
            counted = [
                row for row in rows
                if types.get(row.project_key, PROJECT_TYPE_WORK) != PROJECT_TYPE_NON_WORK
            ]
            total_seconds = sum(max(0, row.duration_seconds) for row in counted)

            if total_seconds == 0 and not counted:
                self._delete_daily_stat(member_name, stat_date)
                continue

            self.upsert(
                DailyMemberStat,
                [{
                    "stat_date": stat_date,
                    "member_name": member_name,
                    "total_seconds": total_seconds,
                    "entry_count": len(counted),
                }],
                ["stat_date", "member_name"],
                commit=False
            )
        self._commit()
        log.debug(f"Recomputed daily stats for {len(member_days)} member-day(s)")

    def _delete_daily_stat(self, member_name: str, stat_date: date) -> None:
        try:
            self.db.query(DailyMemberStat).filter(
                DailyMemberStat.stat_date == stat_date,
                DailyMemberStat.member_name == member_name
            ).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailableError(str(e)) from e

    # ------------------------------------------------------------------
    # Manual entries and projects
    # ------------------------------------------------------------------

    def ensure_manual_project(self, project_name: Optional[str], commit: bool = True) -> Optional[Project]:
        normalized = (project_name or "").strip()
        if not normalized:
            return None
        key = manual_project_key(normalized)
        self.upsert(
            Project,
            [{
                "project_key": key,
                "workspace_id": 0,
                "project_id": stable_positive_hash(normalized),
                "project_name": normalized,
                "project_type": classify_project_type(normalized),
            }],
            ["project_key"],
            update_columns=["project_name"],
            commit=commit
        )
        return self.projects_by_key([key]).get(key)

    def create_manual_entry(
        self,
        member_name: str,
        description: Optional[str],
        project_name: Optional[str],
        start_at: datetime,
        duration_seconds: int,
        tz_offset_minutes: int = 0
    ) -> Tuple[TimeEntry, Optional[Project]]:
        """
        Persist a manually entered, already finished time entry. The natural key
        manual:{member}:{start_ms}:{duration} makes an identical resubmission
        update the same row.
        """
        duration_seconds = max(0, int(duration_seconds))
        stop_at = start_at + timedelta(seconds=duration_seconds)
        now = utcnow()
        source_date = local_date_key(start_at, tz_offset_minutes)
        source_entry_id = f"manual:{member_name}:{int(start_at.timestamp() * 1000)}:{duration_seconds}"
        cleaned_description = (description or "").strip() or None

        self.ensure_member(member_name, commit=False)
        project = self.ensure_manual_project(project_name, commit=False)
        self.upsert(
            TimeEntry,
            [{
                "entry_source": "manual",
                "source_entry_id": source_entry_id,
                "member_name": member_name,
                "project_key": project.project_key if project else None,
                "description": cleaned_description,
                "start_at": start_at,
                "stop_at": stop_at,
                "duration_seconds": duration_seconds,
                "is_running": False,
                "tags": [],
                "source_date": source_date,
                "synced_at": now,
                "raw": {"source": "manual", "action": "manual_entry", "created_at": now.isoformat()},
            }],
            ["entry_source", "source_entry_id"],
            commit=False
        )
        self._commit()
        self.recompute_daily_stats([(member_name, source_date)])

        created = self.query(TimeEntry, {"entry_source": "manual", "source_entry_id": source_entry_id})
        if not created:
            raise StoreUnavailableError("Manual entry create returned no row")
        return created[0], project

    def list_projects(self) -> List[Tuple[Project, int, int]]:
        """All projects with finished-entry totals, ordered by name."""
        try:
            rows = self.db.query(
                TimeEntry.project_key,
                func.sum(TimeEntry.duration_seconds),
                func.count(TimeEntry.entry_id)
            ).filter(
                TimeEntry.project_key.isnot(None),
                TimeEntry.is_running.is_(False)
            ).group_by(TimeEntry.project_key).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailableError(str(e)) from e
        totals = {key: (int(seconds or 0), int(count or 0)) for key, seconds, count in rows}

        projects = self.query(Project, order_by=["project_name", "project_key"])
        return [(project, *totals.get(project.project_key, (0, 0))) for project in projects]

    def create_project(self, project_name: str, color: Optional[str] = None, project_type: Optional[str] = None) -> Project:
        project = self.ensure_manual_project(project_name, commit=False)
        if color is not None:
            project.project_color = color
        if project_type is not None:
            project.project_type = project_type
        self._commit()
        return project

    def update_project(
        self,
        project_key: str,
        project_name: Optional[str] = None,
        color: Optional[str] = None,
        project_type: Optional[str] = None
    ) -> Optional[Project]:
        """Rename/recolor/retype a project; a type change recomputes every affected day."""
        project = self.projects_by_key([project_key]).get(project_key)
        if project is None:
            return None

        type_changed = project_type is not None and project_type != project.project_type
        if project_name and project_name.strip():
            project.project_name = project_name.strip()
        if color is not None:
            project.project_color = color
        if project_type is not None:
            project.project_type = project_type
        self._commit()

        if type_changed:
            rows = self.query(TimeEntry, {"project_key": project_key})
            self.recompute_daily_stats((row.member_name, row.source_date) for row in rows)
        return project
