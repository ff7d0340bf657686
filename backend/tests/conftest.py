import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import json
from datetime import timedelta
from typing import Dict, List, Optional, Set

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.main import app
from app.database import Base, SessionLocal, engine, get_db
from app.api.deps import get_connector_factory, get_team_directory
from app.connectors.base import BaseConnector, TimeEntryNormalized
from app.connectors.toggl_connector import TogglConnector
from app.errors import UpstreamError
from app.services.member_names import MemberNameResolver
from app.services.normalizer import NormalizerService
from app.services.team_directory import TeamDirectory
from app.utils.dates import parse_iso_datetime

TEAM = [
    {"name": "Ana", "token": "token-ana"},
    {"name": "Bea", "token": "token-bea"},
    {"name": "Caio", "token": "token-caio"},
]
ALIASES = {"Ana Maria": "Ana"}
PROXY_PAGE = "<html>proxy error</html>"


class FakeToggl:
    """In-memory upstream: raw Toggl entries and failures per API token, plus a call log."""

    def __init__(self):
        self.entries: Dict[str, List[dict]] = {}
        self.current: Dict[str, dict] = {}
        self.errors: Dict[str, UpstreamError] = {}
        self.project_names: Dict[str, str] = {}
        self.calls: List[tuple] = []
        # Tokens answered by a gateway page instead of the Toggl API
        self.proxy_pages: Set[str] = set()

    def factory(self, api_token: str) -> BaseConnector:
        if api_token in self.proxy_pages:
            return proxy_page_connector(api_token)
        return FakeConnector(self, api_token)


def proxy_page_connector(api_token: str) -> TogglConnector:
    """Real Toggl connector whose every response is a 200 HTML page."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=PROXY_PAGE))
    return TogglConnector({"base_url": "https://toggl.test/api/v9", "api_token": api_token, "transport": transport})


class FakeConnector(BaseConnector):
    def __init__(self, upstream: FakeToggl, api_token: str):
        super().__init__({"api_token": api_token})
        self.upstream = upstream
        self.api_token = api_token
        self.normalizer = NormalizerService()

    def _fail_if_configured(self):
        error = self.upstream.errors.get(self.api_token)
        if error is not None:
            raise error

    async def fetch_time_entries(self, start_iso: str, end_iso: str) -> List[TimeEntryNormalized]:
        self.upstream.calls.append((self.api_token, "fetch_time_entries", start_iso, end_iso))
        self._fail_if_configured()
        start, end = parse_iso_datetime(start_iso), parse_iso_datetime(end_iso)
        normalized = [self.normalizer.normalize_toggl_entry(raw) for raw in self.upstream.entries.get(self.api_token, [])]
        return [entry for entry in normalized if entry and start <= entry.start <= end]

    async def fetch_current_entry(self) -> Optional[TimeEntryNormalized]:
        self.upstream.calls.append((self.api_token, "fetch_current_entry"))
        self._fail_if_configured()
        raw = self.upstream.current.get(self.api_token)
        return self.normalizer.normalize_toggl_entry(raw) if raw else None

    async def fetch_project_names(self, entries: List[TimeEntryNormalized]) -> Dict[str, str]:
        self.upstream.calls.append((self.api_token, "fetch_project_names"))
        return {
            entry.project_key: self.upstream.project_names[entry.project_key]
            for entry in entries
            if entry.project_key in self.upstream.project_names
        }


def toggl_entry(entry_id: int, start: str, duration: int, project_id: Optional[int] = None, description: str = "Work") -> dict:
    """Raw Toggl v9 entry in workspace 1."""
    start_at = parse_iso_datetime(start)
    stop = None
    if duration >= 0:
        stop = (start_at + timedelta(seconds=duration)).isoformat()
    return {
        "id": entry_id,
        "workspace_id": 1,
        "project_id": project_id,
        "description": description,
        "start": start_at.isoformat(),
        "stop": stop,
        "duration": duration,
        "tags": [],
    }


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def team() -> TeamDirectory:
    return TeamDirectory(
        raw_team=json.dumps(TEAM),
        resolver=MemberNameResolver(aliases=ALIASES),
        encrypted_tokens=False,
    )


@pytest.fixture
def upstream() -> FakeToggl:
    return FakeToggl()


# Override dependency for test database session (rollback after each test)
def override_get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def client(team: TeamDirectory, upstream: FakeToggl) -> TestClient:
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_team_directory] = lambda: team
    app.dependency_overrides[get_connector_factory] = lambda: upstream.factory
    yield TestClient(app)
    app.dependency_overrides.clear()
