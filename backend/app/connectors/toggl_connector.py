import asyncio
import httpx
import logging
from typing import Dict, Any, List, Optional, Tuple

from app.connectors.base import BaseConnector, TimeEntryNormalized
from app.config import settings
from app.errors import UpstreamError, UpstreamUnavailableError, classify_upstream_error
from app.services.normalizer import NormalizerService

log = logging.getLogger(__name__)


class TogglConnector(BaseConnector):
    """
    Connector for the Toggl Track v9 API, bound to one member's API token.

    Every call is a single round trip bounded by the client timeout; there is
    no retry here. Non-2xx responses raise a classified UpstreamError
    (402 quota exhausted, 429 rate limited, anything else transient).
    """

    def __init__(self, config: Dict[str, Any], normalizer: Optional[NormalizerService] = None):
        super().__init__(config)
        self.base_url = (self.config.get("base_url") or settings.toggl_api_base).rstrip("/")
        self.api_token = self.config["api_token"]  # Already decrypted by TeamDirectory
        self.normalizer = normalizer or NormalizerService()

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.api_token, "api_token"),
            timeout=self.config.get("timeout", settings.toggl_timeout_seconds),
            headers={"Content-Type": "application/json"},
            transport=self.config.get("transport"),
        )
        log.debug(f"Toggl connector initialized with base URL: {self.base_url}")

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Helper for authenticated requests; raises classified errors on failure."""
        if not path.startswith("/"):
            path = f"/{path}"

        try:
            log.trace(f"Toggl API {method} {path} params={kwargs.get('params', 'none')}")
            response = await self.client.request(method, path, **kwargs)
            log.trace(f"Toggl API response for {path}: {response.status_code}")
        except httpx.RequestError as e:
            error_msg = f"Toggl request error for {path}: {e}"
            log.error(error_msg)
            raise UpstreamUnavailableError(error_msg) from e

        if response.status_code >= 400:
            error_msg = f"Toggl request failed ({response.status_code})"
            error = classify_upstream_error(response.status_code, response.headers, error_msg)
            log.warning(
                f"{error_msg} for {path}: kind={error.kind.value}, retry_after={error.retry_after_seconds}, "
                f"quota_remaining={error.quota_remaining}, quota_resets_in={error.quota_resets_in}"
            )
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            # 2xx with a non-JSON body, usually a proxy or gateway page
            error_msg = f"Toggl returned an unreadable body for {path} ({response.status_code})"
            log.error(f"{error_msg}: {e}")
            raise UpstreamUnavailableError(error_msg) from e

    async def fetch_time_entries(self, start_iso: str, end_iso: str) -> List[TimeEntryNormalized]:
        params = {"start_date": start_iso, "end_date": end_iso}
        data = await self._request("GET", "/me/time_entries", params=params)
        if data is None:
            data = []
        if not isinstance(data, list):
            raise UpstreamUnavailableError(f"Toggl returned {type(data).__name__} instead of a list of time entries")
        count = len(data)
        log.info(f"Received {count} raw time entries from Toggl for {start_iso} - {end_iso}")

        normalized: List[TimeEntryNormalized] = []
        for raw in data:
            entry = self.normalizer.normalize_toggl_entry(raw) if isinstance(raw, dict) else None
            if entry is None:
                log.debug(f"Skipping malformed Toggl entry: {raw!r}")
                continue
            normalized.append(entry)
        return normalized

    async def fetch_current_entry(self) -> Optional[TimeEntryNormalized]:
        data = await self._request("GET", "/me/time_entries/current")
        if not data:
            return None
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"Toggl returned {type(data).__name__} instead of the running entry")
        return self.normalizer.normalize_toggl_entry(data)

    async def _fetch_project_name(self, workspace_id: int, project_id: int) -> Optional[str]:
        try:
            payload = await self._request("GET", f"/workspaces/{workspace_id}/projects/{project_id}")
        except UpstreamError as e:
            # A missing project name is cosmetic, the entry is kept without it
            log.debug(f"Project {workspace_id}:{project_id} lookup failed: {e}")
            return None
        name = payload.get("name") if isinstance(payload, dict) else None
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None

    async def fetch_project_names(self, entries: List[TimeEntryNormalized]) -> Dict[str, str]:
        unique: Dict[str, Tuple[int, int]] = {}
        for entry in entries:
            key = entry.project_key
            if key and key not in unique:
                unique[key] = (entry.workspace_id, entry.project_id)

        if not unique:
            return {}

        keys = list(unique.keys())
        names = await asyncio.gather(*(self._fetch_project_name(*unique[key]) for key in keys))
        return {key: name for key, name in zip(keys, names) if name}

    async def close(self) -> None:
        await self.client.aclose()
