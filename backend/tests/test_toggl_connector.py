import pytest
from unittest.mock import AsyncMock, patch
import httpx

from app.connectors.toggl_connector import TogglConnector
from app.errors import (
    QuotaExhaustedError, RateLimitedError, UpstreamErrorKind, UpstreamUnavailableError, parse_retry_after_seconds
)
from app.services.normalizer import NormalizerService


def response(status_code: int, json_body=None, headers=None) -> httpx.Response:
    request = httpx.Request("GET", "https://api.track.toggl.com/api/v9/me/time_entries")
    if json_body is None:
        return httpx.Response(status_code, headers=headers, request=request)
    return httpx.Response(status_code, json=json_body, headers=headers, request=request)


@pytest.mark.asyncio
class TestTogglConnector:
    @pytest.fixture
    async def connector(self):
        connector = TogglConnector({"base_url": "https://api.track.toggl.com/api/v9", "api_token": "fake-token"})
        yield connector
        await connector.close()

    async def test_fetch_time_entries_normalizes(self, connector):
        raw = [
            {"id": 1, "workspace_id": 7, "project_id": 11, "start": "2024-03-01T09:00:00+00:00",
             "stop": "2024-03-01T10:00:00+00:00", "duration": 3600, "description": " Review ", "tags": ["a"]},
            {"id": 2, "start": None},
        ]
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(200, raw)

            entries = await connector.fetch_time_entries("2024-03-01T00:00:00Z", "2024-03-01T23:59:59Z")

            assert len(entries) == 1
            assert entries[0].project_key == "7:11"
            assert entries[0].description == "Review"
            assert entries[0].duration_sec == 3600
            _, kwargs = mock_request.call_args
            assert kwargs["params"] == {"start_date": "2024-03-01T00:00:00Z", "end_date": "2024-03-01T23:59:59Z"}

    async def test_402_is_quota_exhausted(self, connector):
        headers = {"Retry-After": "120", "X-Toggl-Quota-Remaining": "0", "X-Toggl-Quota-Resets-In": "118"}
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(402, {"error": "quota"}, headers)

            with pytest.raises(QuotaExhaustedError) as excinfo:
                await connector.fetch_time_entries("a", "b")

        error = excinfo.value
        assert error.kind == UpstreamErrorKind.QUOTA_EXHAUSTED
        assert error.status == 402
        assert error.retry_after_seconds == 120
        assert error.quota_remaining == "0"
        assert error.quota_resets_in == "118"
        assert error.locks_quota is True

    async def test_429_is_rate_limited(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(429, {"error": "slow down"}, {"Retry-After": "1.2"})

            with pytest.raises(RateLimitedError) as excinfo:
                await connector.fetch_current_entry()

        assert excinfo.value.retry_after_seconds == 2

    async def test_server_error_is_transient(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(503, {"error": "down"})

            with pytest.raises(UpstreamUnavailableError) as excinfo:
                await connector.fetch_time_entries("a", "b")

        assert excinfo.value.http_status == 503
        assert excinfo.value.locks_quota is False

    async def test_transport_error_has_no_status(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = httpx.ConnectTimeout("timed out")

            with pytest.raises(UpstreamUnavailableError) as excinfo:
                await connector.fetch_time_entries("a", "b")

        assert excinfo.value.status is None
        assert excinfo.value.http_status == 502

    async def test_html_body_is_transient_without_status(self, connector):
        request = httpx.Request("GET", "https://api.track.toggl.com/api/v9/me/time_entries")
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = httpx.Response(200, text="<html>proxy error</html>", request=request)

            with pytest.raises(UpstreamUnavailableError) as excinfo:
                await connector.fetch_time_entries("a", "b")

        assert excinfo.value.status is None
        assert excinfo.value.http_status == 502
        assert excinfo.value.locks_quota is False

    async def test_non_list_payload_is_rejected(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(200, {"error": "unexpected"})

            with pytest.raises(UpstreamUnavailableError):
                await connector.fetch_time_entries("a", "b")

    async def test_non_object_items_are_skipped(self, connector):
        raw = ["oops", 7, None, {"id": 9, "start": "2024-03-01T09:00:00Z", "duration": 60}]
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(200, raw)

            entries = await connector.fetch_time_entries("a", "b")

        assert [entry.source_id for entry in entries] == ["9"]

    async def test_non_object_running_entry_is_rejected(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(200, ["not", "an", "entry"])

            with pytest.raises(UpstreamUnavailableError):
                await connector.fetch_current_entry()

    async def test_no_running_entry(self, connector):
        with patch('httpx.AsyncClient.request', new_callable=AsyncMock) as mock_request:
            mock_request.return_value = response(200)

            assert await connector.fetch_current_entry() is None

    async def test_project_lookup_failures_are_skipped(self, connector):
        normalizer = NormalizerService()
        entries = [
            normalizer.normalize_toggl_entry({"id": 1, "workspace_id": 7, "project_id": 11, "start": "2024-03-01T09:00:00Z", "duration": 60}),
            normalizer.normalize_toggl_entry({"id": 2, "workspace_id": 7, "project_id": 12, "start": "2024-03-01T10:00:00Z", "duration": 60}),
            normalizer.normalize_toggl_entry({"id": 3, "workspace_id": 7, "project_id": 11, "start": "2024-03-01T11:00:00Z", "duration": 60}),
        ]

        async def fake_request(method, path, **kwargs):
            if path.endswith("/projects/11"):
                return response(200, {"name": "Backend"})
            return response(404, {"error": "gone"})

        with patch('httpx.AsyncClient.request', new=AsyncMock(side_effect=fake_request)) as mock_request:
            names = await connector.fetch_project_names(entries)

        assert names == {"7:11": "Backend"}
        assert mock_request.call_count == 2


@pytest.mark.parametrize("value, expected", [
    (None, None), ("", None), ("0", None), ("-3", None), ("abc", None), ("30", 30), ("0.1", 1),
])
def test_parse_retry_after_seconds(value, expected):
    assert parse_retry_after_seconds(value) == expected


class TestNormalizer:
    def test_running_entry(self):
        entry = NormalizerService().normalize_toggl_entry(
            {"id": 5, "wid": 3, "start": "2024-03-01T09:00:00Z", "stop": None, "duration": -1709283600}
        )

        assert entry.is_running is True
        assert entry.workspace_id == 3
        assert entry.project_key is None

    def test_duration_derived_from_stop(self):
        entry = NormalizerService().normalize_toggl_entry(
            {"id": 5, "start": "2024-03-01T09:00:00Z", "stop": "2024-03-01T09:30:00Z", "tags": "a, b"}
        )

        assert entry.duration_sec == 1800
        assert entry.tags == ["a", "b"]
        assert entry.is_running is False

    def test_missing_id_is_dropped(self):
        assert NormalizerService().normalize_toggl_entry({"start": "2024-03-01T09:00:00Z"}) is None

    def test_non_object_and_odd_timestamps_are_dropped(self):
        normalizer = NormalizerService()

        assert normalizer.normalize_toggl_entry("oops") is None
        assert normalizer.normalize_toggl_entry({"id": 1, "start": 1709283600}) is None
