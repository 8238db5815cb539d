"""Tests for the device-side sync client."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from kohasync.api import create_app
from kohasync.config import Config, StoreConfig
from kohasync.sync import SyncClient
from kohasync.sync.sync_client import SyncResult, SyncStatus


@pytest.fixture
def app(service):
    return create_app(Config(store=StoreConfig(backend="memory")), service=service)


@pytest.fixture
def asgi_client(app):
    """Sync client talking to the app in-process."""
    return SyncClient(
        server_url="http://koha.test",
        max_retries=2,
        transport=httpx.ASGITransport(app=app),
    )


def mock_client(handler, max_retries=3):
    return SyncClient(
        server_url="http://koha.test",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


class TestSyncClientInit:
    """Tests for client configuration."""

    def test_init(self):
        client = SyncClient(server_url="http://koha.test", max_retries=5, timeout=3.0)

        assert client.server_url == "http://koha.test"
        assert client.max_retries == 5
        assert client.last_sync is None

    def test_set_server_url(self):
        client = SyncClient()
        client.set_server_url("http://other:9000")

        assert client.server_url == "http://other:9000"

    @pytest.mark.asyncio
    async def test_no_server_url(self):
        result = await SyncClient().fetch_record("ABCDE")

        assert result.status == SyncStatus.FAILED
        assert "No server URL" in result.error


class TestSyncClientAgainstApp:
    """End-to-end tests against the FastAPI app."""

    @pytest.mark.asyncio
    async def test_create_fetch_push(self, asgi_client):
        created = await asgi_client.create_record({"gifts": [{"id": 1, "amount": 5}]})
        assert created.status == SyncStatus.SUCCESS

        pushed = await asgi_client.push_record(
            created.sync_id.lower(),
            {"gifts": [{"id": 1, "amount": 10}, {"id": 2, "amount": 3}]},
        )
        assert pushed.status == SyncStatus.SUCCESS
        assert pushed.sync_id == created.sync_id

        fetched = await asgi_client.fetch_record(created.sync_id)
        assert fetched.record.gifts == [{"id": 1, "amount": 10}, {"id": 2, "amount": 3}]
        assert fetched.record == pushed.record
        assert asgi_client.last_sync is not None

    @pytest.mark.asyncio
    async def test_two_devices_converge(self, asgi_client):
        """Test sequential pushes from two devices union their items."""
        created = await asgi_client.create_record({"syncCode": "fam"})
        code = created.sync_id

        await asgi_client.push_record(code, {"expenses": [{"id": "phone-1"}]})
        await asgi_client.push_record(code, {"expenses": [{"id": "laptop-1"}]})

        fetched = await asgi_client.fetch_record(code)
        assert [e["id"] for e in fetched.record.expenses] == ["phone-1", "laptop-1"]
        assert fetched.record.sync_code == "fam"

    @pytest.mark.asyncio
    async def test_fetch_missing(self, asgi_client):
        result = await asgi_client.fetch_record("ZZZZZ")

        assert result.status == SyncStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_push_missing(self, asgi_client):
        result = await asgi_client.push_record("ZZZZZ", {"gifts": []})

        assert result.status == SyncStatus.NOT_FOUND


class TestSyncClientRetries:
    """Tests for retry behaviour."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(500, json={"error": "busy"})
            return httpx.Response(200, json={"success": True, "id": "ABCDE"})

        client = mock_client(handler)
        with patch("kohasync.sync.sync_client.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await client.create_record({})

        assert result.status == SyncStatus.SUCCESS
        assert result.sync_id == "ABCDE"
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "invalid_request"})

        result = await mock_client(handler).fetch_record("ABCDE")

        assert result.status == SyncStatus.FAILED
        assert "HTTP 400" in result.error
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "not_found"})

        result = await mock_client(handler).push_record("abcde", {})

        assert result.status == SyncStatus.NOT_FOUND
        assert len(calls) == 1
        assert calls[0].url.params["id"] == "ABCDE"
        assert calls[0].method == "PUT"

    @pytest.mark.asyncio
    async def test_connection_failure_is_offline(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = mock_client(handler, max_retries=2)
        with patch("kohasync.sync.sync_client.asyncio.sleep", new=AsyncMock()):
            result = await client.fetch_record("ABCDE")

        assert result.status == SyncStatus.OFFLINE
        assert client.get_sync_status()["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_persistent_server_errors_are_failed(self):
        """Test a server that keeps answering 500 is reported as a failure."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"error": "disk full"})

        client = mock_client(handler)
        with patch("kohasync.sync.sync_client.asyncio.sleep", new=AsyncMock()):
            result = await client.push_record("ABCDE", {"gifts": []})

        assert result.status == SyncStatus.FAILED
        assert "Max retries (3) exceeded" in result.error
        assert "HTTP 500" in result.error
        assert "disk full" in result.error
        assert len(calls) == 3
        assert client.get_sync_status()["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_connection_failure_after_server_error_is_offline(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, text="unavailable")
            raise httpx.ConnectTimeout("timed out", request=request)

        client = mock_client(handler, max_retries=2)
        with patch("kohasync.sync.sync_client.asyncio.sleep", new=AsyncMock()):
            result = await client.fetch_record("ABCDE")

        assert result.status == SyncStatus.OFFLINE
        assert result.error == "Connection failed after 2 attempts"

    @pytest.mark.asyncio
    async def test_status_reset_after_success(self):
        client = mock_client(
            lambda request: httpx.Response(200, json={"success": True, "id": "ABCDE"})
        )
        client._consecutive_failures = 4

        await client.create_record({})

        status = client.get_sync_status()
        assert status["consecutive_failures"] == 0
        assert status["last_sync"] is not None


class TestSyncClientMalformedResponses:
    """Tests for 200 responses missing the expected fields."""

    @pytest.mark.asyncio
    async def test_create_without_id(self):
        client = mock_client(lambda request: httpx.Response(200, json={}))

        result = await client.create_record({})

        assert result.status == SyncStatus.FAILED
        assert "Unexpected response" in result.error
        assert client.last_sync is None

    @pytest.mark.asyncio
    async def test_fetch_without_data(self):
        client = mock_client(lambda request: httpx.Response(200, json={"success": True}))

        result = await client.fetch_record("ABCDE")

        assert result.status == SyncStatus.FAILED
        assert "Unexpected response" in result.error

    @pytest.mark.asyncio
    async def test_push_with_non_object_data(self):
        client = mock_client(
            lambda request: httpx.Response(200, json={"success": True, "data": [1]})
        )

        result = await client.push_record("ABCDE", {})

        assert result.status == SyncStatus.FAILED
        assert result.record is None

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        client = mock_client(lambda request: httpx.Response(200, json=["ABCDE"]))

        result = await client.create_record({})

        assert result.status == SyncStatus.FAILED


class TestSyncResult:
    def test_defaults(self):
        result = SyncResult(status=SyncStatus.FAILED, error="x")

        assert result.record is None
        assert result.sync_id is None
