"""
tests/unit/test_actions.py — HTTP GET actions

Uses httpx.MockTransport so no network is touched.
"""

from __future__ import annotations

import httpx
import pytest

from actions import HttpGetAction, actions_from_settings
from config.settings import Settings
from exceptions import ActionError, ActionFailedError
from scheduler.types import CYCLE_ID


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status: int = 200, **response_kwargs):
        self.status = status
        self.response_kwargs = response_kwargs
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, **self.response_kwargs)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class TestHttpGetAction:

    @pytest.mark.asyncio
    async def test_json_success(self):
        rec = Recorder(200, json={"refreshed": True})
        action = HttpGetAction("https://api.example.test/refresh", transport=rec.transport)
        assert await action() is None
        assert len(rec.requests) == 1
        assert rec.requests[0].method == "GET"
        assert str(rec.requests[0].url) == "https://api.example.test/refresh"

    @pytest.mark.asyncio
    async def test_non_json_success_is_fine(self):
        rec = Recorder(200, text="<html>ok</html>")
        await HttpGetAction("https://api.example.test/data", transport=rec.transport)()
        assert len(rec.requests) == 1

    @pytest.mark.asyncio
    async def test_headers(self):
        rec = Recorder(204)
        await HttpGetAction("https://api.example.test/data", transport=rec.transport)()
        headers = rec.requests[0].headers
        assert headers["accept"] == "application/json"
        assert headers["cache-control"] == "no-store"
        assert headers["user-agent"].startswith("SlotKeeper/")

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        rec = Recorder(503, text="maintenance window")
        action = HttpGetAction("https://api.example.test/refresh", transport=rec.transport)
        with pytest.raises(ActionFailedError) as exc_info:
            await action()
        err = exc_info.value
        assert isinstance(err, ActionError)
        assert err.status == 503
        assert err.url == "https://api.example.test/refresh"
        assert "503" in str(err)
        assert "maintenance window" in str(err)

    @pytest.mark.asyncio
    async def test_error_body_is_truncated(self):
        rec = Recorder(500, text="x" * 5000)
        with pytest.raises(ActionFailedError) as exc_info:
            await HttpGetAction("https://api.example.test/data", transport=rec.transport)()
        assert len(exc_info.value.body) == 500

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        action = HttpGetAction("https://api.example.test/data", transport=httpx.MockTransport(boom))
        with pytest.raises(httpx.ConnectError):
            await action()

    def test_repr(self):
        assert repr(HttpGetAction("https://a.test/x")) == "HttpGetAction('https://a.test/x')"


class TestActionsFromSettings:

    def test_default_mapping(self, monkeypatch):
        monkeypatch.setenv("REFRESH_API_URL", "https://api.example.test/refresh")
        monkeypatch.setenv("DATA_API_URL", "https://api.example.test/data")
        actions = actions_from_settings(Settings())

        assert set(actions) == {CYCLE_ID, "t0345", "t0355", "t0405"}
        assert actions[CYCLE_ID].url == "https://api.example.test/refresh"
        assert all(actions[i].url == "https://api.example.test/data" for i in ("t0345", "t0355", "t0405"))
        assert actions["t0345"].timeout == 20.0

    def test_slot_url_override_and_timeout(self):
        settings = Settings(
            daily={"slots": [
                {"id": "t0345", "hour": 3, "minute": 45},
                {"id": "t0355", "hour": 3, "minute": 55, "url": "https://other.test/late"},
            ]},
            actions={"timeout_seconds": 5},
        )
        actions = actions_from_settings(settings)
        assert actions["t0345"].url == settings.data_api_url
        assert actions["t0355"].url == "https://other.test/late"
        assert actions[CYCLE_ID].timeout == 5

    @pytest.mark.asyncio
    async def test_mapped_actions_share_transport(self):
        rec = Recorder(200, json={})
        actions = actions_from_settings(Settings(), transport=rec.transport)
        await actions[CYCLE_ID]()
        await actions["t0405"]()
        assert [r.url.path for r in rec.requests] == ["/api/refresh", "/api/data"]
