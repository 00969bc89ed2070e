"""
src/agent/tests/test_eve_forwarder.py

Purpose: Unit tests for the central collector client
"""

import json

import httpx
import pytest

from agent_errors import BadGatewayError, InternalServerError
from eve_forwarder import EventForwarder


def make_forwarder(handler, url="http://collector.test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EventForwarder(url, client=client)


class TestForward:
    """Test fire-and-forget forwarding used by the watcher"""

    def test_endpoint(self):
        forwarder = EventForwarder("http://collector.test/api/")
        assert forwarder.endpoint == "http://collector.test/api/log"

    @pytest.mark.asyncio
    async def test_forward_success(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(201)

        forwarder = make_forwarder(handler)
        assert await forwarder.forward({"event_type": "alert"}) is True
        assert seen == [{"event_type": "alert"}]

    @pytest.mark.asyncio
    async def test_forward_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        forwarder = make_forwarder(handler)
        assert await forwarder.forward({"event_type": "alert"}) is False

    @pytest.mark.asyncio
    async def test_forward_without_url(self):
        forwarder = EventForwarder(None)
        assert forwarder.configured is False
        assert await forwarder.forward({"event_type": "alert"}) is False

    @pytest.mark.asyncio
    async def test_send_without_url_raises(self):
        forwarder = EventForwarder(None)
        with pytest.raises(InternalServerError):
            await forwarder.send({})


class TestRelay:
    """Test relaying of events received over HTTP"""

    @pytest.mark.asyncio
    async def test_relay_posts_to_collector_base_url(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json={})

        forwarder = make_forwarder(handler, url="http://collector.test/api/events/")
        await forwarder.relay([{"event_type": "alert"}])

        assert urls == ["http://collector.test/api/events"]

    @pytest.mark.asyncio
    async def test_forward_and_relay_use_different_urls(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json={})

        forwarder = make_forwarder(handler, url="http://collector.test/api")
        await forwarder.forward({"event_type": "flow"})
        await forwarder.relay([{"event_type": "alert"}])

        assert urls == ["http://collector.test/api/log", "http://collector.test/api"]

    @pytest.mark.asyncio
    async def test_relay_collects_replies(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={"stored": body["event_type"]})

        forwarder = make_forwarder(handler)
        results = await forwarder.relay([
            {"event_type": "alert", "src_ip": "10.0.0.1"},
            {"event_type": "flow"},
        ])

        assert results == [{"stored": "alert"}, {"stored": "flow"}]

    @pytest.mark.asyncio
    async def test_relay_forwards_unknown_fields_untouched(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={})

        forwarder = make_forwarder(handler)
        event = {"event_type": "alert", "alert": {"sid": 1}, "flow_id": 42}
        await forwarder.relay([event])

        assert seen == [event]

    @pytest.mark.asyncio
    async def test_relay_skips_bad_items(self):
        calls = []

        def handler(request):
            calls.append(request)
            body = json.loads(request.content)
            if body.get("event_type") == "reject-me":
                return httpx.Response(500)
            if body.get("event_type") == "not-json":
                return httpx.Response(200, content=b"plain text")
            return httpx.Response(200, json={"ok": True})

        forwarder = make_forwarder(handler)
        results = await forwarder.relay([
            "not an object",
            {"event_type": 5},
            {"event_type": "reject-me"},
            {"event_type": "not-json"},
            {"event_type": "alert"},
        ])

        assert results == [{"ok": True}]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_relay_all_failed(self):
        forwarder = make_forwarder(lambda request: httpx.Response(503))
        with pytest.raises(BadGatewayError):
            await forwarder.relay([{"event_type": "alert"}])

    @pytest.mark.asyncio
    async def test_relay_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        forwarder = make_forwarder(handler)
        with pytest.raises(BadGatewayError):
            await forwarder.relay([{"event_type": "alert"}, {"event_type": "dns"}])

    @pytest.mark.asyncio
    async def test_relay_without_url(self):
        forwarder = EventForwarder(None)
        with pytest.raises(InternalServerError) as exc_info:
            await forwarder.relay([{"event_type": "alert"}])
        assert "CENTRAL_API_SERVER_URL" in exc_info.value.message
