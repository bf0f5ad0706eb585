"""Tests for event parsing and the event stream consumer."""

import asyncio
import json

import httpx
import pytest

from agent_conduct.exceptions import ClientError, ProtocolError
from agent_conduct.harness.events import EventStreamConsumer, PermissionRequest, ServerEvent


def _sse(*payloads) -> bytes:
    """Encode payloads as an SSE body; strings are sent verbatim."""
    chunks = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        chunks.append(f"data: {data}\n\n")
    return "".join(chunks).encode()


def _feed(body: bytes, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/event"
        return httpx.Response(status, content=body, headers={"content-type": "text/event-stream"})

    return httpx.MockTransport(handler)


async def _until_drained(consumer: EventStreamConsumer) -> None:
    async def wait():
        while consumer.listening:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(wait(), timeout=2.0)
    await consumer.stop_listening()


PERMISSION = {
    "type": "permission.updated",
    "properties": {
        "id": "per_1",
        "sessionID": "ses_a",
        "callID": "call_1",
        "type": "bash",
        "title": "Run npm install",
        "pattern": ["npm install"],
        "metadata": {"command": "npm install"},
        "time": {"created": 1700},
    },
}


class TestServerEvent:
    """Tests for parsing event payloads."""

    def test_session_from_properties(self):
        event = ServerEvent.parse(json.dumps({"type": "session.idle", "properties": {"sessionID": "ses_a"}}), 3)
        assert event.type == "session.idle"
        assert event.session_id == "ses_a"
        assert event.sequence == 3

    def test_session_from_part(self):
        raw = json.dumps({"type": "message.part.updated", "properties": {"part": {"sessionID": "ses_b"}}})
        assert ServerEvent.parse(raw).session_id == "ses_b"

    def test_session_created_uses_info_id(self):
        raw = json.dumps({"type": "session.created", "properties": {"info": {"id": "ses_c", "parentID": "ses_a"}}})
        assert ServerEvent.parse(raw).session_id == "ses_c"

    def test_event_without_session(self):
        raw = json.dumps({"type": "server.connected", "properties": {}})
        assert ServerEvent.parse(raw).session_id is None

    @pytest.mark.parametrize("raw", ["{not json", '{"properties": {}}', '{"type": "x", "properties": [1]}', "[]"])
    def test_malformed(self, raw):
        with pytest.raises(ProtocolError):
            ServerEvent.parse(raw)

    def test_permission_request(self):
        event = ServerEvent.parse(json.dumps(PERMISSION))
        assert event.is_permission_request

        request = PermissionRequest.from_event(event)
        assert request.id == "per_1"
        assert request.call_id == "call_1"
        assert request.tool == "bash"
        assert request.created_at == 1700
        assert request.action == "Run npm install npm install"

    def test_permission_without_id(self):
        event = ServerEvent(type="permission.updated", properties={"sessionID": "ses_a"})
        with pytest.raises(ProtocolError):
            PermissionRequest.from_event(event)


class TestEventStreamConsumer:
    """Tests for subscribing, filtering and permission routing."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        body = _sse(
            {"type": "session.status", "properties": {"sessionID": "ses_a"}},
            "{not json",
            {"type": "session.idle", "properties": {"sessionID": "ses_a"}},
        )
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(body))
        seen = []

        async def on_event(event):
            seen.append(event.type)

        async def on_permission(request):
            raise AssertionError("no permissions expected")

        await consumer.listen(on_event, on_permission)
        await _until_drained(consumer)

        assert seen == ["session.status", "session.idle"]
        # Malformed payloads are skipped without using a sequence number
        assert [e.sequence for e in consumer.events] == [1, 2]

    @pytest.mark.asyncio
    async def test_permission_routed_once(self):
        body = _sse(PERMISSION, PERMISSION, {"type": "session.idle", "properties": {"sessionID": "ses_a"}})
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(body))
        routed = []

        async def on_permission(request):
            routed.append(request.id)

        await consumer.listen(None, on_permission)
        await _until_drained(consumer)

        assert routed == ["per_1"]
        assert len(consumer.events) == 3

    @pytest.mark.asyncio
    async def test_filter_drops_foreign_sessions(self):
        body = _sse(
            {"type": "session.idle", "properties": {"sessionID": "ses_other"}},
            {"type": "session.idle", "properties": {"sessionID": "ses_a"}},
            {**PERMISSION, "properties": {**PERMISSION["properties"], "sessionID": "ses_other"}},
        )
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(body))
        routed = []

        async def on_permission(request):
            routed.append(request.id)

        await consumer.listen(None, on_permission, accept=lambda e: e.session_id == "ses_a")
        await _until_drained(consumer)

        assert [e.session_id for e in consumer.events] == ["ses_a"]
        assert routed == []

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_stream(self):
        body = _sse(
            {"type": "session.status", "properties": {"sessionID": "ses_a"}},
            {"type": "session.idle", "properties": {"sessionID": "ses_a"}},
        )
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(body))
        seen = []

        async def on_event(event):
            seen.append(event.type)
            if event.type == "session.status":
                raise RuntimeError("handler bug")

        async def on_permission(request):
            pass

        await consumer.listen(on_event, on_permission)
        await _until_drained(consumer)
        assert seen == ["session.status", "session.idle"]

    @pytest.mark.asyncio
    async def test_relisten_resets_events(self):
        body = _sse({"type": "session.idle", "properties": {"sessionID": "ses_a"}})
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(body))

        async def on_permission(request):
            pass

        await consumer.listen(None, on_permission)
        await _until_drained(consumer)
        await consumer.listen(None, on_permission)
        await _until_drained(consumer)

        assert len(consumer.events) == 1

    @pytest.mark.asyncio
    async def test_feed_unavailable(self):
        consumer = EventStreamConsumer("http://agent.test", transport=_feed(b"", status=500))

        async def on_permission(request):
            pass

        with pytest.raises(ClientError, match="Event stream did not open"):
            await consumer.listen(None, on_permission)
        assert not consumer.listening
