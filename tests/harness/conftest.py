"""
In-memory stand-ins for the session client and event stream.

ScriptedClient plays a list of server events for every prompt it receives,
pushing them through the FakeConsumer the same way the live feed would:
filter first, then the event handler, then permission routing.
"""

import json
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from agent_conduct.core.timeline import SessionInfo
from agent_conduct.exceptions import ClientError
from agent_conduct.harness.events import PermissionRequest, ServerEvent


class FakeConsumer:
    """Captures handlers from listen() and delivers events on demand."""

    def __init__(self) -> None:
        self.events: list[ServerEvent] = []
        self.listens = 0
        self.stops = 0
        self._on_event = None
        self._on_permission = None
        self._accept = None

    @property
    def listening(self) -> bool:
        return self._on_permission is not None

    async def listen(self, on_event, on_permission, accept=None) -> None:
        self.listens += 1
        self.events = []
        self._on_event = on_event
        self._on_permission = on_permission
        self._accept = accept

    async def stop_listening(self) -> None:
        self.stops += 1
        self._on_event = self._on_permission = self._accept = None

    async def deliver(self, raw: dict[str, Any]) -> None:
        if self._on_permission is None:
            return
        event = ServerEvent.parse(json.dumps(raw), len(self.events) + 1)
        if self._accept is not None and not self._accept(event):
            return
        self.events.append(event)
        if self._on_event is not None:
            await self._on_event(event)
        if event.is_permission_request:
            await self._on_permission(PermissionRequest.from_event(event))


class ScriptedClient:
    """Session client whose prompts replay scripted events.

    Args:
        consumer: Where scripted events are delivered
        turns: One list of raw events per prompt; prompts past the end
            produce no events (the run then waits until it times out)
    """

    def __init__(
        self,
        consumer: FakeConsumer,
        turns: Optional[list[list[dict[str, Any]]]] = None,
        session_id: str = "ses_root",
    ):
        self.consumer = consumer
        self.turns = list(turns or [])
        self.session_id = session_id
        self.prompts: list[dict[str, Any]] = []
        self.permissions: list[tuple[str, str, bool]] = []
        self.deleted: list[str] = []
        self.fail_create = False
        self.fail_permission = False

    async def __aenter__(self) -> "ScriptedClient":
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def create_session(self, title: Optional[str] = None) -> SessionInfo:
        if self.fail_create:
            raise ClientError("POST /session failed with 500: boom", status_code=500)
        return SessionInfo(session_id=self.session_id, title=title)

    async def send_prompt(self, session_id: str, text: str, agent=None, model=None) -> Any:
        self.prompts.append({"session_id": session_id, "text": text, "agent": agent, "model": model})
        turn = len(self.prompts) - 1
        for raw in self.turns[turn] if turn < len(self.turns) else []:
            await self.consumer.deliver(raw)
        return {"info": {"id": f"msg_{turn}"}}

    async def respond_permission(self, session_id: str, permission_id: str, approved: bool) -> None:
        if self.fail_permission:
            raise ClientError("POST permissions failed with 404: gone", status_code=404)
        self.permissions.append((session_id, permission_id, approved))

    async def delete_session(self, session_id: str) -> None:
        self.deleted.append(session_id)


# =============================================================================
# Raw event builders
# =============================================================================


def idle(session_id: str = "ses_root") -> dict[str, Any]:
    return {"type": "session.idle", "properties": {"sessionID": session_id}}


def tool_part(session_id: str, call_id: str, tool: str, tool_input: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "id": f"prt_{call_id}",
                "sessionID": session_id,
                "type": "tool",
                "tool": tool,
                "callID": call_id,
                "state": {"status": "running", "input": tool_input},
            }
        },
    }


def permission(permission_id: str, session_id: str = "ses_root", tool: str = "bash", command: str = "") -> dict:
    return {
        "type": "permission.updated",
        "properties": {
            "id": permission_id,
            "sessionID": session_id,
            "type": tool,
            "title": command,
            "metadata": {"command": command},
        },
    }


def child_created(child_id: str, parent_id: str = "ses_root") -> dict[str, Any]:
    return {"type": "session.created", "properties": {"info": {"id": child_id, "parentID": parent_id}}}


@pytest.fixture
def consumer() -> FakeConsumer:
    return FakeConsumer()


@pytest.fixture
def client_for(consumer):
    """Build a ScriptedClient wired to the test's consumer."""

    def make(turns=None, session_id: str = "ses_root") -> ScriptedClient:
        return ScriptedClient(consumer, turns, session_id)

    return make


@pytest.fixture
def events() -> SimpleNamespace:
    """Raw event builders."""
    return SimpleNamespace(idle=idle, tool_part=tool_part, permission=permission, child_created=child_created)
