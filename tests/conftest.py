"""
Shared pytest fixtures for agent-conduct tests.

These fixtures provide timeline factories and an on-disk session store
laid out the way the agent server persists sessions.
"""

import json
from pathlib import Path
from typing import Any, Optional

import pytest

from agent_conduct.core.timeline import DelegationRecord, SessionInfo, Timeline, TimelineEntry
from agent_conduct.core.types import EntryKind, Role

ROOT = "ses_root"


# =============================================================================
# Timeline factory
# =============================================================================


class TimelineFactory:
    """Builds timeline entries with unique ids and sensible defaults."""

    def __init__(self) -> None:
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:03d}"

    @staticmethod
    def _depth(session_id: str) -> int:
        return 0 if session_id == ROOT else 1

    def user(self, text: str, ts: int, session_id: str = ROOT) -> TimelineEntry:
        return TimelineEntry(
            entry_id=self._next_id("prt"),
            session_id=session_id,
            depth=self._depth(session_id),
            kind=EntryKind.USER_MESSAGE,
            role=Role.USER,
            timestamp=ts,
            text=text,
        )

    def text(self, text: str, ts: int, session_id: str = ROOT) -> TimelineEntry:
        return TimelineEntry(
            entry_id=self._next_id("prt"),
            session_id=session_id,
            depth=self._depth(session_id),
            kind=EntryKind.ASSISTANT_TEXT,
            role=Role.ASSISTANT,
            timestamp=ts,
            text=text,
        )

    def tool(
        self,
        tool: str,
        tool_input: Optional[dict[str, Any]],
        ts: int,
        session_id: str = ROOT,
        status: str = "completed",
        output: str = "",
        call_id: Optional[str] = None,
    ) -> TimelineEntry:
        return TimelineEntry(
            entry_id=self._next_id("prt"),
            session_id=session_id,
            depth=self._depth(session_id),
            kind=EntryKind.TOOL_CALL,
            role=Role.ASSISTANT,
            timestamp=ts,
            tool=tool,
            tool_input=tool_input,
            tool_output=output,
            tool_status=status,
            call_id=call_id or self._next_id("call"),
        )

    def permission(
        self,
        ts: int,
        session_id: str = ROOT,
        approved: Optional[bool] = True,
        call_id: Optional[str] = None,
        tool: str = "bash",
    ) -> TimelineEntry:
        return TimelineEntry(
            entry_id=self._next_id("perm"),
            session_id=session_id,
            depth=self._depth(session_id),
            kind=EntryKind.PERMISSION,
            role=Role.SYSTEM,
            timestamp=ts,
            tool=tool,
            call_id=call_id,
            permission_approved=approved,
        )

    def timeline(
        self,
        *entries: TimelineEntry,
        delegations: Optional[list[DelegationRecord]] = None,
        partial: Optional[list[str]] = None,
        root_agent: Optional[str] = "openagent",
        root_model: Optional[str] = None,
    ) -> Timeline:
        """Timeline over ``ses_root`` plus any child session the entries mention."""
        sessions = [SessionInfo(session_id=ROOT, agent=root_agent, model=root_model)]
        children = [d.child_session_id for d in delegations or [] if d.child_session_id]
        children += [e.session_id for e in entries if e.session_id != ROOT]
        for child in dict.fromkeys(children):
            sessions.append(SessionInfo(session_id=child, parent_id=ROOT, depth=1))
        ordered = sorted(entries, key=lambda e: (e.timestamp, e.depth, e.session_id, e.entry_id))
        kwargs = dict(sessions=sessions, entries=ordered, delegations=delegations or [])
        if partial:
            return Timeline.partial(ROOT, partial, **kwargs)
        return Timeline.complete(ROOT, **kwargs)


@pytest.fixture
def factory() -> TimelineFactory:
    """Fresh entry factory (ids restart per test)."""
    return TimelineFactory()


# =============================================================================
# On-disk session storage
# =============================================================================


class StorageWriter:
    """Writes session, message and part records into a storage directory."""

    def __init__(self, root: Path, project: str = "proj_test"):
        self.root = root
        self.project = project

    def _write(self, path: Path, data: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def session(
        self,
        session_id: str,
        parent_id: Optional[str] = None,
        created: int = 1000,
        title: str = "test session",
    ) -> Path:
        record = {
            "id": session_id,
            "projectID": self.project,
            "title": title,
            "time": {"created": created, "updated": created},
        }
        if parent_id:
            record["parentID"] = parent_id
        return self._write(self.root / "session" / self.project / f"{session_id}.json", record)

    def message(
        self,
        session_id: str,
        message_id: str,
        role: str,
        created: int,
        agent: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Path:
        record: dict[str, Any] = {
            "id": message_id,
            "sessionID": session_id,
            "role": role,
            "time": {"created": created},
        }
        if agent:
            record["agent"] = agent
        if model:
            provider, _, model_id = model.partition("/")
            record["providerID"] = provider
            record["modelID"] = model_id
        return self._write(self.root / "message" / session_id / f"{message_id}.json", record)

    def text_part(self, session_id: str, message_id: str, part_id: str, text: str, start: int, **extra: Any) -> Path:
        record = {
            "id": part_id,
            "sessionID": session_id,
            "messageID": message_id,
            "type": "text",
            "text": text,
            "time": {"start": start, "end": start + 1},
            **extra,
        }
        return self._write(self.root / "part" / message_id / f"{part_id}.json", record)

    def tool_part(
        self,
        session_id: str,
        message_id: str,
        part_id: str,
        tool: str,
        tool_input: dict[str, Any],
        start: int,
        status: str = "completed",
        output: str = "",
        call_id: Optional[str] = None,
        child_session_id: Optional[str] = None,
    ) -> Path:
        state: dict[str, Any] = {
            "status": status,
            "input": tool_input,
            "time": {"start": start, "end": start + 5},
        }
        if status == "error":
            state["error"] = output
        else:
            state["output"] = output
        if child_session_id:
            state["metadata"] = {"sessionId": child_session_id}
        record = {
            "id": part_id,
            "sessionID": session_id,
            "messageID": message_id,
            "type": "tool",
            "tool": tool,
            "callID": call_id or f"call_{part_id}",
            "state": state,
        }
        return self._write(self.root / "part" / message_id / f"{part_id}.json", record)

    def raw(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path


@pytest.fixture
def storage(tmp_path) -> StorageWriter:
    """Empty storage directory with a writer for records."""
    return StorageWriter(tmp_path / "storage")
