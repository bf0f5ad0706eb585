"""Timeline models for agent-conduct.

A Timeline is the normalized, time-ordered reconstruction of one session
and its delegated descendants. It is derived from persisted records and is
never authoritative: rebuilding from the same records yields the same
ordered entries.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agent_conduct.core.types import (
    DELEGATION_TOOL,
    READ_TOOLS,
    EntryKind,
    Role,
    is_execution_call,
    is_inspection_call,
    is_mutating_call,
    tool_file_path,
)


class SessionInfo(BaseModel):
    """Metadata about one session covered by a timeline.

    Attributes:
        session_id: Session identifier
        title: Session title as stored by the server
        agent: Agent identity that answered in the session
        model: Model identity in ``provider/model`` form
        parent_id: Parent session (None for the root)
        depth: Delegation depth (root = 0)
        created_at: Creation time in epoch milliseconds
        updated_at: Last update time in epoch milliseconds
    """

    model_config = ConfigDict(extra="ignore")

    session_id: str
    title: Optional[str] = None
    agent: Optional[str] = None
    model: Optional[str] = None
    parent_id: Optional[str] = None
    depth: int = 0
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


class TimelineEntry(BaseModel):
    """One normalized thing that happened in a session.

    Attributes:
        entry_id: Unique identifier within the timeline
        session_id: Session the entry belongs to
        agent: Agent identity of that session
        depth: Delegation depth of that session
        kind: Entry discriminator
        role: Who produced the entry
        timestamp: Epoch milliseconds
        sequence: Position within the source message (tie breaker)
        text: Message text for user/assistant entries, action title for permissions
        tool: Tool name for tool calls and permissions
        tool_input: Tool arguments
        tool_output: Tool output (or error text)
        tool_status: pending, running, completed or error
        call_id: Tool call identifier
        permission_approved: Decision for permission entries (None = unanswered)
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    entry_id: str
    session_id: str
    agent: Optional[str] = None
    depth: int = 0
    kind: EntryKind
    role: Role
    timestamp: int
    sequence: int = 0
    text: Optional[str] = None
    tool: Optional[str] = None
    tool_input: Optional[dict[str, Any]] = None
    tool_output: Optional[str] = None
    tool_status: Optional[str] = None
    call_id: Optional[str] = None
    permission_approved: Optional[bool] = None

    @property
    def is_tool_call(self) -> bool:
        return self.kind == EntryKind.TOOL_CALL

    @property
    def is_mutating(self) -> bool:
        return self.is_tool_call and is_mutating_call(self.tool or "", self.tool_input)

    @property
    def is_execution(self) -> bool:
        return self.is_tool_call and is_execution_call(self.tool or "")

    @property
    def is_read(self) -> bool:
        return self.is_tool_call and self.tool in READ_TOOLS

    @property
    def is_inspection(self) -> bool:
        return self.is_tool_call and is_inspection_call(self.tool or "", self.tool_input)

    @property
    def is_answered_permission(self) -> bool:
        return self.kind == EntryKind.PERMISSION and self.permission_approved is not None

    @property
    def failed(self) -> bool:
        return self.is_tool_call and self.tool_status == "error"


class DelegationRecord(BaseModel):
    """A delegation (task tool call) and the child session it spawned.

    Attributes:
        call_id: Tool call identifier of the task call
        parent_session_id: Session that delegated
        to_agent: Requested specialist agent
        prompt: Prompt handed to the specialist
        timestamp: Epoch milliseconds of the delegation
        child_session_id: Linked child session (None = orphaned)
    """

    model_config = ConfigDict(extra="ignore")

    call_id: Optional[str] = None
    parent_session_id: str
    to_agent: Optional[str] = None
    prompt: Optional[str] = None
    timestamp: int
    child_session_id: Optional[str] = None

    @property
    def orphaned(self) -> bool:
        return self.child_session_id is None


class Timeline(BaseModel):
    """Time-ordered activity of a session and its descendants.

    ``status`` tags the build result: ``complete`` or ``partial`` with the
    reasons the build could not read everything.
    """

    model_config = ConfigDict(extra="ignore")

    session_id: str
    sessions: list[SessionInfo] = Field(default_factory=list)
    entries: list[TimelineEntry] = Field(default_factory=list)
    delegations: list[DelegationRecord] = Field(default_factory=list)
    status: Literal["complete", "partial"] = "complete"
    partial_reasons: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_entries(self) -> "Timeline":
        """Check entry ids are unique and partial timelines carry a reason."""
        entry_ids = [e.entry_id for e in self.entries]
        if len(entry_ids) != len(set(entry_ids)):
            duplicates = sorted({eid for eid in entry_ids if entry_ids.count(eid) > 1})
            raise ValueError(f"Duplicate entry_ids found: {duplicates}")
        if self.status == "partial" and not self.partial_reasons:
            raise ValueError("Partial timelines must state at least one reason")
        return self

    @classmethod
    def complete(cls, session_id: str, **kwargs: Any) -> "Timeline":
        return cls(session_id=session_id, status="complete", **kwargs)

    @classmethod
    def partial(cls, session_id: str, reasons: list[str], **kwargs: Any) -> "Timeline":
        return cls(session_id=session_id, status="partial", partial_reasons=reasons, **kwargs)

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"

    @property
    def root(self) -> Optional[SessionInfo]:
        return self.get_session(self.session_id)

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return next((s for s in self.sessions if s.session_id == session_id), None)

    def session_ids(self) -> list[str]:
        return [s.session_id for s in self.sessions]

    def for_session(self, session_id: str) -> list[TimelineEntry]:
        """Entries belonging to one session, in timeline order."""
        return [e for e in self.entries if e.session_id == session_id]

    def tool_calls(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [
            e for e in self.entries
            if e.is_tool_call and (session_id is None or e.session_id == session_id)
        ]

    def tools_used(self) -> set[str]:
        return {e.tool for e in self.tool_calls() if e.tool}

    def execution_calls(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [e for e in self.tool_calls(session_id) if e.is_execution]

    def read_calls(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [e for e in self.tool_calls(session_id) if e.is_read]

    def delegation_calls(self) -> list[TimelineEntry]:
        return [e for e in self.tool_calls() if e.tool == DELEGATION_TOOL]

    def user_messages(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [
            e for e in self.entries
            if e.kind == EntryKind.USER_MESSAGE
            and (session_id is None or e.session_id == session_id)
        ]

    def assistant_texts(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [
            e for e in self.entries
            if e.kind == EntryKind.ASSISTANT_TEXT
            and (session_id is None or e.session_id == session_id)
        ]

    def permissions(self, session_id: Optional[str] = None) -> list[TimelineEntry]:
        return [
            e for e in self.entries
            if e.kind == EntryKind.PERMISSION
            and (session_id is None or e.session_id == session_id)
        ]

    def orphaned_delegations(self) -> list[DelegationRecord]:
        return [d for d in self.delegations if d.orphaned]

    def files_modified(self, session_id: Optional[str] = None) -> set[str]:
        """Distinct file paths touched by write/edit/patch calls."""
        paths = set()
        for entry in self.tool_calls(session_id):
            if entry.tool in ("write", "edit", "patch"):
                path = tool_file_path(entry.tool_input)
                if path:
                    paths.add(path)
        return paths

    def signature(self) -> list[tuple[str, int, str]]:
        """Ordered (entry_id, timestamp, kind) triples for comparing rebuilds."""
        return [(e.entry_id, e.timestamp, e.kind.value) for e in self.entries]
