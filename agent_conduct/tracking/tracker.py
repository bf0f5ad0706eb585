"""Session hierarchy tracking for multi-agent runs.

Every session observed during a run becomes a node in a forest. Delegation
intent (a ``task`` tool call) is recorded before the child session exists
and is linked to the child once the server announces it. A delegation that
never gets a child is an orphan and is reported, not dropped.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionNode:
    """One session in the delegation forest.

    Attributes:
        session_id: Session identifier
        agent: Agent identity owning the session
        parent_id: Parent session (None for a root)
        depth: 0 for a root, parent depth + 1 otherwise
        start_time: Registration time in epoch milliseconds
        end_time: Completion time in epoch milliseconds
        status: "running" or "complete"
        children: Child session ids in registration order
    """

    session_id: str
    agent: str
    parent_id: Optional[str] = None
    depth: int = 0
    start_time: int = field(default_factory=_now_ms)
    end_time: Optional[int] = None
    status: str = "running"
    children: list[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.depth == 0

    @property
    def duration_ms(self) -> int:
        end = self.end_time if self.end_time is not None else _now_ms()
        return max(0, end - self.start_time)


@dataclass
class DelegationEvent:
    """Delegation intent and, once observed, the child it spawned."""

    delegation_id: str
    parent_session_id: str
    to_agent: str
    prompt: str
    created_at: int = field(default_factory=_now_ms)
    child_session_id: Optional[str] = None

    @property
    def linked(self) -> bool:
        return self.child_session_id is not None


class SessionTracker:
    """Tracks sessions and delegations for one run.

    Usage:
        tracker = SessionTracker()
        tracker.register_session("ses_root", "openagent")
        delegation_id = tracker.record_delegation("ses_root", "coder", "Implement X")
        tracker.register_session("ses_child", "coder", parent_id="ses_root")
        tracker.link_child_session(delegation_id, "ses_child")
        assert tracker.get_session("ses_child").depth == 1
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionNode] = {}
        self._delegations: dict[str, DelegationEvent] = {}
        self._counter = 0

    def register_session(
        self,
        session_id: str,
        agent: str,
        parent_id: Optional[str] = None,
    ) -> SessionNode:
        """Register a session, returning the existing node on redelivery."""
        existing = self._sessions.get(session_id)
        if existing is not None:
            return existing

        depth = 0
        if parent_id is not None:
            parent = self._sessions.get(parent_id)
            if parent is None:
                logger.warning(
                    f"Parent session {parent_id} unknown for {session_id}; starting a new tree"
                )
                parent_id = None
            else:
                depth = parent.depth + 1
                parent.children.append(session_id)

        node = SessionNode(session_id=session_id, agent=agent, parent_id=parent_id, depth=depth)
        self._sessions[session_id] = node
        return node

    def record_delegation(self, parent_session_id: str, to_agent: str, prompt: str) -> str:
        """Record delegation intent and return its handle."""
        self._counter += 1
        delegation_id = f"del-{self._counter:04d}"
        self._delegations[delegation_id] = DelegationEvent(
            delegation_id=delegation_id,
            parent_session_id=parent_session_id,
            to_agent=to_agent,
            prompt=prompt,
        )
        return delegation_id

    def link_child_session(self, delegation_id: str, child_session_id: str) -> bool:
        """Join a delegation to the child it spawned.

        Returns:
            False if the delegation is unknown or already linked elsewhere
        """
        delegation = self._delegations.get(delegation_id)
        if delegation is None:
            logger.warning(f"Cannot link {child_session_id}: unknown delegation {delegation_id}")
            return False
        if delegation.child_session_id not in (None, child_session_id):
            logger.warning(
                f"Delegation {delegation_id} already linked to {delegation.child_session_id}"
            )
            return False
        delegation.child_session_id = child_session_id
        return True

    def link_next_delegation(self, parent_session_id: str, child_session_id: str) -> Optional[str]:
        """Link a child to the parent's oldest unlinked delegation, if any."""
        if any(d.child_session_id == child_session_id for d in self._delegations.values()):
            return None
        pending = [
            d for d in self._delegations.values()
            if d.parent_session_id == parent_session_id and not d.linked
        ]
        if not pending:
            return None
        delegation = min(pending, key=lambda d: (d.created_at, d.delegation_id))
        delegation.child_session_id = child_session_id
        return delegation.delegation_id

    def complete_session(self, session_id: str) -> Optional[SessionNode]:
        node = self._sessions.get(session_id)
        if node is None:
            return None
        if node.status != "complete":
            node.status = "complete"
            node.end_time = _now_ms()
        return node

    def get_session(self, session_id: str) -> Optional[SessionNode]:
        return self._sessions.get(session_id)

    def get_delegation(self, delegation_id: str) -> Optional[DelegationEvent]:
        return self._delegations.get(delegation_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def sessions(self) -> list[SessionNode]:
        return list(self._sessions.values())

    def delegations(self) -> list[DelegationEvent]:
        return list(self._delegations.values())

    def roots(self) -> list[SessionNode]:
        return [n for n in self._sessions.values() if n.parent_id is None]

    def children_of(self, session_id: str) -> list[SessionNode]:
        node = self._sessions.get(session_id)
        if node is None:
            return []
        return [self._sessions[c] for c in node.children if c in self._sessions]

    def orphaned_delegations(self) -> list[DelegationEvent]:
        """Delegations that never got a child session."""
        return [d for d in self._delegations.values() if not d.linked]

    def clear(self) -> None:
        self._sessions.clear()
        self._delegations.clear()
        self._counter = 0

    def __len__(self) -> int:
        return len(self._sessions)
