"""Build normalized timelines from persisted session records.

The builder walks a session and its delegated descendants (linked through
``parentID``), converts every message part into a TimelineEntry, merges the
permission requests captured from the live event stream, and sorts the
result by each entry's own timestamp. Missing or half-written records
produce a partial timeline instead of an exception.
"""

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Iterable, Optional

from agent_conduct.collector.session_store import SessionStore
from agent_conduct.core.timeline import (
    DelegationRecord,
    SessionInfo,
    Timeline,
    TimelineEntry,
)
from agent_conduct.core.types import DELEGATION_TOOL, EntryKind, Role

if TYPE_CHECKING:
    from agent_conduct.harness.approval import ApprovalDecision
    from agent_conduct.harness.events import ServerEvent

logger = logging.getLogger(__name__)

PERMISSION_ASKED = ("permission.updated", "permission.asked")
PERMISSION_REPLIED = "permission.replied"
UNFINISHED_STATUSES = ("pending", "running")


def _time(record: dict[str, Any], *keys: str) -> Optional[int]:
    time = record.get("time")
    if not isinstance(time, dict):
        return None
    for key in keys:
        value = time.get(key)
        if isinstance(value, (int, float)):
            return int(value)
    return None


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


class _SessionWalk:
    """Mutable state for a single build."""

    def __init__(self) -> None:
        self.sessions: list[SessionInfo] = []
        self.entries: list[TimelineEntry] = []
        self.entry_ids: set[str] = set()
        self.delegations: list[DelegationRecord] = []
        self.problems: list[str] = []
        self.visited: set[str] = set()


class TimelineBuilder:
    """Reconstructs a Timeline for a session tree.

    Usage:
        builder = TimelineBuilder(SessionStore(settings.storage_dir))
        timeline = builder.build(session_id, events=result.events)
        if not timeline.is_complete:
            print(timeline.partial_reasons)
    """

    def __init__(self, store: SessionStore, max_depth: int = 8):
        """Initialize the builder.

        Args:
            store: Reader over the server's persisted records
            max_depth: Deepest delegation level to follow
        """
        self.store = store
        self.max_depth = max_depth

    def build(
        self,
        session_id: str,
        events: Optional[Iterable["ServerEvent"]] = None,
        decisions: Optional[Iterable["ApprovalDecision"]] = None,
    ) -> Timeline:
        """Build the timeline of a session and its descendants.

        Args:
            session_id: Root session to build from
            events: Events captured during the run (permission requests are merged)
            decisions: Approval decisions sent by the harness during the run

        Returns:
            Timeline tagged complete or partial
        """
        walk = _SessionWalk()
        pending: deque[tuple[str, Optional[str], int, Optional[dict[str, Any]]]] = deque()
        pending.append((session_id, None, 0, None))

        while pending:
            current_id, parent_id, depth, record = pending.popleft()
            if current_id in walk.visited:
                continue
            walk.visited.add(current_id)

            if record is None:
                batch = self.store.read_session(current_id)
                walk.problems.extend(batch.problems)
                record = batch.records[0] if batch.records else {}

            info = self._read_session(walk, current_id, parent_id, depth, record)
            walk.sessions.append(info)

            if depth >= self.max_depth:
                logger.warning(f"Not following delegations below depth {depth} ({current_id})")
                continue

            children = self.store.child_sessions(current_id)
            walk.problems.extend(children.problems)
            child_ids = [str(c["id"]) for c in children.records if c.get("id")]
            self._link_delegations(walk, current_id, child_ids)
            for child in children.records:
                if child.get("id"):
                    pending.append((str(child["id"]), current_id, depth + 1, child))

        self._fill_child_agents(walk)
        self._merge_permissions(walk, list(events or []), list(decisions or []))

        walk.entries.sort(key=lambda e: (e.timestamp, e.depth, e.session_id, e.sequence, e.entry_id))

        kwargs = dict(sessions=walk.sessions, entries=walk.entries, delegations=walk.delegations)
        if walk.problems:
            # Same problem can surface from several reads
            reasons = list(dict.fromkeys(walk.problems))
            logger.debug(f"Timeline for {session_id} is partial: {reasons}")
            return Timeline.partial(session_id, reasons, **kwargs)
        return Timeline.complete(session_id, **kwargs)

    async def build_settled(
        self,
        session_id: str,
        events: Optional[Iterable["ServerEvent"]] = None,
        decisions: Optional[Iterable["ApprovalDecision"]] = None,
        attempts: int = 3,
        delay_s: float = 0.5,
    ) -> Timeline:
        """Build, retrying while the result is partial.

        Persisted records can lag the live stream; a few short waits
        usually let in-flight child sessions finish writing.
        """
        events = list(events or [])
        decisions = list(decisions or [])
        timeline = self.build(session_id, events, decisions)
        for attempt in range(1, attempts):
            if timeline.is_complete:
                break
            logger.debug(
                f"Timeline partial (attempt {attempt}/{attempts}), retrying in {delay_s}s"
            )
            await asyncio.sleep(delay_s)
            timeline = self.build(session_id, events, decisions)
        return timeline

    def _read_session(
        self,
        walk: _SessionWalk,
        session_id: str,
        parent_id: Optional[str],
        depth: int,
        record: dict[str, Any],
    ) -> SessionInfo:
        messages = self.store.read_messages(session_id)
        walk.problems.extend(messages.problems)
        if depth == 0 and not messages.records:
            walk.problems.append(f"no messages recorded for session {session_id}")

        agent: Optional[str] = None
        model: Optional[str] = None
        for message in messages.records:
            agent = agent or message.get("agent") or message.get("mode")
            if not model:
                model = self._model_of(message)

        info = SessionInfo(
            session_id=session_id,
            title=record.get("title"),
            agent=agent,
            model=model,
            parent_id=parent_id or record.get("parentID"),
            depth=depth,
            created_at=_time(record, "created"),
            updated_at=_time(record, "updated"),
        )

        sequence = 0
        for message in messages.records:
            message_id = message.get("id")
            if not message_id:
                walk.problems.append(f"message without id in session {session_id}")
                continue
            parts = self.store.read_parts(str(message_id))
            walk.problems.extend(parts.problems)
            for part in parts.records:
                entry = self._part_entry(walk, info, message, part, sequence)
                if entry is None:
                    continue
                if entry.entry_id in walk.entry_ids:
                    walk.problems.append(f"duplicate part {entry.entry_id} in session {session_id}")
                    continue
                walk.entry_ids.add(entry.entry_id)
                walk.entries.append(entry)
                sequence += 1
        return info

    @staticmethod
    def _model_of(message: dict[str, Any]) -> Optional[str]:
        provider = message.get("providerID")
        model_id = message.get("modelID")
        nested = message.get("model")
        if isinstance(nested, dict):
            provider = provider or nested.get("providerID")
            model_id = model_id or nested.get("modelID")
        if provider and model_id:
            return f"{provider}/{model_id}"
        return None

    def _part_entry(
        self,
        walk: _SessionWalk,
        info: SessionInfo,
        message: dict[str, Any],
        part: dict[str, Any],
        sequence: int,
    ) -> Optional[TimelineEntry]:
        part_type = part.get("type")
        part_id = str(part.get("id", f"{message.get('id')}-{sequence}"))
        message_time = _time(message, "created") or 0
        is_user = message.get("role") == "user"
        base = dict(
            entry_id=part_id,
            session_id=info.session_id,
            agent=info.agent,
            depth=info.depth,
            sequence=sequence,
        )

        if part_type == "text":
            # Synthetic parts are server-injected, not said by anyone
            if part.get("synthetic") or not part.get("text"):
                return None
            return TimelineEntry(
                **base,
                kind=EntryKind.USER_MESSAGE if is_user else EntryKind.ASSISTANT_TEXT,
                role=Role.USER if is_user else Role.ASSISTANT,
                timestamp=_time(part, "start", "end") or message_time,
                text=part["text"],
            )

        if part_type != "tool":
            return None

        state = part.get("state") if isinstance(part.get("state"), dict) else {}
        status = state.get("status")
        call_id = part.get("callID")
        tool = part.get("tool")
        if status in UNFINISHED_STATUSES:
            walk.problems.append(
                f"tool call {call_id or part_id} ({tool}) in session {info.session_id} still {status}"
            )
        tool_input = state.get("input") if isinstance(state.get("input"), dict) else None
        output = state.get("output") if status != "error" else state.get("error")

        timestamp = _time(state, "start", "end") or _time(part, "start") or message_time
        if tool == DELEGATION_TOOL:
            metadata = state.get("metadata") if isinstance(state.get("metadata"), dict) else {}
            walk.delegations.append(
                DelegationRecord(
                    call_id=call_id,
                    parent_session_id=info.session_id,
                    to_agent=(tool_input or {}).get("subagent_type"),
                    prompt=(tool_input or {}).get("prompt"),
                    timestamp=timestamp,
                    child_session_id=metadata.get("sessionId"),
                )
            )

        return TimelineEntry(
            **base,
            kind=EntryKind.TOOL_CALL,
            role=Role.ASSISTANT,
            timestamp=timestamp,
            tool=tool,
            tool_input=tool_input,
            tool_output=_stringify(output),
            tool_status=status,
            call_id=call_id,
        )

    @staticmethod
    def _link_delegations(walk: _SessionWalk, parent_id: str, child_ids: list[str]) -> None:
        """Attach children to the parent's task calls.

        Tool metadata names the child directly when the server recorded it;
        remaining children are paired with remaining calls in creation order.
        """
        own = [d for d in walk.delegations if d.parent_session_id == parent_id]
        known = set(child_ids)
        claimed = set()
        for delegation in own:
            if delegation.child_session_id in known:
                claimed.add(delegation.child_session_id)
            else:
                delegation.child_session_id = None

        free_children = [c for c in child_ids if c not in claimed]
        unlinked = sorted((d for d in own if d.child_session_id is None), key=lambda d: d.timestamp)
        for delegation, child_id in zip(unlinked, free_children):
            delegation.child_session_id = child_id

    @staticmethod
    def _fill_child_agents(walk: _SessionWalk) -> None:
        by_child = {d.child_session_id: d for d in walk.delegations if d.child_session_id}
        filled: dict[str, str] = {}
        for index, info in enumerate(walk.sessions):
            delegation = by_child.get(info.session_id)
            if info.agent is None and delegation is not None and delegation.to_agent:
                walk.sessions[index] = info.model_copy(update={"agent": delegation.to_agent})
                filled[info.session_id] = delegation.to_agent
        if filled:
            walk.entries = [
                e.model_copy(update={"agent": filled[e.session_id]}) if e.session_id in filled else e
                for e in walk.entries
            ]

    @staticmethod
    def _merge_permissions(
        walk: _SessionWalk,
        events: list["ServerEvent"],
        decisions: list["ApprovalDecision"],
    ) -> None:
        sessions = {s.session_id: s for s in walk.sessions}
        answers: dict[str, bool] = {d.permission_id: d.approved for d in decisions}
        for event in events:
            if event.type != PERMISSION_REPLIED:
                continue
            props = event.properties
            permission_id = props.get("permissionID") or props.get("id")
            response = props.get("response")
            if permission_id and response:
                answers[str(permission_id)] = response != "reject"

        seen = set()
        for event in events:
            if event.type not in PERMISSION_ASKED:
                continue
            props = event.properties
            permission_id = props.get("id")
            info = sessions.get(props.get("sessionID"))
            if not permission_id or info is None or permission_id in seen:
                continue
            seen.add(permission_id)
            if f"perm-{permission_id}" in walk.entry_ids:
                continue
            created = _time(props, "created")
            if created is None:
                created = int(event.received_at.timestamp() * 1000)
            walk.entries.append(
                TimelineEntry(
                    entry_id=f"perm-{permission_id}",
                    session_id=info.session_id,
                    agent=info.agent,
                    depth=info.depth,
                    kind=EntryKind.PERMISSION,
                    role=Role.SYSTEM,
                    timestamp=created,
                    sequence=event.sequence,
                    text=props.get("title"),
                    tool=props.get("type") or props.get("permission"),
                    tool_input=props.get("metadata") if isinstance(props.get("metadata"), dict) else None,
                    call_id=props.get("callID"),
                    permission_approved=answers.get(str(permission_id)),
                )
            )
