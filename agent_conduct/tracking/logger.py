"""Activity logger: depth-indented console trace over a SessionTracker.

The logger only reads tracker state. Whoever observes events (the test
executor) updates the tracker first and then asks the logger to print.
Non-verbose mode prints delegation boundaries and orphan warnings only.
"""

import sys
from typing import Any, Optional, TextIO

from agent_conduct.core.types import DELEGATION_TOOL
from agent_conduct.tracking.formatters import (
    format_child_linked,
    format_delegation,
    format_message,
    format_orphan_warning,
    format_session_complete,
    format_session_header,
    format_system_message,
    format_tool_call,
    format_tree_line,
)
from agent_conduct.tracking.tracker import SessionNode, SessionTracker


class ActivityLogger:
    """Prints a multi-agent activity trace.

    Usage:
        tracker = SessionTracker()
        activity = ActivityLogger(tracker, verbose=True)
        tracker.register_session("ses_1", "openagent")
        activity.session_started("ses_1")
    """

    def __init__(
        self,
        tracker: SessionTracker,
        verbose: bool = False,
        enabled: bool = True,
        stream: Optional[TextIO] = None,
    ):
        self.tracker = tracker
        self.verbose = verbose
        self.enabled = enabled
        self._stream = stream

    def _emit(self, text: str) -> None:
        print(text, file=self._stream or sys.stdout)

    def _depth(self, session_id: str) -> int:
        node = self.tracker.get_session(session_id)
        return node.depth if node else 0

    def session_started(self, session_id: str) -> None:
        if not (self.enabled and self.verbose):
            return
        node = self.tracker.get_session(session_id)
        if node is None:
            return
        self._emit(format_session_header(node.session_id, node.agent, node.depth, node.parent_id))

    def delegation_recorded(self, delegation_id: str) -> None:
        if not (self.enabled and self.verbose):
            return
        delegation = self.tracker.get_delegation(delegation_id)
        if delegation is None:
            return
        depth = self._depth(delegation.parent_session_id)
        self._emit(format_delegation(delegation.to_agent, delegation.prompt, depth))

    def child_linked(self, delegation_id: str) -> None:
        """Always printed: delegation boundaries are the default output."""
        if not self.enabled:
            return
        delegation = self.tracker.get_delegation(delegation_id)
        if delegation is None or delegation.child_session_id is None:
            return
        depth = self._depth(delegation.parent_session_id)
        self._emit(format_child_linked(delegation.child_session_id, depth, self.verbose))

    def message(self, session_id: str, role: str, text: str) -> None:
        if not (self.enabled and self.verbose):
            return
        self._emit(format_message(role, text, self._depth(session_id)))

    def tool_call(self, session_id: str, tool: str, tool_input: Optional[dict[str, Any]]) -> None:
        # task calls print through delegation_recorded
        if not (self.enabled and self.verbose) or tool == DELEGATION_TOOL:
            return
        self._emit(format_tool_call(tool, tool_input, self._depth(session_id)))

    def session_completed(self, session_id: str) -> None:
        if not self.enabled:
            return
        node = self.tracker.get_session(session_id)
        if node is None:
            return
        # Child completions are always shown, the root only in verbose mode
        if node.depth > 0 or self.verbose:
            self._emit(format_session_complete(node.depth, node.duration_ms, node.agent, self.verbose))

    def system(self, session_id: str, message: str) -> None:
        if not (self.enabled and self.verbose):
            return
        self._emit(format_system_message(message, self._depth(session_id)))

    def format_report(self) -> str:
        """Render the session forest and any orphaned delegations."""
        lines = ["", "SESSION TREE:"]

        def walk(node: SessionNode) -> None:
            lines.append(
                format_tree_line(node.agent, node.session_id, node.depth, node.status, node.duration_ms)
            )
            for child in self.tracker.children_of(node.session_id):
                walk(child)

        for root in self.tracker.roots():
            walk(root)

        orphans = self.tracker.orphaned_delegations()
        if orphans:
            lines.append("")
            lines.append(f"ORPHANED DELEGATIONS ({len(orphans)}):")
            for d in orphans:
                lines.append(format_orphan_warning(d.delegation_id, d.to_agent, d.parent_session_id))
        return "\n".join(lines)

    def print_report(self) -> None:
        if self.enabled:
            self._emit(self.format_report())

    def warn_orphans(self) -> None:
        """Print a warning line per orphaned delegation (shown in every mode)."""
        if not self.enabled:
            return
        for d in self.tracker.orphaned_delegations():
            self._emit(format_orphan_warning(d.delegation_id, d.to_agent, d.parent_session_id))
