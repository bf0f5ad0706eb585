"""Approval policy engine.

Every permission request the server raises during a run goes to one
strategy instance, which answers approve or deny and records which rule
fired. Strategies hold per-run state (the approval counter) and are built
fresh for each test case.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from agent_conduct.harness.cases import (
    ApprovalStrategyConfig,
    AutoApproveConfig,
    AutoDenyConfig,
    SmartApprovalConfig,
    SmartStrategyConfig,
)
from agent_conduct.harness.events import PermissionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalDecision:
    """Answer given to one permission request."""

    permission_id: str
    approved: bool
    rule: str
    reason: str = ""
    tool: str = ""
    session_id: Optional[str] = None
    call_id: Optional[str] = None
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "permissionId": self.permission_id,
            "approved": self.approved,
            "rule": self.rule,
            "reason": self.reason,
            "tool": self.tool,
            "sessionId": self.session_id,
            "callId": self.call_id,
            "decidedAt": self.decided_at.isoformat(),
        }


class ApprovalStrategy(ABC):
    """Base class for approval strategies.

    Subclasses implement ``_decide``; ``decide`` wraps it with the per-run
    bookkeeping (decision log and approval counter).
    """

    name: str = "base"

    def __init__(self) -> None:
        self._decisions: list[ApprovalDecision] = []
        self._approvals = 0

    @abstractmethod
    def _decide(self, request: PermissionRequest) -> tuple[bool, str, str]:
        """Return ``(approved, rule, reason)`` for a request."""
        ...

    def decide(self, request: PermissionRequest) -> ApprovalDecision:
        approved, rule, reason = self._decide(request)
        decision = ApprovalDecision(
            permission_id=request.id,
            approved=approved,
            rule=rule,
            reason=reason,
            tool=request.tool,
            session_id=request.session_id,
            call_id=request.call_id,
        )
        if approved:
            self._approvals += 1
        self._decisions.append(decision)
        verdict = "approved" if approved else "denied"
        logger.debug(f"Permission {request.id} ({request.tool}) {verdict} by {rule}: {reason}")
        return decision

    @property
    def approvals_given(self) -> int:
        return self._approvals

    @property
    def decisions(self) -> list[ApprovalDecision]:
        return list(self._decisions)

    def reset(self) -> None:
        """Clear per-run state."""
        self._decisions = []
        self._approvals = 0


class AutoApproveStrategy(ApprovalStrategy):
    name = "auto-approve"

    def _decide(self, request: PermissionRequest) -> tuple[bool, str, str]:
        return True, "auto-approve", "all requests approved"


class AutoDenyStrategy(ApprovalStrategy):
    name = "auto-deny"

    def _decide(self, request: PermissionRequest) -> tuple[bool, str, str]:
        return False, "auto-deny", "all requests denied"


class SmartApprovalStrategy(ApprovalStrategy):
    """Rule-based strategy.

    Rules are evaluated in order:
        1. ``denied_tools``: deny by tool name
        2. ``deny_patterns``: deny when a regex matches the action description
        3. ``allowed_tools`` / ``approve_patterns``: approve, otherwise
           ``default_decision``
        4. ``max_approvals``: once reached, every would-be approval is denied
    """

    name = "smart"

    def __init__(self, config: Optional[SmartApprovalConfig] = None):
        super().__init__()
        self.config = config or SmartApprovalConfig()
        self._deny = [re.compile(p, re.IGNORECASE) for p in self.config.deny_patterns]
        self._approve = [re.compile(p, re.IGNORECASE) for p in self.config.approve_patterns]

    def _decide(self, request: PermissionRequest) -> tuple[bool, str, str]:
        tool = request.tool
        action = request.action

        if tool in self.config.denied_tools:
            return False, "denied-tool", f"tool '{tool}' is denied"
        for pattern in self._deny:
            if pattern.search(action):
                return False, "deny-pattern", f"action matches deny pattern {pattern.pattern!r}"

        if tool in self.config.allowed_tools:
            approved, rule, reason = True, "allowed-tool", f"tool '{tool}' is allowed"
        else:
            matched = next((p for p in self._approve if p.search(action)), None)
            if matched is not None:
                approved, rule = True, "approve-pattern"
                reason = f"action matches approve pattern {matched.pattern!r}"
            else:
                approved, rule = self.config.default_decision, "default"
                reason = "no rule matched"

        limit = self.config.max_approvals
        if approved and limit is not None and self.approvals_given >= limit:
            return False, "max-approvals", f"approval budget of {limit} exhausted"
        return approved, rule, reason


def create_strategy(config: ApprovalStrategyConfig) -> ApprovalStrategy:
    """Build a fresh strategy from a test case's ``approvalStrategy`` block."""
    if isinstance(config, AutoApproveConfig):
        return AutoApproveStrategy()
    if isinstance(config, AutoDenyConfig):
        return AutoDenyStrategy()
    if isinstance(config, SmartStrategyConfig):
        return SmartApprovalStrategy(config.config)
    raise ValueError(f"Unknown approval strategy: {config!r}")
