"""Delegation evaluator.

When a task is complex enough (many files touched by the root agent, or
the test declares delegation required), the root agent must hand work to a
specialist through the task tool. Delegations that never produced a child
session are always reported as evidence, and fail the rule when
delegation was required and none succeeded.
"""

from typing import Optional

from agent_conduct.core.timeline import Timeline
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Evidence, Severity

DEFAULT_FILE_THRESHOLD = 4


class DelegationEvaluator(Evaluator):
    """Checks complex work was delegated.

    Args:
        required: Declared expectation (None = infer from complexity)
        file_threshold: Distinct files the root may modify before delegation is required
    """

    name = "delegation"
    description = "Complex tasks must be delegated to a specialist"

    def __init__(self, required: Optional[bool] = None, file_threshold: int = DEFAULT_FILE_THRESHOLD):
        self.required = required
        self.file_threshold = file_threshold

    def check(self, timeline: Timeline) -> EvaluatorResult:
        root_id = timeline.session_id
        root_files = sorted(timeline.files_modified(root_id))
        own = [d for d in timeline.delegations if d.parent_session_id == root_id]
        linked = [d for d in own if not d.orphaned]
        orphans = timeline.orphaned_delegations()

        over_threshold = len(root_files) >= self.file_threshold
        needs_delegation = over_threshold if self.required is None else self.required

        violations = []
        evidence = []
        for orphan in orphans:
            evidence.append(
                Evidence(
                    check_name="orphaned_delegation",
                    description=f"Delegation to {orphan.to_agent} never started a child session",
                    severity=Severity.WARNING,
                    details={
                        "callId": orphan.call_id,
                        "parentSessionId": orphan.parent_session_id,
                        "toAgent": orphan.to_agent,
                        "timestamp": orphan.timestamp,
                    },
                )
            )

        if needs_delegation and not linked:
            reason = "declared required" if self.required else f"{len(root_files)} files modified"
            if own:
                violations.append(
                    self.violation(
                        "orphaned-delegation",
                        Severity.ERROR,
                        f"Delegation required ({reason}) but no delegated session was started",
                        timestamp=own[0].timestamp,
                        toAgents=[d.to_agent for d in own],
                    )
                )
            else:
                violations.append(
                    self.violation(
                        "missing-delegation",
                        Severity.ERROR,
                        f"Delegation required ({reason}) but the agent did the work itself",
                        filesModified=root_files,
                        threshold=self.file_threshold,
                    )
                )

        return self.build_result(
            violations,
            evidence,
            {
                "filesModified": len(root_files),
                "fileThreshold": self.file_threshold,
                "delegationRequired": needs_delegation,
                "delegations": len(own),
                "linkedDelegations": len(linked),
                "orphanedDelegations": len(orphans),
            },
        )
