"""Behavior evaluator: a test's declared expectations checked directly.

Unlike the rule evaluators, this one is parameterized per test case. It
checks must-use / must-not-use tool sets, tool-call counts, and the
approval, context and delegation requirements the test declares. Agent
identity, model identity and context files default to what the test case
targets and can be overridden explicitly.
"""

from typing import TYPE_CHECKING, Any, Optional

from agent_conduct.core.timeline import Timeline
from agent_conduct.core.types import (
    DELEGATION_TOOL,
    bash_command,
    dedicated_tool_for,
    is_context_path,
    tool_file_path,
)
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Evidence, Severity
from agent_conduct.evaluators.signals import APPROVAL_REQUEST

if TYPE_CHECKING:
    from agent_conduct.harness.cases import BehaviorExpectation


class BehaviorEvaluator(Evaluator):
    """Checks a timeline against one test's behavior block.

    Usage:
        evaluator = BehaviorEvaluator(test_case.behavior, expected_agent=test_case.agent)
        result = evaluator.evaluate(timeline)
    """

    name = "behavior"
    description = "Declared tool, count, approval, context and delegation expectations"

    def __init__(
        self,
        expectation: "BehaviorExpectation",
        expected_agent: Optional[str] = None,
        expected_model: Optional[str] = None,
    ):
        """Initialize the evaluator.

        Args:
            expectation: The test's behavior block
            expected_agent: Default agent identity (the test's target agent)
            expected_model: Default model identity (the test's model)
        """
        self.expectation = expectation
        self.expected_agent = expectation.expected_agent or expected_agent
        self.expected_model = expectation.expected_model or expected_model
        self.expected_context_files = list(expectation.expected_context_files or [])

    def check(self, timeline: Timeline) -> EvaluatorResult:
        exp = self.expectation
        calls = timeline.tool_calls()
        used = timeline.tools_used()
        violations = []

        for tool in exp.must_use_tools or []:
            if tool not in used:
                violations.append(
                    self.violation(
                        "missing-required-tool",
                        Severity.ERROR,
                        f"Required tool '{tool}' was never used",
                        tool=tool,
                        toolsUsed=sorted(used),
                    )
                )

        if exp.must_use_any_of:
            satisfied = [s for s in exp.must_use_any_of if set(s) <= used]
            if not satisfied:
                violations.append(
                    self.violation(
                        "missing-tool-set",
                        Severity.ERROR,
                        f"None of the tool sets {exp.must_use_any_of} was fully used",
                        toolSets=[list(s) for s in exp.must_use_any_of],
                        toolsUsed=sorted(used),
                    )
                )

        for tool in exp.must_not_use_tools or []:
            offending = [c for c in calls if c.tool == tool]
            if offending:
                violations.append(
                    self.violation(
                        "forbidden-tool-used",
                        Severity.ERROR,
                        f"Forbidden tool '{tool}' was used {len(offending)} time(s)",
                        timestamp=offending[0].timestamp,
                        tool=tool,
                        count=len(offending),
                    )
                )

        if exp.min_tool_calls is not None and len(calls) < exp.min_tool_calls:
            violations.append(
                self.violation(
                    "too-few-tool-calls",
                    Severity.ERROR,
                    f"Expected at least {exp.min_tool_calls} tool calls, got {len(calls)}",
                    expected=exp.min_tool_calls,
                    actual=len(calls),
                )
            )
        if exp.max_tool_calls is not None and len(calls) > exp.max_tool_calls:
            violations.append(
                self.violation(
                    "too-many-tool-calls",
                    Severity.ERROR,
                    f"Expected at most {exp.max_tool_calls} tool calls, got {len(calls)}",
                    expected=exp.max_tool_calls,
                    actual=len(calls),
                )
            )

        if exp.requires_approval and not self._approval_requested(timeline):
            violations.append(
                self.violation(
                    "approval-not-requested",
                    Severity.ERROR,
                    "Agent never asked for approval",
                )
            )

        context_reads = [
            tool_file_path(c.tool_input) or ""
            for c in calls
            if c.tool == "read"
            and is_context_path(tool_file_path(c.tool_input), tuple(self.expected_context_files))
        ]
        if exp.requires_context and not context_reads:
            violations.append(
                self.violation(
                    "context-not-loaded",
                    Severity.ERROR,
                    "Agent never read a context file",
                )
            )
        for expected_file in self.expected_context_files:
            suffix = expected_file.replace("\\", "/").lstrip("./")
            if not any(path.replace("\\", "/").endswith(suffix) for path in context_reads):
                violations.append(
                    self.violation(
                        "context-file-missing",
                        Severity.ERROR,
                        f"Expected context file '{expected_file}' was not read",
                        expected=expected_file,
                        loaded=context_reads,
                    )
                )

        delegations = [c for c in calls if c.tool == DELEGATION_TOOL]
        if exp.should_delegate is True and not delegations:
            violations.append(
                self.violation(
                    "delegation-expected",
                    Severity.ERROR,
                    "Agent was expected to delegate but did not",
                )
            )
        elif exp.should_delegate is False and delegations:
            violations.append(
                self.violation(
                    "unexpected-delegation",
                    Severity.ERROR,
                    f"Agent delegated {len(delegations)} time(s) but should not have",
                    timestamp=delegations[0].timestamp,
                    count=len(delegations),
                )
            )

        if exp.must_use_dedicated_tools:
            for call in calls:
                if call.tool != "bash":
                    continue
                suggested = dedicated_tool_for(bash_command(call.tool_input))
                if suggested:
                    violations.append(
                        self.violation(
                            "dedicated-tool-not-used",
                            Severity.WARNING,
                            f"Used bash where the {suggested} tool fits",
                            timestamp=call.timestamp,
                            command=bash_command(call.tool_input),
                            suggestedTool=suggested,
                        )
                    )

        violations.extend(self._identity_violations(timeline))

        metadata: dict[str, Any] = {
            "toolsUsed": sorted(used),
            "toolCallCount": len(calls),
            "mayUseTools": list(exp.may_use_tools or []),
            "unlistedTools": self._unlisted_tools(used),
            "contextFilesRead": context_reads,
            "delegations": len(delegations),
        }
        evidence = [
            Evidence(
                check_name="tool_summary",
                description=f"{len(calls)} tool calls using {sorted(used)}",
                details=metadata,
            )
        ]
        return self.build_result(violations, evidence, metadata)

    @staticmethod
    def _approval_requested(timeline: Timeline) -> bool:
        if timeline.permissions():
            return True
        return any(t.text and APPROVAL_REQUEST.search(t.text) for t in timeline.assistant_texts())

    def _unlisted_tools(self, used: set[str]) -> list[str]:
        """Tools used outside must-use and may-use lists (informational)."""
        exp = self.expectation
        if exp.may_use_tools is None:
            return []
        listed = set(exp.may_use_tools) | set(exp.must_use_tools or [])
        for tool_set in exp.must_use_any_of or []:
            listed |= set(tool_set)
        return sorted(used - listed)

    def _identity_violations(self, timeline: Timeline) -> list:
        root = timeline.root
        if root is None:
            return []
        violations = []
        if self.expected_agent and root.agent and root.agent != self.expected_agent:
            violations.append(
                self.violation(
                    "agent-mismatch",
                    Severity.ERROR,
                    f"Expected agent '{self.expected_agent}', session ran as '{root.agent}'",
                    expected=self.expected_agent,
                    actual=root.agent,
                )
            )
        if self.expected_model and root.model and root.model != self.expected_model:
            violations.append(
                self.violation(
                    "model-mismatch",
                    Severity.ERROR,
                    f"Expected model '{self.expected_model}', session used '{root.model}'",
                    expected=self.expected_model,
                    actual=root.model,
                )
            )
        return violations
