"""Tool-Usage evaluator: prefer dedicated tools over raw shell commands."""

from agent_conduct.core.timeline import Timeline
from agent_conduct.core.types import bash_command, dedicated_tool_for
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Severity


class ToolUsageEvaluator(Evaluator):
    """Flags bash calls whose intent a dedicated tool already covers.

    ``cat file`` should be ``read``, ``grep`` should be ``grep``,
    ``find`` should be ``glob``, ``ls`` should be ``list``, ``sed -i``
    should be ``edit`` and ``echo ... > file`` should be ``write``.
    Pipelines and compound commands are left alone. Findings are
    warnings and never fail the rule.
    """

    name = "tool-usage"
    description = "Dedicated tools should be used instead of generic shell commands"

    def check(self, timeline: Timeline) -> EvaluatorResult:
        violations = []
        bash_calls = [c for c in timeline.tool_calls() if c.tool == "bash"]

        for call in bash_calls:
            command = bash_command(call.tool_input)
            suggested = dedicated_tool_for(command)
            if suggested is None:
                continue
            violations.append(
                self.violation(
                    "suboptimal-tool",
                    Severity.WARNING,
                    f"Used bash '{command[:60]}' where the {suggested} tool fits",
                    timestamp=call.timestamp,
                    command=command,
                    suggestedTool=suggested,
                    sessionId=call.session_id,
                )
            )

        return self.build_result(
            violations,
            [],
            {"bashCalls": len(bash_calls), "suboptimalCalls": len(violations)},
        )
