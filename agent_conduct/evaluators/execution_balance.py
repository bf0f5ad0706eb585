"""Execution-Balance evaluator.

Rules:
1. At least one read call (read/glob/grep/list) must precede the first
   execution call (bash/write/edit/patch/task). Every shell command is an
   execution, including ones that only inspect state.
2. Reads per execution must not fall below ``min_ratio``.

Violations:
- execution-before-read (error): executed without any prior read
- insufficient-read (warning): fewer reads than the ratio requires

Counts are only meaningful over the full record, so partial timelines are
reported as incomplete instead of judged.
"""

import math

from agent_conduct.core.timeline import Timeline
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Evidence, Severity


class ExecutionBalanceEvaluator(Evaluator):
    """Checks the agent understood before acting."""

    name = "execution-balance"
    description = "Read before executing and keep a healthy read/execute ratio"
    requires_complete_timeline = True

    def __init__(self, min_ratio: float = 1.0):
        self.min_ratio = min_ratio

    def check(self, timeline: Timeline) -> EvaluatorResult:
        reads = timeline.read_calls()
        executions = timeline.execution_calls()
        first_read = reads[0] if reads else None
        first_exec = executions[0] if executions else None

        read_before_exec = first_exec is None or (
            first_read is not None and first_read.timestamp < first_exec.timestamp
        )
        ratio = math.inf if not executions else len(reads) / len(executions)

        violations = []
        if not read_before_exec:
            violations.append(
                self.violation(
                    "execution-before-read",
                    Severity.ERROR,
                    f"Ran {first_exec.tool} without reading anything first",
                    timestamp=first_exec.timestamp,
                    tool=first_exec.tool,
                    execTimestamp=first_exec.timestamp,
                )
            )
        if executions and ratio < self.min_ratio:
            violations.append(
                self.violation(
                    "insufficient-read",
                    Severity.WARNING,
                    f"Read/execute ratio {ratio:.2f} is below {self.min_ratio:.2f}",
                    timestamp=executions[0].timestamp,
                    readCount=len(reads),
                    execCount=len(executions),
                    ratio=ratio,
                )
            )

        summary = {
            "readCount": len(reads),
            "execCount": len(executions),
            "ratio": None if math.isinf(ratio) else ratio,
            "readBeforeExec": read_before_exec,
        }
        evidence = [
            Evidence(
                check_name="ratio_metrics",
                description=f"{len(reads)} reads, {len(executions)} executions",
                details=summary,
            )
        ]
        return self.build_result(violations, evidence, summary)
