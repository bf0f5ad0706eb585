"""Evaluator runner: apply a list of evaluators to one timeline."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from agent_conduct.core.timeline import Timeline
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Evidence, Severity, Violation

logger = logging.getLogger(__name__)


def overall_score(errors: int, warnings: int) -> float:
    """Score on 0..100, strictly decreasing in both counts."""
    return 100.0 / (1.0 + errors + 0.25 * warnings)


@dataclass
class AggregatedResult:
    """All evaluator results for one session, folded together.

    Attributes:
        session_id: Root session that was evaluated
        evaluator_results: One result per evaluator that ran
        all_violations: Union of every result's violations
        all_evidence: Union of every result's evidence
        violations_by_severity: Counts keyed "error" and "warning"
        overall_score: 0..100, 100 means no violations
        failed_evaluators: Names of evaluators that raised
        timeline_status: "complete" or "partial"
    """

    session_id: str
    evaluator_results: list[EvaluatorResult] = field(default_factory=list)
    all_violations: list[Violation] = field(default_factory=list)
    all_evidence: list[Evidence] = field(default_factory=list)
    violations_by_severity: dict[str, int] = field(
        default_factory=lambda: {"error": 0, "warning": 0}
    )
    overall_score: float = 100.0
    failed_evaluators: list[str] = field(default_factory=list)
    timeline_status: str = "complete"

    @property
    def total_violations(self) -> int:
        return len(self.all_violations)

    @property
    def passed(self) -> bool:
        return self.violations_by_severity["error"] == 0 and not self.failed_evaluators

    def result_for(self, evaluator: str) -> Optional[EvaluatorResult]:
        return next((r for r in self.evaluator_results if r.evaluator == evaluator), None)

    def violations_from(self, evaluator: str) -> list[Violation]:
        return [v for v in self.all_violations if v.evaluator == evaluator]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "overall_score": round(self.overall_score, 2),
            "total_violations": self.total_violations,
            "violations_by_severity": dict(self.violations_by_severity),
            "failed_evaluators": list(self.failed_evaluators),
            "timeline_status": self.timeline_status,
            "evaluator_results": [r.to_dict() for r in self.evaluator_results],
        }

    def format_report(self, verbose: bool = False) -> str:
        lines = [
            "",
            f"Evaluation Score: {self.overall_score:.1f}/100",
            f"Violations: {self.total_violations} "
            f"(E:{self.violations_by_severity['error']} W:{self.violations_by_severity['warning']})",
        ]
        if self.timeline_status != "complete":
            lines.append("Timeline: partial")
        for name in self.failed_evaluators:
            lines.append(f"  [FAIL] {name} raised during evaluation")
        for result in self.evaluator_results:
            icon = "[OK]" if result.passed else "[FAIL]"
            lines.append(f"  {icon} {result.evaluator} ({len(result.violations)} violations)")
            if verbose:
                for v in result.violations:
                    lines.append(f"      [{v.severity.value.upper()}] {v.type}: {v.message}")
        return "\n".join(lines)

    def print_report(self, verbose: bool = False) -> None:
        print(self.format_report(verbose=verbose))


class EvaluatorRunner:
    """Runs a fixed list of evaluators against a timeline.

    A fresh runner (and evaluator list) is built per test; nothing is
    registered or unregistered on a shared instance.

    Usage:
        runner = EvaluatorRunner(evaluators_for(test_case))
        aggregated = runner.run_all(timeline)
    """

    def __init__(self, evaluators: Iterable[Evaluator]):
        self.evaluators = list(evaluators)

    def run_all(self, timeline: Timeline) -> AggregatedResult:
        """Run every evaluator, isolating failures of individual evaluators."""
        aggregated = AggregatedResult(
            session_id=timeline.session_id,
            timeline_status=timeline.status,
        )

        for evaluator in self.evaluators:
            try:
                result = evaluator.evaluate(timeline)
            except Exception as e:
                logger.error(f"Evaluator {evaluator.name} failed: {e}", exc_info=True)
                aggregated.failed_evaluators.append(evaluator.name)
                continue
            aggregated.evaluator_results.append(result)
            aggregated.all_violations.extend(result.violations)
            aggregated.all_evidence.extend(result.evidence)

        for v in aggregated.all_violations:
            key = "error" if v.severity == Severity.ERROR else "warning"
            aggregated.violations_by_severity[key] += 1

        aggregated.overall_score = overall_score(
            aggregated.violations_by_severity["error"],
            aggregated.violations_by_severity["warning"],
        )
        logger.debug(
            f"Evaluated {timeline.session_id}: {aggregated.total_violations} violations, "
            f"score {aggregated.overall_score:.1f}"
        )
        return aggregated
