"""Turns raw errors and evaluator output into a test verdict.

Checks apply in a fixed order:

1. Raw execution errors fail the test, unless the test expects failure.
2. A failing behavior evaluator fails the test.
3. Each expected violation is checked. A ``shouldViolate: true`` rule that
   did not fire fails the test; a ``shouldViolate: false`` rule that did
   fire fails it too. Matched violations are exempt from step 4.
   The legacy ``expected`` block is checked next.
4. Any remaining error-severity violation fails the test.
5. Otherwise the test passes iff there were no raw errors.

Behavior expectations and expected violations are combined with AND:
every declared block must hold. All failure reasons are reported, in the
order above.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from agent_conduct.core.types import tool_file_path
from agent_conduct.evaluators.base import Severity, Violation
from agent_conduct.evaluators.behavior import BehaviorEvaluator
from agent_conduct.evaluators.registry import evaluator_for_rule
from agent_conduct.evaluators.runner import AggregatedResult
from agent_conduct.harness.cases import ExpectedResults, ExpectedViolation, TestCase
from agent_conduct.harness.events import ServerEvent

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    """Final verdict with human-readable reasons for a failure."""

    passed: bool
    reasons: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.passed


def _key(violation: Violation) -> int:
    return id(violation)


class _Observed:
    """What the captured events say the root session did."""

    def __init__(self, events: Iterable[ServerEvent], session_id: Optional[str]):
        self.tools: set[str] = set()
        self.files: set[str] = set()
        self.message_ids: set[str] = set()
        for event in events:
            props = event.properties
            if event.type == "message.updated":
                info = props.get("info") or {}
                if info.get("sessionID") == session_id and info.get("id"):
                    self.message_ids.add(info["id"])
            elif event.type == "message.part.updated":
                part = props.get("part") or {}
                if part.get("type") != "tool" or not part.get("tool"):
                    continue
                self.tools.add(part["tool"])
                path = tool_file_path((part.get("state") or {}).get("input"))
                if path:
                    self.files.add(path)


class ResultValidator:
    """Applies the verdict rules to one executed test case."""

    def validate(
        self,
        test_case: TestCase,
        errors: list[str],
        evaluation: Optional[AggregatedResult],
        events: Optional[Iterable[ServerEvent]] = None,
        session_id: Optional[str] = None,
    ) -> ValidationOutcome:
        """Judge one test case.

        Args:
            test_case: The scenario and its expectations
            errors: Raw execution errors
            evaluation: Aggregated evaluator output, None if evaluation was
                disabled or failed
            events: Captured events (used by the legacy expectation block)
            session_id: Root session the events belong to

        Returns:
            ValidationOutcome with passed flag and failure reasons
        """
        reasons: list[str] = []
        exempt: set[int] = set()

        # 1. Raw errors
        error_reasons = [f"Execution error: {e}" for e in errors]

        if evaluation is not None:
            # 2. Behavior
            if test_case.behavior is not None:
                reasons.extend(self._check_behavior(evaluation, exempt))

            # 3. Expected violations (and the legacy block's violation list)
            expected = list(test_case.expected_violations or [])
            if test_case.expected is not None and test_case.expected.violations:
                expected.extend(test_case.expected.violations)
            for expectation in expected:
                reasons.extend(self._check_expected(expectation, evaluation, exempt))

        if test_case.expected is not None:
            observed = _Observed(events or [], session_id)
            reasons.extend(self._check_legacy(test_case.expected, observed))

        # 4. Unexempted errors
        remaining: list[Violation] = []
        if evaluation is not None:
            remaining = [
                v for v in evaluation.all_violations
                if v.severity == Severity.ERROR and _key(v) not in exempt
            ]
        violation_reasons = [f"{v.evaluator}: {v.type}: {v.message}" for v in remaining]

        if test_case.expects_failure:
            # Legacy ``pass: false``: an observed failure is the expected outcome
            if not errors and not remaining:
                reasons.append("Expected the run to fail, but it completed without errors")
        else:
            reasons = error_reasons + reasons + violation_reasons

        # 5. Verdict
        outcome = ValidationOutcome(passed=not reasons, reasons=reasons)
        if not outcome.passed:
            logger.debug(f"{test_case.id} failed: {reasons}")
        return outcome

    @staticmethod
    def _check_behavior(evaluation: AggregatedResult, exempt: set[int]) -> list[str]:
        result = evaluation.result_for(BehaviorEvaluator.name)
        if BehaviorEvaluator.name in evaluation.failed_evaluators:
            return ["Behavior evaluator failed to run"]
        if result is None or result.passed:
            return []
        reasons = []
        for v in result.errors:
            exempt.add(_key(v))
            reasons.append(f"Behavior: {v.type}: {v.message}")
        return reasons

    @staticmethod
    def _check_expected(
        expectation: ExpectedViolation,
        evaluation: AggregatedResult,
        exempt: set[int],
    ) -> list[str]:
        evaluator = evaluator_for_rule(expectation.rule)
        if evaluator in evaluation.failed_evaluators:
            return [f"Cannot check expected {expectation.rule} violation: evaluator failed"]

        matches = [
            v for v in evaluation.violations_from(evaluator)
            if v.severity.value == expectation.severity
            and (expectation.violation_type is None or v.type == expectation.violation_type)
        ]
        label = expectation.rule
        if expectation.violation_type:
            label = f"{label} ({expectation.violation_type})"

        for v in matches:
            exempt.add(_key(v))
        if expectation.should_violate and not matches:
            observed = [v.type for v in evaluation.violations_from(evaluator)]
            return [
                f"Expected {label} {expectation.severity} violation, "
                f"observed {observed or 'none'}"
            ]
        if not expectation.should_violate and matches:
            return [f"Unexpected {label} violation: {v.type}: {v.message}" for v in matches]
        return []

    @staticmethod
    def _check_legacy(expected: ExpectedResults, observed: _Observed) -> list[str]:
        reasons = []
        count = len(observed.message_ids)
        if expected.min_messages is not None and count < expected.min_messages:
            reasons.append(f"Expected at least {expected.min_messages} messages, observed {count}")
        if expected.max_messages is not None and count > expected.max_messages:
            reasons.append(f"Expected at most {expected.max_messages} messages, observed {count}")
        for tool in expected.tool_calls or []:
            if tool not in observed.tools:
                reasons.append(f"Expected tool {tool!r} to be called, observed {sorted(observed.tools)}")
        for path in expected.files_modified or []:
            if not any(f == path or f.endswith("/" + path.lstrip("/")) for f in observed.files):
                reasons.append(f"Expected file {path!r} to be touched")
        return reasons
