"""Base classes for agent-conduct evaluators.

This module implements the evaluator interface every rule checker follows.

Key design principles:
- Evaluators operate ONLY on timelines, never on live server state
- Results carry violations plus evidence with entry_ids for traceability
- Evaluators are stateless and reproducible
- Incomplete timelines are a distinct condition an evaluator can opt into
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from agent_conduct.core.timeline import Timeline


class Severity(str, Enum):
    """Severity level for violations and evidence."""

    INFO = "info"           # Informational, evidence only
    WARNING = "warning"     # Reported, doesn't fail the evaluator
    ERROR = "error"         # Rule broken, fails the evaluator


@dataclass(frozen=True)
class Violation:
    """A typed report that a rule was not satisfied.

    Attributes:
        type: Violation type (e.g., "missing-approval")
        severity: ERROR or WARNING
        message: Human-readable explanation
        evaluator: Name of the evaluator that produced it
        timestamp: Epoch milliseconds of the offending entry
        evidence: Structured data about the finding
    """

    type: str
    severity: Severity
    message: str
    evaluator: str = ""
    timestamp: Optional[int] = None
    evidence: Optional[dict[str, Any]] = None

    def __post_init__(self):
        """Violations are errors or warnings, never info."""
        if self.severity == Severity.INFO:
            raise ValueError(f"Violation '{self.type}' cannot have info severity")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "evaluator": self.evaluator,
            "timestamp": self.timestamp,
            "evidence": self.evidence,
        }


@dataclass(frozen=True)
class Evidence:
    """Proof of what an evaluator examined.

    Attributes:
        check_name: Name of the specific check (e.g., "context_check")
        description: Human-readable explanation of the finding
        severity: How serious this finding is
        entry_ids: Which timeline entries were examined
        details: Additional structured data about the finding
    """

    check_name: str
    description: str
    severity: Severity = Severity.INFO
    entry_ids: list[str] = field(default_factory=list)
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_name": self.check_name,
            "description": self.description,
            "severity": self.severity.value,
            "entry_ids": list(self.entry_ids),
            "details": self.details,
        }


@dataclass
class EvaluatorResult:
    """Result from one evaluator.

    Attributes:
        evaluator: Name of the evaluator that produced this result
        passed: Whether the timeline satisfied the rule
        score: Numeric score from 0.0 (worst) to 1.0 (best)
        violations: Typed violations found
        evidence: Evidence items explaining the result
        metadata: Evaluator-specific data
        timestamp: When the evaluation was performed
    """

    evaluator: str
    passed: bool
    score: float
    violations: list[Violation] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate score is in valid range."""
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Score must be between 0.0 and 1.0, got {self.score}")

    @property
    def errors(self) -> list[Violation]:
        """Get all violations with ERROR severity."""
        return [v for v in self.violations if v.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Violation]:
        """Get all violations with WARNING severity."""
        return [v for v in self.violations if v.severity == Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            "evaluator": self.evaluator,
            "passed": self.passed,
            "score": self.score,
            "violations": [v.to_dict() for v in self.violations],
            "evidence": [e.to_dict() for e in self.evidence],
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }

    def format_report(self, verbose: bool = False) -> str:
        """Format the result as a human-readable report.

        Args:
            verbose: Include violation evidence and info items

        Returns:
            Formatted string report
        """
        lines = []

        lines.append("")
        lines.append("=" * 60)
        lines.append(f"EVALUATOR REPORT: {self.evaluator}")
        lines.append("=" * 60)

        status = "PASSED" if self.passed else "FAILED"
        status_icon = "[OK]" if self.passed else "[FAIL]"
        lines.append("")
        lines.append(f"Result: {status_icon} {status}")
        lines.append(f"Score:  {self.score:.2f} / 1.00")

        errors = self.errors
        if errors:
            lines.append("")
            lines.append(f"ERRORS ({len(errors)}):")
            for v in errors:
                lines.append(f"  [ERROR] {v.type}")
                lines.append(f"          {v.message}")
                if verbose and v.evidence:
                    for k, val in v.evidence.items():
                        lines.append(f"          {k}: {val}")

        warnings = self.warnings
        if warnings:
            lines.append("")
            lines.append(f"WARNINGS ({len(warnings)}):")
            for v in warnings:
                lines.append(f"  [WARN]  {v.type}")
                lines.append(f"          {v.message}")

        if verbose and self.evidence:
            lines.append("")
            lines.append("EVIDENCE:")
            for e in self.evidence:
                lines.append(f"  [{e.check_name}] {e.description}")

        lines.append("")
        lines.append("-" * 60)

        return "\n".join(lines)

    def print_report(self, verbose: bool = False) -> None:
        """Print the result as a human-readable report."""
        print(self.format_report(verbose=verbose))

    def __str__(self) -> str:
        """Short string representation."""
        status = "PASSED" if self.passed else "FAILED"
        return f"EvaluatorResult({self.evaluator}: {status}, score={self.score:.2f})"


class Evaluator(ABC):
    """Base class for all evaluators.

    Subclasses implement `check`. Callers use `evaluate`, which handles
    partial timelines for evaluators that need the full record.

    Attributes:
        name: Rule name used in results and expected-violation matching
        description: One-line summary of the rule
        requires_complete_timeline: Judge only complete timelines
    """

    name: str = "base"
    description: str = ""
    requires_complete_timeline: bool = False

    def evaluate(self, timeline: Timeline) -> EvaluatorResult:
        """Evaluate a timeline and return a result.

        Args:
            timeline: The timeline to evaluate

        Returns:
            EvaluatorResult with pass/fail, violations, and evidence
        """
        if self.requires_complete_timeline and not timeline.is_complete:
            return self.incomplete_result(timeline)
        return self.check(timeline)

    @abstractmethod
    def check(self, timeline: Timeline) -> EvaluatorResult:
        """Apply the rule to a timeline."""
        pass

    def incomplete_result(self, timeline: Timeline) -> EvaluatorResult:
        """Result reported instead of a verdict when the timeline is partial."""
        violation = self.violation(
            "incomplete-timeline",
            Severity.WARNING,
            f"Timeline incomplete, {self.name} not judged: {'; '.join(timeline.partial_reasons)}",
            reasons=list(timeline.partial_reasons),
        )
        return self.build_result([violation], [], {"judged": False})

    def violation(
        self,
        violation_type: str,
        severity: Severity,
        message: str,
        timestamp: Optional[int] = None,
        **evidence: Any,
    ) -> Violation:
        """Create a violation attributed to this evaluator."""
        return Violation(
            type=violation_type,
            severity=severity,
            message=message,
            evaluator=self.name,
            timestamp=timestamp,
            evidence=evidence or None,
        )

    def build_result(
        self,
        violations: list[Violation],
        evidence: list[Evidence],
        metadata: Optional[dict[str, Any]] = None,
    ) -> EvaluatorResult:
        """Fold violations into a result.

        Passes iff there are no error violations. Score: 1.0 - 0.5 per
        error - 0.1 per warning, floored at 0.
        """
        errors = sum(1 for v in violations if v.severity == Severity.ERROR)
        warnings = sum(1 for v in violations if v.severity == Severity.WARNING)
        score = max(0.0, 1.0 - errors * 0.5 - warnings * 0.1)
        return EvaluatorResult(
            evaluator=self.name,
            passed=errors == 0,
            score=score,
            violations=violations,
            evidence=evidence,
            metadata=metadata or {},
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
