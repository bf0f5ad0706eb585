"""Per-test evaluator lists.

Each call returns new evaluator instances, so per-test parameters never
leak between tests.
"""

from typing import TYPE_CHECKING, Optional

from agent_conduct.evaluators.approval_gate import ApprovalGateEvaluator
from agent_conduct.evaluators.base import Evaluator
from agent_conduct.evaluators.behavior import BehaviorEvaluator
from agent_conduct.evaluators.cleanup import CleanupConfirmationEvaluator
from agent_conduct.evaluators.context_loading import ContextLoadingEvaluator
from agent_conduct.evaluators.delegation import DelegationEvaluator
from agent_conduct.evaluators.execution_balance import ExecutionBalanceEvaluator
from agent_conduct.evaluators.report_first import ReportFirstEvaluator
from agent_conduct.evaluators.stop_on_failure import StopOnFailureEvaluator
from agent_conduct.evaluators.tool_usage import ToolUsageEvaluator

if TYPE_CHECKING:
    from agent_conduct.harness.cases import TestCase

# Expected-violation rule name -> evaluator name
RULE_EVALUATORS = {
    "approval-gate": ApprovalGateEvaluator.name,
    "context-loading": ContextLoadingEvaluator.name,
    "delegation": DelegationEvaluator.name,
    "tool-usage": ToolUsageEvaluator.name,
    "stop-on-failure": StopOnFailureEvaluator.name,
    "report-first": ReportFirstEvaluator.name,
    "confirm-cleanup": CleanupConfirmationEvaluator.name,
    "cleanup-confirmation": CleanupConfirmationEvaluator.name,
    "execution-balance": ExecutionBalanceEvaluator.name,
}


def evaluator_for_rule(rule: str) -> str:
    return RULE_EVALUATORS.get(rule, rule)


def default_evaluators(
    expected_context_files: Optional[list[str]] = None,
    delegation_required: Optional[bool] = None,
) -> list[Evaluator]:
    """The base rule set, in reporting order."""
    return [
        ApprovalGateEvaluator(),
        ContextLoadingEvaluator(expected_files=expected_context_files),
        DelegationEvaluator(required=delegation_required),
        ToolUsageEvaluator(),
        StopOnFailureEvaluator(),
        ReportFirstEvaluator(),
        CleanupConfirmationEvaluator(),
        ExecutionBalanceEvaluator(),
    ]


def evaluators_for(test_case: "TestCase") -> list[Evaluator]:
    """Base rule set parameterized for a test, plus its behavior checks."""
    behavior = test_case.behavior
    context_files = list(test_case.expected_context_files())
    evaluators = default_evaluators(
        expected_context_files=context_files,
        delegation_required=behavior.should_delegate if behavior else None,
    )
    if behavior is not None:
        evaluators.append(
            BehaviorEvaluator(
                behavior,
                expected_agent=test_case.agent,
                expected_model=test_case.model,
            )
        )
    return evaluators
