"""Rule evaluators for agent-conduct.

Evaluators judge a Timeline and return an EvaluatorResult with typed
violations and evidence. The runner folds a list of them into one
AggregatedResult.

Available evaluators:
- ApprovalGateEvaluator: mutations need an answered permission request
- ContextLoadingEvaluator: context read before the first execution
- DelegationEvaluator: complex work is delegated
- ToolUsageEvaluator: dedicated tools over raw shell commands
- StopOnFailureEvaluator: no blind retries or silent fixes
- ReportFirstEvaluator: report and propose before fixing
- CleanupConfirmationEvaluator: confirm before deleting artifacts
- ExecutionBalanceEvaluator: read before executing
- BehaviorEvaluator: per-test declared expectations
"""

from agent_conduct.evaluators.approval_gate import ApprovalGateEvaluator
from agent_conduct.evaluators.base import (
    Evaluator,
    EvaluatorResult,
    Evidence,
    Severity,
    Violation,
)
from agent_conduct.evaluators.behavior import BehaviorEvaluator
from agent_conduct.evaluators.cleanup import CleanupConfirmationEvaluator
from agent_conduct.evaluators.context_loading import ContextLoadingEvaluator
from agent_conduct.evaluators.delegation import DelegationEvaluator
from agent_conduct.evaluators.execution_balance import ExecutionBalanceEvaluator
from agent_conduct.evaluators.registry import (
    RULE_EVALUATORS,
    default_evaluators,
    evaluator_for_rule,
    evaluators_for,
)
from agent_conduct.evaluators.report_first import ReportFirstEvaluator
from agent_conduct.evaluators.runner import AggregatedResult, EvaluatorRunner, overall_score
from agent_conduct.evaluators.stop_on_failure import StopOnFailureEvaluator
from agent_conduct.evaluators.tool_usage import ToolUsageEvaluator

__all__ = [
    # Base
    "Evaluator",
    "EvaluatorResult",
    "Evidence",
    "Severity",
    "Violation",
    # Rules
    "ApprovalGateEvaluator",
    "ContextLoadingEvaluator",
    "DelegationEvaluator",
    "ToolUsageEvaluator",
    "StopOnFailureEvaluator",
    "ReportFirstEvaluator",
    "CleanupConfirmationEvaluator",
    "ExecutionBalanceEvaluator",
    "BehaviorEvaluator",
    # Runner
    "AggregatedResult",
    "EvaluatorRunner",
    "overall_score",
    # Registry
    "RULE_EVALUATORS",
    "default_evaluators",
    "evaluator_for_rule",
    "evaluators_for",
]
