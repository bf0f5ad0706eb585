"""agent-conduct harness: drive the agent server through test cases."""

from agent_conduct.harness.approval import (
    ApprovalDecision,
    ApprovalStrategy,
    AutoApproveStrategy,
    AutoDenyStrategy,
    SmartApprovalStrategy,
    create_strategy,
)
from agent_conduct.harness.cases import (
    BehaviorExpectation,
    ExpectedResults,
    ExpectedViolation,
    PromptMessage,
    SmartApprovalConfig,
    TestCase,
    discover_test_files,
    load_test_case,
    load_test_cases,
)
from agent_conduct.harness.client import SessionClient
from agent_conduct.harness.events import EventStreamConsumer, PermissionRequest, ServerEvent
from agent_conduct.harness.executor import ExecutionResult, TestExecutor
from agent_conduct.harness.runner import TestResult, TestRunner
from agent_conduct.harness.server import AgentDefinition, ServerManager
from agent_conduct.harness.validator import ResultValidator, ValidationOutcome

__all__ = [
    # Test cases
    "TestCase",
    "PromptMessage",
    "BehaviorExpectation",
    "ExpectedViolation",
    "ExpectedResults",
    "SmartApprovalConfig",
    "load_test_case",
    "load_test_cases",
    "discover_test_files",
    # Server and protocol
    "AgentDefinition",
    "ServerManager",
    "SessionClient",
    "EventStreamConsumer",
    "ServerEvent",
    "PermissionRequest",
    # Approval
    "ApprovalDecision",
    "ApprovalStrategy",
    "AutoApproveStrategy",
    "AutoDenyStrategy",
    "SmartApprovalStrategy",
    "create_strategy",
    # Execution
    "TestExecutor",
    "ExecutionResult",
    "TestRunner",
    "TestResult",
    "ResultValidator",
    "ValidationOutcome",
]
