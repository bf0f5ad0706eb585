"""agent-conduct: behavior evaluation harness for OpenCode agents."""

__version__ = "0.1.0"

# Timeline model
from agent_conduct.core import (
    DelegationRecord,
    EntryKind,
    Role,
    SessionInfo,
    Timeline,
    TimelineEntry,
)

# Collection
from agent_conduct.collector import SessionStore, TimelineBuilder

# Evaluation
from agent_conduct.evaluators import (
    AggregatedResult,
    Evaluator,
    EvaluatorResult,
    EvaluatorRunner,
    Evidence,
    Severity,
    Violation,
    evaluators_for,
)

# Harness
from agent_conduct.harness import (
    AgentDefinition,
    EventStreamConsumer,
    ResultValidator,
    ServerManager,
    SessionClient,
    TestCase,
    TestExecutor,
    TestResult,
    TestRunner,
    create_strategy,
    load_test_case,
    load_test_cases,
)
from agent_conduct.tracking import ActivityLogger, SessionTracker

__all__ = [
    "__version__",
    # Timeline model
    "EntryKind",
    "Role",
    "SessionInfo",
    "TimelineEntry",
    "DelegationRecord",
    "Timeline",
    # Collection
    "SessionStore",
    "TimelineBuilder",
    # Evaluation
    "Evaluator",
    "EvaluatorResult",
    "Evidence",
    "Severity",
    "Violation",
    "EvaluatorRunner",
    "AggregatedResult",
    "evaluators_for",
    # Harness
    "AgentDefinition",
    "ServerManager",
    "SessionClient",
    "EventStreamConsumer",
    "TestCase",
    "load_test_case",
    "load_test_cases",
    "create_strategy",
    "TestExecutor",
    "TestRunner",
    "TestResult",
    "ResultValidator",
    # Tracking
    "SessionTracker",
    "ActivityLogger",
]
