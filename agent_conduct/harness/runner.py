"""Test runner: owns the server, runs test cases one at a time."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, TextIO

from agent_conduct.collector import SessionStore, TimelineBuilder
from agent_conduct.config import HarnessSettings
from agent_conduct.evaluators import AggregatedResult, EvaluatorRunner, evaluators_for
from agent_conduct.exceptions import ClientError, ServerNotRunningError
from agent_conduct.harness.approval import ApprovalDecision, create_strategy
from agent_conduct.harness.cases import TestCase
from agent_conduct.harness.client import SessionClient
from agent_conduct.harness.events import EventStreamConsumer, ServerEvent
from agent_conduct.harness.executor import ExecutionResult, TestExecutor
from agent_conduct.harness.server import AgentDefinition, ServerManager
from agent_conduct.harness.validator import ResultValidator

logger = logging.getLogger(__name__)


@dataclass
class TestResult:
    """Outcome of one test case; exactly one is produced per case."""

    __test__ = False

    test_case: TestCase
    session_id: Optional[str]
    passed: bool
    errors: list[str] = field(default_factory=list)
    events: list[ServerEvent] = field(default_factory=list)
    duration_ms: int = 0
    approvals_given: int = 0
    decisions: list[ApprovalDecision] = field(default_factory=list)
    timed_out: bool = False
    anomalies: list[str] = field(default_factory=list)
    evaluation: Optional[AggregatedResult] = None
    failure_reasons: list[str] = field(default_factory=list)
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.test_case.id,
            "category": self.test_case.category,
            "sessionId": self.session_id,
            "passed": self.passed,
            "durationMs": self.duration_ms,
            "approvalsGiven": self.approvals_given,
            "timedOut": self.timed_out,
            "errors": list(self.errors),
            "anomalies": list(self.anomalies),
            "failureReasons": list(self.failure_reasons),
            "eventCount": len(self.events),
            "decisions": [d.to_dict() for d in self.decisions],
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
        }


class TestRunner:
    """Runs test cases against one agent server.

    Usage:
        runner = TestRunner(settings)
        await runner.start(AgentDefinition.resolve("openagent", agents_dir))
        try:
            results = await runner.run_tests(cases, agent="openagent")
        finally:
            await runner.stop()
    """

    __test__ = False

    def __init__(
        self,
        settings: HarnessSettings,
        server: Optional[ServerManager] = None,
        store: Optional[SessionStore] = None,
        stream: Optional[TextIO] = None,
    ):
        self.settings = settings
        self.server = server or ServerManager(settings)
        self.builder = TimelineBuilder(store or SessionStore(settings.storage_dir))
        self.validator = ResultValidator()
        self._stream = stream
        self._url: Optional[str] = None

    async def start(self, definition: Optional[AgentDefinition] = None, standalone: bool = False) -> str:
        """Start the server; ServerStartError propagates (fatal to the invocation)."""
        self._url = await self.server.start(definition, standalone=standalone)
        return self._url

    async def stop(self) -> None:
        self._url = None
        await self.server.stop()

    async def run_tests(self, test_cases: Iterable[TestCase], agent: Optional[str] = None) -> list[TestResult]:
        """Run test cases strictly in order, pausing between them."""
        cases = list(test_cases)
        results = []
        for index, test_case in enumerate(cases):
            if index > 0 and self.settings.inter_test_delay_s:
                await asyncio.sleep(self.settings.inter_test_delay_s)
            logger.info(f"[{index + 1}/{len(cases)}] {test_case.id}")
            results.append(await self.run_test(test_case, agent=agent))
        return results

    async def run_test(self, test_case: TestCase, agent: Optional[str] = None) -> TestResult:
        """Run one test case; failures are recorded in the result, never raised."""
        if self._url is None:
            raise ServerNotRunningError("Call start() before running tests")

        async with SessionClient(self._url) as client:
            consumer = EventStreamConsumer(self._url)
            executor = TestExecutor(client, consumer, self.settings, stream=self._stream)
            execution = await executor.execute(test_case, create_strategy(test_case.approval_strategy), agent)

            evaluation = None
            if self.settings.run_evaluators and execution.session_id:
                evaluation = await self._evaluate(test_case, execution.session_id, execution)

            if execution.session_id and not self.settings.debug:
                try:
                    await client.delete_session(execution.session_id)
                except ClientError as e:
                    logger.warning(f"Could not delete session {execution.session_id}: {e}")

        outcome = self.validator.validate(
            test_case,
            execution.errors,
            evaluation,
            events=execution.events,
            session_id=execution.session_id,
        )
        status = "PASSED" if outcome.passed else "FAILED"
        logger.info(f"{test_case.id}: {status} ({execution.duration_ms} ms)")
        return TestResult(
            test_case=test_case,
            session_id=execution.session_id,
            passed=outcome.passed,
            errors=execution.errors,
            events=execution.events,
            duration_ms=execution.duration_ms,
            approvals_given=execution.approvals_given,
            decisions=execution.decisions,
            timed_out=execution.timed_out,
            anomalies=execution.anomalies,
            evaluation=evaluation,
            failure_reasons=outcome.reasons,
        )

    async def _evaluate(
        self, test_case: TestCase, session_id: str, execution: ExecutionResult
    ) -> Optional[AggregatedResult]:
        try:
            timeline = await self.builder.build_settled(
                session_id,
                execution.events,
                execution.decisions,
                attempts=self.settings.timeline_attempts,
                delay_s=self.settings.settle_delay_s,
            )
            return EvaluatorRunner(evaluators_for(test_case)).run_all(timeline)
        except Exception as e:
            logger.error(f"Evaluators failed for {test_case.id}: {e}", exc_info=True)
            return None
