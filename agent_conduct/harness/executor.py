"""Drives one test case against a running agent server."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, TextIO

from agent_conduct.config import HarnessSettings
from agent_conduct.core.types import DELEGATION_TOOL
from agent_conduct.exceptions import ClientError
from agent_conduct.harness.approval import ApprovalDecision, ApprovalStrategy
from agent_conduct.harness.cases import TestCase
from agent_conduct.harness.client import SessionClient
from agent_conduct.harness.events import EventStreamConsumer, PermissionRequest, ServerEvent
from agent_conduct.tracking import ActivityLogger, SessionTracker

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Raw outcome of driving one test case, before any evaluation.

    Attributes:
        session_id: Root session (None if it could not be created)
        errors: Raw execution errors (timeouts, RPC failures, session errors)
        events: Events captured for this run's sessions, in wire order
        duration_ms: Wall time of the run
        approvals_given: Number of permission requests approved
        decisions: Every approval decision, in order
        timed_out: True if the per-test timeout expired
        anomalies: Non-fatal irregularities (orphaned delegations, child errors)
    """

    session_id: Optional[str]
    errors: list[str] = field(default_factory=list)
    events: list[ServerEvent] = field(default_factory=list)
    duration_ms: int = 0
    approvals_given: int = 0
    decisions: list[ApprovalDecision] = field(default_factory=list)
    timed_out: bool = False
    anomalies: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        data = error.get("data")
        if isinstance(data, dict) and data.get("message"):
            return f"{error.get('name', 'Error')}: {data['message']}"
        return str(error.get("name") or error)
    return str(error)


class _Run:
    """Per-run state shared by the event handlers."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.idle = asyncio.Event()
        self.errors: list[str] = []
        self.anomalies: list[str] = []
        self.seen_calls: set[str] = set()
        self.seen_texts: set[str] = set()


class TestExecutor:
    """Runs a test case's prompts and answers permission requests.

    Hierarchy tracking and the activity trace are rebuilt for every
    ``execute`` call, so nothing carries over between test cases.
    """

    __test__ = False

    def __init__(
        self,
        client: SessionClient,
        consumer: EventStreamConsumer,
        settings: HarnessSettings,
        stream: Optional[TextIO] = None,
    ):
        self.client = client
        self.consumer = consumer
        self.settings = settings
        self._stream = stream
        self.tracker = SessionTracker()
        self.activity = ActivityLogger(self.tracker, verbose=settings.verbose, stream=stream)

    async def execute(
        self,
        test_case: TestCase,
        strategy: ApprovalStrategy,
        agent: Optional[str] = None,
    ) -> ExecutionResult:
        """Execute one test case.

        Args:
            test_case: Scenario to run
            strategy: Fresh approval strategy for this run
            agent: Agent identity when the test case does not name one

        Returns:
            ExecutionResult; failures are recorded, never raised
        """
        self.tracker = SessionTracker()
        self.activity = ActivityLogger(self.tracker, verbose=self.settings.verbose, stream=self._stream)
        strategy.reset()
        started = time.monotonic()
        agent = test_case.agent or agent
        model = test_case.model or self.settings.default_model

        try:
            session = await self.client.create_session(title=f"{test_case.id}: {test_case.name}")
        except ClientError as e:
            logger.error(f"Could not create session for {test_case.id}: {e}")
            return ExecutionResult(
                session_id=None,
                errors=[f"Failed to create session: {e}"],
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        run = _Run(session.session_id)
        self.tracker.register_session(run.session_id, agent or "unknown")
        self.activity.session_started(run.session_id)

        timeout_ms = test_case.timeout_ms(self.settings.default_timeout_ms)
        timed_out = False
        try:
            await self.consumer.listen(
                lambda event: self._on_event(run, event),
                lambda request: self._on_permission(run, strategy, request),
                accept=self._accepts,
            )
            await asyncio.wait_for(self._drive(run, test_case, agent, model), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            timed_out = True
            run.errors.append(f"Test timed out after {timeout_ms} ms")
            logger.warning(f"{test_case.id} timed out after {timeout_ms} ms")
        except ClientError as e:
            run.errors.append(str(e))
            logger.error(f"{test_case.id} failed: {e}")
        finally:
            await self.consumer.stop_listening()

        self.tracker.complete_session(run.session_id)
        orphans = self.tracker.orphaned_delegations()
        for d in orphans:
            run.anomalies.append(
                f"Orphaned delegation {d.delegation_id}: {d.parent_session_id} -> {d.to_agent} "
                "never started a child session"
            )
        self.activity.warn_orphans()

        return ExecutionResult(
            session_id=run.session_id,
            errors=run.errors,
            events=list(self.consumer.events),
            duration_ms=int((time.monotonic() - started) * 1000),
            approvals_given=strategy.approvals_given,
            decisions=strategy.decisions,
            timed_out=timed_out,
            anomalies=run.anomalies,
        )

    async def _drive(self, run: _Run, test_case: TestCase, agent: Optional[str], model: str) -> None:
        for message in test_case.get_prompts():
            if message.delay_ms:
                await asyncio.sleep(message.delay_ms / 1000)
            run.idle.clear()
            self.activity.message(run.session_id, "user", message.text)
            await self.client.send_prompt(run.session_id, message.text, agent=agent, model=model)
            await run.idle.wait()

    def _accepts(self, event: ServerEvent) -> bool:
        """Only events of this run's sessions reach the handlers."""
        if event.session_id and self.tracker.has_session(event.session_id):
            return True
        if event.type == "session.created":
            info = event.properties.get("info") or {}
            parent_id = info.get("parentID")
            return bool(parent_id) and self.tracker.has_session(parent_id)
        return False

    async def _on_event(self, run: _Run, event: ServerEvent) -> None:
        props = event.properties
        if event.type == "session.created":
            self._on_session_created(props.get("info") or {})
        elif event.type == "message.part.updated":
            self._on_part(run, props.get("part") or {})
        elif event.type == "session.idle" and event.session_id:
            self.tracker.complete_session(event.session_id)
            self.activity.session_completed(event.session_id)
            if event.session_id == run.session_id:
                run.idle.set()
        elif event.type == "session.error" and event.session_id:
            message = _error_text(props.get("error"))
            if event.session_id == run.session_id:
                run.errors.append(f"Session error: {message}")
                run.idle.set()
            else:
                run.anomalies.append(f"Child session {event.session_id} error: {message}")

    def _on_session_created(self, info: dict[str, Any]) -> None:
        child_id, parent_id = info.get("id"), info.get("parentID")
        if not child_id or not parent_id or self.tracker.has_session(child_id):
            return
        delegation_id = self.tracker.link_next_delegation(parent_id, child_id)
        delegation = self.tracker.get_delegation(delegation_id) if delegation_id else None
        self.tracker.register_session(child_id, delegation.to_agent if delegation else "unknown", parent_id)
        self.activity.session_started(child_id)
        if delegation_id:
            self.activity.child_linked(delegation_id)
        else:
            logger.debug(f"Child session {child_id} has no pending delegation in {parent_id}")

    def _on_part(self, run: _Run, part: dict[str, Any]) -> None:
        session_id = part.get("sessionID")
        if not session_id:
            return
        if part.get("type") == "text" and not part.get("synthetic"):
            finished = (part.get("time") or {}).get("end")
            if finished and part.get("id") not in run.seen_texts:
                run.seen_texts.add(part.get("id"))
                self.activity.message(session_id, "assistant", part.get("text") or "")
            return
        if part.get("type") != "tool":
            return

        call_id = part.get("callID") or part.get("id")
        tool_input = (part.get("state") or {}).get("input") or {}
        # Streaming updates repeat the call; the first one with input counts
        if not tool_input or call_id in run.seen_calls:
            return
        run.seen_calls.add(call_id)

        tool = part.get("tool") or ""
        self.activity.tool_call(session_id, tool, tool_input)
        if tool == DELEGATION_TOOL:
            to_agent = tool_input.get("subagent_type") or "unknown"
            prompt = tool_input.get("prompt") or tool_input.get("description") or ""
            delegation_id = self.tracker.record_delegation(session_id, to_agent, prompt)
            self.activity.delegation_recorded(delegation_id)

    async def _on_permission(
        self,
        run: _Run,
        strategy: ApprovalStrategy,
        request: PermissionRequest,
    ) -> None:
        decision = strategy.decide(request)
        verdict = "approved" if decision.approved else "denied"
        self.activity.system(
            request.session_id, f"Permission {request.tool or request.id} {verdict} ({decision.rule})"
        )
        try:
            await self.client.respond_permission(request.session_id, request.id, decision.approved)
        except ClientError as e:
            run.errors.append(f"Failed to answer permission {request.id}: {e}")
            logger.error(f"Failed to answer permission {request.id}: {e}")
