"""Tests for TestExecutor against a scripted client and event feed."""

import io

import pytest

from agent_conduct.config import HarnessSettings
from agent_conduct.harness.approval import AutoApproveStrategy, AutoDenyStrategy, SmartApprovalStrategy
from agent_conduct.harness.cases import SmartApprovalConfig, TestCase
from agent_conduct.harness.executor import TestExecutor


def _case(**overrides) -> TestCase:
    data = {
        "id": "exec-1",
        "name": "Executor case",
        "category": "developer",
        "prompt": "Install the deps",
        "approvalStrategy": {"type": "auto-approve"},
        "behavior": {"mustUseTools": ["bash"]},
    }
    data.update(overrides)
    return TestCase.model_validate(data)


def _executor(client, consumer, **settings) -> TestExecutor:
    return TestExecutor(client, consumer, HarnessSettings(**settings), stream=io.StringIO())


class TestExecute:
    """Tests for driving prompts and collecting events."""

    @pytest.mark.asyncio
    async def test_single_prompt_with_permission(self, consumer, client_for, events):
        client = client_for([[
            events.tool_part("ses_root", "call_1", "bash", {"command": "npm install"}),
            events.permission("per_1", command="npm install"),
            events.idle("ses_other"),
            events.idle(),
        ]])
        result = await _executor(client, consumer).execute(_case(), AutoApproveStrategy(), agent="openagent")

        assert result.ok
        assert result.session_id == "ses_root"
        assert not result.timed_out
        assert result.approvals_given == 1
        assert [d.permission_id for d in result.decisions] == ["per_1"]
        assert client.permissions == [("ses_root", "per_1", True)]
        assert client.prompts == [{
            "session_id": "ses_root",
            "text": "Install the deps",
            "agent": "openagent",
            "model": "opencode/grok-code",
        }]
        # Events of foreign sessions never reach the run
        assert [e.type for e in result.events] == ["message.part.updated", "permission.updated", "session.idle"]
        assert consumer.stops == 1

    @pytest.mark.asyncio
    async def test_case_identity_overrides_defaults(self, consumer, client_for, events):
        client = client_for([[events.idle()]])
        case = _case(agent="coder", model="openai/gpt-4.1")
        await _executor(client, consumer).execute(case, AutoApproveStrategy(), agent="openagent")

        assert client.prompts[0]["agent"] == "coder"
        assert client.prompts[0]["model"] == "openai/gpt-4.1"

    @pytest.mark.asyncio
    async def test_denied_permission(self, consumer, client_for, events):
        client = client_for([[events.permission("per_1", command="rm -rf build"), events.idle()]])
        result = await _executor(client, consumer).execute(_case(), AutoDenyStrategy())

        assert result.ok
        assert result.approvals_given == 0
        assert client.permissions == [("ses_root", "per_1", False)]

    @pytest.mark.asyncio
    async def test_smart_budget_applies_across_requests(self, consumer, client_for, events):
        client = client_for([[
            events.permission("per_1", command="npm install"),
            events.permission("per_2", command="npm test"),
            events.idle(),
        ]])
        strategy = SmartApprovalStrategy(SmartApprovalConfig(max_approvals=1))
        result = await _executor(client, consumer).execute(_case(), strategy)

        assert [approved for _, _, approved in client.permissions] == [True, False]
        assert result.decisions[1].rule == "max-approvals"

    @pytest.mark.asyncio
    async def test_multi_turn(self, consumer, client_for, events):
        case = _case(prompt=None, prompts=[{"text": "First"}, {"text": "Second", "delayMs": 10}])
        client = client_for([[events.idle()], [events.idle()]])
        result = await _executor(client, consumer).execute(case, AutoApproveStrategy())

        assert result.ok
        assert [p["text"] for p in client.prompts] == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_delegation_linked_to_child(self, consumer, client_for, events):
        client = client_for([[
            events.tool_part("ses_root", "call_task", "task", {"subagent_type": "coder", "prompt": "Write it"}),
            events.child_created("ses_child"),
            events.tool_part("ses_child", "call_w", "write", {"filePath": "a.py"}),
            events.idle("ses_child"),
            events.idle(),
        ]])
        executor = _executor(client, consumer)
        result = await executor.execute(_case(), AutoApproveStrategy())

        assert result.anomalies == []
        assert {e.session_id for e in result.events} == {"ses_root", "ses_child"}
        child = executor.tracker.get_session("ses_child")
        assert child.agent == "coder"
        assert child.parent_id == "ses_root"

    @pytest.mark.asyncio
    async def test_orphaned_delegation_reported(self, consumer, client_for, events):
        client = client_for([[
            events.tool_part("ses_root", "call_task", "task", {"subagent_type": "coder", "prompt": "Write it"}),
            events.idle(),
        ]])
        result = await _executor(client, consumer).execute(_case(), AutoApproveStrategy())

        assert result.ok
        (anomaly,) = result.anomalies
        assert anomaly.startswith("Orphaned delegation del-0001: ses_root -> coder")

    @pytest.mark.asyncio
    async def test_fresh_tracking_per_run(self, consumer, client_for, events):
        script = [events.tool_part("ses_root", "call_task", "task", {"subagent_type": "coder"}), events.idle()]
        client = client_for([script, script])
        executor = _executor(client, consumer)

        first = await executor.execute(_case(), AutoApproveStrategy())
        second = await executor.execute(_case(), AutoApproveStrategy())

        assert len(first.anomalies) == 1
        assert len(second.anomalies) == 1
        assert len(executor.tracker.delegations()) == 1


class TestExecuteFailures:
    """Tests for failures recorded in the result."""

    @pytest.mark.asyncio
    async def test_session_create_fails(self, consumer, client_for):
        client = client_for()
        client.fail_create = True
        result = await _executor(client, consumer).execute(_case(), AutoApproveStrategy())

        assert result.session_id is None
        assert result.errors[0].startswith("Failed to create session:")
        assert consumer.listens == 0

    @pytest.mark.asyncio
    async def test_timeout(self, consumer, client_for):
        client = client_for([])
        result = await _executor(client, consumer).execute(_case(timeout=200), AutoApproveStrategy())

        assert result.timed_out
        assert result.errors == ["Test timed out after 200 ms"]
        assert consumer.stops == 1

    @pytest.mark.asyncio
    async def test_root_session_error(self, consumer, client_for):
        error = {
            "type": "session.error",
            "properties": {
                "sessionID": "ses_root",
                "error": {"name": "APIError", "data": {"message": "quota exceeded"}},
            },
        }
        result = await _executor(client_for([[error]]), consumer).execute(_case(), AutoApproveStrategy())
        assert result.errors == ["Session error: APIError: quota exceeded"]

    @pytest.mark.asyncio
    async def test_permission_answer_fails(self, consumer, client_for, events):
        client = client_for([[events.permission("per_1", command="npm install"), events.idle()]])
        client.fail_permission = True
        result = await _executor(client, consumer).execute(_case(), AutoApproveStrategy())

        (error,) = result.errors
        assert error.startswith("Failed to answer permission per_1:")
