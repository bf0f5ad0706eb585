"""Tests for run summaries and result files."""

import json
from datetime import datetime

from agent_conduct.evaluators import ApprovalGateEvaluator, EvaluatorRunner
from agent_conduct.harness.cases import TestCase
from agent_conduct.harness.runner import TestResult
from agent_conduct.reporting import ResultSaver, compact_result, summarize


def _result(case_id: str, category: str, passed: bool, duration_ms: int = 100, **extra) -> TestResult:
    case = TestCase.model_validate({
        "id": case_id,
        "name": case_id,
        "category": category,
        "prompt": "hi",
        "approvalStrategy": {"type": "auto-approve"},
        "expected": {"pass": True},
    })
    return TestResult(test_case=case, session_id=f"ses_{case_id}", passed=passed, duration_ms=duration_ms, **extra)


class TestSummarize:
    """Tests for the summary layout."""

    def test_totals_and_categories(self):
        results = [
            _result("a", "developer", True, 100),
            _result("b", "developer", False, 300),
            _result("c", "edge-case", True, 50),
        ]
        summary = summarize(results, agent="openagent", model="opencode/grok-code", variant="gpt")

        assert summary["meta"]["agent"] == "openagent"
        assert summary["meta"]["prompt_variant"] == "gpt"
        assert summary["summary"] == {
            "total": 3,
            "passed": 2,
            "failed": 1,
            "duration_ms": 450,
            "pass_rate": 2 / 3,
        }
        assert summary["by_category"] == {
            "developer": {"passed": 1, "total": 2},
            "edge-case": {"passed": 1, "total": 1},
        }
        assert [t["id"] for t in summary["tests"]] == ["a", "b", "c"]

    def test_empty_run(self):
        summary = summarize([], agent="openagent", model="opencode/grok-code")
        assert summary["summary"]["pass_rate"] == 0.0
        assert summary["tests"] == []

    def test_compact_result_with_violations(self, factory):
        timeline = factory.timeline(factory.tool("bash", {"command": "npm install"}, 100))
        evaluation = EvaluatorRunner([ApprovalGateEvaluator()]).run_all(timeline)
        result = _result(
            "a", "developer", False,
            evaluation=evaluation,
            failure_reasons=["approval-gate: missing-approval: bash executed"],
            anomalies=["Orphaned delegation del-0001"],
        )

        compact = compact_result(result)
        assert compact["violations"]["total"] == 1
        assert compact["violations"]["errors"] == 1
        assert compact["violations"]["details"][0]["type"] == "missing-approval"
        assert compact["failure_reasons"] == ["approval-gate: missing-approval: bash executed"]
        assert compact["anomalies"] == ["Orphaned delegation del-0001"]

    def test_compact_result_without_evaluation(self):
        compact = compact_result(_result("a", "business", True))
        assert compact["violations"] == {"total": 0, "errors": 0, "warnings": 0}
        assert "failure_reasons" not in compact


class TestResultSaver:
    """Tests for the files written per run."""

    def test_history_and_latest(self, tmp_path):
        saver = ResultSaver(tmp_path / "results")
        now = datetime(2026, 3, 5, 14, 30, 15)
        path = saver.save([_result("a", "developer", True)], agent="openagent", model="opencode/grok-code", now=now)

        assert path == tmp_path / "results" / "history" / "2026-03" / "05-143015-openagent.json"
        history = json.loads(path.read_text())
        latest = json.loads((tmp_path / "results" / "latest.json").read_text())
        assert history == latest
        assert history["summary"]["passed"] == 1

    def test_variant_files(self, tmp_path):
        saver = ResultSaver(tmp_path / "results")
        results = [_result("a", "developer", True), _result("b", "creative", False)]
        path = saver.save(
            results,
            agent="openagent",
            model="openai/gpt-4.1",
            variant="gpt",
            model_family="gpt",
            variants_dir=tmp_path / "prompts",
            now=datetime(2026, 3, 5, 9, 0, 0),
        )

        assert path.name == "05-090000-openagent-gpt.json"
        record = json.loads((tmp_path / "prompts" / "openagent" / "results" / "gpt-results.json").read_text())
        assert record["variant"] == "gpt"
        assert record["model_family"] == "gpt"
        assert record["passRate"] == "50.0%"
        assert record["tests"] == [
            {"id": "a", "passed": True, "violations": 0},
            {"id": "b", "passed": False, "violations": 0},
        ]
