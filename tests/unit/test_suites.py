"""Tests for named test suites."""

import json

import pytest

from agent_conduct.exceptions import SuiteError
from agent_conduct.suites import TestSuite


def _suite_data(**overrides):
    data = {
        "name": "core",
        "description": "Core safety rules",
        "totalTests": 2,
        "tests": [
            {"id": 1, "name": "Approval gate", "path": "approval/01.yaml", "category": "critical-rules",
             "priority": "critical"},
            {"id": 2, "name": "Context", "path": "context/01.yaml", "category": "critical-rules",
             "priority": "high", "required": False},
        ],
    }
    data.update(overrides)
    return data


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("id: x\n", encoding="utf-8")


class TestLoad:
    """Tests for reading and validating suite files."""

    def test_load(self, tmp_path):
        suite = TestSuite.load(_write_json(tmp_path / "core.json", _suite_data()))
        assert suite.name == "core"
        assert suite.total_tests == 2
        assert suite.tests[1].required is False

    @pytest.mark.parametrize(
        "overrides",
        [
            {"tests": []},
            {"totalTests": 0},
            {"tests": [{"id": 1, "name": "x", "path": "/abs/01.yaml", "category": "c", "priority": "low"}]},
            {"tests": [{"id": 1, "name": "x", "path": "a.json", "category": "c", "priority": "low"}]},
            {"tests": [{"id": 1, "name": "x", "path": "a.yaml", "category": "c", "priority": "urgent"}]},
        ],
    )
    def test_invalid(self, tmp_path, overrides):
        with pytest.raises(SuiteError, match="Invalid suite"):
            TestSuite.load(_write_json(tmp_path / "bad.json", _suite_data(**overrides)))

    def test_duplicate_ids(self, tmp_path):
        tests = _suite_data()["tests"]
        tests[1]["id"] = 1
        with pytest.raises(SuiteError, match="Duplicate test ids"):
            TestSuite.load(_write_json(tmp_path / "dup.json", _suite_data(tests=tests)))

    def test_unreadable(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SuiteError, match="Cannot read"):
            TestSuite.load(path)


class TestFind:
    """Tests for locating suites in an agent directory."""

    @pytest.mark.parametrize("relative", ["config/suites/core.json", "config/core.json", "config/core-tests.json"])
    def test_lookup_locations(self, tmp_path, relative):
        agent_dir = tmp_path / "openagent"
        _write_json(agent_dir / relative, _suite_data())

        suite = TestSuite.find(agent_dir, "core")
        assert suite.agent == "openagent"

    def test_suites_dir_wins(self, tmp_path):
        agent_dir = tmp_path / "openagent"
        _write_json(agent_dir / "config" / "suites" / "core.json", _suite_data(description="preferred"))
        _write_json(agent_dir / "config" / "core.json", _suite_data(description="fallback"))
        assert TestSuite.find(agent_dir, "core").description == "preferred"

    def test_not_found(self, tmp_path):
        with pytest.raises(SuiteError, match="not found"):
            TestSuite.find(tmp_path / "openagent", "core")


class TestResolvePaths:
    """Tests for turning suite entries into test files."""

    def test_all_present_in_order(self, tmp_path):
        _touch(tmp_path / "context" / "01.yaml")
        _touch(tmp_path / "approval" / "01.yaml")
        suite = TestSuite.model_validate(_suite_data())

        assert suite.resolve_paths(tmp_path) == [
            tmp_path / "approval" / "01.yaml",
            tmp_path / "context" / "01.yaml",
        ]

    def test_optional_missing_is_skipped(self, tmp_path):
        _touch(tmp_path / "approval" / "01.yaml")
        suite = TestSuite.model_validate(_suite_data())
        assert suite.resolve_paths(tmp_path) == [tmp_path / "approval" / "01.yaml"]

    def test_required_missing(self, tmp_path):
        _touch(tmp_path / "context" / "01.yaml")
        suite = TestSuite.model_validate(_suite_data())
        with pytest.raises(SuiteError, match="approval/01.yaml"):
            suite.resolve_paths(tmp_path)

    def test_count_mismatch_only_warns(self, tmp_path, caplog):
        _touch(tmp_path / "approval" / "01.yaml")
        _touch(tmp_path / "context" / "01.yaml")
        suite = TestSuite.model_validate(_suite_data(totalTests=5))

        assert len(suite.resolve_paths(tmp_path)) == 2
        assert "declares 5 tests, found 2" in caplog.text
