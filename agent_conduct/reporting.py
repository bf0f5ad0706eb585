"""Result persistence.

Writes a compact JSON summary of a test run to
``<results_dir>/history/YYYY-MM/DD-HHMMSS-<agent>[-<variant>].json`` and
``<results_dir>/latest.json``. Runs of a prompt variant also get a
per-variant record under ``<variants_dir>/<agent>/results/``.
"""

import json
import logging
import re
import subprocess
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from agent_conduct.harness.runner import TestResult

logger = logging.getLogger(__name__)

CATEGORIES = ("developer", "business", "creative", "edge-case")


def framework_version() -> str:
    try:
        return version("agent-conduct")
    except PackageNotFoundError:
        return "0.1.0"


def git_commit(cwd: Optional[Path] = None) -> Optional[str]:
    """Short hash of HEAD, or None outside a git checkout."""
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    commit = completed.stdout.strip()
    return commit if completed.returncode == 0 and re.fullmatch(r"[0-9a-f]{7,12}", commit) else None


def compact_result(result: TestResult) -> dict[str, Any]:
    evaluation = result.evaluation
    violations = evaluation.all_violations if evaluation else []
    counts = evaluation.violations_by_severity if evaluation else {"error": 0, "warning": 0}
    compact: dict[str, Any] = {
        "id": result.test_case.id,
        "category": result.test_case.category if result.test_case.category in CATEGORIES else "other",
        "passed": result.passed,
        "duration_ms": result.duration_ms,
        "events": len(result.events),
        "approvals": result.approvals_given,
        "violations": {
            "total": len(violations),
            "errors": counts.get("error", 0),
            "warnings": counts.get("warning", 0),
        },
    }
    if violations:
        compact["violations"]["details"] = [
            {"type": v.type, "severity": v.severity.value, "message": v.message} for v in violations
        ]
    if result.failure_reasons:
        compact["failure_reasons"] = list(result.failure_reasons)
    if result.anomalies:
        compact["anomalies"] = list(result.anomalies)
    return compact


def summarize(
    results: list[TestResult],
    agent: str,
    model: str,
    variant: Optional[str] = None,
    model_family: Optional[str] = None,
    commit: Optional[str] = None,
) -> dict[str, Any]:
    """Build the run summary: meta, totals, per-category roll-up and tests."""
    passed = sum(1 for r in results if r.passed)
    by_category: dict[str, dict[str, int]] = {}
    for result in results:
        category = result.test_case.category if result.test_case.category in CATEGORIES else "other"
        bucket = by_category.setdefault(category, {"passed": 0, "total": 0})
        bucket["total"] += 1
        bucket["passed"] += int(result.passed)

    return {
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "agent": agent,
            "model": model,
            "framework_version": framework_version(),
            "git_commit": commit,
            "prompt_variant": variant,
            "model_family": model_family,
        },
        "summary": {
            "total": len(results),
            "passed": passed,
            "failed": len(results) - passed,
            "duration_ms": sum(r.duration_ms for r in results),
            "pass_rate": passed / len(results) if results else 0.0,
        },
        "by_category": by_category,
        "tests": [compact_result(r) for r in results],
    }


class ResultSaver:
    """Saves run summaries.

    Usage:
        saver = ResultSaver(settings.resolved_results_dir)
        path = saver.save(results, agent="openagent", model="opencode/grok-code")
    """

    def __init__(self, results_dir: Union[str, Path]):
        self.results_dir = Path(results_dir)

    def save(
        self,
        results: Iterable[TestResult],
        agent: str,
        model: str,
        variant: Optional[str] = None,
        model_family: Optional[str] = None,
        variants_dir: Optional[Union[str, Path]] = None,
        now: Optional[datetime] = None,
    ) -> Path:
        """Write history and latest files; returns the history file path."""
        results = list(results)
        now = now or datetime.now()
        summary = summarize(results, agent, model, variant, model_family, commit=git_commit())

        history_dir = self.results_dir / "history" / now.strftime("%Y-%m")
        history_dir.mkdir(parents=True, exist_ok=True)
        suffix = f"-{variant}" if variant else ""
        history_path = history_dir / f"{now.strftime('%d-%H%M%S')}-{agent}{suffix}.json"

        self._write(history_path, summary)
        self._write(self.results_dir / "latest.json", summary)
        if variant and variants_dir is not None:
            self._save_variant(summary, agent, variant, Path(variants_dir))

        logger.info(f"Results saved to {history_path}")
        return history_path

    def _save_variant(self, summary: dict[str, Any], agent: str, variant: str, variants_dir: Path) -> Path:
        totals = summary["summary"]
        record = {
            "variant": variant,
            "agent": agent,
            "model": summary["meta"]["model"],
            "model_family": summary["meta"]["model_family"],
            "timestamp": summary["meta"]["timestamp"],
            "passed": totals["passed"],
            "failed": totals["failed"],
            "total": totals["total"],
            "passRate": f"{totals['pass_rate'] * 100:.1f}%",
            "duration_ms": totals["duration_ms"],
            "by_category": summary["by_category"],
            "tests": [
                {"id": t["id"], "passed": t["passed"], "violations": t["violations"]["total"]}
                for t in summary["tests"]
            ],
        }
        path = variants_dir / agent / "results" / f"{variant}-results.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write(path, record)
        return path

    @staticmethod
    def _write(path: Path, data: dict[str, Any]) -> None:
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
