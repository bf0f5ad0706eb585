"""Command-line entry point.

Usage:
    agent-conduct --agent openagent
    agent-conduct --agent openagent --suite core
    agent-conduct --agent openagent --pattern "approval/**/*.yaml" --debug
    agent-conduct --agent openagent --prompt-variant gpt --model openai/gpt-4.1

Exit code is 0 iff every test passed.
"""

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from agent_conduct.config import HarnessSettings
from agent_conduct.exceptions import (
    AgentConductError,
    AgentDefinitionError,
    ServerStartError,
    SuiteError,
    TestCaseError,
    VariantError,
)
from agent_conduct.harness import (
    AgentDefinition,
    TestCase,
    TestResult,
    TestRunner,
    discover_test_files,
    load_test_cases,
)
from agent_conduct.reporting import ResultSaver
from agent_conduct.suites import TestSuite
from agent_conduct.variants import PromptVariantManager

logger = logging.getLogger(__name__)

PRESERVED_TMP_FILES = {"README.md", ".gitignore"}


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-conduct",
        description="Run behavior test cases against an OpenCode agent server",
    )
    parser.add_argument("--agent", type=str, default=None, help="Agent to test (default: every agent with tests)")
    parser.add_argument("--suite", type=str, default=None, help="Named suite to run (requires --agent)")
    parser.add_argument("--pattern", type=str, default="**/*.yaml", help="Glob for test files")
    parser.add_argument("--model", type=str, default=None, help="Model override, provider/model")
    parser.add_argument("--prompt-variant", type=str, default=None, help="Prompt variant to test (requires --agent)")
    parser.add_argument("--timeout", type=int, default=None, help="Default per-test timeout in ms")
    parser.add_argument("--project-dir", type=Path, default=None, help="Project root (default: cwd)")
    parser.add_argument("--results-dir", type=Path, default=None, help="Where results are saved")
    parser.add_argument("--standalone", action="store_true", help="Run a subagent as a primary agent")
    parser.add_argument("--no-evaluators", action="store_true", help="Skip evaluators")
    parser.add_argument("--debug", action="store_true", help="Debug logging; keep sessions")
    parser.add_argument("--verbose", action="store_true", help="Full activity trace")
    return parser


def build_settings(args: argparse.Namespace) -> HarnessSettings:
    overrides: dict[str, Any] = {}
    if args.project_dir is not None:
        overrides["project_dir"] = args.project_dir
    if args.results_dir is not None:
        overrides["results_dir"] = args.results_dir
    if args.model is not None:
        overrides["default_model"] = args.model
    if args.timeout is not None:
        overrides["default_timeout_ms"] = args.timeout
    if args.no_evaluators:
        overrides["run_evaluators"] = False
    if args.debug:
        overrides["debug"] = True
    if args.verbose:
        overrides["verbose"] = True
    return HarnessSettings(**overrides)


def cleanup_test_tmp(test_tmp: Path) -> int:
    """Empty the scratch directory test cases write into, keeping its README."""
    if not test_tmp.is_dir():
        return 0
    removed = 0
    for entry in test_tmp.iterdir():
        if entry.name in PRESERVED_TMP_FILES:
            continue
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Could not clean {entry}: {e}")
    if removed:
        logger.info(f"Cleaned up {removed} file(s) from {test_tmp}")
    return removed


def agents_with_tests(settings: HarnessSettings) -> list[str]:
    agents_root = settings.resolved_evals_dir / "agents"
    if not agents_root.is_dir():
        return []
    return sorted(p.name for p in agents_root.iterdir() if (p / "tests").is_dir())


def collect_test_files(settings: HarnessSettings, agent: str, suite: Optional[str], pattern: str) -> list[Path]:
    tests_dir = settings.tests_dir_for(agent)
    if suite:
        return TestSuite.find(tests_dir.parent, suite).resolve_paths(tests_dir)
    return discover_test_files(tests_dir, pattern)


def format_results(results: list[TestResult]) -> str:
    passed = sum(1 for r in results if r.passed)
    rule = "=" * 70
    lines = ["", rule, "TEST RESULTS", rule]
    for index, result in enumerate(results, start=1):
        icon = "[OK]" if result.passed else "[FAIL]"
        lines.append(f"\n{index}. {icon} {result.test_case.id} - {result.test_case.name}")
        lines.append(f"   Duration: {result.duration_ms}ms")
        lines.append(f"   Events: {len(result.events)}")
        lines.append(f"   Approvals: {result.approvals_given}")
        evaluation = result.evaluation
        if evaluation is not None:
            context = evaluation.result_for("context-loading")
            if context is not None:
                lines.extend(_context_lines(context.metadata))
            counts = evaluation.violations_by_severity
            lines.append(
                f"   Violations: {evaluation.total_violations} "
                f"({counts['error']} errors, {counts['warning']} warnings)"
            )
        for anomaly in result.anomalies:
            lines.append(f"   [WARN] {anomaly}")
        if result.errors:
            lines.append("   Errors:")
            lines.extend(f"     - {e}" for e in result.errors)

    lines.append("")
    lines.append(rule)
    lines.append(f"SUMMARY: {passed}/{len(results)} tests passed ({len(results) - passed} failed)")
    lines.append(rule)

    failed = [r for r in results if not r.passed]
    if failed:
        lines.append("\nFailed Tests:")
        for result in failed:
            lines.append(f"\n  [FAIL] {result.test_case.id}")
            lines.extend(f"     - {reason}" for reason in result.failure_reasons)
    return "\n".join(lines)


def _context_lines(metadata: dict[str, Any]) -> list[str]:
    if not metadata.get("isTaskSession"):
        return ["   Context Loading: - conversational session (not required)"]
    if metadata.get("isBashOnly"):
        return ["   Context Loading: - bash-only task (not required)"]
    check = metadata.get("contextCheck") or {}
    if check.get("contextFileLoaded"):
        return [
            "   Context Loading:",
            f"     [OK] Loaded: {check.get('contextFilePath')}",
            f"     [OK] Timing: loaded {check.get('latencyMs') or 0}ms before execution",
        ]
    return ["   Context Loading:", "     [FAIL] No context loaded before execution"]


async def run_agent(
    settings: HarnessSettings,
    agent: str,
    cases: list[TestCase],
    standalone: bool,
) -> list[TestResult]:
    """Start a server for one agent, run its cases, always stop the server."""
    definition = AgentDefinition.resolve(agent, settings.resolved_agents_dir)
    runner = TestRunner(settings)
    try:
        await runner.start(definition, standalone=standalone)
        return await runner.run_tests(cases, agent=agent)
    finally:
        await runner.stop()


async def run(args: argparse.Namespace) -> int:
    try:
        settings = build_settings(args)
    except ValidationError as e:
        logger.error(f"Invalid settings:\n{e}")
        return 2
    if (args.suite or args.prompt_variant) and not args.agent:
        logger.error("--suite and --prompt-variant require --agent")
        return 2

    agents = [args.agent] if args.agent else agents_with_tests(settings)
    if not agents:
        logger.error(f"No agents with tests under {settings.resolved_evals_dir / 'agents'}")
        return 1

    plan: list[tuple[str, list[TestCase]]] = []
    try:
        for agent in agents:
            files = collect_test_files(settings, agent, args.suite, args.pattern)
            if files:
                plan.append((agent, load_test_cases(files)))
    except (SuiteError, TestCaseError) as e:
        logger.error(str(e))
        return 1
    if not plan:
        logger.error(f"No test files found matching {args.pattern!r}")
        return 1

    variants = PromptVariantManager(settings.resolved_variants_dir, settings.resolved_agents_dir)
    model_family = None
    switched = False
    if args.prompt_variant:
        try:
            switch = variants.switch(args.agent, args.prompt_variant)
        except VariantError as e:
            logger.error(str(e))
            return 1
        switched = True
        model_family = switch.metadata.model_family
        if args.model is None and switch.metadata.recommended_model:
            settings = settings.model_copy(update={"default_model": switch.metadata.recommended_model})
            logger.info(f"Using recommended model {settings.default_model}")

    test_tmp = settings.test_tmp_dir
    cleanup_test_tmp(test_tmp)
    results: list[TestResult] = []
    try:
        for agent, cases in plan:
            logger.info(f"Testing {agent}: {len(cases)} test case(s) with {settings.default_model}")
            agent_results = await run_agent(settings, agent, cases, args.standalone)
            results.extend(agent_results)
            ResultSaver(settings.resolved_results_dir).save(
                agent_results,
                agent=agent,
                model=settings.default_model,
                variant=args.prompt_variant,
                model_family=model_family,
                variants_dir=settings.resolved_variants_dir,
            )
    except ServerStartError as e:
        logger.error(f"Agent server failed to start: {e}")
        if e.output:
            logger.error(f"Server output:\n{e.output}")
        return 1
    except AgentDefinitionError as e:
        logger.error(str(e))
        return 1
    finally:
        cleanup_test_tmp(test_tmp)
        if switched:
            variants.restore_default(args.agent)

    print(format_results(results))
    return 0 if results and all(r.passed for r in results) else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)
    try:
        return asyncio.run(run(args))
    except AgentConductError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
