"""Context-Loading evaluator.

Task sessions must read reference context (standards, guides, project
context files) before their first execution action. Conversational
sessions (no execution at all) and bash-only sessions are exempt.
Only the root session is judged; specialists receive their context in the
delegation prompt.
"""

from typing import Any, Optional

from agent_conduct.core.timeline import Timeline, TimelineEntry
from agent_conduct.core.types import DELEGATION_TOOL, is_context_path, tool_file_path
from agent_conduct.evaluators.base import Evaluator, EvaluatorResult, Evidence, Severity


class ContextLoadingEvaluator(Evaluator):
    """Checks a context file was read before the first execution.

    Args:
        expected_files: Context files the test expects (path suffixes). When
            given, loading only other context files is a warning.
    """

    name = "context-loading"
    description = "Reference context must be loaded before the first execution action"

    def __init__(self, expected_files: Optional[list[str]] = None):
        self.expected_files = tuple(expected_files or ())

    def check(self, timeline: Timeline) -> EvaluatorResult:
        root_id = timeline.session_id
        calls = timeline.tool_calls(root_id)
        executions = [c for c in calls if c.is_mutating or c.tool == DELEGATION_TOOL]
        is_task_session = bool(executions)
        is_bash_only = is_task_session and all(c.tool == "bash" for c in executions)

        metadata: dict[str, Any] = {
            "isTaskSession": is_task_session,
            "isBashOnly": is_bash_only,
            "contextCheck": None,
        }

        if not is_task_session or is_bash_only:
            reason = "conversational session" if not is_task_session else "bash-only session"
            evidence = [Evidence(check_name="context_exempt", description=f"Skipped: {reason}")]
            return self.build_result([], evidence, metadata)

        first_exec = executions[0]
        loads = [
            c for c in calls
            if c.tool == "read" and is_context_path(tool_file_path(c.tool_input), self.expected_files)
        ]
        before = [c for c in loads if c.timestamp < first_exec.timestamp]
        chosen: Optional[TimelineEntry] = before[0] if before else (loads[0] if loads else None)
        chosen_path = tool_file_path(chosen.tool_input) if chosen else None

        metadata["contextCheck"] = {
            "contextFileLoaded": bool(before),
            "contextFilePath": chosen_path,
            "loadTimestamp": chosen.timestamp if chosen else None,
            "executionTimestamp": first_exec.timestamp,
            "latencyMs": first_exec.timestamp - chosen.timestamp if chosen else None,
        }

        violations = []
        evidence = []
        if not loads:
            violations.append(
                self.violation(
                    "no-context-loaded",
                    Severity.ERROR,
                    f"No context file was read before executing {first_exec.tool}",
                    timestamp=first_exec.timestamp,
                    tool=first_exec.tool,
                )
            )
        elif not before:
            violations.append(
                self.violation(
                    "context-loaded-late",
                    Severity.ERROR,
                    f"Context file {chosen_path} was read after the first {first_exec.tool} call",
                    timestamp=chosen.timestamp,
                    contextFile=chosen_path,
                    latencyMs=first_exec.timestamp - chosen.timestamp,
                )
            )
        else:
            evidence.append(
                Evidence(
                    check_name="context_check",
                    description=f"Loaded {chosen_path} {metadata['contextCheck']['latencyMs']}ms before {first_exec.tool}",
                    entry_ids=[chosen.entry_id, first_exec.entry_id],
                    details=metadata["contextCheck"],
                )
            )

        if self.expected_files and before:
            loaded_paths = [tool_file_path(c.tool_input) or "" for c in before]
            if not any(self._matches(p, f) for p in loaded_paths for f in self.expected_files):
                violations.append(
                    self.violation(
                        "wrong-context-file",
                        Severity.WARNING,
                        f"Expected one of {list(self.expected_files)}, loaded {loaded_paths}",
                        timestamp=before[0].timestamp,
                        expected=list(self.expected_files),
                        loaded=loaded_paths,
                    )
                )

        return self.build_result(violations, evidence, metadata)

    @staticmethod
    def _matches(path: str, expected: str) -> bool:
        return path.replace("\\", "/").endswith(expected.replace("\\", "/").lstrip("./"))
