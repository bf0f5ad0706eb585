"""Core enums and tool classification for agent-conduct timelines.

Tool names follow the agent server's built-in tool set (read, glob, grep,
list, bash, write, edit, patch, task, ...).
"""

import re
import shlex
from enum import Enum
from typing import Any, Optional


class EntryKind(str, Enum):
    """Discriminator for timeline entries."""

    USER_MESSAGE = "user_message"
    ASSISTANT_TEXT = "assistant_text"
    TOOL_CALL = "tool_call"
    PERMISSION = "permission"


class Role(str, Enum):
    """Who produced a timeline entry."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


READ_TOOLS = frozenset({"read", "glob", "grep", "list"})
MUTATING_TOOLS = frozenset({"bash", "write", "edit", "patch"})
EXECUTION_TOOLS = MUTATING_TOOLS | {"task"}
DELEGATION_TOOL = "task"

# Bash commands that only inspect state
READ_ONLY_COMMANDS = frozenset({
    "ls", "cat", "head", "tail", "pwd", "echo", "find", "grep", "rg", "wc",
    "which", "whoami", "tree", "stat", "file", "du", "df", "env", "date",
})
READ_ONLY_GIT = frozenset({"status", "log", "diff", "show", "branch", "remote"})

CONTEXT_PATH_PATTERNS = (
    re.compile(r"(^|/)\.opencode/context/"),
    re.compile(r"(^|/)context/.+\.md$"),
    re.compile(r"(^|/)(AGENTS|CLAUDE|CONTRIBUTING)\.md$"),
    re.compile(r"(^|/)docs/.*(standards|guidelines|conventions).*\.md$", re.IGNORECASE),
)

FILE_PATH_KEYS = ("filePath", "file_path", "path")


def tool_file_path(tool_input: Optional[dict[str, Any]]) -> Optional[str]:
    """Extract the file path argument of a tool call, if any."""
    if not tool_input:
        return None
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def bash_command(tool_input: Optional[dict[str, Any]]) -> str:
    """Return the command string of a bash call ('' when absent)."""
    if not tool_input:
        return ""
    command = tool_input.get("command", "")
    return command if isinstance(command, str) else ""


def _command_words(command: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError:
        return command.split()


def is_read_only_command(command: str) -> bool:
    """Whether every stage of a shell pipeline only inspects state."""
    if not command.strip():
        return False
    if re.search(r"(^|[^0-9&])>{1,2}", command):
        return False
    if re.search(r"\s-(delete|exec)\b", command):
        return False
    for stage in re.split(r"\|\||&&|\||;", command):
        words = _command_words(stage.strip())
        if not words:
            continue
        head = words[0]
        if head == "git" and len(words) > 1 and words[1] in READ_ONLY_GIT:
            continue
        if head not in READ_ONLY_COMMANDS:
            return False
    return True


def is_execution_call(tool: str) -> bool:
    """Whether a tool call is an execution, whatever its arguments."""
    return tool in EXECUTION_TOOLS


def is_mutating_call(tool: str, tool_input: Optional[dict[str, Any]] = None) -> bool:
    """Whether a tool call changes state.

    Bash calls that only run read-only commands are treated as inspection.
    """
    if tool not in MUTATING_TOOLS:
        return False
    if tool == "bash":
        return not is_read_only_command(bash_command(tool_input))
    return True


def is_inspection_call(tool: str, tool_input: Optional[dict[str, Any]] = None) -> bool:
    """Whether a tool call only inspects state."""
    if tool in READ_TOOLS:
        return True
    return tool == "bash" and is_read_only_command(bash_command(tool_input))


def is_context_path(path: Optional[str], extra: tuple[str, ...] = ()) -> bool:
    """Whether a file path points at reference context material."""
    if not path:
        return False
    normalized = path.replace("\\", "/")
    for expected in extra:
        if expected and normalized.endswith(expected.replace("\\", "/").lstrip("./")):
            return True
    return any(p.search(normalized) for p in CONTEXT_PATH_PATTERNS)


# First word of a bash stage -> dedicated tool that covers the same intent
DEDICATED_TOOLS = {
    "cat": "read",
    "head": "read",
    "tail": "read",
    "less": "read",
    "grep": "grep",
    "rg": "grep",
    "find": "glob",
    "ls": "list",
}


def dedicated_tool_for(command: str) -> Optional[str]:
    """Return the dedicated tool a bash command should have used, if any."""
    stripped = command.strip()
    if not stripped:
        return None
    if re.match(r"^sed\s+(-[a-zA-Z]*i|--in-place)", stripped):
        return "edit"
    if re.match(r"^(echo|printf|cat)\b[^|]*>\s*\S", stripped) and "<<" not in stripped:
        return "write"
    # Pipelines and compound commands are legitimate shell work
    if re.search(r"\||&&|;", stripped):
        return None
    words = _command_words(stripped)
    if not words:
        return None
    return DEDICATED_TOOLS.get(words[0])


CLEANUP_COMMAND = re.compile(r"(^|[;&|]\s*)(rm|rmdir|unlink)\s|git\s+clean\b")
TEMP_ARTIFACT = re.compile(
    r"(^|[\s/])(tmp|temp|\.tmp|test_tmp|__pycache__|\.cache|dist|build|node_modules)(/|\s|$)"
    r"|\.(tmp|bak|log|orig)\b",
    re.IGNORECASE,
)


def is_cleanup_call(tool: str, tool_input: Optional[dict[str, Any]] = None) -> bool:
    """Whether a call deletes temporary artifacts."""
    if tool != "bash":
        return False
    command = bash_command(tool_input)
    if not CLEANUP_COMMAND.search(command):
        return False
    return bool(TEMP_ARTIFACT.search(command)) or "git clean" in command
