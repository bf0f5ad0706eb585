"""Text formatting for the multi-agent activity trace.

All functions are pure: they take tracked values and return strings.
Indentation is two spaces per delegation level.
"""

from typing import Any, Optional

BOX_WIDTH = 60


def _indent(depth: int) -> str:
    return "  " * depth


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit] + "..."


def _short(session_id: str) -> str:
    return session_id[:12] + "..."


def format_session_header(
    session_id: str,
    agent: str,
    depth: int,
    parent_id: Optional[str] = None,
) -> str:
    indent = _indent(depth)
    kind = "PARENT" if depth == 0 else "CHILD"
    rows = [f" {kind}: {agent} ({_short(session_id)})"]
    if parent_id:
        rows.append(f"    Parent: {_short(parent_id)}")
        rows.append(f"    Depth: {depth}")

    lines = ["", f"{indent}+{'-' * BOX_WIDTH}+"]
    for row in rows:
        lines.append(f"{indent}|{row.ljust(BOX_WIDTH)}|")
    lines.append(f"{indent}+{'-' * BOX_WIDTH}+")
    return "\n".join(lines)


def format_message(role: str, text: str, depth: int, max_length: int = 80) -> str:
    label = "User" if role == "user" else "Agent"
    return f"{_indent(depth + 1)}[{label}] {_truncate(text, max_length)}"


def format_tool_call(tool: str, tool_input: Optional[dict[str, Any]], depth: int) -> str:
    indent = _indent(depth + 1)
    lines = [f"{indent}[TOOL] {tool}"]
    tool_input = tool_input or {}
    if tool_input.get("filePath"):
        lines.append(f"{indent}   `- file: {tool_input['filePath']}")
    elif tool_input.get("pattern"):
        lines.append(f"{indent}   `- pattern: {tool_input['pattern']}")
    elif tool_input.get("command"):
        lines.append(f"{indent}   `- command: {_truncate(str(tool_input['command']), 50)}")
    return "\n".join(lines)


def format_delegation(to_agent: str, prompt: str, depth: int) -> str:
    indent = _indent(depth + 1)
    return "\n".join([
        "",
        f"{indent}[TOOL] task",
        f"{indent}   |- subagent: {to_agent}",
        f"{indent}   |- prompt: {_truncate(prompt, 50)}",
        f"{indent}   `- Creating child session...",
    ])


def format_child_linked(child_session_id: str, depth: int, verbose: bool = False) -> str:
    if verbose:
        return f"{_indent(depth + 1)}   `- Child session: {_short(child_session_id)}"
    return f"   -> Child agent started (session: {_short(child_session_id)})"


def format_session_complete(
    depth: int,
    duration_ms: int,
    agent: Optional[str] = None,
    verbose: bool = False,
) -> str:
    seconds = duration_ms / 1000
    if verbose:
        kind = "PARENT" if depth == 0 else "CHILD"
        return f"{_indent(depth)}[OK] {kind} COMPLETE ({seconds:.1f}s)\n"
    return f"   [OK] Child agent completed ({agent or 'child agent'}, {seconds:.1f}s)"


def format_system_message(message: str, depth: int) -> str:
    return f"{_indent(depth + 1)}[INFO] {message}"


def format_orphan_warning(delegation_id: str, to_agent: str, parent_session_id: str) -> str:
    return (
        f"   [WARN] Orphaned delegation {delegation_id}: {to_agent} "
        f"(parent {_short(parent_session_id)}) never started a child session"
    )


def format_tree_line(agent: str, session_id: str, depth: int, status: str, duration_ms: int) -> str:
    marker = "[OK]" if status == "complete" else "[..]"
    return f"{_indent(depth)}{marker} {agent} ({_short(session_id)}) {duration_ms / 1000:.1f}s"
