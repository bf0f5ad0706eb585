"""Core types and timeline models for agent-conduct.

This module contains the normalized timeline representation including:
- EntryKind and Role enums for entry discrimination
- Tool classification helpers (execution, mutating, inspection, context paths)
- SessionInfo, TimelineEntry, DelegationRecord metadata models
- Timeline container with its complete/partial status
"""

from agent_conduct.core.types import (
    DELEGATION_TOOL,
    EXECUTION_TOOLS,
    MUTATING_TOOLS,
    READ_TOOLS,
    EntryKind,
    Role,
    bash_command,
    dedicated_tool_for,
    is_cleanup_call,
    is_context_path,
    is_execution_call,
    is_inspection_call,
    is_mutating_call,
    is_read_only_command,
    tool_file_path,
)
from agent_conduct.core.timeline import (
    DelegationRecord,
    SessionInfo,
    Timeline,
    TimelineEntry,
)

__all__ = [
    # Enums
    "EntryKind",
    "Role",
    # Tool classification
    "READ_TOOLS",
    "MUTATING_TOOLS",
    "EXECUTION_TOOLS",
    "DELEGATION_TOOL",
    "bash_command",
    "dedicated_tool_for",
    "is_cleanup_call",
    "is_context_path",
    "is_execution_call",
    "is_inspection_call",
    "is_mutating_call",
    "is_read_only_command",
    "tool_file_path",
    # Models
    "SessionInfo",
    "TimelineEntry",
    "DelegationRecord",
    "Timeline",
]
