"""Multi-agent session tracking and activity logging."""

from agent_conduct.tracking.logger import ActivityLogger
from agent_conduct.tracking.tracker import DelegationEvent, SessionNode, SessionTracker

__all__ = [
    "ActivityLogger",
    "DelegationEvent",
    "SessionNode",
    "SessionTracker",
]
