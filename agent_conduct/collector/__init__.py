"""Post-run collection: persisted records to normalized timelines."""

from agent_conduct.collector.session_store import RecordBatch, SessionStore
from agent_conduct.collector.timeline_builder import TimelineBuilder

__all__ = [
    "RecordBatch",
    "SessionStore",
    "TimelineBuilder",
]
