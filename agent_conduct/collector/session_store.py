"""Read-only access to the agent server's persisted session records.

The server writes one JSON file per record under its storage directory::

    session/<project>/<session_id>.json
    message/<session_id>/<message_id>.json
    part/<message_id>/<part_id>.json

Files may be missing or half-written while a child session is still
running. Nothing here raises for that: every read returns a RecordBatch
whose ``problems`` list says what could not be read.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class RecordBatch:
    """Records read from storage plus a description of anything skipped."""

    records: list[dict[str, Any]] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)

    def extend(self, other: "RecordBatch") -> None:
        self.records.extend(other.records)
        self.problems.extend(other.problems)


def _created(record: dict[str, Any]) -> int:
    time = record.get("time")
    if isinstance(time, dict):
        value = time.get("created", time.get("start"))
        if isinstance(value, (int, float)):
            return int(value)
    return 0


class SessionStore:
    """Partial-tolerant reader over a storage directory.

    Usage:
        store = SessionStore(Path.home() / ".local/share/opencode/storage")
        session = store.read_session("ses_abc")
        messages = store.read_messages("ses_abc")
    """

    def __init__(self, storage_dir: Union[str, Path]):
        self.storage_dir = Path(storage_dir)

    def _load(self, path: Path) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            # Removed between listing and reading
            return None, f"record disappeared: {path.name}"
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Skipping unreadable record {path}: {e}")
            return None, f"unreadable record {path.name}: {e}"
        if not isinstance(data, dict):
            return None, f"record {path.name} is not a JSON object"
        return data, None

    def _load_dir(self, directory: Path) -> RecordBatch:
        batch = RecordBatch()
        if not directory.is_dir():
            return batch
        for path in sorted(directory.glob("*.json")):
            data, problem = self._load(path)
            if problem:
                batch.problems.append(problem)
            elif data is not None:
                batch.records.append(data)
        return batch

    def session_path(self, session_id: str) -> Optional[Path]:
        """Locate a session record across project directories."""
        matches = sorted((self.storage_dir / "session").glob(f"*/{session_id}.json"))
        return matches[0] if matches else None

    def read_session(self, session_id: str) -> RecordBatch:
        """Read one session record (zero or one records)."""
        batch = RecordBatch()
        path = self.session_path(session_id)
        if path is None:
            batch.problems.append(f"session record not found: {session_id}")
            return batch
        data, problem = self._load(path)
        if problem:
            batch.problems.append(problem)
        elif data is not None:
            batch.records.append(data)
        return batch

    def child_sessions(self, parent_id: str) -> RecordBatch:
        """Read every session whose ``parentID`` is ``parent_id``, oldest first.

        Children are stored beside their parent, so only the parent's
        project directory is scanned when the parent record exists.
        """
        parent_path = self.session_path(parent_id)
        if parent_path is not None:
            directories = [parent_path.parent]
        else:
            root = self.storage_dir / "session"
            directories = sorted(p for p in root.glob("*") if p.is_dir()) if root.is_dir() else []

        batch = RecordBatch()
        for directory in directories:
            found = self._load_dir(directory)
            batch.problems.extend(found.problems)
            batch.records.extend(r for r in found.records if r.get("parentID") == parent_id)
        batch.records.sort(key=lambda r: (_created(r), str(r.get("id", ""))))
        return batch

    def read_messages(self, session_id: str) -> RecordBatch:
        """Read a session's message records ordered by creation time."""
        batch = self._load_dir(self.storage_dir / "message" / session_id)
        batch.records.sort(key=lambda r: (_created(r), str(r.get("id", ""))))
        return batch

    def read_parts(self, message_id: str) -> RecordBatch:
        """Read a message's parts ordered by part id (ids are monotonic)."""
        batch = self._load_dir(self.storage_dir / "part" / message_id)
        batch.records.sort(key=lambda r: str(r.get("id", "")))
        return batch

    def __repr__(self) -> str:
        return f"SessionStore(storage_dir={str(self.storage_dir)!r})"
