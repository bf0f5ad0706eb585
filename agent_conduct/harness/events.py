"""Live event stream consumer.

The server publishes every event on one server-sent-events feed
(``GET /event``). A reader task parses the feed into an asyncio.Queue and
a single consumer task drains that queue in wire order. Permission
requests are gates: the consumer awaits the permission handler (which
decides and answers) before it looks at the next event.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from pydantic import BaseModel, Field

from agent_conduct.exceptions import ClientError, ProtocolError

logger = logging.getLogger(__name__)

PERMISSION_EVENTS = ("permission.updated", "permission.asked")

EventHandler = Callable[["ServerEvent"], Awaitable[None]]
PermissionHandler = Callable[["PermissionRequest"], Awaitable[Any]]
EventFilter = Callable[["ServerEvent"], bool]


def _session_of(properties: dict[str, Any]) -> Optional[str]:
    if isinstance(properties.get("sessionID"), str):
        return properties["sessionID"]
    for key in ("info", "part"):
        nested = properties.get(key)
        if isinstance(nested, dict) and isinstance(nested.get("sessionID"), str):
            return nested["sessionID"]
    return None


class ServerEvent(BaseModel):
    """One event from the live feed.

    Attributes:
        type: Event type (e.g., "session.idle", "message.part.updated")
        session_id: Session the event concerns, when it names one
        properties: Raw event payload
        sequence: Arrival order within one subscription (1-based)
        received_at: When the harness received it
    """

    type: str
    session_id: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    sequence: int = 0
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def parse(cls, raw: str, sequence: int = 0) -> "ServerEvent":
        """Parse one SSE data payload.

        Raises:
            ProtocolError: If the payload is not a typed JSON object
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Event is not JSON: {e}", raw=raw) from e
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise ProtocolError("Event has no type", raw=raw)
        properties = data.get("properties") or {}
        if not isinstance(properties, dict):
            raise ProtocolError(f"Event {data['type']} has non-object properties", raw=raw)

        session_id = _session_of(properties)
        if session_id is None and data["type"].startswith("session."):
            info = properties.get("info")
            if isinstance(info, dict) and isinstance(info.get("id"), str):
                session_id = info["id"]
        return cls(type=data["type"], session_id=session_id, properties=properties, sequence=sequence)

    @property
    def is_permission_request(self) -> bool:
        return self.type in PERMISSION_EVENTS

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "sessionID": self.session_id,
            "sequence": self.sequence,
            "receivedAt": self.received_at.isoformat(),
            "properties": self.properties,
        }


class PermissionRequest(BaseModel):
    """A gate the server raises before a sensitive action.

    Attributes:
        id: Permission id (answers are keyed by it)
        session_id: Session asking
        call_id: Tool call being gated
        tool: Permission type, usually the tool name (bash, edit, webfetch, ...)
        title: Human-readable action description
        pattern: Command pattern(s) the permission covers
        metadata: Tool-specific details (e.g., the command)
        created_at: Epoch milliseconds
    """

    id: str
    session_id: str
    call_id: Optional[str] = None
    tool: str = ""
    title: str = ""
    pattern: Optional[Union[str, list[str]]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[int] = None

    @classmethod
    def from_event(cls, event: ServerEvent) -> "PermissionRequest":
        props = event.properties
        permission_id = props.get("id")
        session_id = props.get("sessionID") or event.session_id
        if not isinstance(permission_id, str) or not isinstance(session_id, str):
            raise ProtocolError(f"Permission event without id/sessionID: {props!r}")
        time = props.get("time") if isinstance(props.get("time"), dict) else {}
        metadata = props.get("metadata") if isinstance(props.get("metadata"), dict) else {}
        return cls(
            id=permission_id,
            session_id=session_id,
            call_id=props.get("callID"),
            tool=str(props.get("type") or props.get("permission") or ""),
            title=str(props.get("title") or ""),
            pattern=props.get("pattern"),
            metadata=metadata,
            created_at=time.get("created"),
        )

    @property
    def action(self) -> str:
        """Text the deny/approve patterns are matched against."""
        parts = [self.title]
        command = self.metadata.get("command")
        if isinstance(command, str) and command not in self.title:
            parts.append(command)
        if isinstance(self.pattern, str):
            parts.append(self.pattern)
        elif isinstance(self.pattern, list):
            parts.extend(str(p) for p in self.pattern)
        return " ".join(p for p in parts if p)


_CLOSED = object()


class EventStreamConsumer:
    """One subscription at a time to the server's event feed.

    Usage:
        consumer = EventStreamConsumer(url)
        await consumer.listen(on_event, on_permission, accept=lambda e: e.session_id in mine)
        ...
        await consumer.stop_listening()
        print(len(consumer.events))
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect_timeout: float = 10.0,
        drain_timeout: float = 5.0,
    ):
        """Initialize the consumer.

        Args:
            base_url: Server URL
            transport: Custom httpx transport (tests use httpx.MockTransport)
            connect_timeout: Seconds to wait for the feed to open
            drain_timeout: Seconds stop_listening waits for queued events
        """
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._connect_timeout = connect_timeout
        self._drain_timeout = drain_timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._reader: Optional[asyncio.Task] = None
        self._consumer: Optional[asyncio.Task] = None
        self._routed: set[str] = set()
        self.events: list[ServerEvent] = []

    @property
    def listening(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def listen(
        self,
        on_event: Optional[EventHandler],
        on_permission: PermissionHandler,
        accept: Optional[EventFilter] = None,
    ) -> None:
        """Open a subscription; returns once the feed is connected.

        A previous subscription is drained and closed first, so its events
        never reach the new handlers.

        Raises:
            ClientError: If the feed cannot be opened
        """
        if self._consumer is not None:
            logger.debug("Draining previous event subscription")
            await self.stop_listening()

        self.events = []
        self._routed = set()
        queue: asyncio.Queue = asyncio.Queue()
        connected = asyncio.Event()
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self._connect_timeout, read=None),
            transport=self._transport,
        )
        self._reader = asyncio.create_task(self._read(self._client, queue, connected))
        self._consumer = asyncio.create_task(self._consume(queue, on_event, on_permission, accept))

        waiter = asyncio.create_task(connected.wait())
        done, _ = await asyncio.wait(
            {waiter, self._reader},
            timeout=self._connect_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if waiter not in done:
            waiter.cancel()
        # A short feed can end before the waiter task gets to run
        if not connected.is_set():
            failure = self._reader.exception() if self._reader in done else None
            await self.stop_listening()
            raise ClientError(f"Event stream did not open: {failure or 'timed out'}")

    async def stop_listening(self) -> None:
        """Close the channel: cancel the reader, then let the consumer drain."""
        reader, consumer, client = self._reader, self._consumer, self._client
        self._reader = self._consumer = self._client = None

        if reader is not None:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if consumer is not None:
            try:
                await asyncio.wait_for(consumer, timeout=self._drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("Event consumer did not drain in time, cancelled")
        if client is not None:
            await client.aclose()

    async def _read(
        self,
        client: httpx.AsyncClient,
        queue: asyncio.Queue,
        connected: asyncio.Event,
    ) -> None:
        sequence = 0
        data_lines: list[str] = []

        def flush() -> None:
            nonlocal sequence
            if not data_lines:
                return
            raw = "\n".join(data_lines)
            data_lines.clear()
            try:
                event = ServerEvent.parse(raw, sequence + 1)
            except ProtocolError as e:
                logger.warning(f"Skipping malformed event: {e} ({(e.raw or '')[:120]!r})")
                return
            sequence += 1
            queue.put_nowait(event)

        try:
            async with client.stream("GET", "/event") as response:
                response.raise_for_status()
                connected.set()
                async for line in response.aiter_lines():
                    if line.startswith("data:"):
                        data_lines.append(line[5:].removeprefix(" "))
                    elif not line.strip():
                        flush()
                    # comments (":") and event/id/retry fields carry nothing we use
                flush()
            logger.debug("Event stream ended")
        except httpx.HTTPError as e:
            if not connected.is_set():
                raise
            logger.warning(f"Event stream closed: {e}")
        finally:
            queue.put_nowait(_CLOSED)

    async def _consume(
        self,
        queue: asyncio.Queue,
        on_event: Optional[EventHandler],
        on_permission: PermissionHandler,
        accept: Optional[EventFilter],
    ) -> None:
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            event: ServerEvent = item
            if accept is not None and not accept(event):
                continue
            self.events.append(event)

            if on_event is not None:
                try:
                    await on_event(event)
                except Exception as e:
                    logger.error(f"Event handler failed on {event.type}: {e}", exc_info=True)

            if not event.is_permission_request:
                continue
            try:
                request = PermissionRequest.from_event(event)
            except ProtocolError as e:
                logger.warning(f"Skipping malformed permission request: {e}")
                continue
            if request.id in self._routed:
                logger.debug(f"Permission {request.id} already answered, ignoring redelivery")
                continue
            self._routed.add(request.id)
            try:
                await on_permission(request)
            except Exception as e:
                logger.error(f"Permission handler failed for {request.id}: {e}", exc_info=True)
