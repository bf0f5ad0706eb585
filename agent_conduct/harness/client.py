"""Session RPC client for the agent server."""

import logging
from typing import Any, Optional

import httpx

from agent_conduct.core.timeline import SessionInfo
from agent_conduct.exceptions import ClientError

logger = logging.getLogger(__name__)


def split_model(model: str) -> dict[str, str]:
    """``provider/model`` -> ``{"providerID": ..., "modelID": ...}``."""
    provider, _, model_id = model.partition("/")
    if not provider or not model_id:
        raise ValueError(f"model must be 'provider/model', got {model!r}")
    return {"providerID": provider, "modelID": model_id}


class SessionClient:
    """Async client for the session API.

    Example usage:
        async with SessionClient("http://127.0.0.1:4096") as client:
            session = await client.create_session("my test")
            await client.send_prompt(session.session_id, "List files", agent="openagent")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server URL
            timeout: Request timeout in seconds (prompts block until the reply is done)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "SessionClient":
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def http(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ClientError(
                f"{method} {path} failed with {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ClientError(f"{method} {path} failed: {e}") from e
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ClientError(f"Invalid JSON from {response.request.url}: {e}") from e

    async def create_session(self, title: Optional[str] = None) -> SessionInfo:
        """Create a session and return its info."""
        body = {"title": title} if title else {}
        data = self._json(await self._request("POST", "/session", json=body))
        if not isinstance(data, dict) or not data.get("id"):
            raise ClientError(f"Unexpected create-session response: {data!r}")
        time = data.get("time") or {}
        logger.debug(f"Created session {data['id']}")
        return SessionInfo(
            session_id=data["id"],
            title=data.get("title"),
            parent_id=data.get("parentID"),
            created_at=time.get("created"),
            updated_at=time.get("updated"),
        )

    async def send_prompt(
        self,
        session_id: str,
        text: str,
        agent: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Any:
        """Send a user message; returns the server's reply payload.

        The call returns once the assistant's reply is finished. Permission
        requests raised meanwhile are answered through the event stream.
        """
        body: dict[str, Any] = {"parts": [{"type": "text", "text": text}]}
        if agent:
            body["agent"] = agent
        if model:
            body["model"] = split_model(model)
        logger.debug(f"Sending prompt to {session_id}: {text[:60]!r}")
        return self._json(await self._request("POST", f"/session/{session_id}/message", json=body))

    async def respond_permission(self, session_id: str, permission_id: str, approved: bool) -> None:
        """Answer a permission request once."""
        response = "once" if approved else "reject"
        await self._request(
            "POST",
            f"/session/{session_id}/permissions/{permission_id}",
            json={"response": response},
        )
        logger.debug(f"Permission {permission_id} -> {response}")

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/session/{session_id}")
        logger.debug(f"Deleted session {session_id}")

    async def get_messages(self, session_id: str) -> list[dict[str, Any]]:
        data = self._json(await self._request("GET", f"/session/{session_id}/message"))
        return data if isinstance(data, list) else []

    async def is_healthy(self) -> bool:
        """Check if the server is reachable and responding."""
        try:
            response = await self.http.get("/session")
            return response.status_code < 500
        except httpx.HTTPError:
            return False
