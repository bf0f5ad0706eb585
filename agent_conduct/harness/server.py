"""Agent server process lifecycle.

The server reads its agent configuration once at boot from a single
config file (the slot). ServerManager owns that slot: it writes the target
agent definition before spawning the server and always puts the inert
placeholder back on stop, including after a failed start.
"""

import asyncio
import json
import logging
import os
import re
import socket
from collections import deque
from pathlib import Path
from typing import Any, Optional, Union

import httpx
import yaml
from pydantic import BaseModel, Field

from agent_conduct.config import HarnessSettings
from agent_conduct.exceptions import AgentDefinitionError, ServerError, ServerStartError

logger = logging.getLogger(__name__)

PLACEHOLDER_CONFIG: dict[str, Any] = {"agent": {}}
CONFIG_ENV_VAR = "OPENCODE_CONFIG"
BIND_FAILURE = re.compile(r"EADDRINUSE|address already in use|failed to bind", re.IGNORECASE)
FRONTMATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into YAML frontmatter and body.

    Raises:
        ValueError: If the frontmatter is not a YAML mapping
    """
    match = FRONTMATTER.match(text)
    if not match:
        return {}, text
    data = yaml.safe_load(match.group(1)) or {}
    if not isinstance(data, dict):
        raise ValueError("frontmatter must be a YAML mapping")
    return data, text[match.end():]


class AgentDefinition(BaseModel):
    """An agent's behavior definition, as materialized into the config slot.

    Attributes:
        name: Agent identity
        path: Definition file it was read from
        mode: primary, subagent or all
        body: System prompt (markdown body)
        options: Remaining frontmatter keys (model, tools, permission, ...)
    """

    name: str
    path: Optional[Path] = None
    mode: Optional[str] = None
    body: str = ""
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_file(cls, path: Union[str, Path], name: Optional[str] = None) -> "AgentDefinition":
        path = Path(path)
        try:
            meta, body = split_frontmatter(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
            raise AgentDefinitionError(f"Cannot read agent definition {path}: {e}", agent=name) from e
        mode = meta.pop("mode", None)
        return cls(name=name or path.stem, path=path, mode=mode, body=body.strip(), options=meta)

    @classmethod
    def resolve(cls, name: str, agents_dir: Union[str, Path]) -> "AgentDefinition":
        """Find ``<name>.md`` directly in or anywhere below ``agents_dir``.

        Raises:
            AgentDefinitionError: If no definition file exists for the name
        """
        agents_dir = Path(agents_dir)
        direct = agents_dir / f"{name}.md"
        if direct.is_file():
            return cls.from_file(direct, name)
        nested = sorted(agents_dir.rglob(f"{name}.md")) if agents_dir.is_dir() else []
        if not nested:
            raise AgentDefinitionError(f"No definition for agent '{name}' in {agents_dir}", agent=name)
        return cls.from_file(nested[0], name)

    def for_boot(self, standalone: bool = False) -> "AgentDefinition":
        """Copy prepared for boot; standalone forces a subagent to run as primary."""
        if standalone and self.mode != "primary":
            return self.model_copy(update={"mode": "primary"})
        return self

    def to_config(self) -> dict[str, Any]:
        entry: dict[str, Any] = dict(self.options)
        if self.mode:
            entry["mode"] = self.mode
        if self.body:
            entry["prompt"] = self.body
        return {"agent": {self.name: entry}}


def _free_port(hostname: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((hostname, 0))
        return sock.getsockname()[1]


class ServerManager:
    """Starts and stops the agent server.

    Usage:
        manager = ServerManager(settings)
        url = await manager.start(AgentDefinition.resolve("openagent", agents_dir))
        try:
            ...
        finally:
            await manager.stop()
    """

    def __init__(self, settings: HarnessSettings):
        self.settings = settings
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._output: deque[str] = deque(maxlen=200)
        self._url: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def slot_path(self) -> Path:
        return self.settings.slot_path

    @property
    def output(self) -> str:
        """Most recent server output lines."""
        return "\n".join(self._output)

    async def start(self, definition: Optional[AgentDefinition] = None, standalone: bool = False) -> str:
        """Materialize the definition, spawn the server and wait for readiness.

        Returns:
            Base URL of the running server

        Raises:
            ServerStartError: Bind retries exhausted, early exit, or readiness timeout
        """
        async with self._lock:
            if self.running:
                raise ServerError(f"Server already running at {self._url}")
            try:
                self._write_slot(definition.for_boot(standalone).to_config() if definition else PLACEHOLDER_CONFIG)
                return await self._spawn_with_retries()
            except BaseException:
                await self._terminate()
                self._restore_slot()
                raise

    async def stop(self) -> None:
        """Stop the server and restore the placeholder. Safe to call repeatedly."""
        async with self._lock:
            try:
                await self._terminate()
            finally:
                self._restore_slot()

    async def __aenter__(self) -> "ServerManager":
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    def _write_slot(self, config: dict[str, Any]) -> None:
        path = self.slot_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config, indent=2), encoding="utf-8")

    def _restore_slot(self) -> None:
        try:
            self._write_slot(PLACEHOLDER_CONFIG)
        except OSError as e:
            logger.error(f"Could not restore config slot {self.slot_path}: {e}")

    async def _spawn_with_retries(self) -> str:
        hostname = self.settings.hostname
        attempts = self.settings.max_port_attempts
        port = self.settings.port or _free_port(hostname)

        for attempt in range(1, attempts + 1):
            url = f"http://{hostname}:{port}"
            logger.info(f"Starting agent server on {url} (attempt {attempt}/{attempts})")
            await self._spawn(port)
            outcome = await self._wait_ready(url)
            if outcome == "ready":
                self._url = url
                logger.info(f"Agent server ready at {url}")
                return url

            output = self.output
            await self._terminate()
            if outcome == "exited" and BIND_FAILURE.search(output) and attempt < attempts:
                logger.warning(f"Port {port} unavailable, retrying on a fresh port")
                port = _free_port(hostname)
                continue
            if outcome == "exited":
                message = f"Agent server exited before becoming ready on {url}"
                if BIND_FAILURE.search(output):
                    message = f"Agent server could not bind a port after {attempts} attempts"
                logger.error(message)
                raise ServerStartError(message, output=output)
            message = f"Agent server not ready within {self.settings.startup_timeout_s}s on {url}"
            logger.error(message)
            raise ServerStartError(message, output=output)

        raise ServerStartError(f"Agent server could not start after {attempts} attempts", output=self.output)

    async def _spawn(self, port: int) -> None:
        command = [
            part.replace("{port}", str(port)).replace("{hostname}", self.settings.hostname)
            for part in self.settings.server_command
        ]
        env = {**os.environ, CONFIG_ENV_VAR: str(self.slot_path)}
        self._output.clear()
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.settings.project_dir),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ServerStartError(f"Cannot launch agent server {command[0]!r}: {e}") from e
        self._reader = asyncio.create_task(self._collect_output(self._process))

    async def _collect_output(self, process: asyncio.subprocess.Process) -> None:
        if process.stdout is None:
            return
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            self._output.append(line)
            logger.debug(f"[server] {line}")

    async def _wait_ready(self, url: str) -> str:
        """Poll until any HTTP response arrives; returns ready, exited or timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.startup_timeout_s
        async with httpx.AsyncClient(timeout=1.0) as client:
            while loop.time() < deadline:
                if self._process is None or self._process.returncode is not None:
                    # Let the reader drain what the process printed
                    if self._reader is not None:
                        await asyncio.wait([self._reader], timeout=1.0)
                    return "exited"
                try:
                    await client.get(url)
                    return "ready"
                except httpx.HTTPError:
                    await asyncio.sleep(0.1)
        return "timeout"

    async def _terminate(self) -> None:
        process, self._process = self._process, None
        reader, self._reader = self._reader, None
        self._url = None
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.settings.shutdown_grace_s)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning("Agent server ignored terminate, killing it")
                process.kill()
                await process.wait()
        if reader is not None:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
