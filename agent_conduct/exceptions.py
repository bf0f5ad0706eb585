"""Custom exceptions for agent-conduct.

Only ServerStartError is fatal to a whole invocation. Everything else is
scoped to a single test case by the runner.
"""

from typing import Optional


class AgentConductError(Exception):
    """Base exception for all agent-conduct errors."""

    pass


class ConfigurationError(AgentConductError):
    """Raised when harness settings are invalid."""

    pass


class AgentDefinitionError(AgentConductError):
    """Raised when an agent identity cannot be resolved or read."""

    def __init__(self, message: str, agent: str | None = None):
        self.agent = agent
        super().__init__(message)


class ServerError(AgentConductError):
    """Raised when the agent server cannot be managed."""

    pass


class ServerStartError(ServerError):
    """Raised when the agent server fails to bind, exits early, or never becomes ready."""

    def __init__(self, message: str, output: Optional[str] = None):
        self.output = output
        super().__init__(message)


class ServerNotRunningError(ServerError):
    """Raised when an operation needs a running server and there is none."""

    pass


class ClientError(AgentConductError):
    """Raised when a session RPC call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ProtocolError(AgentConductError):
    """Raised when a server event has an unexpected shape."""

    def __init__(self, message: str, raw: str | None = None):
        self.raw = raw
        super().__init__(message)


class TestCaseError(AgentConductError):
    """Raised when a test case file cannot be loaded or validated."""

    __test__ = False

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class EvaluationError(AgentConductError):
    """Raised when the evaluation stage fails as a whole."""

    pass


class SuiteError(AgentConductError):
    """Raised when a suite definition is invalid or references missing tests."""

    pass


class VariantError(AgentConductError):
    """Raised when a prompt variant cannot be switched in or restored."""

    pass
