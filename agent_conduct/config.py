"""Harness settings loaded from the environment.

All settings can be overridden with ``AGENT_CONDUCT_<NAME>`` environment
variables or a local ``.env`` file.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVER_COMMAND = [
    "opencode",
    "serve",
    "--port",
    "{port}",
    "--hostname",
    "{hostname}",
]


class HarnessSettings(BaseSettings):
    """Settings for one harness invocation."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_CONDUCT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Agent server process
    server_command: list[str] = Field(default_factory=lambda: list(DEFAULT_SERVER_COMMAND))
    hostname: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    startup_timeout_s: float = Field(default=10.0, gt=0)
    shutdown_grace_s: float = Field(default=5.0, gt=0)
    max_port_attempts: int = Field(default=3, ge=1)

    # Filesystem
    project_dir: Path = Field(default_factory=Path.cwd)
    storage_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "opencode" / "storage"
    )
    config_slot: Optional[Path] = None
    evals_dir: Optional[Path] = None
    agents_dir: Optional[Path] = None
    results_dir: Optional[Path] = None
    variants_dir: Optional[Path] = None

    # Test execution
    default_model: str = "opencode/grok-code"
    default_timeout_ms: int = Field(default=60_000, gt=0)
    inter_test_delay_s: float = Field(default=2.0, ge=0)
    settle_delay_s: float = Field(default=0.5, ge=0)
    timeline_attempts: int = Field(default=3, ge=1)
    run_evaluators: bool = True

    # Output
    debug: bool = False
    verbose: bool = False

    @field_validator("default_model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        if "/" not in value:
            raise ValueError(f"default_model must be 'provider/model', got {value!r}")
        return value

    @property
    def slot_path(self) -> Path:
        """Config file the agent server reads at boot."""
        if self.config_slot is not None:
            return self.config_slot
        return self.project_dir / ".agent-conduct" / "opencode.json"

    @property
    def resolved_agents_dir(self) -> Path:
        if self.agents_dir is not None:
            return self.agents_dir
        return self.project_dir / ".opencode" / "agent"

    @property
    def resolved_evals_dir(self) -> Path:
        if self.evals_dir is not None:
            return self.evals_dir
        return self.project_dir / "evals"

    @property
    def resolved_results_dir(self) -> Path:
        if self.results_dir is not None:
            return self.results_dir
        return self.resolved_evals_dir / "results"

    def tests_dir_for(self, agent: str) -> Path:
        """Directory holding an agent's test-case files."""
        return self.resolved_evals_dir / "agents" / agent / "tests"

    @property
    def test_tmp_dir(self) -> Path:
        """Scratch directory test cases may write into."""
        return self.resolved_evals_dir / "test_tmp"

    @property
    def resolved_variants_dir(self) -> Path:
        if self.variants_dir is not None:
            return self.variants_dir
        return self.project_dir / ".opencode" / "prompts"


# Module-level singleton (lazily initialized)
_settings: HarnessSettings | None = None


def get_settings() -> HarnessSettings:
    """Get or create the harness settings."""
    global _settings
    if _settings is None:
        _settings = HarnessSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
