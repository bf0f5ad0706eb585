"""Prompt variants: alternate definitions of one agent identity.

Variants live in ``<variants_dir>/<agent>/<variant>.md`` and carry YAML
frontmatter describing the model family they target. Switching copies a
variant over the active definition in ``<agents_dir>/<agent>.md`` after
backing it up; restoring puts ``default.md`` (or the backup) back.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agent_conduct.exceptions import VariantError
from agent_conduct.harness.server import split_frontmatter

logger = logging.getLogger(__name__)

IGNORED_FILES = {"TEMPLATE.md", "README.md"}


class VariantMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model_family: Optional[str] = None
    recommended_models: list[str] = Field(default_factory=list)
    tested_with: Optional[str] = None
    last_tested: Optional[str] = None
    maintainer: Optional[str] = None
    status: Optional[str] = None

    @property
    def recommended_model(self) -> Optional[str]:
        return self.recommended_models[0] if self.recommended_models else None


@dataclass
class VariantSwitch:
    """Result of switching an agent to a variant."""

    agent: str
    variant: str
    variant_path: Path
    agent_path: Path
    metadata: VariantMetadata


class PromptVariantManager:
    """Switches agent definitions between prompt variants.

    Usage:
        variants = PromptVariantManager(settings.resolved_variants_dir, settings.resolved_agents_dir)
        switch = variants.switch("openagent", "gpt")
        try:
            ...
        finally:
            variants.restore_default("openagent")
    """

    def __init__(self, variants_dir: Union[str, Path], agents_dir: Union[str, Path]):
        self.variants_dir = Path(variants_dir)
        self.agents_dir = Path(agents_dir)
        self._backups: dict[str, Path] = {}

    def variant_path(self, agent: str, variant: str) -> Path:
        return self.variants_dir / agent / f"{variant}.md"

    def exists(self, agent: str, variant: str) -> bool:
        return self.variant_path(agent, variant).is_file()

    def list_variants(self, agent: str) -> list[str]:
        directory = self.variants_dir / agent
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob("*.md") if p.name not in IGNORED_FILES)

    def read_metadata(self, agent: str, variant: str) -> VariantMetadata:
        path = self.variant_path(agent, variant)
        if not path.is_file():
            return VariantMetadata()
        try:
            meta, _ = split_frontmatter(path.read_text(encoding="utf-8"))
            # "null" placeholders are common in variant templates
            cleaned = {k: v for k, v in meta.items() if v not in (None, "null")}
            return VariantMetadata.model_validate(cleaned)
        except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
            logger.warning(f"Unreadable variant metadata in {path}: {e}")
            return VariantMetadata()

    def switch(self, agent: str, variant: str) -> VariantSwitch:
        """Back up the active definition and copy the variant over it.

        Raises:
            VariantError: If the variant does not exist or cannot be copied
        """
        variant_path = self.variant_path(agent, variant)
        agent_path = self.agents_dir / f"{agent}.md"
        if not variant_path.is_file():
            available = ", ".join(self.list_variants(agent)) or "none"
            raise VariantError(
                f"Prompt variant '{variant}' not found for agent '{agent}' (available: {available})"
            )
        try:
            if agent_path.is_file():
                backup = self.agents_dir / f".{agent}.md.backup"
                shutil.copyfile(agent_path, backup)
                self._backups[agent] = backup
            agent_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(variant_path, agent_path)
        except OSError as e:
            raise VariantError(f"Failed to switch {agent} to {variant}: {e}") from e

        logger.info(f"Switched {agent} to prompt variant {variant}")
        return VariantSwitch(
            agent=agent,
            variant=variant,
            variant_path=variant_path,
            agent_path=agent_path,
            metadata=self.read_metadata(agent, variant),
        )

    def restore_default(self, agent: str) -> bool:
        """Restore ``default.md``, or the backup when there is no default."""
        default = self.variant_path(agent, "default")
        agent_path = self.agents_dir / f"{agent}.md"
        backup = self._backups.pop(agent, None)
        try:
            if default.is_file():
                shutil.copyfile(default, agent_path)
            elif backup is not None and backup.is_file():
                shutil.copyfile(backup, agent_path)
            if backup is not None and backup.exists():
                backup.unlink()
        except OSError as e:
            logger.error(f"Failed to restore default prompt for {agent}: {e}")
            return False
        return True
