"""Named test suites.

A suite is a JSON file listing test-case files of one agent::

    {
      "name": "core",
      "description": "Core safety rules",
      "version": "1.0.0",
      "agent": "openagent",
      "totalTests": 2,
      "tests": [
        {"id": 1, "name": "Approval gate", "path": "approval/01.yaml",
         "category": "critical-rules", "priority": "critical"}
      ]
    }

Suites are looked up in ``<evals>/agents/<agent>/config/suites/<name>.json``,
then ``config/<name>.json`` and ``config/<name>-tests.json``.
"""

import json
import logging
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from agent_conduct.exceptions import SuiteError

logger = logging.getLogger(__name__)


class SuiteTest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, validate_by_name=True, extra="ignore")

    id: int = Field(gt=0)
    name: str = Field(min_length=1)
    path: str
    category: str
    priority: Literal["critical", "high", "medium", "low"]
    required: bool = True
    description: Optional[str] = None

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if value.startswith("/") or not value.endswith(".yaml"):
            raise ValueError(f"path must be relative and end with .yaml, got {value!r}")
        return value


class TestSuite(BaseModel):
    """An ordered list of test-case files."""

    __test__ = False

    model_config = ConfigDict(alias_generator=to_camel, validate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    version: str = "1.0.0"
    agent: Optional[str] = None
    total_tests: int = Field(gt=0)
    tests: list[SuiteTest] = Field(min_length=1)

    @field_validator("tests")
    @classmethod
    def _check_ids(cls, tests: list[SuiteTest]) -> list[SuiteTest]:
        ids = [t.id for t in tests]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate test ids in suite")
        return tests

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TestSuite":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls.model_validate(data)
        except (OSError, json.JSONDecodeError) as e:
            raise SuiteError(f"Cannot read suite {path}: {e}") from e
        except ValidationError as e:
            raise SuiteError(f"Invalid suite {path}:\n{e}") from e

    @classmethod
    def find(cls, agent_dir: Union[str, Path], name: str) -> "TestSuite":
        """Load suite ``name`` from an agent's config directory."""
        config = Path(agent_dir) / "config"
        for candidate in (config / "suites" / f"{name}.json", config / f"{name}.json", config / f"{name}-tests.json"):
            if candidate.is_file():
                suite = cls.load(candidate)
                if suite.agent is None:
                    suite = suite.model_copy(update={"agent": Path(agent_dir).name})
                return suite
        raise SuiteError(f"Suite '{name}' not found under {config}")

    def resolve_paths(self, tests_dir: Union[str, Path]) -> list[Path]:
        """Flat list of existing test-case paths, in suite order.

        Raises:
            SuiteError: If a required test file is missing
        """
        tests_dir = Path(tests_dir)
        paths = []
        missing = []
        for test in self.tests:
            path = tests_dir / test.path
            if path.is_file():
                paths.append(path)
            elif test.required:
                missing.append(test.path)
            else:
                logger.warning(f"Optional test file not found: {test.name} ({test.path})")
        if missing:
            raise SuiteError(f"Suite '{self.name}' is missing required test files: {', '.join(missing)}")
        if len(paths) != self.total_tests:
            logger.warning(
                f"Suite '{self.name}' declares {self.total_tests} tests, found {len(paths)}"
            )
        return paths
