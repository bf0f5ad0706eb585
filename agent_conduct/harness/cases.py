"""Test case schema and loader.

Test cases are YAML files with camelCase keys, one scenario per file::

    id: approval-before-write
    name: Asks before writing
    description: The agent must request approval before creating a file
    category: developer
    prompt: Create hello.txt containing "hi"
    approvalStrategy:
      type: smart
      config:
        maxApprovals: 5
    behavior:
      mustUseAnyOf: [[write], [bash]]
      requiresApproval: true
    expectedViolations:
      - rule: approval-gate
        shouldViolate: false
        severity: error
"""

import logging
import re
from pathlib import Path
from typing import Annotated, Iterable, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from agent_conduct.exceptions import TestCaseError

logger = logging.getLogger(__name__)

Rule = Literal[
    "approval-gate",
    "context-loading",
    "delegation",
    "tool-usage",
    "stop-on-failure",
    "confirm-cleanup",
    "cleanup-confirmation",
    "report-first",
    "execution-balance",
]


class CaseModel(BaseModel):
    """Base for test-case models: camelCase in files, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
        extra="ignore",
        frozen=True,
    )


class AutoApproveConfig(CaseModel):
    type: Literal["auto-approve"]


class AutoDenyConfig(CaseModel):
    type: Literal["auto-deny"]


class SmartApprovalConfig(CaseModel):
    """Rules for the smart approval strategy."""

    allowed_tools: list[str] = Field(default_factory=list)
    denied_tools: list[str] = Field(default_factory=list)
    approve_patterns: list[str] = Field(default_factory=list)
    deny_patterns: list[str] = Field(default_factory=list)
    max_approvals: Optional[int] = Field(default=None, ge=0)
    default_decision: bool = True

    @field_validator("approve_patterns", "deny_patterns")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid regex {pattern!r}: {e}") from e
        return patterns


class SmartStrategyConfig(CaseModel):
    type: Literal["smart"]
    config: SmartApprovalConfig = Field(default_factory=SmartApprovalConfig)


ApprovalStrategyConfig = Annotated[
    Union[AutoApproveConfig, AutoDenyConfig, SmartStrategyConfig],
    Field(discriminator="type"),
]


class PromptMessage(CaseModel):
    """One message of a multi-turn prompt."""

    text: str = Field(min_length=1)
    expect_context: Optional[bool] = None
    context_file: Optional[str] = None
    delay_ms: Optional[int] = Field(default=None, ge=0)


class BehaviorExpectation(CaseModel):
    """What the agent should and shouldn't do."""

    must_use_tools: Optional[list[str]] = None
    # At least one set must be fully used: [[bash], [list]] = bash OR list
    must_use_any_of: Optional[list[list[str]]] = None
    may_use_tools: Optional[list[str]] = None
    must_not_use_tools: Optional[list[str]] = None
    requires_approval: Optional[bool] = None
    requires_context: Optional[bool] = None
    should_delegate: Optional[bool] = None
    min_tool_calls: Optional[int] = Field(default=None, ge=0)
    max_tool_calls: Optional[int] = Field(default=None, ge=0)
    must_use_dedicated_tools: Optional[bool] = None

    # Explicit overrides for the default identity/context checks
    expected_agent: Optional[str] = None
    expected_model: Optional[str] = None
    expected_context_files: Optional[list[str]] = None

    @model_validator(mode="after")
    def _check_counts(self) -> "BehaviorExpectation":
        if (
            self.min_tool_calls is not None
            and self.max_tool_calls is not None
            and self.min_tool_calls > self.max_tool_calls
        ):
            raise ValueError(
                f"minToolCalls ({self.min_tool_calls}) exceeds maxToolCalls ({self.max_tool_calls})"
            )
        return self


class ExpectedViolation(CaseModel):
    """A rule the test expects to fire (negative test) or stay silent."""

    rule: Rule
    should_violate: bool
    severity: Literal["error", "warning"]
    violation_type: Optional[str] = None
    description: Optional[str] = None


class ExpectedResults(CaseModel):
    """Legacy expectation block (prefer behavior + expectedViolations)."""

    should_pass: bool = Field(alias="pass")
    violations: Optional[list[ExpectedViolation]] = None
    min_messages: Optional[int] = None
    max_messages: Optional[int] = None
    tool_calls: Optional[list[str]] = None
    files_modified: Optional[list[str]] = None
    notes: Optional[str] = None


class TestCase(CaseModel):
    """One declarative scenario.

    Attributes:
        id: Unique test id
        category: developer, business, creative or edge-case
        prompt / prompts: Single message or multi-turn messages
        agent: Agent identity under test
        model: provider/model override
        approval_strategy: How permission requests are answered
        behavior / expected_violations / expected: Expectation blocks
        timeout: Per-test timeout in milliseconds
    """

    __test__ = False

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    category: Literal["developer", "business", "creative", "edge-case"]
    prompt: Optional[str] = None
    prompts: Optional[list[PromptMessage]] = None
    agent: Optional[str] = None
    model: Optional[str] = None
    attachments: list[str] = Field(default_factory=list)
    approval_strategy: ApprovalStrategyConfig
    behavior: Optional[BehaviorExpectation] = None
    expected_violations: Optional[list[ExpectedViolation]] = None
    expected: Optional[ExpectedResults] = None
    timeout: Optional[int] = Field(default=None, gt=0)
    tags: list[str] = Field(default_factory=list)

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "/" not in value:
            raise ValueError(f"model must be 'provider/model', got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_blocks(self) -> "TestCase":
        if not self.prompt and not self.prompts:
            raise ValueError('Must provide either "prompt" (single message) or "prompts" (multi-turn)')
        if self.expected is None and self.behavior is None and self.expected_violations is None:
            raise ValueError(
                'Must provide "behavior", "expectedViolations", "expected" (legacy), or a combination'
            )
        return self

    def get_prompts(self) -> list[PromptMessage]:
        """Normalize single and multi-turn prompt forms."""
        if self.prompts:
            return list(self.prompts)
        return [PromptMessage(text=self.prompt or "")]

    def timeout_ms(self, default: int) -> int:
        return self.timeout if self.timeout is not None else default

    def expected_context_files(self) -> list[str]:
        """Context files named by the behavior block or by individual prompts."""
        files = list(self.behavior.expected_context_files or []) if self.behavior else []
        for message in self.get_prompts():
            if message.context_file and message.context_file not in files:
                files.append(message.context_file)
        return files

    @property
    def expects_failure(self) -> bool:
        """Legacy ``pass: false`` marks a test whose run is expected to fail."""
        return self.expected is not None and not self.expected.should_pass


def load_test_case(path: Union[str, Path]) -> TestCase:
    """Load and validate one test-case file.

    Raises:
        TestCaseError: If the file is unreadable or fails validation
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise TestCaseError(f"Cannot read test case {path}: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise TestCaseError(f"Test case {path} must be a mapping", path=str(path))
    try:
        return TestCase.model_validate(data)
    except ValidationError as e:
        raise TestCaseError(f"Invalid test case {path}:\n{e}", path=str(path)) from e


def load_test_cases(paths: Iterable[Union[str, Path]]) -> list[TestCase]:
    """Load several files, keeping order and rejecting duplicate ids."""
    cases = []
    seen: dict[str, Path] = {}
    for path in paths:
        case = load_test_case(path)
        if case.id in seen:
            raise TestCaseError(
                f"Duplicate test id {case.id!r} in {path} (first in {seen[case.id]})",
                path=str(path),
            )
        seen[case.id] = Path(path)
        cases.append(case)
    logger.debug(f"Loaded {len(cases)} test case(s)")
    return cases


def discover_test_files(tests_dir: Union[str, Path], pattern: str = "**/*.yaml") -> list[Path]:
    """Find test-case files under a directory, sorted for stable order."""
    return sorted(p for p in Path(tests_dir).glob(pattern) if p.is_file())
