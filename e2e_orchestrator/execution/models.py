"""
Data models for test suite execution.

Defines Pydantic models for suites, environments, execution configuration,
process results and the persisted status record, plus the opaque
execution identifier.
"""

import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EXECUTION_ID_PATTERN = re.compile(r"^execution_\d+$")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ExecutionMode(Enum):
    """How the external runner distributes test files."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ExecutionStatus(Enum):
    """Lifecycle state of an execution."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class ExecutionOutcome(Enum):
    """Why an execution ended the way it did."""

    PASSED = "passed"
    TESTS_FAILED = "tests_failed"
    INFRASTRUCTURE_ERROR = "infrastructure_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecutionId:
    """Opaque execution identifier, created once and passed by value."""

    value: str

    def __post_init__(self):
        if not EXECUTION_ID_PATTERN.match(self.value):
            raise ValueError(f"Invalid execution ID: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "ExecutionId":
        """Accept an ExecutionId or its string form."""
        if isinstance(value, ExecutionId):
            return value
        return cls(str(value))


class ExecutionIdGenerator:
    """
    Produces time-based execution IDs that never repeat within a process.

    IDs are ``execution_<epoch milliseconds>``; when two IDs are requested
    within the same millisecond the later one is moved forward so the
    sequence stays strictly increasing.
    """

    def __init__(self, clock=None):
        self._clock = clock or time.time
        self._last_ms = 0
        self._lock = threading.Lock()

    def next_id(self) -> ExecutionId:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
        return ExecutionId(f"execution_{now_ms}")


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as stored on disk."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TestCaseReference(CamelModel):
    """Pointer to one test file: an explicit path or a symbolic identifier."""

    __test__ = False

    id: Optional[str] = Field(None, description="Symbolic test identifier")
    name: Optional[str] = Field(None, description="Test name")
    title: Optional[str] = Field(None, description="Test title")
    file_path: Optional[str] = Field(None, description="Explicit relative or absolute path")

    @property
    def identifiers(self) -> List[str]:
        """Non-empty symbolic identifiers, in match priority order."""
        return [v for v in (self.id, self.name, self.title) if v and v.strip()]

    @property
    def label(self) -> str:
        """Human-readable reference used in logs and errors."""
        if self.identifiers:
            return self.identifiers[0]
        return self.file_path or "<unnamed>"


class TestSuite(CamelModel):
    """Named collection of test case references. Read-only during a run."""

    __test__ = False

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    name: str = Field(..., validation_alias=AliasChoices("name", "suiteName"))
    test_cases: List[TestCaseReference] = Field(
        default_factory=list,
        validation_alias=AliasChoices("testCases", "selectedTestCases", "test_cases"),
    )
    test_type: str = Field("E2E", validation_alias=AliasChoices("testType", "test_type"))


class EnvironmentConfig(CamelModel):
    """Named environment whose variables feed the runner process environment."""

    name: str = Field("test", description="Environment name")
    key: Optional[str] = Field(None, description="Lookup key")
    variables: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]], name: str = "test") -> "EnvironmentConfig":
        """Accept both ``{"variables": {...}}`` and a bare variable mapping."""
        if not data:
            return cls(name=name)
        if isinstance(data.get("variables"), dict):
            return cls(
                name=data.get("name") or name,
                key=data.get("key"),
                variables=data["variables"],
            )
        return cls(name=name, variables=dict(data))

    def get(self, *names: str) -> Optional[Any]:
        """First non-empty variable among the given spellings."""
        for variable in names:
            value = self.variables.get(variable)
            if value is not None and value != "":
                return value
        return None


class ExecutionConfig(CamelModel):
    """Run configuration. Frozen once an execution starts."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    mode: ExecutionMode = Field(
        ExecutionMode.SEQUENTIAL,
        validation_alias=AliasChoices("mode", "executionMode"),
    )
    workers: int = Field(1, ge=1, le=32, description="Requested worker count")
    browser: Optional[str] = Field(None, description="Browser project override")
    headless: Optional[bool] = Field(None, description="Headless override")
    retries: Optional[int] = Field(None, ge=0, le=10, description="Runner retry override")
    tags: List[str] = Field(default_factory=list, description="Inclusion tag filter")
    environment: str = Field("test", description="Environment name")
    use_global_login: bool = Field(False, description="Reuse one authenticated session")
    env_overrides: Dict[str, str] = Field(
        default_factory=dict, description="Per-request environment variable overrides"
    )

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        """Drop blank tags and duplicates while keeping order."""
        seen = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @property
    def effective_workers(self) -> int:
        """Worker count handed to the runner; sequential runs share one worker."""
        if self.mode == ExecutionMode.SEQUENTIAL:
            return 1
        return self.workers


class ProcessResult(BaseModel):
    """Completion record of one external runner invocation."""

    model_config = ConfigDict(extra="forbid")

    exit_code: int = Field(..., description="Process exit code (synthetic on spawn failure)")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    success: bool = Field(..., description="True only for exit code 0")
    spawn_error: Optional[str] = Field(None, description="Raised error if the process never started")
    cancelled: bool = Field(default=False, description="Terminated by a cancellation request")
    duration: float = Field(default=0.0, ge=0, description="Wall time in seconds")
    command: List[str] = Field(default_factory=list, description="Invoked command line")


class ExecutionResult(CamelModel):
    """Outcome nested in a status record."""

    exit_code: Optional[int] = None
    success: bool = False
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = Field(None, description="Infrastructure error only")

    @classmethod
    def from_process_result(cls, process_result: ProcessResult) -> "ExecutionResult":
        """Map a runner result, keeping test failures apart from tooling failures."""
        if process_result.spawn_error:
            return cls(
                success=False,
                stdout=process_result.stdout,
                stderr=process_result.stderr,
                error=process_result.spawn_error,
            )
        return cls(
            exit_code=process_result.exit_code,
            success=process_result.success,
            stdout=process_result.stdout,
            stderr=process_result.stderr,
            error="cancelled" if process_result.cancelled else None,
        )


class StatusRecord(CamelModel):
    """Durable, pollable projection of an execution."""

    execution_id: str
    status: ExecutionStatus
    outcome: Optional[ExecutionOutcome] = None
    test_suite: Optional[str] = None
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_tests: int = Field(0, ge=0)
    completed_tests: int = Field(0, ge=0)
    current_test: str = ""
    test_files: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)
    result: Optional[ExecutionResult] = None
    error: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the status file; unset optional fields are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "StatusRecord":
        return cls.model_validate(data)


class StartResult(BaseModel):
    """Synchronous answer to a start request."""

    success: bool
    execution_id: Optional[str] = None
    error: Optional[str] = None
    unresolved: List[str] = Field(default_factory=list)
    total_tests: int = 0
