"""
Test execution components for the E2E orchestrator.

This module provides test file resolution, environment composition, runner
supervision and status tracking for Playwright test suite executions.
"""

from .coordinator import ExecutionCoordinator
from .environment import EnvironmentComposer
from .models import (
    EnvironmentConfig,
    ExecutionConfig,
    ExecutionId,
    ExecutionMode,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
    ProcessResult,
    StartResult,
    StatusRecord,
    TestCaseReference,
    TestSuite,
)
from .resolver import ResolutionCache, TestFileResolver
from .runner import CancellationToken, ProcessRunner
from .status_store import StatusStore

__all__ = [
    "ExecutionCoordinator",
    "EnvironmentComposer",
    "EnvironmentConfig",
    "ExecutionConfig",
    "ExecutionId",
    "ExecutionMode",
    "ExecutionOutcome",
    "ExecutionResult",
    "ExecutionStatus",
    "ProcessResult",
    "StartResult",
    "StatusRecord",
    "TestCaseReference",
    "TestSuite",
    "ResolutionCache",
    "TestFileResolver",
    "CancellationToken",
    "ProcessRunner",
    "StatusStore",
]
