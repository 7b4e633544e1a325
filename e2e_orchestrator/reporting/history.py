"""
Historical execution results.

Appends one denormalized entry per finished execution to a results log that
reporting and analytics read independently of the status document.
"""

import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import Field

from ..core.logging_config import get_logger
from ..execution.models import (
    CamelModel,
    ExecutionConfig,
    ExecutionOutcome,
    ExecutionStatus,
    StatusRecord,
    TestSuite,
    utc_now,
)
from ..storage.json_documents import read_json, write_json_atomic

RESULTS_FILE = "testResults.json"


class HistoryEntry(CamelModel):
    """One finished suite execution as stored in the results log."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    test_id: str
    test_name: str
    test_type: str = "Test Suite"
    environment: str
    browser: Optional[str] = None
    headless: Optional[bool] = None
    status: str
    outcome: Optional[ExecutionOutcome] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    results: Dict[str, Any] = Field(default_factory=dict)
    logs: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_execution(
        cls,
        record: StatusRecord,
        test_suite: TestSuite,
        execution_config: ExecutionConfig,
        env: Optional[Dict[str, str]] = None,
    ) -> "HistoryEntry":
        env = env or {}
        passed = record.status == ExecutionStatus.COMPLETED
        completed_at = record.completed_at or utc_now()
        results: Dict[str, Any] = {
            "duration": (completed_at - record.started_at).total_seconds(),
            "totalTests": record.total_tests,
            "completedTests": record.completed_tests,
            "passed": record.total_tests if passed else 0,
            "failed": 0 if passed else record.total_tests,
            "testFiles": record.test_files,
            "executionMode": execution_config.mode.value,
            "workers": execution_config.effective_workers,
        }
        if record.result is not None and record.result.exit_code is not None:
            results["exitCode"] = record.result.exit_code
        if record.error:
            results["error"] = record.error

        headless = env.get("HEADLESS")
        return cls(
            execution_id=record.execution_id,
            test_id=f"test-suite-{test_suite.id}",
            test_name=f"Test Suite: {test_suite.name}",
            environment=execution_config.environment,
            browser=env.get("BROWSER") or execution_config.browser,
            headless=(headless == "true") if headless is not None else execution_config.headless,
            status="passed" if passed else "failed",
            outcome=record.outcome,
            started_at=record.started_at,
            completed_at=completed_at,
            results=results,
            logs=record.logs,
        )


class ResultHistory:
    """Append-only results log backed by a JSON list document."""

    def __init__(self, data_dir: Union[str, Path]):
        self.results_file = Path(data_dir) / RESULTS_FILE
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            entries = read_json(self.results_file, default=list)
            entries.append(entry.model_dump(mode="json", by_alias=True, exclude_none=True))
            write_json_atomic(self.results_file, entries)

        self.logger.info(
            f"Recorded execution result: {entry.execution_id} ({entry.status})",
            extra={"metadata": {"test_id": entry.test_id, "status": entry.status}},
        )
        return entry

    def list_entries(self, test_id: Optional[str] = None) -> List[HistoryEntry]:
        entries = [
            HistoryEntry.model_validate(item)
            for item in read_json(self.results_file, default=list)
        ]
        if test_id is not None:
            entries = [e for e in entries if e.test_id == test_id]
        return entries

    def get_stats(self) -> Dict[str, Any]:
        """Run totals and success rate (percentage, two decimals)."""
        entries = read_json(self.results_file, default=list)
        total = len(entries)
        passed = sum(1 for e in entries if e.get("status") == "passed")
        success_rate = (passed / total) * 100 if total else 0.0
        return {
            "totalRuns": total,
            "passedRuns": passed,
            "failedRuns": total - passed,
            "successRate": round(success_rate, 2),
        }
