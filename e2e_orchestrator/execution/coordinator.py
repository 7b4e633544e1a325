"""
Test suite execution coordination.

Turns a suite plus run configuration into a supervised runner invocation:
resolve files, compose the environment, run, persist status at every
transition, then hand off to reporting. Callers get an execution ID at once
and observe progress by polling the status store.
"""

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.config import Config
from ..core.exceptions import (
    ConfigurationError,
    ExecutionNotFoundError,
    StatusTransitionError,
    TestResolutionError,
)
from ..core.logging_config import get_logger
from ..reporting.aggregator import ReportAggregator
from ..reporting.history import HistoryEntry, ResultHistory
from .environment import EnvironmentComposer
from .models import (
    EnvironmentConfig,
    ExecutionConfig,
    ExecutionId,
    ExecutionIdGenerator,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
    ProcessResult,
    StartResult,
    StatusRecord,
    TestSuite,
    utc_now,
)
from .resolver import ResolutionReport, TestFileResolver
from .runner import CancellationToken, ProcessRunner
from .status_store import StatusStore

SPEC_FILE_PATTERN = re.compile(r"([\w./\\-]+\.spec\.ts)")


@dataclass
class ActiveExecution:
    """In-process handle of a running execution."""

    task: "asyncio.Task"
    token: CancellationToken
    execution_dir: Path


class ExecutionCoordinator:
    """
    Orchestrates suite executions and exposes start / status / cancel.

    Only this class writes status records. Nothing raised inside a
    background run escapes it: every failure ends as a persisted ``failed``
    record.
    """

    def __init__(
        self,
        config: Config,
        status_store: Optional[StatusStore] = None,
        resolver: Optional[TestFileResolver] = None,
        composer: Optional[EnvironmentComposer] = None,
        runner: Optional[ProcessRunner] = None,
        report_aggregator: Optional[ReportAggregator] = None,
        history: Optional[ResultHistory] = None,
        id_generator: Optional[ExecutionIdGenerator] = None,
        suite_repository: Optional[Any] = None,
    ):
        self.config = config
        self.status_store = status_store or StatusStore(config.status_file)
        self.resolver = resolver or TestFileResolver(config)
        self.composer = composer or EnvironmentComposer(config)
        self.runner = runner or ProcessRunner(config)
        self.report_aggregator = report_aggregator or ReportAggregator(config)
        self.history = history or ResultHistory(config.data_dir)
        self.id_generator = id_generator or ExecutionIdGenerator()
        self.suite_repository = suite_repository
        self.logger = get_logger(__name__)

        self._active: Dict[str, ActiveExecution] = {}

        if suite_repository is not None:
            suite_repository.add_change_listener(
                lambda _suite_id: self.invalidate_resolution_cache()
            )

    async def start(
        self,
        test_suite: TestSuite,
        execution_config: ExecutionConfig,
        environment_config: Optional[EnvironmentConfig] = None,
    ) -> StartResult:
        """
        Start executing a suite.

        File resolution happens before this returns; a suite with no
        resolvable files fails here. Everything after that runs in the
        background.

        Args:
            test_suite: Suite to execute
            execution_config: Run configuration
            environment_config: Named environment, or None for defaults

        Returns:
            Start outcome carrying the execution ID
        """
        execution_id = self.id_generator.next_id()
        logger = get_logger(__name__, execution_id=str(execution_id))
        started_at = utc_now()
        logger.info(
            f"Starting test suite execution: {test_suite.name}",
            extra={
                "metadata": {
                    "mode": execution_config.mode.value,
                    "workers": execution_config.workers,
                    "use_global_login": execution_config.use_global_login,
                    "environment": execution_config.environment,
                }
            },
        )

        try:
            resolution = self.resolver.resolve(test_suite)
            if not resolution.has_files:
                raise TestResolutionError(
                    f"No valid test files found for execution. Test suite has "
                    f"{len(test_suite.test_cases)} test cases but none resolved. "
                    f"Missing: {', '.join(resolution.unresolved) or 'none'}",
                    suite_name=test_suite.name,
                    unresolved=resolution.unresolved,
                )
        except Exception as e:
            return self._fail_before_run(
                execution_id, test_suite, execution_config, started_at, e
            )

        record = StatusRecord(
            execution_id=str(execution_id),
            status=ExecutionStatus.RUNNING,
            test_suite=test_suite.name,
            started_at=started_at,
            total_tests=len(resolution.files),
            completed_tests=0,
            current_test="Starting test execution...",
            test_files=[str(path) for path in resolution.files],
            logs=self._resolution_logs(resolution),
        )
        try:
            self._persist(record)
        except Exception as e:
            message = f"Failed to record execution status: {e}"
            logger.error(message, exc_info=True)
            return StartResult(
                success=False,
                execution_id=str(execution_id),
                error=message,
                unresolved=resolution.unresolved,
            )

        token = CancellationToken()
        execution_dir = self.config.execution_dir(execution_id)
        task = asyncio.create_task(
            self._run(
                execution_id,
                test_suite,
                execution_config,
                environment_config,
                resolution,
                record,
                token,
            ),
            name=f"execution-{execution_id}",
        )
        self._active[str(execution_id)] = ActiveExecution(task, token, execution_dir)
        task.add_done_callback(lambda _t: self._active.pop(str(execution_id), None))

        return StartResult(
            success=True,
            execution_id=str(execution_id),
            unresolved=resolution.unresolved,
            total_tests=len(resolution.files),
        )

    async def start_by_id(
        self, suite_id: str, execution_config: ExecutionConfig
    ) -> StartResult:
        """Start a suite stored in the attached repository."""
        if self.suite_repository is None:
            raise ConfigurationError("No suite repository configured", setting="suite_repository")

        try:
            test_suite = self.suite_repository.get_suite(suite_id)
        except ConfigurationError as e:
            self.logger.error(e.message, extra={"metadata": e.to_dict()})
            return StartResult(success=False, error=e.message)

        environment_config = self.suite_repository.get_environment(
            execution_config.environment
        )
        if environment_config is None:
            self.logger.warning(
                f"Environment '{execution_config.environment}' not found; using defaults"
            )
        return await self.start(test_suite, execution_config, environment_config)

    def get_status(self, execution_id: Union[str, ExecutionId]) -> Optional[StatusRecord]:
        """Current status record, or None for an unknown execution."""
        return self.status_store.read(execution_id)

    async def cancel(self, execution_id: Union[str, ExecutionId], reason: str = "cancelled") -> bool:
        """
        Request cancellation of a running execution.

        Returns:
            True if a running execution was signalled, False if it had
            already finished

        Raises:
            ExecutionNotFoundError: If the execution is unknown
        """
        key = str(execution_id)
        active = self._active.get(key)
        current = self.status_store.read(key)
        if active is None:
            if current is None:
                raise ExecutionNotFoundError(f"Unknown execution: {key}", execution_id=key)
            return False
        # Reports and history still run after the terminal record is written
        if current is not None and current.status.is_terminal:
            return False

        self.logger.info(f"Cancellation requested: {key}", extra={"metadata": {"reason": reason}})
        active.token.cancel(reason)
        return True

    async def wait(
        self, execution_id: Union[str, ExecutionId], timeout: Optional[float] = None
    ) -> Optional[StatusRecord]:
        """Wait for a background run to finish and return its final record."""
        key = str(execution_id)
        active = self._active.get(key)
        if active is not None:
            await asyncio.wait_for(asyncio.shield(active.task), timeout=timeout)
        return self.get_status(key)

    def list_executions(self) -> List[str]:
        """Known execution IDs, newest first."""
        return self.status_store.list_ids()

    def get_execution_details(self, execution_id: Union[str, ExecutionId]) -> Optional[Dict[str, Any]]:
        """Report locations of an execution, or None if it is unknown."""
        key = str(execution_id)
        execution_dir = self.config.execution_dir(key)
        if self.status_store.read(key) is None and not execution_dir.exists():
            return None

        details: Dict[str, Any] = {
            "executionId": key,
            "directory": str(execution_dir),
            "htmlReport": str(execution_dir / "html-report" / "index.html"),
            "allureReport": str(execution_dir / "allure-report"),
            "resultsJson": str(execution_dir / "results.json"),
        }
        details["htmlReportExists"] = Path(details["htmlReport"]).exists()
        details["allureReportExists"] = Path(details["allureReport"]).exists()
        details["resultsJsonExists"] = Path(details["resultsJson"]).exists()
        return details

    def invalidate_resolution_cache(self) -> None:
        self.resolver.cache.invalidate()

    @property
    def active_executions(self) -> List[str]:
        return list(self._active)

    async def _run(
        self,
        execution_id: ExecutionId,
        test_suite: TestSuite,
        execution_config: ExecutionConfig,
        environment_config: Optional[EnvironmentConfig],
        resolution: ResolutionReport,
        record: StatusRecord,
        token: CancellationToken,
    ) -> StatusRecord:
        logger = get_logger(__name__, execution_id=str(execution_id))
        execution_dir = self.config.execution_dir(execution_id)
        env: Dict[str, str] = {}
        progress = _ProgressTracker(self, record)

        try:
            env = self.composer.compose(environment_config, execution_config, execution_id)
            process_result = await self.runner.run(
                resolution.files,
                env,
                execution_config,
                execution_dir=execution_dir,
                cancellation=token,
                output_handler=progress.on_output,
            )
            final = self._final_record(progress.record, process_result)
        except asyncio.CancelledError:
            self._persist_final(
                self._failure_record(progress.record, "cancelled", ExecutionOutcome.CANCELLED),
                logger,
            )
            raise
        except Exception as e:
            logger.error(f"Test suite execution failed: {e}", exc_info=True)
            final = self._failure_record(
                progress.record,
                str(e) or type(e).__name__,
                ExecutionOutcome.INFRASTRUCTURE_ERROR,
            )

        final = self._persist_final(final, logger)
        logger.info(
            f"Execution finished: {final.status.value}",
            extra={
                "metadata": {
                    "outcome": final.outcome.value if final.outcome else None,
                    "total_tests": final.total_tests,
                    "exit_code": final.result.exit_code if final.result else None,
                }
            },
        )

        try:
            await self.report_aggregator.generate(
                execution_dir, final.status == ExecutionStatus.COMPLETED
            )
        except Exception as e:
            logger.warning(f"Report generation failed, continuing: {e}")

        self._record_history(final, test_suite, execution_config, env)
        return final

    def _final_record(self, record: StatusRecord, process_result: ProcessResult) -> StatusRecord:
        result = ExecutionResult.from_process_result(process_result)
        common = {"completed_at": utc_now(), "result": result}

        if process_result.spawn_error:
            return record.model_copy(
                update={
                    **common,
                    "status": ExecutionStatus.FAILED,
                    "outcome": ExecutionOutcome.INFRASTRUCTURE_ERROR,
                    "current_test": "Execution failed",
                    "error": process_result.spawn_error,
                }
            )
        if process_result.cancelled:
            return record.model_copy(
                update={
                    **common,
                    "status": ExecutionStatus.FAILED,
                    "outcome": ExecutionOutcome.CANCELLED,
                    "current_test": "Execution cancelled",
                    "error": "cancelled",
                }
            )
        return record.model_copy(
            update={
                **common,
                "status": ExecutionStatus.COMPLETED if process_result.success else ExecutionStatus.FAILED,
                "outcome": ExecutionOutcome.PASSED if process_result.success else ExecutionOutcome.TESTS_FAILED,
                "completed_tests": record.total_tests,
                "current_test": "Execution completed",
            }
        )

    @staticmethod
    def _failure_record(record: StatusRecord, message: str, outcome: ExecutionOutcome) -> StatusRecord:
        return record.model_copy(
            update={
                "status": ExecutionStatus.FAILED,
                "outcome": outcome,
                "completed_at": utc_now(),
                "current_test": "Execution cancelled" if outcome == ExecutionOutcome.CANCELLED else "Execution failed",
                "error": message,
                "result": ExecutionResult(success=False, error=message),
            }
        )

    def _fail_before_run(
        self,
        execution_id: ExecutionId,
        test_suite: TestSuite,
        execution_config: ExecutionConfig,
        started_at,
        error: Exception,
    ) -> StartResult:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        unresolved = getattr(error, "unresolved", [])
        self.logger.error(
            f"Test suite execution could not start: {message}",
            extra={"metadata": {"execution_id": str(execution_id), "suite": test_suite.name}},
        )

        record = StatusRecord(
            execution_id=str(execution_id),
            status=ExecutionStatus.FAILED,
            outcome=ExecutionOutcome.INFRASTRUCTURE_ERROR,
            test_suite=test_suite.name,
            started_at=started_at,
            completed_at=utc_now(),
            current_test="Execution failed",
            logs=[f"Unresolved test case reference: {label}" for label in unresolved],
            result=ExecutionResult(success=False, error=message),
            error=message,
        )
        record = self._persist_final(record, self.logger)
        self._record_history(record, test_suite, execution_config, {})

        return StartResult(
            success=False,
            execution_id=str(execution_id),
            error=message,
            unresolved=unresolved,
        )

    def _persist(self, record: StatusRecord) -> StatusRecord:
        try:
            return self.status_store.write(record.execution_id, record)
        except StatusTransitionError as e:
            self.logger.warning(e.message, extra={"metadata": e.to_dict()})
            return self.status_store.read(record.execution_id) or record

    def _persist_final(self, record: StatusRecord, logger) -> StatusRecord:
        """Persist a terminal record; a storage failure is logged, not raised."""
        try:
            return self._persist(record)
        except Exception as e:
            logger.error(
                f"Failed to persist final status of {record.execution_id}: {e}",
                exc_info=True,
                extra={"metadata": {"status": record.status.value}},
            )
            return record

    def _record_history(
        self,
        record: StatusRecord,
        test_suite: TestSuite,
        execution_config: ExecutionConfig,
        env: Dict[str, str],
    ) -> None:
        try:
            self.history.append(
                HistoryEntry.from_execution(record, test_suite, execution_config, env)
            )
        except Exception as e:
            self.logger.warning(f"Failed to store execution result for reports: {e}")

    @staticmethod
    def _resolution_logs(resolution: ResolutionReport) -> List[str]:
        logs = [f"Unresolved test case reference: {label}" for label in resolution.unresolved]
        logs.extend(f"Skipped duplicate test file: {path}" for path in resolution.duplicates)
        return logs


class _ProgressTracker:
    """Updates the running record as the runner reports spec files."""

    def __init__(self, coordinator: ExecutionCoordinator, record: StatusRecord):
        self.coordinator = coordinator
        self.record = record
        self._seen: List[str] = []

    async def on_output(self, stream: str, line: str) -> None:
        if stream != "stdout":
            return
        match = SPEC_FILE_PATTERN.search(line)
        if not match:
            return

        spec_name = Path(match.group(1).replace("\\", "/")).name
        if spec_name not in self._seen:
            self._seen.append(spec_name)

        current_test = f"Running {spec_name}"
        completed = min(max(len(self._seen) - 1, self.record.completed_tests), self.record.total_tests)
        if current_test == self.record.current_test and completed == self.record.completed_tests:
            return

        update = self.record.model_copy(
            update={"current_test": current_test, "completed_tests": completed}
        )
        self.record = update
        # Status writes fsync; keep them off the event loop
        loop = asyncio.get_running_loop()
        self.record = await loop.run_in_executor(None, self.coordinator._persist, update)
