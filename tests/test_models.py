"""
Unit tests for execution data models.
"""

import pytest
from pydantic import ValidationError

from e2e_orchestrator.execution.models import (
    EnvironmentConfig,
    ExecutionConfig,
    ExecutionId,
    ExecutionIdGenerator,
    ExecutionMode,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
    ProcessResult,
    StatusRecord,
    TestCaseReference,
    TestSuite,
)


class TestExecutionId:
    """Test cases for ExecutionId and its generator."""

    def test_valid_id(self):
        execution_id = ExecutionId("execution_1700000000000")

        assert str(execution_id) == "execution_1700000000000"
        assert ExecutionId.parse("execution_1700000000000") == execution_id
        assert ExecutionId.parse(execution_id) is execution_id

    @pytest.mark.parametrize("value", ["", "execution_", "exec_123", "execution_12a", "../execution_1"])
    def test_invalid_id(self, value):
        with pytest.raises(ValueError):
            ExecutionId(value)

    def test_generator_uses_clock_milliseconds(self):
        generator = ExecutionIdGenerator(clock=lambda: 1700000000.5)

        assert str(generator.next_id()) == "execution_1700000000500"

    def test_generator_never_repeats_within_a_millisecond(self):
        generator = ExecutionIdGenerator(clock=lambda: 1700000000.0)

        ids = [str(generator.next_id()) for _ in range(5)]

        assert len(set(ids)) == 5
        assert ids == sorted(ids)

    def test_generator_survives_clock_going_backwards(self):
        times = iter([100.0, 99.0])
        generator = ExecutionIdGenerator(clock=lambda: next(times))

        first, second = generator.next_id(), generator.next_id()

        assert str(first) == "execution_100000"
        assert str(second) == "execution_100001"


class TestExecutionConfig:
    """Test cases for ExecutionConfig."""

    def test_defaults(self):
        config = ExecutionConfig()

        assert config.mode == ExecutionMode.SEQUENTIAL
        assert config.workers == 1
        assert config.environment == "test"
        assert config.use_global_login is False
        assert config.tags == []

    def test_camel_case_input(self):
        config = ExecutionConfig.model_validate(
            {"executionMode": "parallel", "workers": 4, "useGlobalLogin": True}
        )

        assert config.mode == ExecutionMode.PARALLEL
        assert config.use_global_login is True

    def test_effective_workers(self):
        assert ExecutionConfig(mode="sequential", workers=3).effective_workers == 1
        assert ExecutionConfig(mode="parallel", workers=3).effective_workers == 3

    @pytest.mark.parametrize("workers", [0, 33])
    def test_worker_bounds(self, workers):
        with pytest.raises(ValidationError):
            ExecutionConfig(workers=workers)

    def test_tags_cleaned(self):
        config = ExecutionConfig(tags=["@smoke", " ", "@smoke", " @auth "])

        assert config.tags == ["@smoke", "@auth"]

    def test_frozen_and_strict(self):
        config = ExecutionConfig()

        with pytest.raises(ValidationError):
            config.workers = 5
        with pytest.raises(ValidationError):
            ExecutionConfig(threads=2)


class TestSuiteModels:
    """Test cases for suites and references."""

    def test_suite_accepts_stored_field_names(self):
        suite = TestSuite.model_validate(
            {
                "_id": "abc",
                "suiteName": "Checkout",
                "selectedTestCases": [{"id": "checkout"}, {"filePath": "smoke/a.spec.ts"}],
            }
        )

        assert suite.id == "abc"
        assert suite.name == "Checkout"
        assert suite.test_cases[1].file_path == "smoke/a.spec.ts"

    def test_reference_identifiers_and_label(self):
        reference = TestCaseReference(id="", name="login", title="Login works")

        assert reference.identifiers == ["login", "Login works"]
        assert reference.label == "login"
        assert TestCaseReference(file_path="a.spec.ts").label == "a.spec.ts"
        assert TestCaseReference().label == "<unnamed>"


class TestEnvironmentConfig:
    """Test cases for EnvironmentConfig."""

    def test_from_nested_mapping(self):
        env = EnvironmentConfig.from_mapping(
            {"name": "staging", "key": "stg", "variables": {"baseUrl": "http://stg"}}
        )

        assert env.name == "staging"
        assert env.get("baseUrl") == "http://stg"

    def test_from_bare_mapping(self):
        env = EnvironmentConfig.from_mapping({"BASE_URL": "http://x"}, name="qa")

        assert env.name == "qa"
        assert env.get("baseUrl", "BASE_URL") == "http://x"

    def test_get_skips_empty_values(self):
        env = EnvironmentConfig(variables={"baseUrl": "", "BASE_URL": "http://y"})

        assert env.get("baseUrl", "BASE_URL") == "http://y"
        assert env.get("missing") is None


class TestExecutionResult:
    """Test cases for mapping runner results."""

    def test_test_failure_has_exit_code_and_no_error(self):
        result = ExecutionResult.from_process_result(
            ProcessResult(exit_code=1, success=False, stdout="1 failed")
        )

        assert result.exit_code == 1
        assert result.success is False
        assert result.error is None

    def test_spawn_failure_has_error_and_no_exit_code(self):
        result = ExecutionResult.from_process_result(
            ProcessResult(exit_code=-1, success=False, spawn_error="Failed to start")
        )

        assert result.exit_code is None
        assert result.error == "Failed to start"

    def test_cancelled(self):
        result = ExecutionResult.from_process_result(
            ProcessResult(exit_code=-15, success=False, cancelled=True)
        )

        assert result.error == "cancelled"


class TestStatusRecord:
    """Test cases for StatusRecord serialization."""

    def test_document_is_camel_case_without_unset_fields(self):
        record = StatusRecord(
            execution_id="execution_1",
            status=ExecutionStatus.RUNNING,
            total_tests=2,
            current_test="Starting test execution...",
        )

        document = record.to_document()

        assert document["executionId"] == "execution_1"
        assert document["status"] == "running"
        assert document["totalTests"] == 2
        assert "error" not in document
        assert "completedAt" not in document

    def test_round_trip_through_document(self):
        record = StatusRecord(
            execution_id="execution_1",
            status=ExecutionStatus.FAILED,
            outcome=ExecutionOutcome.TESTS_FAILED,
            result=ExecutionResult(exit_code=1),
        )

        restored = StatusRecord.from_document(record.to_document())

        assert restored.to_document() == record.to_document()
        assert restored.outcome == ExecutionOutcome.TESTS_FAILED

    def test_terminal_statuses(self):
        assert ExecutionStatus.COMPLETED.is_terminal
        assert ExecutionStatus.FAILED.is_terminal
        assert not ExecutionStatus.RUNNING.is_terminal
