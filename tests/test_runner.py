"""
Unit tests for the external runner supervisor.

Tests command construction for both strategies and real subprocess runs
against a fake runner script.
"""

import asyncio
from unittest.mock import Mock

import pytest

from conftest import parse_runner_args, parse_runner_env
from e2e_orchestrator.execution.environment import EnvironmentComposer
from e2e_orchestrator.execution.models import ExecutionConfig
from e2e_orchestrator.execution.runner import (
    SPAWN_FAILURE_EXIT_CODE,
    CancellationToken,
    ProcessRunner,
)


@pytest.fixture
def runner(temp_config):
    return ProcessRunner(temp_config)


@pytest.fixture
def spec_files(temp_config):
    tests_dir = temp_config.tests_dir
    return [
        (tests_dir / "projects" / "auth" / "login.spec.ts").resolve(),
        (tests_dir / "generated" / "checkout.spec.ts").resolve(),
    ]


def compose(temp_config, execution_config):
    return EnvironmentComposer(temp_config).compose(None, execution_config)


class TestBuildCommand:
    """Test cases for runner command construction."""

    def test_base_command(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig()
        command = runner.build_command(spec_files, compose(temp_config, config), config, tmp_path, workers=1)

        assert command[: len(temp_config.runner_command)] == temp_config.runner_command
        assert [str(p) for p in spec_files] == command[2:4]
        assert "--reporter=list,html,json" in command
        assert f"--output={tmp_path / 'artifacts'}" in command
        assert "--workers=1" in command
        assert "--timeout=30000" in command
        assert "--retries=1" in command
        assert "--headed" not in command
        assert not any(arg.startswith("--project=") for arg in command)
        assert not any(arg.startswith("--grep=") for arg in command)

    def test_headed_browser_and_tags(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(browser="firefox", headless=False, retries=2, tags=["@smoke", "@a+b"])
        command = runner.build_command(spec_files, compose(temp_config, config), config, tmp_path, workers=1)

        assert "--headed" in command
        assert "--project=firefox" in command
        assert "--retries=2" in command
        assert "--grep=@smoke|@a\\+b" in command


class TestRunStrategies:
    """Test cases for sequential and parallel runs."""

    @pytest.mark.asyncio
    async def test_sequential_forces_one_worker(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(mode="sequential", workers=3)

        result = await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        args = parse_runner_args(result.stderr)
        assert "--workers=1" in args
        assert "--workers=3" not in args
        assert result.success is True

    @pytest.mark.asyncio
    async def test_parallel_uses_requested_workers(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(mode="parallel", workers=4)

        result = await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        args = parse_runner_args(result.stderr)
        assert "--workers=4" in args
        assert [a for a in args if a.endswith(".spec.ts")] == [str(p) for p in spec_files]

    @pytest.mark.asyncio
    async def test_single_invocation_with_all_files(self, temp_config, spec_files, tmp_path):
        runner = ProcessRunner(temp_config)
        runner._invoke = Mock(wraps=runner._invoke)
        config = ExecutionConfig()

        await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        assert runner._invoke.call_count == 1


class TestProcessExecution:
    """Test cases for process supervision."""

    @pytest.mark.asyncio
    async def test_success(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig()

        result = await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        assert result.exit_code == 0
        assert result.success is True
        assert result.spawn_error is None
        assert "login.spec.ts" in result.stdout
        assert result.duration >= 0

    @pytest.mark.asyncio
    async def test_test_failure_exit_code(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(env_overrides={"FAKE_RUNNER_EXIT_CODE": "1"})

        result = await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        assert result.exit_code == 1
        assert result.success is False
        assert result.spawn_error is None

    @pytest.mark.asyncio
    async def test_spawn_failure_is_reported_not_raised(self, temp_config, spec_files, tmp_path):
        temp_config.runner_command = [str(tmp_path / "no-such-runner")]
        runner = ProcessRunner(temp_config)
        config = ExecutionConfig()

        result = await runner.run(spec_files, compose(temp_config, config), config, tmp_path / "run")

        assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
        assert result.success is False
        assert "Failed to start test runner" in result.spawn_error
        assert result.stderr

    @pytest.mark.asyncio
    async def test_environment_reaches_process(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(env_overrides={"BASE_URL": "http://app.local"})
        execution_dir = tmp_path / "run"

        result = await runner.run(spec_files, compose(temp_config, config), config, execution_dir)

        env = parse_runner_env(result.stderr)
        assert env["BASE_URL"] == "http://app.local"
        assert env["SKIP_GLOBAL_SETUP"] == "true"
        assert env["PLAYWRIGHT_HTML_REPORT"] == str(execution_dir / "html-report")
        assert env["PLAYWRIGHT_JSON_OUTPUT_NAME"] == str(execution_dir / "results.json")
        assert execution_dir.is_dir()

    @pytest.mark.asyncio
    async def test_output_handler_receives_lines(self, runner, temp_config, spec_files, tmp_path):
        lines = []
        config = ExecutionConfig()

        await runner.run(
            spec_files,
            compose(temp_config, config),
            config,
            tmp_path / "run",
            output_handler=lambda stream, line: lines.append((stream, line)),
        )

        assert ("stdout", "finished") in lines
        assert any(stream == "stderr" and line.startswith("ARGS ") for stream, line in lines)

    @pytest.mark.asyncio
    async def test_failing_output_handler_does_not_break_run(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig()

        def handler(stream, line):
            raise RuntimeError("handler bug")

        result = await runner.run(
            spec_files, compose(temp_config, config), config, tmp_path / "run", output_handler=handler
        )

        assert result.success is True

    @pytest.mark.asyncio
    async def test_async_output_handler(self, runner, temp_config, spec_files, tmp_path):
        seen = []
        config = ExecutionConfig()

        async def handler(stream, line):
            seen.append(line)

        await runner.run(
            spec_files, compose(temp_config, config), config, tmp_path / "run", output_handler=handler
        )

        assert "finished" in seen

    @pytest.mark.asyncio
    async def test_over_long_output_line_does_not_fail_run(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(env_overrides={"FAKE_RUNNER_LONG_LINE": str(2 * 1024 * 1024)})
        lines = []

        result = await runner.run(
            spec_files,
            compose(temp_config, config),
            config,
            tmp_path / "run",
            output_handler=lambda stream, line: lines.append(line),
        )

        assert result.exit_code == 0
        assert result.success is True
        assert "line truncated" in result.stdout
        assert "login.spec.ts" in result.stdout
        assert "finished" in lines


class TestCancellation:
    """Test cases for cancelling a running process."""

    @pytest.mark.asyncio
    async def test_cancel_terminates_process(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig(env_overrides={"FAKE_RUNNER_SLEEP": "30"})
        token = CancellationToken()
        started = asyncio.Event()

        def handler(stream, line):
            if line.startswith("ARGS "):
                started.set()

        task = asyncio.ensure_future(
            runner.run(
                spec_files,
                compose(temp_config, config),
                config,
                tmp_path / "run",
                cancellation=token,
                output_handler=handler,
            )
        )
        await asyncio.wait_for(started.wait(), timeout=10)
        token.cancel("user request")

        result = await asyncio.wait_for(task, timeout=15)

        assert result.cancelled is True
        assert result.success is False
        assert "finished" not in result.stdout
        assert token.reason == "user request"

    @pytest.mark.asyncio
    async def test_already_cancelled_token_skips_spawn(self, runner, temp_config, spec_files, tmp_path):
        config = ExecutionConfig()
        token = CancellationToken()
        token.cancel()

        result = await runner.run(
            spec_files, compose(temp_config, config), config, tmp_path / "run", cancellation=token
        )

        assert result.cancelled is True
        assert result.stdout == ""
        assert not (tmp_path / "run").exists()

    @pytest.mark.asyncio
    async def test_token_reason_kept_from_first_cancel(self):
        token = CancellationToken()

        token.cancel("first")
        token.cancel("second")

        assert token.is_cancelled
        assert token.reason == "first"
