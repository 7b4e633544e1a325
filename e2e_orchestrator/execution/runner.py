"""
External test runner supervision.

Spawns the browser-automation runner as a subprocess, streams its output as
it arrives and turns the exit into a ProcessResult. Spawn failures and
cancellation are reported in the result rather than raised.
"""

import asyncio
import inspect
import os
import re
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from ..core.config import Config
from ..core.exceptions import ProcessSpawnError
from ..core.logging_config import get_logger, log_performance, log_process_output
from .models import ExecutionConfig, ExecutionMode, ProcessResult

SPAWN_FAILURE_EXIT_CODE = -1
TERMINATE_GRACE_SECONDS = 5.0
STREAM_LIMIT = 1024 * 1024

OutputHandler = Callable[[str, str], object]


class CancellationToken:
    """Signals a running execution that it should stop."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ProcessRunner:
    """
    Runs resolved spec files through the external runner.

    Sequential mode makes a single invocation with one worker so every file
    shares one browser session lifecycle; parallel mode makes a single
    invocation and lets the runner spread files over the requested workers.
    """

    def __init__(
        self,
        config: Config,
        output_handler: Optional[OutputHandler] = None,
    ):
        self.config = config
        self.output_handler = output_handler
        self.logger = get_logger(__name__)

    async def run(
        self,
        file_paths: Sequence[Path],
        env: Dict[str, str],
        config: ExecutionConfig,
        execution_dir: Optional[Path] = None,
        cancellation: Optional[CancellationToken] = None,
        output_handler: Optional[OutputHandler] = None,
    ) -> ProcessResult:
        """
        Run the given files with the strategy selected by ``config.mode``.

        Args:
            file_paths: Unique spec file paths
            env: Composed runner environment
            config: Run configuration
            execution_dir: Directory for runner output and reports
            cancellation: Optional token that terminates the process when set
            output_handler: Optional per-line callback ``(stream, line)``

        Returns:
            Completion record; ``success`` is true only for exit code 0
        """
        execution_dir = Path(execution_dir or self.config.results_dir)
        handler = output_handler or self.output_handler

        if config.mode == ExecutionMode.SEQUENTIAL:
            return await self._run_sequential(
                file_paths, env, config, execution_dir, cancellation, handler
            )
        return await self._run_parallel(
            file_paths, env, config, execution_dir, cancellation, handler
        )

    async def _run_sequential(
        self, file_paths, env, config, execution_dir, cancellation, handler
    ) -> ProcessResult:
        if config.workers > 1:
            self.logger.info(
                f"Sequential mode ignores requested workers={config.workers}; using 1"
            )
        self.logger.info(
            f"Running {len(file_paths)} test files sequentially in one browser session",
            extra={"metadata": {"use_global_login": config.use_global_login}},
        )
        command = self.build_command(file_paths, env, config, execution_dir, workers=1)
        return await self._invoke(command, env, execution_dir, cancellation, handler)

    async def _run_parallel(
        self, file_paths, env, config, execution_dir, cancellation, handler
    ) -> ProcessResult:
        if config.use_global_login:
            self.logger.warning(
                "Parallel mode does not share a browser session between workers"
            )
        self.logger.info(
            f"Running {len(file_paths)} test files with {config.workers} workers"
        )
        command = self.build_command(
            file_paths, env, config, execution_dir, workers=config.workers
        )
        return await self._invoke(command, env, execution_dir, cancellation, handler)

    def build_command(
        self,
        file_paths: Sequence[Path],
        env: Dict[str, str],
        config: ExecutionConfig,
        execution_dir: Path,
        workers: int,
    ) -> List[str]:
        """Build the runner command line."""
        command = list(self.config.runner_command)
        command.extend(str(path) for path in file_paths)
        command.extend(
            [
                "--reporter=list,html,json",
                f"--output={Path(execution_dir) / 'artifacts'}",
                f"--workers={workers}",
                f"--timeout={self.config.test_timeout_ms}",
                f"--retries={env.get('RETRIES', '1')}",
            ]
        )

        if env.get("HEADLESS", "true").lower() != "true":
            command.append("--headed")

        browser = env.get("BROWSER", "chromium")
        if browser != "chromium":
            command.append(f"--project={browser}")

        if config.tags:
            command.append("--grep=" + "|".join(re.escape(tag) for tag in config.tags))

        return command

    def _process_env(self, env: Dict[str, str], execution_dir: Path) -> Dict[str, str]:
        project_root = Path(self.config.project_root)
        return {
            **os.environ,
            "PLAYWRIGHT_HTML_REPORT": str(execution_dir / "html-report"),
            "PLAYWRIGHT_JSON_OUTPUT_NAME": str(execution_dir / "results.json"),
            "NODE_PATH": str(project_root / "node_modules"),
            **env,
        }

    async def _invoke(
        self,
        command: List[str],
        env: Dict[str, str],
        execution_dir: Path,
        cancellation: Optional[CancellationToken],
        handler: Optional[OutputHandler],
    ) -> ProcessResult:
        self.logger.info(f"Executing runner command: {' '.join(command)}")
        start_time = time.time()

        if cancellation is not None and cancellation.is_cancelled:
            return ProcessResult(
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                success=False,
                cancelled=True,
                command=command,
            )

        try:
            process = await self._spawn(command, env, execution_dir)
        except ProcessSpawnError as e:
            self.logger.error(e.message, extra={"metadata": e.to_dict()})
            return ProcessResult(
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                stderr=e.original_error or "",
                success=False,
                spawn_error=e.message,
                duration=time.time() - start_time,
                command=command,
            )

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        pumps = [
            asyncio.ensure_future(self._pump(process.stdout, "stdout", stdout_lines, handler)),
            asyncio.ensure_future(self._pump(process.stderr, "stderr", stderr_lines, handler)),
        ]

        cancelled = False
        try:
            cancelled = await self._wait(process, cancellation)
            await asyncio.gather(*pumps)
        except asyncio.CancelledError:
            await self._terminate(process)
            for pump in pumps:
                pump.cancel()
            raise

        exit_code = process.returncode
        duration = time.time() - start_time
        result = ProcessResult(
            exit_code=exit_code if exit_code is not None else SPAWN_FAILURE_EXIT_CODE,
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            success=exit_code == 0 and not cancelled,
            cancelled=cancelled,
            duration=duration,
            command=command,
        )

        log_performance(
            self.logger,
            "runner_invocation",
            duration,
            exit_code=result.exit_code,
            success=result.success,
            cancelled=cancelled,
        )
        return result

    async def _spawn(
        self, command: List[str], env: Dict[str, str], execution_dir: Path
    ) -> asyncio.subprocess.Process:
        try:
            execution_dir.mkdir(parents=True, exist_ok=True)
            return await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._process_env(env, execution_dir),
                cwd=str(self.config.project_root),
                limit=STREAM_LIMIT,
            )
        except (OSError, ValueError) as e:
            raise ProcessSpawnError(
                f"Failed to start test runner '{command[0]}': {e}",
                command=command,
                original_error=str(e),
            ) from e

    async def _wait(
        self,
        process: asyncio.subprocess.Process,
        cancellation: Optional[CancellationToken],
    ) -> bool:
        """Wait for exit; returns True when the process was cancelled."""
        if cancellation is None:
            await process.wait()
            return False

        wait_task = asyncio.ensure_future(process.wait())
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            await asyncio.wait(
                {wait_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()

        if wait_task.done():
            return False

        self.logger.warning(
            f"Cancelling test runner (pid {process.pid}): {cancellation.reason}"
        )
        await self._terminate(process)
        await wait_task
        return True

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        name: str,
        sink: List[str],
        handler: Optional[OutputHandler],
    ) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # readline drops the buffered chunk of an over-long line; the
                # rest of that line arrives on the next read
                self.logger.warning(
                    f"Discarded part of a {name} line longer than {STREAM_LIMIT} bytes"
                )
                sink.append(f"[{name} line truncated: over {STREAM_LIMIT} bytes]\n")
                continue
            if not raw:
                break
            text = raw.decode("utf-8", errors="replace")
            sink.append(text)
            line = text.rstrip("\r\n")
            log_process_output(self.logger, name, line)
            if handler is not None:
                try:
                    outcome = handler(name, line)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    self.logger.warning(f"Output handler failed on {name} line: {e}")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the runner and everything it spawned."""
        if process.returncode is not None:
            return

        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass

        try:
            process.terminate()
        except ProcessLookupError:
            return

        loop = asyncio.get_running_loop()
        _, alive = await loop.run_in_executor(
            None, lambda: psutil.wait_procs(children, timeout=TERMINATE_GRACE_SECONDS)
        )
        for child in alive:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass

        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            self.logger.warning(f"Runner did not exit after terminate; killing pid {process.pid}")
            process.kill()
