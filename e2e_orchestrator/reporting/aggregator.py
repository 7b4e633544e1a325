"""
Post-run report generation.

Invokes the external report CLI for an execution directory. Report
generation is best-effort: failures are logged and returned, never raised.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.config import Config
from ..core.logging_config import get_logger, log_performance

REPORT_TIMEOUT_SECONDS = 300


@dataclass
class ReportOutcome:
    """Result of one report generation attempt."""

    generated: bool
    report_dir: Path
    error: Optional[str] = None


class ReportAggregator:
    """Generates the Allure report for a finished execution."""

    def __init__(self, config: Config, timeout: float = REPORT_TIMEOUT_SECONDS):
        self.config = config
        self.timeout = timeout
        self.logger = get_logger(__name__)

    def build_command(self, execution_dir: Path) -> List[str]:
        return [
            *self.config.report_command,
            str(self.config.allure_results_dir),
            "--clean",
            "-o",
            str(Path(execution_dir) / "allure-report"),
        ]

    async def generate(self, execution_dir: Path, success: bool) -> ReportOutcome:
        """
        Generate reports for an execution directory.

        Args:
            execution_dir: Directory of the finished execution
            success: Whether the execution passed

        Returns:
            Outcome of the attempt; never raises
        """
        report_dir = Path(execution_dir) / "allure-report"
        command = self.build_command(execution_dir)
        start_time = time.time()
        self.logger.info(
            f"Generating reports for {execution_dir}",
            extra={"metadata": {"success": success, "command": " ".join(command)}},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(self.config.project_root),
            )
            try:
                output, _ = await asyncio.wait_for(
                    process.communicate(), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return self._failed(report_dir, f"Report generation timed out after {self.timeout}s")
        except Exception as e:
            return self._failed(report_dir, f"Report generation error: {e}")

        if process.returncode != 0:
            tail = output.decode("utf-8", errors="replace").strip()[-500:]
            return self._failed(
                report_dir,
                f"Report command exited with code {process.returncode}: {tail}",
            )

        log_performance(self.logger, "report_generation", time.time() - start_time)
        return ReportOutcome(generated=True, report_dir=report_dir)

    def _failed(self, report_dir: Path, message: str) -> ReportOutcome:
        self.logger.warning(f"{message}; continuing without report")
        return ReportOutcome(generated=False, report_dir=report_dir, error=message)
