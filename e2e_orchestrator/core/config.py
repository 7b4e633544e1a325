"""
Configuration management for the E2E orchestrator.

Handles environment variables, defaults, and configuration validation
for all orchestrator components.
"""

import os
import shlex
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_RUNNER_COMMAND = ["npx", "playwright", "test"]
DEFAULT_REPORT_COMMAND = ["npx", "allure", "generate"]


@dataclass
class Config:
    """Configuration class for the orchestrator with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Directory paths; unset paths are derived from project_root
    project_root: Path = field(default_factory=lambda: Path.cwd())
    tests_dir: Optional[Path] = field(default=None)
    suites_dir: Optional[Path] = field(default=None)
    results_dir: Optional[Path] = field(default=None)
    allure_results_dir: Optional[Path] = field(default=None)
    data_dir: Optional[Path] = field(default=None)
    logs_dir: Optional[Path] = field(default=None)

    # External tools
    runner_command: List[str] = field(
        default_factory=lambda: list(DEFAULT_RUNNER_COMMAND)
    )
    report_command: List[str] = field(
        default_factory=lambda: list(DEFAULT_REPORT_COMMAND)
    )

    # Execution settings
    test_timeout_ms: int = field(default=30000)
    resolution_cache_ttl: float = field(default=5.0)

    def __post_init__(self):
        """Post-initialization environment overrides and path derivation."""
        if os.getenv("CI", "").lower() == "true" and self.ci_mode is False:
            self.ci_mode = True

        root_env = os.getenv("E2E_ORCHESTRATOR_PROJECT_ROOT")
        if root_env:
            self.project_root = Path(root_env)
        self.project_root = Path(self.project_root)

        results_env = os.getenv("E2E_ORCHESTRATOR_RESULTS_DIR")
        if results_env:
            self.results_dir = Path(results_env)

        runner_env = os.getenv("E2E_ORCHESTRATOR_RUNNER")
        if runner_env:
            self.runner_command = shlex.split(runner_env)
        reporter_env = os.getenv("E2E_ORCHESTRATOR_REPORTER")
        if reporter_env:
            self.report_command = shlex.split(reporter_env)

        log_env = os.getenv("E2E_ORCHESTRATOR_LOG_LEVEL")
        if log_env:
            self.log_level = log_env
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_log_levels:
            self.log_level = "INFO"
        else:
            self.log_level = self.log_level.upper()

        # CI consumers parse logs, so switch to JSON unless set otherwise
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        if self.tests_dir is None:
            self.tests_dir = self.project_root / "tests"
        if self.suites_dir is None:
            self.suites_dir = Path(self.tests_dir) / "TestSuites"
        if self.results_dir is None:
            self.results_dir = self.project_root / "test-results"
        if self.allure_results_dir is None:
            self.allure_results_dir = self.project_root / "allure-results"
        if self.data_dir is None:
            self.data_dir = self.project_root / "data"
        if self.logs_dir is None:
            self.logs_dir = self.project_root / "logs"

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"

    @property
    def status_file(self) -> Path:
        """Path of the shared execution status document."""
        return Path(self.results_dir) / "execution-status.json"

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        return Path(self.logs_dir) / "e2e-orchestrator.log"

    def execution_dir(self, execution_id: Any) -> Path:
        """Directory holding runner output and reports for one execution."""
        return Path(self.results_dir) / str(execution_id)

    def ensure_directories(self) -> None:
        """Create the output directories the orchestrator writes to."""
        for directory in (
            self.results_dir,
            self.allure_results_dir,
            self.data_dir,
            self.logs_dir,
        ):
            Path(directory).mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "project_root": str(self.project_root),
            "tests_dir": str(self.tests_dir),
            "suites_dir": str(self.suites_dir),
            "results_dir": str(self.results_dir),
            "allure_results_dir": str(self.allure_results_dir),
            "data_dir": str(self.data_dir),
            "logs_dir": str(self.logs_dir),
            "runner_command": " ".join(self.runner_command),
            "report_command": " ".join(self.report_command),
            "test_timeout_ms": self.test_timeout_ms,
            "resolution_cache_ttl": self.resolution_cache_ttl,
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        log_level = os.getenv("E2E_ORCHESTRATOR_LOG_LEVEL", "INFO").upper()
        log_format = "json" if ci else "text"

        return cls(
            ci_mode=ci,
            log_level=log_level,
            log_format=log_format,
        )

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level not in valid_log_levels:
            errors.append(
                f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}"
            )

        if self.log_format not in ("text", "json"):
            errors.append(f"Invalid log format: {self.log_format}")

        if not Path(self.tests_dir).exists():
            errors.append(f"tests directory does not exist: {self.tests_dir}")

        if not self.runner_command:
            errors.append("Runner command cannot be empty")

        if self.test_timeout_ms < 1000:
            errors.append(
                f"Test timeout must be at least 1000ms, got {self.test_timeout_ms}"
            )

        if self.resolution_cache_ttl < 0:
            errors.append("Resolution cache TTL cannot be negative")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
