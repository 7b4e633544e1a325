"""
E2E Orchestrator - Playwright test suite execution service

Resolves test suites to spec files, drives the external test runner in
sequential or parallel mode, tracks progress in a pollable status store and
triggers report generation when a run finishes.
"""

__version__ = "0.1.0"
__author__ = "E2E Orchestrator Team"

from .core.config import Config
from .core.exceptions import OrchestratorError
from .core.logging_config import setup_logging
from .execution.coordinator import ExecutionCoordinator

__all__ = [
    "Config",
    "OrchestratorError",
    "setup_logging",
    "ExecutionCoordinator",
]
