"""Core components for the E2E orchestrator."""

from .config import Config
from .config_loader import load_config
from .exceptions import (
    OrchestratorError,
    ConfigurationError,
    TestResolutionError,
    ProcessSpawnError,
    StatusTransitionError,
    ExecutionNotFoundError,
    ValidationError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    "Config",
    "load_config",
    "OrchestratorError",
    "ConfigurationError",
    "TestResolutionError",
    "ProcessSpawnError",
    "StatusTransitionError",
    "ExecutionNotFoundError",
    "ValidationError",
    "setup_logging",
    "get_logger",
]
