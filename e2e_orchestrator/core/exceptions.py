"""
Base exception classes for the E2E orchestrator.

Provides a hierarchy of exceptions for the error categories that can occur
while resolving, running and tracking a test suite execution.
"""

from typing import Optional, Dict, Any, List


class OrchestratorError(Exception):
    """Base exception class for all orchestrator errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ConfigurationError(OrchestratorError):
    """Raised when a suite, environment or config file cannot be used."""

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        source: Optional[str] = None,
    ):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.setting = setting
        self.source = source
        self.context.update(
            {
                "setting": setting,
                "source": source,
            }
        )


class TestResolutionError(OrchestratorError):
    """Raised when none of a suite's test case references resolve to a file."""

    __test__ = False

    def __init__(
        self,
        message: str,
        suite_name: Optional[str] = None,
        unresolved: Optional[List[str]] = None,
    ):
        super().__init__(message, "TEST_RESOLUTION_FAILED")
        self.suite_name = suite_name
        self.unresolved = unresolved or []
        self.context.update(
            {
                "suite_name": suite_name,
                "unresolved": self.unresolved,
            }
        )


class ProcessSpawnError(OrchestratorError):
    """Raised when the external test runner process cannot be started."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        original_error: Optional[str] = None,
    ):
        super().__init__(message, "PROCESS_SPAWN_FAILED")
        self.command = command or []
        self.original_error = original_error
        self.context.update(
            {
                "command": self.command,
                "original_error": original_error,
            }
        )


class StatusTransitionError(OrchestratorError):
    """Raised when a status write would overwrite a terminal state."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
    ):
        super().__init__(message, "INVALID_STATUS_TRANSITION")
        self.execution_id = execution_id
        self.current_status = current_status
        self.requested_status = requested_status
        self.context.update(
            {
                "execution_id": execution_id,
                "current_status": current_status,
                "requested_status": requested_status,
            }
        )


class ExecutionNotFoundError(OrchestratorError):
    """Raised when an operation targets an unknown or finished execution."""

    def __init__(self, message: str, execution_id: Optional[str] = None):
        super().__init__(message, "EXECUTION_NOT_FOUND")
        self.execution_id = execution_id
        self.context.update({"execution_id": execution_id})


class ValidationError(OrchestratorError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )
