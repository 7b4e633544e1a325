"""
Runner environment composition.

The external runner only sees its process environment, so the named
environment, the request overrides and the built-in defaults are flattened
into one string mapping here.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from ..core.config import Config
from ..core.logging_config import get_logger
from .models import EnvironmentConfig, ExecutionConfig, ExecutionId

DEFAULT_BASE_URLS = {
    "test": "http://localhost:5050",
    "development": "http://localhost:5050",
    "production": "https://your-prod-url.com",
}
DEFAULT_API_BASE_URLS = {
    "test": "http://localhost:5051",
    "development": "http://localhost:5051",
    "production": "https://your-prod-api-url.com",
}
DEFAULT_USERNAME = "admin"
DEFAULT_PASSWORD = "admin123"
DEFAULT_RETRIES = 1
DEFAULT_BROWSER = "chromium"

SECRET_VARIABLES = {"PASSWORD"}


def _to_env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class EnvironmentComposer:
    """
    Builds the runner's environment variables.

    Precedence, highest first: per-request overrides, the named
    environment's stored variables, then built-in defaults.
    """

    def __init__(self, config: Config):
        self.config = config
        self.logger = get_logger(__name__)

    def compose(
        self,
        environment_config: Optional[EnvironmentConfig],
        execution_config: ExecutionConfig,
        execution_id: Optional[ExecutionId] = None,
    ) -> Dict[str, str]:
        """
        Compose the flat environment for one runner invocation.

        Args:
            environment_config: Named environment, or None for defaults only
            execution_config: Run configuration for this request
            execution_id: Execution the session artifact is namespaced under

        Returns:
            Mapping of environment variable names to string values
        """
        env_config = environment_config or EnvironmentConfig(
            name=execution_config.environment
        )
        env_name = execution_config.environment or env_config.name

        base_url = env_config.get("baseUrl", "BASE_URL") or DEFAULT_BASE_URLS.get(
            env_name, DEFAULT_BASE_URLS["test"]
        )
        api_base_url = env_config.get(
            "apiBaseUrl", "API_BASE_URL", "API_URL"
        ) or DEFAULT_API_BASE_URLS.get(env_name, DEFAULT_API_BASE_URLS["test"])

        browser = execution_config.browser or env_config.get("browser", "BROWSER") or DEFAULT_BROWSER
        if execution_config.headless is not None:
            headless = execution_config.headless
        else:
            stored_headless = env_config.get("headless", "HEADLESS")
            headless = True if stored_headless is None else _to_bool(stored_headless)
        if execution_config.retries is not None:
            retries = execution_config.retries
        else:
            retries = env_config.get("retries", "RETRIES")
            if retries is None:
                retries = DEFAULT_RETRIES

        env = {
            "BASE_URL": base_url,
            "API_BASE_URL": api_base_url,
            "USERNAME": env_config.get("username", "USERNAME") or DEFAULT_USERNAME,
            "PASSWORD": env_config.get("password", "PASSWORD") or DEFAULT_PASSWORD,
            "RETRIES": retries,
            "EXECUTION_MODE": execution_config.mode.value,
            "WORKERS": execution_config.effective_workers,
            "USE_GLOBAL_LOGIN": execution_config.use_global_login,
            "BROWSER": browser,
            "HEADLESS": headless,
            "TAGS": ",".join(execution_config.tags),
            "PARALLEL": execution_config.mode.value == "parallel",
            # Session bootstrapping happens per spec file under the orchestrator
            "SKIP_GLOBAL_SETUP": True,
        }

        timeout = env_config.get("timeout", "TIMEOUT")
        if timeout is not None:
            env["TIMEOUT"] = timeout

        if execution_config.use_global_login and execution_id is not None:
            env["STORAGE_STATE_PATH"] = str(self.session_state_path(execution_id))

        env.update(execution_config.env_overrides)
        composed = {key: _to_env_value(value) for key, value in env.items()}

        self.logger.info(
            f"Composed runner environment for '{env_name}'",
            extra={
                "metadata": {
                    key: ("***" if key in SECRET_VARIABLES else value)
                    for key, value in composed.items()
                }
            },
        )
        return composed

    def session_state_path(self, execution_id: ExecutionId) -> Path:
        """Per-execution location of the reusable browser session artifact."""
        return self.config.execution_dir(execution_id) / "session" / "storage-state.json"
