"""
Unit tests for runner environment composition.
"""

import pytest

from e2e_orchestrator.execution.environment import EnvironmentComposer
from e2e_orchestrator.execution.models import (
    EnvironmentConfig,
    ExecutionConfig,
    ExecutionId,
)


@pytest.fixture
def composer(temp_config):
    return EnvironmentComposer(temp_config)


class TestEnvironmentComposer:
    """Test cases for EnvironmentComposer."""

    def test_defaults_without_environment(self, composer):
        env = composer.compose(None, ExecutionConfig())

        assert env["BASE_URL"] == "http://localhost:5050"
        assert env["API_BASE_URL"] == "http://localhost:5051"
        assert env["USERNAME"] == "admin"
        assert env["PASSWORD"] == "admin123"
        assert env["RETRIES"] == "1"
        assert env["BROWSER"] == "chromium"
        assert env["HEADLESS"] == "true"
        assert env["EXECUTION_MODE"] == "sequential"
        assert env["WORKERS"] == "1"
        assert env["USE_GLOBAL_LOGIN"] == "false"
        assert env["PARALLEL"] == "false"
        assert env["SKIP_GLOBAL_SETUP"] == "true"
        assert "STORAGE_STATE_PATH" not in env
        assert all(isinstance(v, str) for v in env.values())

    def test_environment_name_defaults(self, composer):
        env = composer.compose(None, ExecutionConfig(environment="production"))

        assert env["BASE_URL"] == "https://your-prod-url.com"
        assert env["API_BASE_URL"] == "https://your-prod-api-url.com"

    def test_unknown_environment_name_uses_test_defaults(self, composer):
        env = composer.compose(None, ExecutionConfig(environment="qa-7"))

        assert env["BASE_URL"] == "http://localhost:5050"

    def test_stored_variables_override_defaults(self, composer):
        environment = EnvironmentConfig(
            name="staging",
            variables={
                "baseUrl": "https://staging.example.com",
                "API_URL": "https://api.staging.example.com",
                "username": "qa",
                "password": "s3cret",
                "retries": 3,
                "timeout": 60000,
                "headless": "false",
            },
        )

        env = composer.compose(environment, ExecutionConfig(environment="staging"))

        assert env["BASE_URL"] == "https://staging.example.com"
        assert env["API_BASE_URL"] == "https://api.staging.example.com"
        assert env["USERNAME"] == "qa"
        assert env["PASSWORD"] == "s3cret"
        assert env["RETRIES"] == "3"
        assert env["TIMEOUT"] == "60000"
        assert env["HEADLESS"] == "false"

    def test_request_overrides_stored_variables(self, composer):
        environment = EnvironmentConfig(
            variables={"browser": "webkit", "retries": 3, "headless": True}
        )
        config = ExecutionConfig(browser="firefox", retries=0, headless=False)

        env = composer.compose(environment, config)

        assert env["BROWSER"] == "firefox"
        assert env["RETRIES"] == "0"
        assert env["HEADLESS"] == "false"

    def test_parallel_mode(self, composer):
        env = composer.compose(None, ExecutionConfig(mode="parallel", workers=4, tags=["@smoke", "@auth"]))

        assert env["EXECUTION_MODE"] == "parallel"
        assert env["WORKERS"] == "4"
        assert env["PARALLEL"] == "true"
        assert env["TAGS"] == "@smoke,@auth"

    def test_sequential_reports_one_worker(self, composer):
        env = composer.compose(None, ExecutionConfig(mode="sequential", workers=3))

        assert env["WORKERS"] == "1"

    def test_session_state_namespaced_per_execution(self, composer, temp_config):
        config = ExecutionConfig(use_global_login=True)
        first = composer.compose(None, config, ExecutionId("execution_1"))
        second = composer.compose(None, config, ExecutionId("execution_2"))

        assert first["USE_GLOBAL_LOGIN"] == "true"
        assert first["STORAGE_STATE_PATH"] == str(
            temp_config.results_dir / "execution_1" / "session" / "storage-state.json"
        )
        assert first["STORAGE_STATE_PATH"] != second["STORAGE_STATE_PATH"]

    def test_env_overrides_applied_last(self, composer):
        config = ExecutionConfig(env_overrides={"BASE_URL": "http://override", "FEATURE_FLAG": "on"})

        env = composer.compose(EnvironmentConfig(variables={"baseUrl": "http://stored"}), config)

        assert env["BASE_URL"] == "http://override"
        assert env["FEATURE_FLAG"] == "on"

    def test_password_masked_in_logs(self, composer, caplog):
        environment = EnvironmentConfig(variables={"password": "hunter2"})

        with caplog.at_level("INFO", logger="e2e_orchestrator.execution.environment"):
            composer.compose(environment, ExecutionConfig())

        metadata = caplog.records[-1].metadata
        assert metadata["PASSWORD"] == "***"
        assert "hunter2" not in caplog.text
