"""
Pytest configuration and shared fixtures for E2E orchestrator tests.

Provides a temporary project layout, a configuration pointing at it and
small Python scripts that stand in for the Playwright and Allure CLIs.
"""

import json
import sys
import textwrap
from pathlib import Path

import pytest

from e2e_orchestrator.core.config import Config
from e2e_orchestrator.execution.models import (
    ExecutionConfig,
    TestCaseReference,
    TestSuite,
)


FAKE_RUNNER_SOURCE = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    args = sys.argv[1:]
    watched = [
        "BASE_URL", "API_BASE_URL", "USERNAME", "WORKERS", "EXECUTION_MODE",
        "USE_GLOBAL_LOGIN", "STORAGE_STATE_PATH", "SKIP_GLOBAL_SETUP",
        "PLAYWRIGHT_HTML_REPORT", "PLAYWRIGHT_JSON_OUTPUT_NAME",
    ]
    print("ARGS " + json.dumps(args), file=sys.stderr, flush=True)
    print("ENV " + json.dumps({k: os.environ.get(k) for k in watched}), file=sys.stderr, flush=True)

    long_line = int(os.environ.get("FAKE_RUNNER_LONG_LINE", "0"))
    if long_line:
        print("x" * long_line, flush=True)

    for index, arg in enumerate(a for a in args if a.endswith(".spec.ts")):
        name = os.path.basename(arg)
        print(f"  ok {index + 1} [chromium] > {name}:3:1 > runs", flush=True)

    time.sleep(float(os.environ.get("FAKE_RUNNER_SLEEP", "0")))
    print("finished", flush=True)
    sys.exit(int(os.environ.get("FAKE_RUNNER_EXIT_CODE", "0")))
    """
)

FAKE_REPORTER_SOURCE = textwrap.dedent(
    """
    import os
    import sys

    args = sys.argv[1:]
    output = args[args.index("-o") + 1]
    os.makedirs(output, exist_ok=True)
    with open(os.path.join(output, "index.html"), "w") as f:
        f.write("<html></html>")
    """
)


@pytest.fixture
def project_root(tmp_path):
    """Temporary project with a tests tree holding a few spec files."""
    tests_dir = tmp_path / "tests"
    for relative in [
        "projects/auth/login.spec.ts",
        "projects/auth/logout.spec.ts",
        "generated/checkout.spec.ts",
        "smoke/homepage.spec.ts",
    ]:
        path = tests_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("import { test } from '@playwright/test';\n")
    return tmp_path


@pytest.fixture
def fake_runner(tmp_path):
    """Script that echoes its arguments and exits as told by its environment."""
    script = tmp_path / "fake_runner.py"
    script.write_text(FAKE_RUNNER_SOURCE)
    return [sys.executable, str(script)]


@pytest.fixture
def fake_reporter(tmp_path):
    """Script that creates the requested report directory."""
    script = tmp_path / "fake_reporter.py"
    script.write_text(FAKE_REPORTER_SOURCE)
    return [sys.executable, str(script)]


@pytest.fixture
def temp_config(project_root, fake_runner, fake_reporter, monkeypatch):
    """Configuration rooted in the temporary project."""
    for name in [
        "CI",
        "E2E_ORCHESTRATOR_PROJECT_ROOT",
        "E2E_ORCHESTRATOR_RESULTS_DIR",
        "E2E_ORCHESTRATOR_RUNNER",
        "E2E_ORCHESTRATOR_REPORTER",
        "E2E_ORCHESTRATOR_LOG_LEVEL",
        "FAKE_RUNNER_EXIT_CODE",
        "FAKE_RUNNER_SLEEP",
        "FAKE_RUNNER_LONG_LINE",
    ]:
        monkeypatch.delenv(name, raising=False)

    return Config(
        project_root=project_root,
        runner_command=fake_runner,
        report_command=fake_reporter,
        log_level="DEBUG",
    )


@pytest.fixture
def sample_suite():
    """Suite referencing two files by identifier and one by explicit path."""
    return TestSuite(
        id="suite-1",
        name="Authentication",
        test_cases=[
            TestCaseReference(id="login"),
            TestCaseReference(name="logout"),
            TestCaseReference(file_path="generated/checkout.spec.ts"),
        ],
    )


@pytest.fixture
def sequential_config():
    return ExecutionConfig()


def parse_runner_args(stderr: str):
    """Arguments the fake runner was invoked with."""
    for line in stderr.splitlines():
        if line.startswith("ARGS "):
            return json.loads(line[len("ARGS "):])
    raise AssertionError(f"runner arguments not found in: {stderr!r}")


def parse_runner_env(stderr: str):
    """Watched environment variables the fake runner saw."""
    for line in stderr.splitlines():
        if line.startswith("ENV "):
            return json.loads(line[len("ENV "):])
    raise AssertionError(f"runner environment not found in: {stderr!r}")
