"""
Main CLI interface for the E2E orchestrator.

Provides commands to run a test suite and follow its progress, inspect
execution status and report locations, and show result statistics.
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .core.config import Config
from .core.config_loader import load_config
from .core.exceptions import OrchestratorError
from .core.logging_config import setup_logging
from .execution.coordinator import ExecutionCoordinator
from .execution.models import ExecutionConfig, StatusRecord, TestSuite
from .execution.status_store import StatusStore
from .reporting.history import ResultHistory
from .storage.json_documents import read_json
from .storage.suites import SuiteRepository

DEFAULT_POLL_INTERVAL = 2.0


def _load_config(args: argparse.Namespace) -> Config:
    config = load_config(getattr(args, "config", None))
    if getattr(args, "verbose", False):
        config.log_level = "DEBUG"
    setup_logging(config, correlation_id=f"cli-{uuid.uuid4().hex[:8]}")
    return config


def _build_execution_config(args: argparse.Namespace) -> ExecutionConfig:
    return ExecutionConfig(
        mode=args.mode,
        workers=args.workers,
        browser=args.browser,
        headless=False if args.headed else None,
        retries=args.retries,
        tags=args.tag or [],
        environment=args.env,
        use_global_login=args.global_login,
    )


def _print_progress(record: StatusRecord) -> None:
    print(
        f"   ⏳ {record.status.value}: {record.completed_tests}/{record.total_tests} "
        f"- {record.current_test}"
    )


def _print_summary(record: StatusRecord) -> None:
    if record.status.value == "completed":
        print(f"✅ Execution {record.execution_id} completed")
    else:
        print(f"❌ Execution {record.execution_id} failed")
    if record.outcome is not None:
        print(f"   Outcome: {record.outcome.value}")
    if record.result is not None and record.result.exit_code is not None:
        print(f"   Exit code: {record.result.exit_code}")
    if record.error:
        print(f"   Error: {record.error}")
    for line in record.logs:
        print(f"   • {line}")


async def _run_and_follow(
    coordinator: ExecutionCoordinator,
    suite: TestSuite,
    execution_config: ExecutionConfig,
    suite_repository: SuiteRepository,
    poll_interval: float,
) -> Optional[StatusRecord]:
    environment_config = suite_repository.get_environment(execution_config.environment)
    result = await coordinator.start(suite, execution_config, environment_config)

    if not result.success:
        print(f"❌ Execution could not start: {result.error}")
        for label in result.unresolved:
            print(f"   • Unresolved: {label}")
        return coordinator.get_status(result.execution_id) if result.execution_id else None

    execution_id = result.execution_id
    print(f"🚀 Started {execution_id} ({result.total_tests} test files)")

    last_seen = None
    try:
        while True:
            record = coordinator.get_status(execution_id)
            if record is not None:
                progress = (record.status, record.completed_tests, record.current_test)
                if progress != last_seen:
                    _print_progress(record)
                    last_seen = progress
                if record.status.is_terminal:
                    break
            await asyncio.sleep(poll_interval)
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("🛑 Cancelling execution...")
        await coordinator.cancel(execution_id, reason="interrupted")

    return await coordinator.wait(execution_id)


def cmd_run(args: argparse.Namespace) -> int:
    """Run a test suite and follow it until it finishes."""
    try:
        config = _load_config(args)
        repository = SuiteRepository(config.data_dir)

        if args.suite_file:
            suite_path = Path(args.suite_file)
            if not suite_path.exists():
                print(f"❌ Suite file not found: {suite_path}")
                return 1
            suite = TestSuite.model_validate(read_json(suite_path))
        elif args.suite:
            suite = repository.get_suite(args.suite)
        else:
            print("❌ Either --suite or --suite-file is required")
            return 1

        execution_config = _build_execution_config(args)
        coordinator = ExecutionCoordinator(config, suite_repository=repository)

        print(f"🧪 Running test suite: {suite.name}")
        try:
            record = asyncio.run(
                _run_and_follow(
                    coordinator, suite, execution_config, repository, args.poll_interval
                )
            )
        except KeyboardInterrupt:
            # Before Python 3.11 Ctrl-C lands here; asyncio.run has already
            # cancelled the background run, which records it as cancelled
            print("🛑 Execution interrupted")
            return 130
        if record is None:
            return 1

        _print_summary(record)
        return 0 if record.status.value == "completed" else 1

    except PydanticValidationError as e:
        print(f"❌ Invalid execution options: {e}")
        return 1
    except OrchestratorError as e:
        print(f"❌ Orchestrator error: {e.message}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show the status record of one execution."""
    try:
        config = _load_config(args)
        store = StatusStore(config.status_file)
        document = store.read_document(args.execution_id)
        if document is None:
            print(f"❌ Execution not found: {args.execution_id}")
            return 1

        if args.json:
            print(json.dumps(document, indent=2))
        else:
            record = StatusRecord.from_document(document)
            _print_progress(record)
            if record.status.is_terminal:
                _print_summary(record)
        return 0

    except OrchestratorError as e:
        print(f"❌ Failed to read status: {e.message}")
        return 1


def cmd_list(args: argparse.Namespace) -> int:
    """List known executions, newest first."""
    try:
        config = _load_config(args)
        store = StatusStore(config.status_file)
        execution_ids = store.list_ids()
        if not execution_ids:
            print("ℹ️  No executions recorded")
            return 0

        print("📋 Executions:")
        for execution_id in execution_ids[: args.limit]:
            record = store.read(execution_id)
            suite_name = record.test_suite if record else "?"
            status = record.status.value if record else "?"
            print(f"   {execution_id}  {status:10} {suite_name}")
        return 0

    except OrchestratorError as e:
        print(f"❌ Failed to list executions: {e.message}")
        return 1


def cmd_details(args: argparse.Namespace) -> int:
    """Show report locations of one execution."""
    try:
        config = _load_config(args)
        details = ExecutionCoordinator(config).get_execution_details(args.execution_id)
        if details is None:
            print(f"❌ Execution not found: {args.execution_id}")
            return 1

        print(json.dumps(details, indent=2))
        return 0

    except OrchestratorError as e:
        print(f"❌ Failed to read execution details: {e.message}")
        return 1


def cmd_stats(args: argparse.Namespace) -> int:
    """Show result history statistics."""
    try:
        config = _load_config(args)
        stats = ResultHistory(config.data_dir).get_stats()
        print("📊 Execution statistics:")
        print(f"   Total runs:   {stats['totalRuns']}")
        print(f"   Passed runs:  {stats['passedRuns']}")
        print(f"   Failed runs:  {stats['failedRuns']}")
        print(f"   Success rate: {stats['successRate']}%")
        return 0

    except OrchestratorError as e:
        print(f"❌ Failed to read statistics: {e.message}")
        return 1


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="e2e-orchestrator",
        description="E2E Orchestrator - Playwright test suite execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  e2e-orchestrator run --suite login-suite --mode parallel --workers 4
  e2e-orchestrator run --suite-file suites/smoke.json --global-login
  e2e-orchestrator status execution_1700000000000
  e2e-orchestrator list
  e2e-orchestrator stats
        """,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        help="Path to a YAML or JSON configuration file",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", parents=[common], help="Run a test suite")
    run_parser.add_argument("--suite", help="ID of a stored test suite")
    run_parser.add_argument("--suite-file", help="Path to a JSON suite definition")
    run_parser.add_argument("--env", default="test", help="Environment name (default: test)")
    run_parser.add_argument(
        "--mode",
        choices=["sequential", "parallel"],
        default="sequential",
        help="Execution mode (default: sequential)",
    )
    run_parser.add_argument("--workers", type=int, default=1, help="Worker count for parallel mode")
    run_parser.add_argument("--browser", help="Browser project (default: chromium)")
    run_parser.add_argument("--headed", action="store_true", help="Run with a visible browser")
    run_parser.add_argument("--retries", type=int, help="Retry count for failing tests")
    run_parser.add_argument(
        "--tag",
        action="append",
        help="Only run tests with this tag (repeatable)",
    )
    run_parser.add_argument(
        "--global-login",
        action="store_true",
        help="Authenticate once and reuse the session",
    )
    run_parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds between status polls",
    )
    run_parser.set_defaults(func=cmd_run)

    # Status command
    status_parser = subparsers.add_parser("status", parents=[common], help="Show execution status")
    status_parser.add_argument("execution_id", help="Execution ID")
    status_parser.add_argument("--json", action="store_true", help="Print the raw status record")
    status_parser.set_defaults(func=cmd_status)

    # List command
    list_parser = subparsers.add_parser("list", parents=[common], help="List executions")
    list_parser.add_argument("--limit", type=int, default=20, help="Maximum entries to show")
    list_parser.set_defaults(func=cmd_list)

    # Details command
    details_parser = subparsers.add_parser(
        "details", parents=[common], help="Show report locations of an execution"
    )
    details_parser.add_argument("execution_id", help="Execution ID")
    details_parser.set_defaults(func=cmd_details)

    # Stats command
    stats_parser = subparsers.add_parser("stats", parents=[common], help="Show result statistics")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
