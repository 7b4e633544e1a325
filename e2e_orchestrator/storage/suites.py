"""
Suite and environment lookup.

Reads test suite and environment definitions from the JSON data directory.
Mutations notify registered listeners so derived caches can be dropped.
"""

import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.exceptions import ConfigurationError
from ..core.logging_config import get_logger
from ..execution.models import EnvironmentConfig, TestSuite, utc_now
from .json_documents import read_json, write_json_atomic

SUITES_FILE = "testSuites.json"
ENVIRONMENTS_FILE = "environments.json"


class SuiteRepository:
    """JSON-file backed access to suites and environments."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self._listeners: List[Callable[[str], None]] = []
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    @property
    def suites_file(self) -> Path:
        return self.data_dir / SUITES_FILE

    @property
    def environments_file(self) -> Path:
        return self.data_dir / ENVIRONMENTS_FILE

    def add_change_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with the suite ID after every mutation."""
        self._listeners.append(listener)

    def list_suites(self) -> List[TestSuite]:
        return [TestSuite.model_validate(s) for s in read_json(self.suites_file, default=list)]

    def get_suite(self, suite_id: str) -> TestSuite:
        """
        Look up a suite by ID.

        Raises:
            ConfigurationError: If no suite has the given ID
        """
        for item in read_json(self.suites_file, default=list):
            if suite_id in (item.get("_id"), item.get("id")):
                return TestSuite.model_validate(item)
        raise ConfigurationError(f"Test suite not found: {suite_id}", setting="suite")

    def save_suite(self, suite: Dict[str, Any]) -> TestSuite:
        """Insert or update a suite definition."""
        parsed = TestSuite.model_validate(suite)
        now = utc_now().isoformat()
        with self._lock:
            suites = read_json(self.suites_file, default=list)
            for index, item in enumerate(suites):
                if parsed.id in (item.get("_id"), item.get("id")):
                    suites[index] = {**item, **suite, "updatedAt": now}
                    break
            else:
                suites.append({"_id": parsed.id, **suite, "createdAt": now, "updatedAt": now})
            write_json_atomic(self.suites_file, suites)

        self._notify(parsed.id)
        return parsed

    def delete_suite(self, suite_id: str) -> bool:
        with self._lock:
            suites = read_json(self.suites_file, default=list)
            remaining = [s for s in suites if suite_id not in (s.get("_id"), s.get("id"))]
            if len(remaining) == len(suites):
                return False
            write_json_atomic(self.suites_file, remaining)

        self._notify(suite_id)
        return True

    def get_environment(self, name: str) -> Optional[EnvironmentConfig]:
        """Find an environment by key, name or ID; None if absent."""
        for item in read_json(self.environments_file, default=list):
            if name in (item.get("key"), item.get("name"), item.get("_id")):
                return EnvironmentConfig.from_mapping(item, name=name)
        return None

    def _notify(self, suite_id: str) -> None:
        self.logger.debug(f"Suite changed: {suite_id}")
        for listener in self._listeners:
            listener(suite_id)
