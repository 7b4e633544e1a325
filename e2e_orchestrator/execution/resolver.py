"""
Test file resolution.

Maps a suite's test case references onto concrete spec files, searching the
known test roots in priority order and never returning the same file twice.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..core.config import Config
from ..core.logging_config import get_logger
from .models import TestCaseReference, TestSuite

SPEC_PATTERN = "*.spec.ts"


class ResolutionCache:
    """
    Time-bounded cache of spec files found under a search root.

    Scans are reused for ``ttl`` seconds; ``invalidate`` drops everything and
    must be called whenever suites or test files change.
    """

    def __init__(self, ttl: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Path, Tuple[float, List[Path]]] = {}
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    def get_files(self, root: Path, scanner: Callable[[Path], List[Path]]) -> List[Path]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(root)
            if entry is not None and now - entry[0] < self.ttl:
                return entry[1]

        files = scanner(root)
        with self._lock:
            self._entries[root] = (now, files)
        return files

    def invalidate(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        self.logger.debug(f"Resolution cache invalidated ({count} entries)")


@dataclass
class ResolutionReport:
    """Outcome of resolving one suite."""

    files: List[Path] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    @property
    def has_files(self) -> bool:
        return bool(self.files)


class TestFileResolver:
    """
    Resolves test case references to absolute, existing spec file paths.

    Explicit paths are checked first; otherwise the suite archive, the
    project and generated test directories, and finally the whole tests
    tree are searched for a file whose path contains one of the
    reference's identifiers.
    """

    __test__ = False

    def __init__(self, config: Config, cache: Optional[ResolutionCache] = None):
        self.config = config
        self.cache = cache or ResolutionCache(ttl=config.resolution_cache_ttl)
        self.logger = get_logger(__name__)

    @property
    def search_roots(self) -> List[Path]:
        """Search roots in priority order."""
        tests_dir = Path(self.config.tests_dir)
        return [
            Path(self.config.suites_dir),
            tests_dir / "projects",
            tests_dir / "generated",
            tests_dir,
        ]

    def resolve(self, test_suite: TestSuite) -> ResolutionReport:
        """
        Resolve every reference of a suite.

        Args:
            test_suite: Suite to resolve

        Returns:
            Unique absolute file paths in reference order, plus the labels of
            references that could not be resolved
        """
        report = ResolutionReport()
        seen = set()

        if not test_suite.test_cases:
            self.logger.warning(f"Test suite has no test cases: {test_suite.name}")

        for reference in test_suite.test_cases:
            path = self.resolve_reference(reference)
            if path is None:
                report.unresolved.append(reference.label)
                self.logger.warning(
                    f"Could not find test file for: {reference.label}",
                    extra={
                        "metadata": {
                            "suite": test_suite.name,
                            "file_path": reference.file_path,
                        }
                    },
                )
                continue

            if path in seen:
                report.duplicates.append(str(path))
                self.logger.info(f"Skipping duplicate test file: {path}")
                continue

            seen.add(path)
            report.files.append(path)

        self.logger.info(
            f"Resolved {len(report.files)} unique test files for suite: {test_suite.name}",
            extra={
                "metadata": {
                    "suite": test_suite.name,
                    "references": len(test_suite.test_cases),
                    "resolved": len(report.files),
                    "unresolved": len(report.unresolved),
                    "duplicates": len(report.duplicates),
                }
            },
        )
        return report

    def resolve_reference(self, reference: TestCaseReference) -> Optional[Path]:
        """Resolve a single reference, or return None."""
        if reference.file_path:
            explicit = self._explicit_path(reference.file_path)
            if explicit is not None:
                return explicit
            self.logger.debug(f"Explicit test file not found: {reference.file_path}")

        identifiers = reference.identifiers
        if not identifiers:
            return None

        for root in self.search_roots:
            if not root.is_dir():
                continue
            for candidate in self.cache.get_files(root, self._scan):
                relative = self._relative_to_tests(candidate)
                if any(identifier in relative for identifier in identifiers):
                    return candidate

        return None

    def _explicit_path(self, file_path: str) -> Optional[Path]:
        path = Path(file_path)
        candidates = [path] if path.is_absolute() else [
            Path(self.config.tests_dir) / path,
            Path(self.config.project_root) / path,
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve()
        return None

    def _relative_to_tests(self, path: Path) -> str:
        # Match against the path below the tests root so directory names
        # outside the project never produce a hit.
        try:
            return path.relative_to(Path(self.config.tests_dir).resolve()).as_posix()
        except ValueError:
            return path.name

    @staticmethod
    def _scan(root: Path) -> List[Path]:
        return sorted(p.resolve() for p in root.rglob(SPEC_PATTERN) if p.is_file())
