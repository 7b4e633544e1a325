"""
JSON document persistence helpers.

All writes go through a temporary file in the target directory followed by
an atomic rename, so a crash mid-write leaves the previous document intact.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Union

from ..core.exceptions import OrchestratorError
from ..core.logging_config import get_logger

logger = get_logger(__name__)


def read_json(path: Union[str, Path], default: Callable[[], Any] = dict) -> Any:
    """
    Read a JSON document.

    Args:
        path: Document path
        default: Factory for the value returned when the file does not exist

    Returns:
        Parsed document, or ``default()`` if the file is missing

    Raises:
        OrchestratorError: If the document exists but cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        return default()

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise OrchestratorError(
            f"Corrupted JSON document {path}: {e}",
            "CORRUPTED_DOCUMENT",
            {"path": str(path)},
        ) from e


def write_json_atomic(path: Union[str, Path], data: Any) -> None:
    """
    Replace a JSON document atomically.

    Args:
        path: Document path
        data: JSON-serializable value
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.debug(f"Wrote JSON document: {path}")
