"""
Durable execution status storage.

One JSON document per orchestrator instance, keyed by execution ID. Every
write replaces the whole document through an atomic rename, and a record
never moves backwards out of a terminal state.
"""

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.exceptions import StatusTransitionError
from ..core.logging_config import get_logger
from ..storage.json_documents import read_json, write_json_atomic
from .models import ExecutionId, ExecutionStatus, StatusRecord, utc_now

STATUS_ORDER = {
    ExecutionStatus.CREATED: 0,
    ExecutionStatus.RUNNING: 1,
    ExecutionStatus.COMPLETED: 2,
    ExecutionStatus.FAILED: 2,
}


class StatusStore:
    """Keyed status records backed by a single JSON document."""

    def __init__(self, status_file: Union[str, Path]):
        self.status_file = Path(status_file)
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    def read(self, execution_id: Union[str, ExecutionId]) -> Optional[StatusRecord]:
        """
        Read the record of one execution.

        Returns:
            The record, or None if the execution is unknown
        """
        data = self.read_document(execution_id)
        if data is None:
            return None
        return StatusRecord.from_document(data)

    def read_document(self, execution_id: Union[str, ExecutionId]) -> Optional[Dict[str, Any]]:
        """Raw persisted form of one record, or None."""
        return read_json(self.status_file).get(str(execution_id))

    def write(self, execution_id: Union[str, ExecutionId], record: StatusRecord) -> StatusRecord:
        """
        Persist a record, enforcing forward-only status transitions.

        Args:
            execution_id: Key of the record
            record: New state of the execution

        Returns:
            The record as written (with ``updated_at`` stamped)

        Raises:
            StatusTransitionError: If the stored record is terminal or the
                new status would move backwards
        """
        key = str(execution_id)
        with self._lock:
            document = read_json(self.status_file)
            current = document.get(key)
            if current is not None:
                self._check_transition(key, ExecutionStatus(current["status"]), record.status)

            stamped = record.model_copy(update={"updated_at": utc_now()})
            document[key] = stamped.to_document()
            write_json_atomic(self.status_file, document)

        self.logger.debug(
            f"Status written: {key} -> {record.status.value}",
            extra={
                "metadata": {
                    "execution_id": key,
                    "status": record.status.value,
                    "current_test": record.current_test,
                }
            },
        )
        return stamped

    def list_ids(self) -> List[str]:
        """Known execution IDs, newest first."""
        document = read_json(self.status_file)
        return sorted(document, key=_id_sort_key, reverse=True)

    @staticmethod
    def _check_transition(key: str, current: ExecutionStatus, requested: ExecutionStatus) -> None:
        if current.is_terminal or STATUS_ORDER[requested] < STATUS_ORDER[current]:
            raise StatusTransitionError(
                f"Cannot change status of {key} from {current.value} to {requested.value}",
                execution_id=key,
                current_status=current.value,
                requested_status=requested.value,
            )


def _id_sort_key(execution_id: str):
    suffix = execution_id.rsplit("_", 1)[-1]
    return (int(suffix) if suffix.isdigit() else -1, execution_id)
