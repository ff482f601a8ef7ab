"""In-memory operation ledger.

The ledger is the only shared mutable structure in the service. It is
constructed once at startup and handed to the scheduler, the processor
and the introspection endpoint; tests build their own instances.

Writers (one worker per record) mutate records only through the ledger.
Readers get serialized copies taken under the same lock, so a reader never
observes a record halfway through an update and never holds a reference a
writer could change underneath it.
"""

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Sequence

import structlog

from src.tagbot.ledger.models import (
    OperationRecord,
    OperationStatus,
    ToolCallResult,
    is_valid_transition,
)


logger = structlog.get_logger(__name__)


class RecordNotFoundError(Exception):
    """Raised when an operation id is not (or no longer) in the ledger."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Operation record not found: {record_id}")


class InvalidTransitionError(Exception):
    """Raised when a status change violates VALID_TRANSITIONS."""

    def __init__(self, from_status: OperationStatus, to_status: OperationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition from {from_status.value} to {to_status.value}"
        )


class OperationLedger:
    """Append-only, optionally bounded record of processing attempts.

    Attributes:
        max_records: Maximum number of records retained. When reached, the
                     oldest record is evicted on append. None keeps every
                     record for the lifetime of the process.
    """

    def __init__(self, max_records: Optional[int] = None) -> None:
        if max_records is not None and max_records < 1:
            raise ValueError("max_records must be at least 1")
        self.max_records = max_records
        self._records: Deque[OperationRecord] = deque()
        self._index: Dict[str, OperationRecord] = {}
        self._total_appended = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def size(self) -> int:
        """Number of records currently retained."""
        return len(self)

    @property
    def total_appended(self) -> int:
        """Number of records appended since startup, evicted ones included."""
        with self._lock:
            return self._total_appended

    def append(self, record: OperationRecord) -> str:
        """Append a fully built record and return its id.

        Raises:
            ValueError: If a record with the same id is already present.
        """
        with self._lock:
            if record.id in self._index:
                raise ValueError(f"Duplicate operation id: {record.id}")
            if self.max_records is not None and len(self._records) >= self.max_records:
                evicted = self._records.popleft()
                self._index.pop(evicted.id, None)
            self._records.append(record)
            self._index[record.id] = record
            self._total_appended += 1

        logger.debug(
            "Operation recorded",
            operation_id=record.id,
            repo=record.repo_name,
            discussion=record.discussion_num,
        )
        return record.id

    def set_tags(self, record_id: str, tags: Sequence[str]) -> None:
        """Store the candidate tags extracted for a record."""
        with self._lock:
            record = self._get_locked(record_id)
            record.extracted_tags = list(tags)

    def add_result(self, record_id: str, result: ToolCallResult) -> None:
        """Attach one per-tag result to a record still in PROCESSING."""
        with self._lock:
            record = self._get_locked(record_id)
            if record.status != OperationStatus.PROCESSING:
                raise InvalidTransitionError(record.status, record.status)
            record.tag_results.append(result)

    def finish(
        self,
        record_id: str,
        status: OperationStatus,
        message: Optional[str] = None,
    ) -> None:
        """Move a record to a terminal status.

        Raises:
            RecordNotFoundError: If the id is unknown or was evicted.
            InvalidTransitionError: If the record is already terminal.
        """
        with self._lock:
            record = self._get_locked(record_id)
            if not is_valid_transition(record.status, status):
                raise InvalidTransitionError(record.status, status)
            record.status = status
            record.message = message
            record.completed_at = datetime.now(timezone.utc)

        logger.info(
            "Operation finished",
            operation_id=record_id,
            status=status.value,
            message=message,
        )

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a serialized copy of one record, or None."""
        with self._lock:
            record = self._index.get(record_id)
            return record.to_dict() if record is not None else None

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return serialized copies of the newest records, oldest first.

        Args:
            limit: Maximum number of records. None returns all retained.
        """
        with self._lock:
            records = list(self._records)
            if limit is not None:
                records = records[-limit:] if limit > 0 else []
            return [record.to_dict() for record in records]

    def count_by_status(self) -> Dict[str, int]:
        """Count retained records per status."""
        counts = {status.value: 0 for status in OperationStatus}
        with self._lock:
            for record in self._records:
                counts[record.status.value] += 1
        return counts

    def _get_locked(self, record_id: str) -> OperationRecord:
        record = self._index.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record
