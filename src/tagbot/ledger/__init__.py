"""Operation ledger: the audit trail of every accepted event.

Models:
- OperationStatus, OperationRecord, ToolCallResult

Store:
- OperationLedger: bounded in-memory ledger with copy-on-read snapshots
"""

from src.tagbot.ledger.models import (
    OperationRecord,
    OperationStatus,
    ToolCallResult,
    is_terminal_status,
    make_comment_preview,
)
from src.tagbot.ledger.store import (
    InvalidTransitionError,
    OperationLedger,
    RecordNotFoundError,
)

__all__ = [
    "InvalidTransitionError",
    "OperationLedger",
    "OperationRecord",
    "OperationStatus",
    "RecordNotFoundError",
    "ToolCallResult",
    "is_terminal_status",
    "make_comment_preview",
]
