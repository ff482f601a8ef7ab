"""Operation ledger models.

This module defines the audit records kept for every accepted event:
- OperationStatus: Enum of processing statuses
- ToolCallResult: Outcome of handing one candidate tag to the agent
- OperationRecord: Full lifecycle of processing a single accepted event
- VALID_TRANSITIONS: Map defining allowed status transitions

The models use Pydantic for validation, consistent with the service's
approach in webhook/models.py and config.py.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


COMMENT_PREVIEW_LENGTH = 100


class OperationStatus(str, Enum):
    """Processing status of an operation record.

    Status Flow:
        processing → no_tags | error | completed

    All three outcomes are terminal. COMPLETED means every candidate tag
    was attempted, not that every attempt succeeded; per-tag outcomes
    live in ``OperationRecord.tag_results``.

    Attributes:
        PROCESSING: Record created, background work not finished.
        NO_TAGS: No candidate tags were found; no agent calls were made.
        ERROR: The agent could not be used (e.g. missing Hub token).
        COMPLETED: Every candidate tag was handed to the agent.
    """

    PROCESSING = "processing"
    NO_TAGS = "no_tags"
    ERROR = "error"
    COMPLETED = "completed"


VALID_TRANSITIONS: Dict[OperationStatus, List[OperationStatus]] = {
    OperationStatus.PROCESSING: [
        OperationStatus.NO_TAGS,
        OperationStatus.ERROR,
        OperationStatus.COMPLETED,
    ],
    OperationStatus.NO_TAGS: [],
    OperationStatus.ERROR: [],
    OperationStatus.COMPLETED: [],
}


def is_valid_transition(from_status: OperationStatus, to_status: OperationStatus) -> bool:
    """Check if a status transition is allowed by VALID_TRANSITIONS."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def is_terminal_status(status: OperationStatus) -> bool:
    """Check if a status has no outgoing transitions.

    Example:
        >>> is_terminal_status(OperationStatus.COMPLETED)
        True
        >>> is_terminal_status(OperationStatus.PROCESSING)
        False
    """
    return len(VALID_TRANSITIONS.get(status, [])) == 0


def make_comment_preview(content: str, limit: int = COMMENT_PREVIEW_LENGTH) -> str:
    """Truncate a comment body for display in the ledger."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


class ToolCallResult(BaseModel):
    """Outcome of handing one candidate tag to the tagging agent.

    Exactly one of ``response`` and ``error`` is set. ``response`` is the
    agent's free-text summary stored verbatim; nothing is inferred from it.

    Attributes:
        tag: The candidate tag.
        response: The agent's final text, on success.
        error: Error description, when the agent or a tool failed.
        timestamp: When the attempt finished (UTC).
    """

    tag: str = Field(..., min_length=1, description="The candidate tag")

    response: Optional[str] = Field(
        default=None,
        description="Agent's free-text summary, stored verbatim",
    )

    error: Optional[str] = Field(
        default=None,
        description="Error description if the attempt failed",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the attempt finished (UTC timezone)",
    )

    @model_validator(mode="after")
    def _one_outcome(self) -> "ToolCallResult":
        if (self.response is None) == (self.error is None):
            raise ValueError("exactly one of response or error must be set")
        return self

    @property
    def succeeded(self) -> bool:
        return self.error is None


class OperationRecord(BaseModel):
    """Audit entry for the full lifecycle of one accepted event.

    Records are owned by the ledger. Only the worker processing the event
    mutates its record, and it does so through the ledger so that readers
    always see a consistent copy.

    Attributes:
        id: Unique identifier of the operation.
        timestamp: When the event was accepted (UTC).
        repo_name: Repository id in format "{owner}/{name}".
        discussion_num: Discussion number within the repository.
        author_id: Hub id of the comment author.
        extracted_tags: Candidate tags, in processing order.
        comment_preview: Truncated comment body.
        status: Current processing status.
        tag_results: One result per attempted tag.
        message: Explanation for NO_TAGS / ERROR outcomes.
        completed_at: When a terminal status was reached (UTC).
    """

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Unique identifier of the operation",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was accepted (UTC timezone)",
    )

    repo_name: str = Field(..., description='Repository id "{owner}/{name}"')

    discussion_num: int = Field(default=0, ge=0)

    author_id: str = Field(default="")

    extracted_tags: List[str] = Field(default_factory=list)

    comment_preview: str = Field(default="")

    status: OperationStatus = Field(default=OperationStatus.PROCESSING)

    tag_results: List[ToolCallResult] = Field(default_factory=list)

    message: Optional[str] = Field(default=None)

    completed_at: Optional[datetime] = Field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the introspection API (timestamps as ISO strings)."""
        return self.model_dump(mode="json")
