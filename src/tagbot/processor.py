"""Background processing of accepted discussion events.

The TagProcessor drives one accepted event through the operation state
machine:

    processing → no_tags     (no candidate tags found, no agent calls)
    processing → error       (agent unavailable, nothing attempted)
    processing → completed   (every candidate tag handed to the agent)

A failure on one tag is stored in that tag's result and never stops the
remaining tags, so ``completed`` means "all attempted", not "all added".
Nothing raised here reaches the webhook caller, who was acknowledged
before processing started; outcomes are visible only through the ledger.
"""

import time
from typing import Iterable, Optional

import structlog

from src.tagbot.agent.adapter import TaggingAgent
from src.tagbot.ledger.models import (
    OperationRecord,
    OperationStatus,
    ToolCallResult,
    make_comment_preview,
)
from src.tagbot.ledger.store import OperationLedger
from src.tagbot.metrics import TaggerMetrics
from src.tagbot.tags.extractor import extract_event_tags
from src.tagbot.webhook.models import DiscussionEvent


logger = structlog.get_logger(__name__)


NO_TAGS_MESSAGE = "No recognizable tags found in the comment or discussion title"
UNAVAILABLE_MESSAGE = "Tagging agent unavailable: Hub token is not configured"


class TagProcessor:
    """Processes accepted events and records the outcome in the ledger.

    Attributes:
        ledger: Ledger holding the operation records.
        agent: Tool-calling agent that adds tags.
        metrics: Optional Prometheus metrics.
        vocabulary: Tags recognized by bare mention; None uses the default.
    """

    def __init__(
        self,
        ledger: OperationLedger,
        agent: TaggingAgent,
        metrics: Optional[TaggerMetrics] = None,
        vocabulary: Optional[Iterable[str]] = None,
    ):
        self.ledger = ledger
        self.agent = agent
        self.metrics = metrics
        self.vocabulary = list(vocabulary) if vocabulary is not None else None

    def open_operation(self, event: DiscussionEvent) -> str:
        """Create the PROCESSING record for an accepted event.

        The record is in the ledger, and visible to readers, before any
        background work starts.

        Returns:
            The new operation id.
        """
        record = OperationRecord(
            repo_name=event.repo_name,
            discussion_num=event.discussion_num,
            author_id=event.comment_author_id,
            comment_preview=make_comment_preview(event.comment_content),
        )
        return self.ledger.append(record)

    async def process(self, event: DiscussionEvent, record_id: str) -> OperationStatus:
        """Run the state machine for one event to a terminal status."""
        started = time.monotonic()
        log = logger.bind(operation_id=record_id, discussion=event.discussion_id)

        tags = extract_event_tags(
            event.comment_content,
            event.discussion_title,
            self.vocabulary,
        )
        self.ledger.set_tags(record_id, tags)
        log.info("Processing operation", tags=tags)

        if not tags:
            status = OperationStatus.NO_TAGS
            self.ledger.finish(record_id, status, NO_TAGS_MESSAGE)
        elif not self.agent.is_available:
            status = OperationStatus.ERROR
            log.error("Cannot process tags", reason=UNAVAILABLE_MESSAGE)
            self.ledger.finish(record_id, status, UNAVAILABLE_MESSAGE)
        else:
            for tag in tags:
                result = await self._process_tag(event, tag, log)
                self.ledger.add_result(record_id, result)
                if self.metrics is not None:
                    self.metrics.record_tag_result(result.succeeded)
            status = OperationStatus.COMPLETED
            self.ledger.finish(record_id, status)

        if self.metrics is not None:
            self.metrics.record_operation(status.value, time.monotonic() - started)
        return status

    def fail(self, record_id: str, message: str) -> None:
        """Mark a record as ERROR after an unexpected worker failure."""
        self.ledger.finish(record_id, OperationStatus.ERROR, message)
        if self.metrics is not None:
            self.metrics.record_operation(OperationStatus.ERROR.value, 0.0)

    async def _process_tag(self, event: DiscussionEvent, tag: str, log) -> ToolCallResult:
        try:
            response = await self.agent.add_tag(event.repo_name, tag, event.repo_type)
        except Exception as e:
            log.warning("Tag processing failed", tag=tag, error=str(e), error_type=type(e).__name__)
            return ToolCallResult(tag=tag, error=str(e) or type(e).__name__)

        log.info("Tag processed", tag=tag, response=response[:200])
        return ToolCallResult(tag=tag, response=response)
