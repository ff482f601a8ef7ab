"""Hub webhook event models for the tagging bot.

This module defines the data models for Hub discussion webhooks and the
classification decision made for each of them.

Hub Webhook Payload Structure (discussion comment event):
{
  "event": {"action": "create", "scope": "discussion.comment"},
  "repo": {"type": "model", "name": "owner/model-name"},
  "discussion": {"num": 4, "title": "Missing tags", "isPullRequest": false},
  "comment": {"content": "tags: pytorch", "author": {"id": "61d2..."}}
}

The models use Pydantic for validation, consistent with the service's
configuration approach in config.py.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


ACCEPTED_ACTION = "create"
ACCEPTED_SCOPE = "discussion.comment"


class RepoType(str, Enum):
    """Hub repository types that can emit discussion webhooks."""

    MODEL = "model"
    DATASET = "dataset"
    SPACE = "space"


class DiscussionEvent(BaseModel):
    """Parsed Hub discussion webhook event.

    Frozen once constructed: the request path hands the event by value to
    the background worker and neither side may change it afterwards.

    Attributes:
        action: The event action (e.g. "create", "update", "delete").
        scope: The event scope (e.g. "discussion.comment", "repo").
        comment_content: Body of the comment that triggered the event.
        comment_author_id: Hub id of the comment author.
        discussion_title: Title of the discussion the comment belongs to.
        discussion_num: Discussion number within the repository.
        repo_name: Full repository id in format "{owner}/{name}".
        repo_type: Kind of repository the discussion lives on.
        is_pull_request: Whether the discussion is a pull request.
    """

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., description="The event action")

    scope: str = Field(..., description="The event scope")

    comment_content: str = Field(
        default="",
        description="Comment body text (may be empty)",
    )

    comment_author_id: str = Field(
        default="",
        description="Hub id of the comment author",
    )

    discussion_title: str = Field(
        default="",
        description="Discussion title text (may be empty)",
    )

    discussion_num: int = Field(
        default=0,
        ge=0,
        description="Discussion number within the repository",
    )

    repo_name: str = Field(
        default="",
        description='Repository id in format "{owner}/{name}"',
    )

    repo_type: RepoType = Field(
        default=RepoType.MODEL,
        description="Kind of repository the discussion lives on",
    )

    is_pull_request: bool = Field(
        default=False,
        description="Whether the discussion is a pull request",
    )

    @property
    def discussion_id(self) -> str:
        """Canonical discussion identifier: "{repo_name}#{discussion_num}"."""
        return f"{self.repo_name}#{self.discussion_num}"


class Classification(BaseModel):
    """Outcome of classifying a parsed event.

    Ignored events are not errors: they are valid deliveries the bot has
    no interest in, and the reason is echoed back to the caller.
    """

    accepted: bool
    reason: Optional[str] = None

    @classmethod
    def accept(cls) -> "Classification":
        return cls(accepted=True)

    @classmethod
    def ignore(cls, reason: str) -> "Classification":
        return cls(accepted=False, reason=reason)
