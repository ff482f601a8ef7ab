"""Hub webhook handling for the tagging bot.

This module receives Hub discussion webhooks and decides what to do with
them. Only ``create`` actions on the ``discussion.comment`` scope are
processed; everything else is acknowledged and ignored.

The shared secret is checked here, before the body is parsed.
"""

from .handler import (
    SECRET_HEADER,
    AuthError,
    ParseError,
    WebhookHandler,
    create_webhook_handler,
)
from .models import Classification, DiscussionEvent, RepoType

__all__ = [
    "SECRET_HEADER",
    "AuthError",
    "Classification",
    "DiscussionEvent",
    "ParseError",
    "RepoType",
    "WebhookHandler",
    "create_webhook_handler",
]
