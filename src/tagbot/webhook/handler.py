"""Hub webhook handler for the tagging bot.

This module provides the WebhookHandler class, which is the synchronous
acceptance path of every delivery:

1. the shared secret sent in the ``X-Webhook-Secret`` header is checked
   before the body is looked at,
2. the body is decoded into a DiscussionEvent,
3. the event is classified as accepted or ignored.

Everything here must stay fast: the Hub expects an acknowledgment well
within its delivery timeout, so no network calls are made on this path.
"""

import hmac
import json
from typing import Any, Dict, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from .models import (
    ACCEPTED_ACTION,
    ACCEPTED_SCOPE,
    Classification,
    DiscussionEvent,
    RepoType,
)

logger = structlog.get_logger(__name__)

SECRET_HEADER = "X-Webhook-Secret"


class AuthError(Exception):
    """Raised when the delivery's shared secret is missing or wrong."""


class ParseError(Exception):
    """Raised when the delivery body is not a well-formed Hub event.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class WebhookHandler:
    """Authenticates, parses and classifies Hub webhook deliveries.

    Attributes:
        secret: The configured shared secret. When unset every delivery
                is rejected.
    """

    def __init__(self, secret: Optional[str]) -> None:
        self.secret = secret

    @property
    def secret_configured(self) -> bool:
        return bool(self.secret)

    def verify_secret(self, provided: Optional[str]) -> bool:
        """Compare the caller-supplied secret against the configured one.

        Uses a constant-time comparison. A missing configured secret
        rejects everything rather than accepting everything.

        Args:
            provided: Value of the secret header, or None if absent.

        Returns:
            True if the delivery may proceed.
        """
        if not self.secret or not provided:
            return False
        return hmac.compare_digest(
            provided.encode("utf-8"),
            self.secret.encode("utf-8"),
        )

    def authenticate(self, provided: Optional[str]) -> None:
        """Raise AuthError unless ``provided`` matches the secret."""
        if not self.verify_secret(provided):
            logger.warning(
                "Rejected webhook delivery",
                secret_present=provided is not None,
                secret_configured=self.secret_configured,
            )
            raise AuthError("Invalid or missing webhook secret")

    def parse_event(self, body: Union[bytes, str, Dict[str, Any]]) -> DiscussionEvent:
        """Decode a raw webhook body into a DiscussionEvent.

        ``event.action`` and ``event.scope`` are always required. For
        events that will be accepted, the repo name must be present and
        the comment, discussion and repo objects must be well typed;
        for other events those parts are read on a best-effort basis.

        Args:
            body: Raw request bytes, a JSON string, or an already
                  decoded payload.

        Returns:
            The parsed event.

        Raises:
            ParseError: If the body is not a well-formed Hub event.
        """
        payload = self._decode(body)

        event_data = payload.get("event")
        if not isinstance(event_data, dict):
            raise ParseError("Missing or invalid 'event' object")

        action = event_data.get("action")
        scope = event_data.get("scope")
        if not isinstance(action, str) or not isinstance(scope, str):
            raise ParseError("'event.action' and 'event.scope' must be strings")

        strict = action == ACCEPTED_ACTION and scope == ACCEPTED_SCOPE

        comment = self._section(payload, "comment", strict)
        discussion = self._section(payload, "discussion", strict)
        repo = self._section(payload, "repo", strict)

        author = comment.get("author")
        author_id = author.get("id") if isinstance(author, dict) else None

        fields = {
            "action": action,
            "scope": scope,
            "comment_content": self._text(comment.get("content"), "comment.content", strict),
            "comment_author_id": self._text(author_id, "comment.author.id", False),
            "discussion_title": self._text(discussion.get("title"), "discussion.title", strict),
            "discussion_num": self._number(discussion.get("num"), "discussion.num", strict),
            "repo_name": self._text(repo.get("name"), "repo.name", strict).strip(),
            "repo_type": self._repo_type(repo.get("type")),
            "is_pull_request": bool(discussion.get("isPullRequest", False)),
        }

        if strict and not fields["repo_name"]:
            raise ParseError("'repo.name' cannot be empty")

        try:
            event = DiscussionEvent(**fields)
        except ValidationError as e:
            raise ParseError(f"Invalid event fields: {e.error_count()} error(s)", cause=e)

        logger.debug(
            "Parsed webhook event",
            action=event.action,
            scope=event.scope,
            discussion=event.discussion_id,
        )
        return event

    def classify(self, event: DiscussionEvent) -> Classification:
        """Decide whether an event is of interest.

        Only newly created discussion comments are processed; every other
        action/scope pair is ignored.
        """
        if event.action != ACCEPTED_ACTION:
            return Classification.ignore(f"action '{event.action}' is not handled")
        if event.scope != ACCEPTED_SCOPE:
            return Classification.ignore(f"scope '{event.scope}' is not handled")
        return Classification.accept()

    def handle(
        self,
        body: Union[bytes, str, Dict[str, Any]],
        provided_secret: Optional[str],
    ) -> Tuple[DiscussionEvent, Classification]:
        """Run the full acceptance path: authenticate, parse, classify.

        Raises:
            AuthError: Before parsing, if the secret does not match.
            ParseError: If the body is malformed.
        """
        self.authenticate(provided_secret)
        event = self.parse_event(body)
        return event, self.classify(event)

    def _decode(self, body: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(body, dict):
            return body
        try:
            payload = json.loads(body)
        except (ValueError, TypeError) as e:
            raise ParseError("Body is not valid JSON", cause=e)
        if not isinstance(payload, dict):
            raise ParseError(
                f"Invalid payload: expected object, got {type(payload).__name__}"
            )
        return payload

    def _section(self, payload: Dict[str, Any], name: str, strict: bool) -> Dict[str, Any]:
        section = payload.get(name)
        if isinstance(section, dict):
            return section
        if strict:
            raise ParseError(f"Missing or invalid '{name}' object")
        return {}

    def _text(self, value: Any, field: str, strict: bool) -> str:
        if value is None:
            if strict:
                raise ParseError(f"Missing '{field}'")
            return ""
        if not isinstance(value, str):
            if strict:
                raise ParseError(f"'{field}' must be a string")
            return ""
        return value

    def _number(self, value: Any, field: str, strict: bool) -> int:
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        if strict and value is not None:
            raise ParseError(f"'{field}' must be a non-negative integer")
        return 0

    def _repo_type(self, value: Any) -> RepoType:
        try:
            return RepoType(value)
        except ValueError:
            return RepoType.MODEL


def create_webhook_handler(secret: Optional[str]) -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler(secret=secret)
