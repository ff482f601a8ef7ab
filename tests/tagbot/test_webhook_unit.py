"""Unit tests for WebhookHandler edge cases."""

import json

import pytest

from src.tagbot.webhook import (
    AuthError,
    ParseError,
    RepoType,
    WebhookHandler,
    create_webhook_handler,
)


SECRET = "unit-secret"


@pytest.fixture
def handler() -> WebhookHandler:
    return create_webhook_handler(SECRET)


class TestAuthenticate:
    def test_missing_header_rejected(self, handler):
        with pytest.raises(AuthError):
            handler.authenticate(None)

    def test_empty_header_rejected(self, handler):
        with pytest.raises(AuthError):
            handler.authenticate("")

    def test_prefix_of_secret_rejected(self, handler):
        assert handler.verify_secret(SECRET[:-1]) is False

    def test_empty_configured_secret_fails_closed(self):
        handler = WebhookHandler(secret="")

        assert handler.secret_configured is False
        assert handler.verify_secret("") is False
        assert handler.verify_secret("anything") is False


class TestParseEvent:
    def test_invalid_json(self, handler):
        with pytest.raises(ParseError) as exc_info:
            handler.parse_event(b"{not json")

        assert exc_info.value.cause is not None

    def test_missing_event_object(self, handler):
        with pytest.raises(ParseError):
            handler.parse_event({"repo": {"name": "a/b"}})

    def test_non_string_action(self, handler):
        with pytest.raises(ParseError):
            handler.parse_event({"event": {"action": 1, "scope": "discussion.comment"}})

    def test_accepted_event_requires_comment_object(self, handler, make_payload):
        payload = make_payload()
        payload["comment"] = "not an object"

        with pytest.raises(ParseError):
            handler.parse_event(payload)

    def test_accepted_event_requires_string_content(self, handler, make_payload):
        payload = make_payload()
        payload["comment"]["content"] = 12

        with pytest.raises(ParseError):
            handler.parse_event(payload)

    def test_accepted_event_rejects_negative_discussion_num(self, handler, make_payload):
        payload = make_payload(num=-1)

        with pytest.raises(ParseError):
            handler.parse_event(payload)

    def test_accepted_event_rejects_blank_repo_name(self, handler, make_payload):
        payload = make_payload(repo_name="   ")

        with pytest.raises(ParseError):
            handler.parse_event(payload)

    def test_ignored_event_parses_with_minimal_body(self, handler):
        event = handler.parse_event({"event": {"action": "update", "scope": "repo"}})

        assert event.action == "update"
        assert event.repo_name == ""
        assert event.comment_content == ""
        assert handler.classify(event).accepted is False

    def test_missing_author_defaults_to_empty(self, handler, make_payload):
        payload = make_payload()
        del payload["comment"]["author"]

        event = handler.parse_event(payload)

        assert event.comment_author_id == ""

    def test_unknown_repo_type_defaults_to_model(self, handler, make_payload):
        event = handler.parse_event(make_payload(repo_type="collection"))

        assert event.repo_type == RepoType.MODEL

    def test_dataset_repo_type(self, handler, make_payload):
        event = handler.parse_event(make_payload(repo_type="dataset"))

        assert event.repo_type == RepoType.DATASET

    def test_discussion_id(self, handler, make_payload):
        event = handler.parse_event(make_payload(repo_name="acme/model", num=12))

        assert event.discussion_id == "acme/model#12"

    def test_event_is_frozen(self, handler, make_payload):
        event = handler.parse_event(make_payload())

        with pytest.raises(Exception):
            event.comment_content = "changed"


class TestHandle:
    def test_full_path(self, handler, make_payload):
        body = json.dumps(make_payload()).encode("utf-8")

        event, classification = handler.handle(body, SECRET)

        assert event.repo_name == "acme/widget-model"
        assert classification.accepted is True

    def test_ignored_reason_names_action(self, handler, make_payload):
        event, classification = handler.handle(make_payload(action="delete"), SECRET)

        assert classification.accepted is False
        assert "delete" in classification.reason

    def test_ignored_reason_names_scope(self, handler, make_payload):
        event, classification = handler.handle(make_payload(scope="repo.content"), SECRET)

        assert classification.accepted is False
        assert "repo.content" in classification.reason
