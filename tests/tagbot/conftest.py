"""Shared fixtures and test doubles for tagging bot tests."""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

from src.tagbot.agent.adapter import ToolInvocationError
from src.tagbot.config import TaggerSettings
from src.tagbot.hub.client import HubClient
from src.tagbot.ledger.models import OperationStatus
from src.tagbot.webhook.models import RepoType


TEST_SECRET = "test-webhook-secret"


class FakeAgent:
    """Stand-in for TaggingAgent that never touches the network.

    Tags listed in ``failures`` raise ToolInvocationError; every other tag
    returns a canned sentence. ``delay`` makes each call yield to the loop.
    """

    def __init__(
        self,
        available: bool = True,
        reachable: bool = True,
        failures: Iterable[str] = (),
        delay: float = 0.0,
    ):
        self.hub_client = HubClient(token="hf_test_token" if available else None)
        self.reachable = reachable
        self.failures = set(failures)
        self.delay = delay
        self.calls: List[Tuple[str, str, RepoType]] = []

    @property
    def is_available(self) -> bool:
        return self.hub_client.has_token

    async def add_tag(self, repo_id: str, tag: str, repo_type: RepoType = RepoType.MODEL) -> str:
        self.calls.append((repo_id, tag, repo_type))
        if self.delay:
            await asyncio.sleep(self.delay)
        if tag in self.failures:
            raise ToolInvocationError(f"simulated tool failure for {tag}", tag=tag)
        return f"Added tag '{tag}' to {repo_id}"

    async def health_check(self) -> bool:
        return self.is_available and self.reachable


def build_payload(
    action: str = "create",
    scope: str = "discussion.comment",
    content: str = "needs tags: pytorch, transformers",
    title: str = "Missing tags",
    repo_name: str = "acme/widget-model",
    num: int = 7,
    author_id: str = "user-123",
    repo_type: str = "model",
) -> Dict[str, Any]:
    return {
        "event": {"action": action, "scope": scope},
        "repo": {"type": repo_type, "name": repo_name},
        "discussion": {"num": num, "title": title, "isPullRequest": False},
        "comment": {"content": content, "author": {"id": author_id}},
    }


def build_settings(**overrides: Any) -> TaggerSettings:
    # Credentials are always passed explicitly so the host environment
    # (HF_TOKEN, WEBHOOK_SECRET) cannot leak into tests.
    values: Dict[str, Any] = {
        "webhook_secret": TEST_SECRET,
        "hf_token": "hf_test_token",
        "llm_api_key": None,
        "worker_count": 2,
        "queue_max_size": 50,
        "ledger_max_records": None,
        "operations_window": 50,
        "log_json": False,
    }
    values.update(overrides)
    return TaggerSettings(**values)


def poll_operation(
    client: Any,
    operation_id: str,
    timeout: float = 5.0,
) -> Optional[Dict[str, Any]]:
    """Poll GET /operations until the operation leaves PROCESSING."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        for record in client.get("/operations").json()["operations"]:
            if record["id"] == operation_id and record["status"] != OperationStatus.PROCESSING.value:
                return record
        time.sleep(0.01)
    return None


@pytest.fixture
def webhook_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def make_agent():
    return FakeAgent


@pytest.fixture
def fake_agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def make_payload():
    return build_payload


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def wait_for_operation():
    return poll_operation
