"""Pydantic models for the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.tagbot.webhook.models import RepoType


class WebhookResponse(BaseModel):
    status: str
    operation_id: Optional[str] = None
    repo: Optional[str] = None
    discussion: Optional[int] = None
    reason: Optional[str] = None
    simulated: bool = False


class SimulateRequest(BaseModel):
    """Synthetic discussion comment for exercising the pipeline locally."""

    repo_name: str = Field(..., min_length=1)
    discussion_title: str = ""
    comment_content: str = ""
    author_id: str = "simulated-user"
    discussion_num: int = Field(default=1, ge=0)
    repo_type: RepoType = RepoType.MODEL

    def to_payload(self) -> Dict[str, Any]:
        """Build the payload the Hub would send for this comment."""
        return {
            "event": {"action": "create", "scope": "discussion.comment"},
            "repo": {"type": self.repo_type.value, "name": self.repo_name},
            "discussion": {
                "num": self.discussion_num,
                "title": self.discussion_title,
                "isPullRequest": False,
            },
            "comment": {
                "content": self.comment_content,
                "author": {"id": self.author_id},
            },
        }


class HealthResponse(BaseModel):
    status: str
    webhook_secret_configured: bool
    hub_token_configured: bool
    agent_available: bool
    agent_reachable: bool
    workers_running: bool
    queue_depth: int


class OperationsResponse(BaseModel):
    total_operations: int
    retained_operations: int
    status_counts: Dict[str, int]
    operations: List[Dict[str, Any]]


class ServiceInfo(BaseModel):
    name: str
    version: str
    description: str
    endpoints: Dict[str, str]
