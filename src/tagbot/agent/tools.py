"""Tools exposed to the tagging agent.

The agent gets exactly two tools, both bound to one HubClient and one
repository type:

- ``get_current_tags(repo_id)``: read the tags currently on a repository
- ``add_new_tag(repo_id, new_tag)``: open a pull request adding a tag

Tool results are plain strings because they are fed back to the model
verbatim as tool messages.
"""

import json
from typing import List

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from src.tagbot.hub.client import HubClient
from src.tagbot.tags.extractor import normalize_tag
from src.tagbot.webhook.models import RepoType


GET_CURRENT_TAGS = "get_current_tags"
ADD_NEW_TAG = "add_new_tag"


class GetCurrentTagsInput(BaseModel):
    repo_id: str = Field(..., description='Repository id, e.g. "owner/model-name"')


class AddNewTagInput(BaseModel):
    repo_id: str = Field(..., description='Repository id, e.g. "owner/model-name"')
    new_tag: str = Field(..., description="The tag to add, lower-case")


def build_tag_tools(hub_client: HubClient, repo_type: RepoType = RepoType.MODEL) -> List[BaseTool]:
    """Create the read and write tools for one repository type."""

    async def get_current_tags(repo_id: str) -> str:
        tags = await hub_client.get_repo_tags(repo_id, repo_type)
        return json.dumps({"repo_id": repo_id, "current_tags": tags})

    async def add_new_tag(repo_id: str, new_tag: str) -> str:
        tag = normalize_tag(new_tag)
        if tag is None:
            return json.dumps({"status": "rejected", "reason": f"'{new_tag}' is not a valid tag"})
        result = await hub_client.add_repo_tag(repo_id, tag, repo_type)
        status = "already_exists" if result.already_present else "pr_opened"
        return json.dumps(
            {"status": status, "message": result.summary(), "pr_url": result.pr_url}
        )

    return [
        StructuredTool.from_function(
            coroutine=get_current_tags,
            name=GET_CURRENT_TAGS,
            description="Get the tags currently set on a Hub repository.",
            args_schema=GetCurrentTagsInput,
        ),
        StructuredTool.from_function(
            coroutine=add_new_tag,
            name=ADD_NEW_TAG,
            description=(
                "Add a new tag to a Hub repository by opening a pull request. "
                "Only call this after checking the current tags."
            ),
            args_schema=AddNewTagInput,
        ),
    ]
