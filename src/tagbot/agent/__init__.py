"""Tool-calling tagging agent.

- TaggingAgent: drives a chat model through the read/add tag tools
- build_tag_tools: the two tools bound to a HubClient
- ConfigurationError, ToolInvocationError: adapter failures
"""

from src.tagbot.agent.adapter import (
    TAGGING_SYSTEM_PROMPT,
    ConfigurationError,
    TaggingAgent,
    ToolInvocationError,
    build_tagging_instruction,
)
from src.tagbot.agent.tools import ADD_NEW_TAG, GET_CURRENT_TAGS, build_tag_tools

__all__ = [
    "ADD_NEW_TAG",
    "ConfigurationError",
    "GET_CURRENT_TAGS",
    "TAGGING_SYSTEM_PROMPT",
    "TaggingAgent",
    "ToolInvocationError",
    "build_tag_tools",
    "build_tagging_instruction",
]
