"""Hub API integration: tag reads and tag pull requests."""

from src.tagbot.hub.client import (
    HubAPIError,
    HubClient,
    TagUpdateResult,
    add_tag_to_card,
    split_front_matter,
)

__all__ = [
    "HubAPIError",
    "HubClient",
    "TagUpdateResult",
    "add_tag_to_card",
    "split_front_matter",
]
