"""Candidate tag extraction for discussion comments and titles."""

from src.tagbot.tags.extractor import (
    RECOGNIZED_TAGS,
    extract_event_tags,
    extract_tags,
    normalize_tag,
)

__all__ = [
    "RECOGNIZED_TAGS",
    "extract_event_tags",
    "extract_tags",
    "normalize_tag",
]
