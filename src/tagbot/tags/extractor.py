"""Candidate tag extraction from discussion text.

Tags are pulled from three kinds of markers, all matched
case-insensitively:

- explicit lists: ``tags: pytorch, transformers`` or ``tag: nlp``, up to the
  end of the sentence; list items that are several words are ignored
- hashtags: ``#text-generation``
- bare mentions of a recognized tag, e.g. "fix pytorch bug"

The functions here are pure: the same text always gives the same set.
"""

import re
from typing import FrozenSet, Iterable, List, Optional, Set


RECOGNIZED_TAGS: FrozenSet[str] = frozenset(
    {
        # Libraries and frameworks
        "pytorch",
        "tensorflow",
        "jax",
        "transformers",
        "diffusers",
        "safetensors",
        "onnx",
        "gguf",
        "peft",
        # Tasks
        "text-generation",
        "text-classification",
        "token-classification",
        "question-answering",
        "fill-mask",
        "translation",
        "summarization",
        "feature-extraction",
        "sentence-similarity",
        "zero-shot-classification",
        "text-to-image",
        "image-to-text",
        "image-classification",
        "image-segmentation",
        "object-detection",
        "depth-estimation",
        "video-classification",
        "automatic-speech-recognition",
        "audio-classification",
        "text-to-speech",
        "voice-activity-detection",
        "reinforcement-learning",
        "tabular-classification",
        "tabular-regression",
        "time-series-forecasting",
        "graph-ml",
        "robotics",
        # Domains and modalities
        "computer-vision",
        "nlp",
        "multimodal",
        "audio",
    }
)

MAX_TAG_LENGTH = 50

# "tag: a" / "tags: a, b and c" up to the end of the line or sentence.
_EXPLICIT_PATTERN = re.compile(r"\btags?\s*:\s*([^\n]*)", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")
_HASHTAG_PATTERN = re.compile(r"(?<![\w#])#([a-z0-9][a-z0-9._-]*)", re.IGNORECASE)
_TAG_SHAPE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
_LIST_SEPARATORS = re.compile(r"\s*(?:[,;&]|\band\b|\bor\b)\s*", re.IGNORECASE)


def normalize_tag(raw: str) -> Optional[str]:
    """Normalize a raw token into a tag, or None if it is not tag-shaped.

    Tokens are lower-cased and stripped of trailing punctuation. Pure
    numbers are rejected so that "#12" (a discussion reference) is not
    read as a tag.
    """
    tag = raw.strip().lower().rstrip(".-_")
    if not tag or len(tag) > MAX_TAG_LENGTH:
        return None
    if not _TAG_SHAPE.match(tag) or tag.isdigit():
        return None
    return tag


def _mention_pattern(vocabulary: Iterable[str]) -> "re.Pattern[str]":
    # Longest first so "text-to-image" wins over any shorter overlap.
    alternatives = sorted(vocabulary, key=len, reverse=True)
    body = "|".join(re.escape(tag) for tag in alternatives)
    return re.compile(rf"(?<![\w-])(?:{body})(?![\w-])", re.IGNORECASE)


_DEFAULT_MENTIONS = _mention_pattern(RECOGNIZED_TAGS)


def extract_tags(
    text: Optional[str],
    vocabulary: Optional[Iterable[str]] = None,
) -> Set[str]:
    """Extract the set of candidate tags from a piece of text.

    Args:
        text: Free text such as a comment body or discussion title.
        vocabulary: Tags recognized when merely mentioned. Defaults to
                    RECOGNIZED_TAGS. Explicit lists and hashtags are
                    accepted regardless of the vocabulary.

    Returns:
        Lower-cased, deduplicated tags. Empty when nothing matches.
    """
    if not text:
        return set()

    if vocabulary is None:
        mentions = _DEFAULT_MENTIONS
    else:
        known = {t.lower() for t in vocabulary if t}
        mentions = _mention_pattern(known) if known else None

    tags: Set[str] = set()

    for match in _EXPLICIT_PATTERN.finditer(text):
        listed = _SENTENCE_END.split(match.group(1), maxsplit=1)[0]
        # Items containing spaces are prose, not tags: normalize_tag drops them.
        for item in _LIST_SEPARATORS.split(listed):
            tag = normalize_tag(item)
            if tag:
                tags.add(tag)

    for match in _HASHTAG_PATTERN.finditer(text):
        tag = normalize_tag(match.group(1))
        if tag:
            tags.add(tag)

    if mentions is not None:
        for match in mentions.finditer(text):
            # Unicode case folding can match non-ASCII lookalikes.
            tag = normalize_tag(match.group(0))
            if tag:
                tags.add(tag)

    return tags


def extract_event_tags(
    comment: Optional[str],
    title: Optional[str],
    vocabulary: Optional[Iterable[str]] = None,
) -> List[str]:
    """Union the tags found in a comment body and a discussion title.

    Returns:
        Sorted list of unique tags, so that records and logs show the
        same order for the same input.
    """
    if vocabulary is not None:
        vocabulary = list(vocabulary)
    tags = extract_tags(comment, vocabulary) | extract_tags(title, vocabulary)
    return sorted(tags)
