"""Hub API client for reading and adding repository tags.

This module provides an async wrapper around the Hub HTTP API for:
- Reading a repository's current tags
- Adding a tag by opening a pull request that edits the README metadata
- Checking that the configured token is valid (health checks)

Tags live in the YAML front matter of the repository's README.md (the
model card). Adding a tag never pushes to ``main`` directly: the change is
proposed as a Hub pull request for the owners to review.

Includes retry logic with exponential backoff for API resilience.
"""

import asyncio
import base64
import json
import random
from typing import Any, Dict, List, Optional

import httpx
import structlog
import yaml
from pydantic import BaseModel, Field

from src.tagbot.webhook.models import RepoType


logger = structlog.get_logger(__name__)


README_PATH = "README.md"
FRONT_MATTER_DELIMITER = "---"


class HubAPIError(Exception):
    """Raised when a Hub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from the Hub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class TagUpdateResult(BaseModel):
    """Outcome of an add-tag request.

    Attributes:
        repo_id: Repository id in format "{owner}/{name}".
        tag: The requested tag.
        added: True if a pull request was opened.
        already_present: True if the tag was already on the repository.
        pr_url: URL of the opened pull request, if any.
    """

    repo_id: str
    tag: str
    added: bool = False
    already_present: bool = False
    pr_url: Optional[str] = Field(default=None)

    def summary(self) -> str:
        if self.already_present:
            return f"Tag '{self.tag}' already exists on {self.repo_id}"
        if self.pr_url:
            return f"Opened pull request adding '{self.tag}' to {self.repo_id}: {self.pr_url}"
        return f"Opened pull request adding '{self.tag}' to {self.repo_id}"


def split_front_matter(card: str) -> tuple[Dict[str, Any], str]:
    """Split a model card into its YAML metadata and markdown body.

    Returns:
        (metadata, body). Metadata is empty if the card has no front
        matter block.

    Raises:
        ValueError: If the front matter is not a YAML mapping.
    """
    lines = card.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, card

    for index in range(1, len(lines)):
        if lines[index].strip() == FRONT_MATTER_DELIMITER:
            metadata = yaml.safe_load("".join(lines[1:index])) or {}
            if not isinstance(metadata, dict):
                raise ValueError("Model card metadata is not a mapping")
            return metadata, "".join(lines[index + 1:])

    return {}, card


def add_tag_to_card(card: str, tag: str) -> str:
    """Return the model card text with ``tag`` added to its metadata tags.

    Only the front matter is rewritten; the markdown body is kept as is.
    Adding a tag that is already listed returns the card unchanged.
    """
    metadata, body = split_front_matter(card)

    tags = metadata.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    if tag.lower() in {str(t).lower() for t in tags}:
        return card

    metadata["tags"] = list(tags) + [tag]
    front = yaml.safe_dump(metadata, sort_keys=False, allow_unicode=True)
    if body and not body.startswith("\n"):
        body = "\n" + body
    return f"{FRONT_MATTER_DELIMITER}\n{front}{FRONT_MATTER_DELIMITER}\n{body}"


class HubClient:
    """Async Hub API client with retry logic.

    Attributes:
        token: Hub access token with write access to the target repos.
        base_url: Base URL of the Hub (default: https://huggingface.co).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with HubClient(token="hf_xxx") as client:
        ...     tags = await client.get_repo_tags("owner/model")
    """

    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: Optional[str],
        base_url: str = "https://huggingface.co",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": "hub-tagbot/1.0"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        ``max_retries`` and ``timeout`` override the client defaults for
        this request only.

        Raises:
            HubAPIError: If the request fails after all retries, or the
                         Hub answers with a non-retryable error status.
        """
        last_exception: Optional[Exception] = None
        retries = self.max_retries if max_retries is None else max_retries
        extra: Dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout

        for attempt in range(retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    params=params,
                    content=content,
                    headers=headers,
                    **extra,
                )
            except httpx.RequestError as e:
                last_exception = e
                if attempt < retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Hub request error, retrying",
                        error=str(e),
                        attempt=attempt + 1,
                        max_retries=retries,
                        delay=delay,
                        path=path,
                    )
                    await asyncio.sleep(delay)
                continue

            if response.status_code in self.RETRYABLE_STATUS_CODES and attempt < retries:
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from Hub API",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    max_retries=retries,
                    delay=delay,
                    path=path,
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                logger.error(
                    "Hub API error",
                    status_code=response.status_code,
                    path=path,
                    method=method,
                    response_body=error_body[:500],
                )
                raise HubAPIError(
                    message=f"Hub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "Hub API request failed after all retries",
            path=path,
            method=method,
            max_retries=retries,
        )
        raise HubAPIError(
            message=f"Request failed after {retries} retries: {last_exception}",
            request_url=path,
        )

    @staticmethod
    def _api_path(repo_id: str, repo_type: RepoType) -> str:
        return f"/api/{repo_type.value}s/{repo_id}"

    @staticmethod
    def _raw_path(repo_id: str, repo_type: RepoType, filename: str) -> str:
        prefix = "" if repo_type == RepoType.MODEL else f"{repo_type.value}s/"
        return f"/{prefix}{repo_id}/raw/main/{filename}"

    async def get_repo_tags(
        self,
        repo_id: str,
        repo_type: RepoType = RepoType.MODEL,
    ) -> List[str]:
        """Read the tags currently declared in a repository's card metadata.

        Falls back to the Hub's computed tag list when the repository has
        no card metadata.
        """
        response = await self._request("GET", self._api_path(repo_id, repo_type))
        data = response.json()

        card_data = data.get("cardData") or {}
        tags = card_data.get("tags") if isinstance(card_data, dict) else None
        if tags is None:
            tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]

        result = [str(t) for t in tags]
        logger.debug("Fetched repo tags", repo=repo_id, tag_count=len(result))
        return result

    async def get_model_card(
        self,
        repo_id: str,
        repo_type: RepoType = RepoType.MODEL,
    ) -> str:
        """Fetch README.md from the main branch; empty if it does not exist."""
        try:
            response = await self._request(
                "GET", self._raw_path(repo_id, repo_type, README_PATH)
            )
        except HubAPIError as e:
            if e.status_code == 404:
                return ""
            raise
        return response.text

    async def add_repo_tag(
        self,
        repo_id: str,
        tag: str,
        repo_type: RepoType = RepoType.MODEL,
    ) -> TagUpdateResult:
        """Propose adding ``tag`` to a repository through a Hub pull request.

        The current tags are re-read first; a tag that is already present
        is reported instead of written. This check and the write are not
        atomic: two concurrent calls for the same repo and tag can both
        open a pull request.
        """
        current = await self.get_repo_tags(repo_id, repo_type)
        if tag.lower() in {t.lower() for t in current}:
            return TagUpdateResult(repo_id=repo_id, tag=tag, already_present=True)

        card = await self.get_model_card(repo_id, repo_type)
        updated = add_tag_to_card(card, tag)

        header = {
            "key": "header",
            "value": {
                "summary": f"Add '{tag}' tag",
                "description": (
                    f"This pull request adds the `{tag}` tag to the model card "
                    "metadata, as suggested in a discussion on this repository."
                ),
            },
        }
        file_op = {
            "key": "file",
            "value": {
                "path": README_PATH,
                "encoding": "base64",
                "content": base64.b64encode(updated.encode("utf-8")).decode("ascii"),
            },
        }
        body = "\n".join(json.dumps(line) for line in (header, file_op)).encode("utf-8")

        response = await self._request(
            "POST",
            f"{self._api_path(repo_id, repo_type)}/commit/main",
            params={"create_pr": "1"},
            content=body,
            headers={"Content-Type": "application/x-ndjson"},
        )
        data = response.json() if response.content else {}

        result = TagUpdateResult(
            repo_id=repo_id,
            tag=tag,
            added=True,
            pr_url=data.get("pullRequestUrl"),
        )
        logger.info("Opened tag pull request", repo=repo_id, tag=tag, pr_url=result.pr_url)
        return result

    async def whoami(
        self,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Return the account the token belongs to."""
        response = await self._request(
            "GET", "/api/whoami-v2", max_retries=max_retries, timeout=timeout
        )
        return response.json()
