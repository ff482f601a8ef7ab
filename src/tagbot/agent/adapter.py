"""Tool-calling agent that decides whether to add a candidate tag.

For every candidate tag the TaggingAgent sends one natural-language
instruction naming the repository and the tag to a chat model bound to the
two tools in tools.py, then runs the tool loop:

    model -> tool calls -> tool results -> model -> ... -> final text

The final assistant text is returned verbatim. The adapter does not check
whether a tag was actually added; callers store the text as the outcome.

Idempotency is best effort: the instruction asks the model to read the
current tags before writing, and ``add_new_tag`` re-checks before opening a
pull request. Neither check is atomic with the write.

The model is reached through LangChain's ChatOpenAI client, so any
OpenAI-compatible endpoint with tool calling works.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from src.tagbot.agent.tools import build_tag_tools
from src.tagbot.hub.client import HubClient
from src.tagbot.webhook.models import RepoType


logger = structlog.get_logger(__name__)


TAGGING_SYSTEM_PROMPT = """You are a repository tagging assistant for a model hub.

You have two tools:
- get_current_tags(repo_id): returns the tags currently on the repository.
- add_new_tag(repo_id, new_tag): opens a pull request that adds one tag.

Rules:
1. Always call get_current_tags first.
2. If the candidate tag is already present (case-insensitive), do not call add_new_tag.
3. Only add the candidate if it is a meaningful, relevant tag for a machine learning
   repository (a library, task, modality, language or domain). Reject noise words.
4. Never add any tag other than the candidate you were given.
5. Finish with one short sentence stating what you did and why."""


def build_tagging_instruction(repo_id: str, tag: str) -> str:
    """Build the per-tag instruction sent to the agent."""
    return (
        f'Repository: "{repo_id}"\n'
        f'Candidate tag: "{tag}"\n\n'
        "Check the repository's current tags. If the candidate tag is new and "
        "valid, add it. Otherwise leave the repository unchanged."
    )


class ConfigurationError(Exception):
    """Raised when the agent cannot be used, e.g. the Hub token is missing."""


class ToolInvocationError(Exception):
    """Raised when handing one tag to the agent fails.

    Attributes:
        message: Human-readable error description.
        tag: The candidate tag being processed.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, tag: Optional[str] = None, cause: Optional[Exception] = None):
        self.message = message
        self.tag = tag
        self.cause = cause
        super().__init__(message)


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


class TaggingAgent:
    """LLM agent that reads and adds repository tags through two tools.

    Attributes:
        hub_client: Client used by the tools; its token gates availability.
        llm_url: URL of the OpenAI-compatible endpoint.
        model_name: Name of the model to use for inference.
        api_key: Key for the endpoint. Defaults to the Hub token.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature for the LLM.
        max_turns: Maximum number of model calls per tag.
        health_timeout: Upper bound in seconds for one health check.

    Example:
        >>> agent = TaggingAgent(hub_client, llm_url="https://router.huggingface.co/v1",
        ...                      model_name="Qwen/Qwen2.5-72B-Instruct")
        >>> text = await agent.add_tag("owner/model", "pytorch")
    """

    def __init__(
        self,
        hub_client: HubClient,
        llm_url: str,
        model_name: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        temperature: float = 0.0,
        max_turns: int = 6,
        health_timeout: float = 5.0,
        llm: Optional[Any] = None,
    ):
        self.hub_client = hub_client
        self.llm_url = llm_url
        self.model_name = model_name
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.max_turns = max_turns
        self.health_timeout = health_timeout
        self._llm = llm

    @property
    def is_available(self) -> bool:
        """True when the Hub token the tools need is configured."""
        return self.hub_client.has_token

    @property
    def llm(self) -> Any:
        """Get the chat model, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                api_key=self.api_key or self.hub_client.token,
            )
        return self._llm

    async def add_tag(
        self,
        repo_id: str,
        tag: str,
        repo_type: RepoType = RepoType.MODEL,
    ) -> str:
        """Ask the agent to add ``tag`` to ``repo_id`` if it is new and valid.

        Returns:
            The agent's final free-text answer, verbatim.

        Raises:
            ConfigurationError: If the Hub token is not configured.
            ToolInvocationError: If the model call fails or the loop does
                                 not finish within ``max_turns``.
        """
        if not self.is_available:
            raise ConfigurationError("Hub token is not configured")

        tools = build_tag_tools(self.hub_client, repo_type)
        tools_by_name = {t.name: t for t in tools}

        try:
            model = self.llm.bind_tools(tools)
        except Exception as e:
            raise ToolInvocationError(f"Could not bind tools: {e}", tag=tag, cause=e)

        messages: List[BaseMessage] = [
            SystemMessage(content=TAGGING_SYSTEM_PROMPT),
            HumanMessage(content=build_tagging_instruction(repo_id, tag)),
        ]

        log = logger.bind(repo=repo_id, tag=tag)

        for turn in range(1, self.max_turns + 1):
            try:
                response = await model.ainvoke(messages)
            except Exception as e:
                log.warning("Agent model call failed", turn=turn, error=str(e))
                raise ToolInvocationError(f"LLM invocation failed: {e}", tag=tag, cause=e)

            if not isinstance(response, AIMessage):
                raise ToolInvocationError(
                    f"Unexpected response type: {type(response).__name__}", tag=tag
                )

            messages.append(response)

            if not response.tool_calls:
                text = _message_text(response)
                log.info("Agent finished", turns=turn)
                return text

            for call in response.tool_calls:
                messages.append(await self._run_tool(tools_by_name, call, log))

        log.warning("Agent exceeded turn limit", max_turns=self.max_turns)
        raise ToolInvocationError(
            f"Agent did not finish within {self.max_turns} turns", tag=tag
        )

    async def _run_tool(
        self,
        tools_by_name: Dict[str, Any],
        call: Dict[str, Any],
        log: Any,
    ) -> ToolMessage:
        """Execute one tool call; failures are reported back to the model."""
        name = call.get("name", "")
        call_id = call.get("id") or name
        tool = tools_by_name.get(name)

        if tool is None:
            output = f"Error: unknown tool '{name}'"
        else:
            try:
                output = str(await tool.ainvoke(call.get("args") or {}))
            except Exception as e:
                log.warning("Tool call failed", tool=name, error=str(e))
                output = f"Error: {e}"

        log.debug("Tool call", tool=name, output=output[:200])
        return ToolMessage(content=output, tool_call_id=call_id, name=name)

    async def health_check(self) -> bool:
        """Check that the Hub accepts the configured token.

        A single request, abandoned after ``health_timeout`` seconds.

        Returns:
            True if reachable and authorized, False otherwise.
        """
        if not self.is_available:
            return False
        try:
            await asyncio.wait_for(
                self.hub_client.whoami(max_retries=0, timeout=self.health_timeout),
                timeout=self.health_timeout,
            )
            return True
        except Exception as e:
            logger.warning("Agent health check failed", error=str(e) or type(e).__name__)
            return False
