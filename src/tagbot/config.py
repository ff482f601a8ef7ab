"""Tagging bot configuration using pydantic-settings.

This module defines the TaggerSettings class that reads configuration
from environment variables with the TAGBOT_ prefix.

The two credentials are optional on purpose: the service must start
without them so that ``/health`` can report what is missing instead of the
process crashing. The shared secret and Hub token are also read from the
plain ``WEBHOOK_SECRET`` and ``HF_TOKEN`` variables used by Hub Spaces.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaggerSettings(BaseSettings):
    """Tagging bot configuration from environment variables.

    All environment variables are prefixed with TAGBOT_ (e.g., TAGBOT_LLM_MODEL).
    """

    model_config = SettingsConfigDict(
        env_prefix="TAGBOT_",
        case_sensitive=False,
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------
    # Shared secret the Hub sends in the X-Webhook-Secret header
    webhook_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TAGBOT_WEBHOOK_SECRET", "WEBHOOK_SECRET", "webhook_secret"),
    )

    # Hub access token used by the agent's tools to read tags and open PRs
    hf_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TAGBOT_HF_TOKEN", "HF_TOKEN", "hf_token"),
    )

    # Base URL of the Hub
    hub_base_url: str = "https://huggingface.co"

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    # OpenAI-compatible endpoint with tool calling support
    llm_url: str = "https://router.huggingface.co/v1"

    # Model name for the tagging agent
    llm_model: str = "Qwen/Qwen2.5-72B-Instruct"

    # API key for the LLM endpoint; the Hub token is used when unset
    llm_api_key: Optional[str] = None

    llm_timeout_seconds: float = 60.0

    # Maximum model calls per candidate tag
    agent_max_turns: int = 6

    # Upper bound for the Hub check behind GET /health; one attempt, no retries
    health_check_timeout_seconds: float = 5.0

    # -------------------------------------------------------------------------
    # Tag Extraction
    # -------------------------------------------------------------------------
    # Tags recognized when merely mentioned, as a JSON list. Unset uses the
    # built-in list; an empty list turns bare mentions off.
    tag_vocabulary: Optional[List[str]] = None

    # -------------------------------------------------------------------------
    # Scheduling and Ledger
    # -------------------------------------------------------------------------
    worker_count: int = 4

    # Deliveries beyond this many waiting items are rejected with 503
    queue_max_size: int = 100

    # Records retained in memory; unset keeps every record
    ledger_max_records: Optional[int] = None

    # Default number of records returned by GET /operations
    operations_window: int = 50

    # -------------------------------------------------------------------------
    # Logging and Server
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # JSON log lines when true, human-readable console output otherwise
    log_json: bool = True

    host: str = "0.0.0.0"

    port: int = 7860

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("webhook_secret", "hf_token", "llm_api_key")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only credentials as unset."""
        if v is None or not v.strip():
            return None
        return v

    @field_validator("hub_base_url", "llm_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that a URL uses http or https."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("worker_count", "queue_max_size", "operations_window", "agent_max_turns")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("ledger_max_records")
    @classmethod
    def validate_ledger_max_records(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("ledger_max_records must be at least 1")
        return v

    @field_validator("llm_timeout_seconds", "health_check_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("tag_vocabulary")
    @classmethod
    def normalize_vocabulary(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return [t.strip().lower() for t in v if t.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> TaggerSettings:
    """Create and return a TaggerSettings instance from the environment.

    Raises:
        pydantic.ValidationError: If a value is present but invalid.
    """
    return TaggerSettings()
