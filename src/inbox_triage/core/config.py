"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

DEFAULT_CLEANUP_CATEGORIES: tuple[str, ...] = (
    "promotional",
    "social",
    "updates",
    "purchases",
    "spam",
    "trash",
    "noreply",
)


def _split_csv(value: Any) -> Any:
    """Accept comma separated strings for list-valued settings."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity."""

    host: str = Field(default="imap.gmail.com", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Account address")
    app_password: str | None = Field(
        default=None, description="Application specific password"
    )
    mailbox: str = Field(default="INBOX", description="Mailbox fetched for new mail")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    connect_timeout_seconds: float = Field(
        default=15.0, gt=0, description="Bound on reaching the ready state"
    )
    auth_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Bound on the credential exchange"
    )
    idle_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Bound on a single server response"
    )


class SmtpSettings(BaseModel):
    """Settings for outbound delivery."""

    host: str = Field(default="smtp.gmail.com", description="SMTP hostname")
    port: int = Field(default=587, description="SMTP port")
    username: str | None = Field(default=None, description="SMTP login")
    password: str | None = Field(default=None, description="SMTP app password")
    use_tls: bool = Field(
        default=True, description="Use STARTTLS when true, implicit SSL otherwise"
    )
    from_name: str | None = Field(default=None, description="Display name")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Socket timeout")


class LlmSettings(BaseModel):
    """Settings for the local LLM provider."""

    base_url: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=512,
        ge=32,
        description="Maximum tokens to request from the provider",
    )
    fallback_enabled: bool = Field(
        default=True, description="Use deterministic fallback when LLM fails"
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./inbox_triage.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class SyncSettings(BaseModel):
    """Settings controlling the fetch-and-reconcile pipeline."""

    limit: int = Field(default=10, ge=1, description="Most recent matches processed")
    search_criteria: list[str] = Field(
        default_factory=lambda: ["UNSEEN"],
        description="IMAP search keys used when the caller supplies none",
    )
    operation_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Wall-clock bound for one fetch"
    )

    @field_validator("search_criteria", mode="before")
    @classmethod
    def split_search_criteria(cls, value: Any) -> Any:
        """Allow ``UNSEEN,FLAGGED`` style values from the environment."""
        return _split_csv(value)


class CleanupSettings(BaseModel):
    """Settings controlling the bulk cleanup orchestrator."""

    categories: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CLEANUP_CATEGORIES),
        description="Categories cleaned when the caller supplies none",
    )
    operation_timeout_seconds: float = Field(
        default=600.0, gt=0, description="Wall-clock bound for one cleanup run"
    )
    flag_batch_size: int = Field(
        default=500, ge=1, description="UIDs per STORE command"
    )

    @field_validator("categories", mode="before")
    @classmethod
    def split_categories(cls, value: Any) -> Any:
        """Allow ``spam,trash`` style values from the environment."""
        return _split_csv(value)


class AgentSettings(BaseModel):
    """Automatic reply preferences."""

    enabled: bool = Field(default=False, description="Agent master switch")
    auto_reply: bool = Field(
        default=False, description="Send drafted replies for new mail"
    )
    tone: Literal["professional", "casual", "friendly", "formal"] = Field(
        default="professional", description="Tone requested for drafted replies"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)


ENV_PREFIX = "INBOX_TRIAGE_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = (
        {key: value for key, value in os.environ.items() if key.startswith(ENV_PREFIX)}
        if include_environment
        else {}
    )

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AgentSettings",
    "AppSettings",
    "CleanupSettings",
    "DEFAULT_CLEANUP_CATEGORIES",
    "ImapSettings",
    "LlmSettings",
    "LoggingSettings",
    "SmtpSettings",
    "StorageSettings",
    "SyncSettings",
    "load_app_settings",
]
