"""LLM abstraction layer — model-agnostic text generation.

The synthesis gateway only needs one thing from a provider: given a system
prompt and a user prompt, return the first completion's text. This module
defines that contract (ReasoningEngine) and two implementations:

  OpenAIEngine — chat completions (default provider, model gpt-4.1-mini)
  ClaudeEngine — Anthropic messages API

Provider SDKs are optional extras; each engine imports its SDK lazily.

Also owns ReasoningSettings so provider keys are read from the environment
(or a .env file) in exactly one place.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("automation_agent.reasoning")

DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-6"

PROVIDERS = ("openai", "gpt", "claude", "anthropic")


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------


@dataclass
class Message:
    """A single conversation turn. role is "user" or "assistant"."""

    role: str
    content: str


@dataclass
class EngineResponse:
    """Text completion returned by a provider.

    content:     first candidate's text, None when the provider returned none.
    response_id: provider-assigned id (used as the flow id when present).
    """

    content: str | None
    response_id: str | None = None
    stop_reason: str = "end_turn"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class ReasoningEngine(ABC):
    """Abstract base class for any text-generation provider."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        temperature: float = 0.2,
    ) -> EngineResponse:
        """Send a conversation to the LLM and return its first completion."""
        ...

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Provider/model string for logging, e.g. 'openai/gpt-4.1-mini'."""
        ...


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------


class OpenAIEngine(ReasoningEngine):
    """Reasoning engine backed by the OpenAI chat completions API.

    Requires: pip install 'automation-agent[openai]'
    """

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL) -> None:
        try:
            import openai as _openai
            self._openai = _openai
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for OpenAIEngine. "
                "Install it with: pip install 'automation-agent[openai]'"
            )
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEY is required for OpenAIEngine. "
                "Set it in your environment or .env file."
            )
        self._client = self._openai.AsyncOpenAI(api_key=api_key)
        self._model = model
        logger.info("OpenAIEngine initialized: %s", model)

    @property
    def model_id(self) -> str:
        return f"openai/{self._model}"

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        temperature: float = 0.2,
    ) -> EngineResponse:
        oai_messages: list[dict[str, str]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        oai_messages.extend({"role": m.role, "content": m.content} for m in messages)

        logger.debug("OpenAIEngine.complete: %d messages", len(messages))
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=oai_messages,
            temperature=temperature,
        )
        if not response.choices:
            return EngineResponse(content=None, response_id=response.id)
        choice = response.choices[0]
        return EngineResponse(
            content=choice.message.content,
            response_id=response.id,
            stop_reason=choice.finish_reason or "end_turn",
        )


# ---------------------------------------------------------------------------
# Claude (Anthropic) implementation
# ---------------------------------------------------------------------------


class ClaudeEngine(ReasoningEngine):
    """Reasoning engine backed by Anthropic's Claude API.

    Requires: pip install 'automation-agent[claude]'
    """

    def __init__(self, api_key: str, model: str = DEFAULT_CLAUDE_MODEL) -> None:
        try:
            import anthropic as _anthropic
            self._anthropic = _anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for ClaudeEngine. "
                "Install it with: pip install 'automation-agent[claude]'"
            )
        if not api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY is required for ClaudeEngine. "
                "Set it in your environment or .env file."
            )
        self._client = self._anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        logger.info("ClaudeEngine initialized: %s", model)

    @property
    def model_id(self) -> str:
        return f"anthropic/{self._model}"

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        temperature: float = 0.2,
    ) -> EngineResponse:
        kwargs: dict = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": 4096,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        logger.debug("ClaudeEngine.complete: %d messages", len(messages))
        response = await self._client.messages.create(**kwargs)

        # First text block only; Claude may interleave other block types.
        content_text: str | None = None
        for block in response.content:
            if block.type == "text":
                content_text = block.text
                break

        return EngineResponse(
            content=content_text,
            response_id=response.id,
            stop_reason=response.stop_reason or "end_turn",
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class ReasoningSettings(BaseSettings):
    """Settings for the swappable reasoning engine.

    Environment variables:
      REASONING_ENGINE      — "openai" | "claude" (default: "openai")
      REASONING_MODEL       — model override; unset for provider default
      OPENAI_API_KEY        — required when provider is "openai"
      ANTHROPIC_API_KEY     — required when provider is "claude"
      REASONING_TEMPERATURE — 0.0–1.0 (default: 0.2)

    When the selected provider has no key, synthesis falls back to the
    deterministic demo flow instead of failing.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    provider: str = Field(default="openai", validation_alias="REASONING_ENGINE")
    model: str | None = Field(default=None, validation_alias="REASONING_MODEL")
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="OPENAI_API_KEY",
        repr=False,
    )
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="ANTHROPIC_API_KEY",
        repr=False,
    )
    temperature: float = Field(default=0.2, validation_alias="REASONING_TEMPERATURE")

    @field_validator("provider", mode="before")
    @classmethod
    def lowercase_provider(cls, v: object) -> str:
        return str(v).lower()

    @field_validator("model", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: object) -> str | None:
        if not v:
            return None
        return str(v)

    @field_validator("temperature")
    @classmethod
    def clamp_temperature(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    @property
    def api_key(self) -> str:
        """Key for the selected provider ("" when unset or provider unknown)."""
        match self.provider:
            case "openai" | "gpt":
                return self.openai_api_key.get_secret_value()
            case "claude" | "anthropic":
                return self.anthropic_api_key.get_secret_value()
            case _:
                return ""

    @property
    def provider_known(self) -> bool:
        return self.provider in PROVIDERS

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    @classmethod
    def from_env(cls) -> ReasoningSettings:
        return cls()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_engine(settings: ReasoningSettings) -> ReasoningEngine:
    """Instantiate the configured reasoning engine."""
    match settings.provider:
        case "openai" | "gpt":
            return OpenAIEngine(
                api_key=settings.openai_api_key.get_secret_value(),
                model=settings.model or DEFAULT_OPENAI_MODEL,
            )
        case "claude" | "anthropic":
            return ClaudeEngine(
                api_key=settings.anthropic_api_key.get_secret_value(),
                model=settings.model or DEFAULT_CLAUDE_MODEL,
            )
        case _:
            raise ValueError(
                f"Unknown reasoning engine provider: {settings.provider!r}. "
                f"Valid options: 'openai', 'claude'"
            )
