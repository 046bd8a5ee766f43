"""Service settings for the HTTP API, CLI and reference handlers.

Environment variables:
  AGENT_API_KEY               — bearer token for the HTTP API; unset = open dev mode
  AGENT_LOG_LEVEL             — root log level for entry points (default: INFO)
  RATE_LIMIT_RESOLVE_PER_MIN  — POST /intents/resolve limit per client (default: 10)
  WEBHOOK_TIMEOUT_SECONDS     — HttpWebhookAction timeout (default: 5)
  CORS_ORIGINS                — comma-separated allowed origins

Provider settings (engine, model, keys) live in reasoning.ReasoningSettings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:3001"


@dataclass(frozen=True)
class AgentSettings:
    """Immutable settings loaded from environment variables."""

    api_key: str = field(default="", repr=False)
    log_level: str = "INFO"
    resolve_rate_limit: int = 10
    webhook_timeout: float = 5.0
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://localhost:3001")

    @classmethod
    def from_env(cls) -> AgentSettings:
        return cls(
            api_key=os.getenv("AGENT_API_KEY", ""),
            log_level=os.getenv("AGENT_LOG_LEVEL", "INFO").upper(),
            resolve_rate_limit=int(os.getenv("RATE_LIMIT_RESOLVE_PER_MIN", "10")),
            webhook_timeout=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "5")),
            cors_origins=tuple(
                o.strip()
                for o in os.getenv("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS).split(",")
                if o.strip()
            ),
        )

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def resolve_limit(self) -> str:
        """slowapi limit string for POST /intents/resolve."""
        return f"{self.resolve_rate_limit}/minute"
