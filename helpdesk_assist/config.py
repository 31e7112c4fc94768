"""
Configuration module for Helpdesk Assist.

Handles all configuration through environment variables with secure defaults.
Credentials are never stored in code; settings are passed explicitly into
each service instead of living in module state.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TicketingConfig:
    """Configuration for the ticketing system REST API (Zammad)."""

    base_url: str = field(
        default_factory=lambda: os.getenv("ZAMMAD_API_URL", "")
    )
    api_token: str = field(
        default_factory=lambda: os.getenv("ZAMMAD_API_TOKEN", "")
    )

    # Internal instances often run with self-signed or expired certificates
    verify_ssl: bool = field(
        default_factory=lambda: _env_flag("ZAMMAD_VERIFY_SSL", "true")
    )

    # Request timeout in seconds
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )

    # Recipient of email-type articles created on behalf of a customer
    support_email: str = field(
        default_factory=lambda: os.getenv("SUPPORT_EMAIL_ADDRESS", "support@example.com")
    )

    default_group: str = field(
        default_factory=lambda: os.getenv("DEFAULT_GROUP", "Support")
    )
    fallback_group_id: int = field(
        default_factory=lambda: int(os.getenv("FALLBACK_GROUP_ID", "1"))
    )
    fallback_customer_role_id: int = field(
        default_factory=lambda: int(os.getenv("FALLBACK_CUSTOMER_ROLE_ID", "3"))
    )

    @property
    def api_base(self) -> str:
        """Base URL of the versioned REST API."""
        return self.base_url.rstrip("/") + "/api/v1"

    def ticket_url(self, ticket_id: int) -> str:
        """Web UI link for a ticket."""
        return f"{self.base_url.rstrip('/')}/#ticket/zoom/{ticket_id}"

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_token)


@dataclass(frozen=True)
class EdenAIConfig:
    """Configuration for the cloud multi-provider endpoint (Eden AI)."""

    api_key: str = field(
        default_factory=lambda: os.getenv("EDEN_AI_API_KEY", "")
    )
    base_url: str = field(
        default_factory=lambda: os.getenv("EDEN_AI_BASE_URL", "https://api.edenai.run/v2")
    )


@dataclass(frozen=True)
class LocalAIConfig:
    """Configuration for a self-hosted OpenAI compatible endpoint (Open WebUI)."""

    url: str = field(
        default_factory=lambda: os.getenv("LOCAL_AI_URL", "")
    )
    api_key: str = field(
        default_factory=lambda: os.getenv("LOCAL_AI_API_KEY", "")
    )
    model: str = field(
        default_factory=lambda: os.getenv("LOCAL_AI_MODEL", "llama3")
    )

    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)


@dataclass(frozen=True)
class LLMConfig:
    """Generation settings shared by all text completion providers."""

    # Provider selector: openai, mistral, mistral-small, claude or local
    model: str = field(
        default_factory=lambda: os.getenv("LLM_MODEL", "openai")
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3"))
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "1000"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "2"))
    )
    timeout: float = field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT", "60"))
    )
    reply_language: str = field(
        default_factory=lambda: os.getenv("REPLY_LANGUAGE", "German")
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""

    ticketing: TicketingConfig = field(default_factory=TicketingConfig)
    eden_ai: EdenAIConfig = field(default_factory=EdenAIConfig)
    local_ai: LocalAIConfig = field(default_factory=LocalAIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    def validate(self, require_ai: bool = False) -> list[str]:
        """
        Validate configuration and return list of errors.

        Args:
            require_ai: Also require a configured text completion provider.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.ticketing.base_url:
            errors.append("ZAMMAD_API_URL is required")
        if not self.ticketing.api_token:
            errors.append("ZAMMAD_API_TOKEN is required")
        if self.ticketing.request_timeout <= 0:
            errors.append("REQUEST_TIMEOUT must be positive")

        if require_ai:
            if self.llm.model == "local":
                if not self.local_ai.is_configured():
                    errors.append("LOCAL_AI_URL and LOCAL_AI_API_KEY are required for local models")
            elif not self.eden_ai.api_key:
                errors.append("EDEN_AI_API_KEY is required for AI features")

        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()
