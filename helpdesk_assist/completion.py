"""
Generative-text providers for Helpdesk Assist.

Two implementations share the TextCompletionProvider interface:
- EdenAIProvider: cloud multi-provider endpoint, provider picked by selector
- LocalAIProvider: self-hosted OpenAI compatible endpoint (Open WebUI)

The provider is chosen once from configuration by get_provider().
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from openai import APITimeoutError, OpenAI, OpenAIError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import AppConfig, EdenAIConfig, LLMConfig, LocalAIConfig
from .errors import CompletionError, ValidationError
from .models import CompletionResult, CompletionUsage


logger = logging.getLogger(__name__)


LOCAL_SELECTOR = "local"

# Selector values accepted from callers mapped to Eden AI provider names
EDEN_PROVIDERS = {
    "openai": "openai",
    "mistral": "mistral",
    "mistral-small": "mistral",
    "claude": "anthropic",
}
DEFAULT_EDEN_PROVIDER = "openai"


ChatHistory = list[dict[str, str]]


class TextCompletionProvider(ABC):
    """Capability to turn a prompt into generated text plus usage."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Optional[ChatHistory] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        """
        Generate text for a prompt.

        Args:
            prompt: The user message.
            system_prompt: Optional instruction framing the conversation.
            history: Earlier messages as {"role", "content"} dicts.
            temperature: Override of the configured temperature.
            max_tokens: Override of the configured token limit.

        Raises:
            CompletionError: If the provider fails or returns no text.
        """


class EdenAIProvider(TextCompletionProvider):
    """
    Cloud provider using the Eden AI chat endpoint.

    Network failures are retried with exponential backoff up to
    LLMConfig.max_retries attempts.
    """

    def __init__(self, config: EdenAIConfig, llm: LLMConfig, selector: str = DEFAULT_EDEN_PROVIDER):
        self._config = config
        self._llm = llm
        self._selector = selector
        self._provider = EDEN_PROVIDERS.get(selector, DEFAULT_EDEN_PROVIDER)

    @property
    def provider(self) -> str:
        return self._provider

    def _post(self, payload: dict) -> dict:
        response = httpx.post(
            f"{self._config.base_url.rstrip('/')}/text/chat",
            json=payload,
            headers={
                "Authorization": f"Bearer {self._config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._llm.timeout,
        )
        response.raise_for_status()
        return response.json()

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Optional[ChatHistory] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        payload = {
            "providers": self._provider,
            "text": prompt,
            "chatbot_global_action": system_prompt or "",
            "previous_history": [
                {"role": message["role"], "message": message["content"]}
                for message in history or []
            ],
            "temperature": self._llm.temperature if temperature is None else temperature,
            "max_tokens": self._llm.max_tokens if max_tokens is None else max_tokens,
        }

        logger.debug(f"Calling Eden AI provider '{self._provider}'")

        retryer = Retrying(
            stop=stop_after_attempt(max(1, self._llm.max_retries)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying Eden AI call after error: {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )

        try:
            data = retryer(self._post, payload)
        except httpx.TimeoutException as e:
            raise CompletionError("Eden AI request timed out", str(e)) from e
        except httpx.HTTPStatusError as e:
            raise CompletionError(
                f"Eden AI returned HTTP {e.response.status_code}", e.response.text
            ) from e
        except httpx.RequestError as e:
            raise CompletionError("Eden AI request failed", str(e)) from e
        except ValueError as e:
            raise CompletionError("Eden AI returned invalid JSON", str(e)) from e

        result = data.get(self._provider) if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise CompletionError("No response received from Eden AI", str(data)[:500])

        text = (result.get("generated_text") or "").strip()
        if not text:
            detail = result.get("error") or result.get("message") or result.get("status") or ""
            raise CompletionError("No response received from Eden AI", str(detail))

        usage = result.get("usage") or {}
        return CompletionResult(
            text=text,
            usage=CompletionUsage(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
                total_tokens=usage.get("total_tokens") or 0,
                cost=result.get("cost") or 0.0,
                currency="USD",
            ),
            model_used=self._selector,
        )


class LocalAIProvider(TextCompletionProvider):
    """
    Self-hosted provider behind an OpenAI compatible API.

    When the configured model is not offered by the endpoint the first
    available model is used instead. Local inference carries no cost.
    """

    def __init__(self, config: LocalAIConfig, llm: LLMConfig):
        self._config = config
        self._llm = llm
        self._client = OpenAI(
            api_key=config.api_key,
            base_url=config.url.rstrip("/") + "/api",
            timeout=llm.timeout,
            max_retries=max(0, llm.max_retries - 1),
        )

        logger.info(f"Initialized local AI provider at {config.url} with model: {config.model}")

    def available_models(self) -> list[str]:
        """Model ids offered by the endpoint."""
        try:
            return [model.id for model in self._client.models.list()]
        except OpenAIError as e:
            logger.warning(f"Could not load available local models: {e}")
            return []

    def resolve_model(self) -> str:
        available = self.available_models()
        if available and self._config.model not in available:
            logger.info(f"Model {self._config.model} not found, using {available[0]}")
            return available[0]
        return self._config.model

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Optional[ChatHistory] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        model = self.resolve_model()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(history or [])
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=self._llm.temperature if temperature is None else temperature,
                max_tokens=self._llm.max_tokens if max_tokens is None else max_tokens,
            )
        except APITimeoutError as e:
            raise CompletionError("Local AI request timed out", str(e)) from e
        except OpenAIError as e:
            raise CompletionError("Local AI request failed", str(e)) from e

        if not response.choices or not response.choices[0].message.content:
            raise CompletionError("No response received from local AI")

        usage = response.usage
        return CompletionResult(
            text=response.choices[0].message.content.strip(),
            usage=CompletionUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
                cost=0.0,
                currency="EUR",
            ),
            model_used=f"local-{model}",
        )


def get_provider(config: AppConfig, selector: Optional[str] = None) -> TextCompletionProvider:
    """
    Select the text completion provider for a call.

    Args:
        config: Application configuration.
        selector: Provider selector; defaults to LLMConfig.model.

    Raises:
        ValidationError: If the selected provider is not configured.
    """
    selector = (selector or config.llm.model).strip().lower()

    if selector == LOCAL_SELECTOR:
        if not config.local_ai.is_configured():
            raise ValidationError(
                "Local AI is not configured",
                "set LOCAL_AI_URL and LOCAL_AI_API_KEY",
            )
        return LocalAIProvider(config.local_ai, config.llm)

    if not config.eden_ai.api_key:
        raise ValidationError("Eden AI API key is not configured", "set EDEN_AI_API_KEY")
    return EdenAIProvider(config.eden_ai, config.llm, selector)


def list_local_models(config: LocalAIConfig, llm: LLMConfig) -> list[str]:
    """List model ids offered by the self-hosted endpoint."""
    if not config.is_configured():
        raise ValidationError("API URL and API key are required")
    return LocalAIProvider(config, llm).available_models()
