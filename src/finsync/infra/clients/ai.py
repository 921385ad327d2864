from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import loguru
from loguru import logger
import openai
from openai import AsyncOpenAI

from finsync.core.config import AIConfig


class AIClientError(Exception):
    """Base error for AI backend failures."""


class AINotConfiguredError(AIClientError):
    """Raised when no API key is configured for the AI backend."""


class AIModelNotFoundError(AIClientError):
    """Raised when the backend does not know the requested model."""


class AIResponseError(AIClientError):
    """Raised when the backend answers without usable content."""


class AIClientLogger:
    """Handles all logging for AIClient with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def request(self, model: str, message_count: int) -> None:
        self._logger.bind(model=model, messages=message_count).debug(
            "Requesting chat completion from {} ({} messages)", model, message_count
        )

    def model_fallback(self, model: str, default_model: str) -> None:
        self._logger.bind(model=model, default_model=default_model).warning(
            "Model {} not found, retrying with {}", model, default_model
        )


class AIClient:
    """OpenAI-compatible chat client (OpenRouter by default).

    SDK retries are disabled; callers decide what a failure means.
    """

    def __init__(
        self,
        config: AIConfig,
        *,
        client: Any | None = None,
        logger_instance: AIClientLogger | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._logger = logger_instance or AIClientLogger()

    @property
    def configured(self) -> bool:
        return self._config.configured

    @property
    def config(self) -> AIConfig:
        return self._config

    def _get_client(self) -> Any:
        if not self._config.configured:
            raise AINotConfiguredError("OpenRouter API key not configured")
        if self._client is None:
            headers: dict[str, str] = {}
            if self._config.site_url:
                headers["HTTP-Referer"] = self._config.site_url
            if self._config.site_name:
                headers["X-Title"] = self._config.site_name
            self._client = AsyncOpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
                max_retries=0,
                default_headers=headers or None,
            )
        return self._client

    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        *,
        max_tokens: int = 100,
        temperature: float = 0.7,
    ) -> str:
        """Return the first choice's text for a chat completion.

        A configured model that the backend reports as missing is retried
        once with the default model.

        Raises:
            AINotConfiguredError: No API key
            AIModelNotFoundError: Model unknown to the backend
            AIResponseError: Empty or malformed response
            AIClientError: Any other transport or status failure
        """
        client = self._get_client()
        model = self._config.model or self._config.default_model

        try:
            return await self._create(
                client, model, messages, max_tokens=max_tokens, temperature=temperature
            )
        except AIModelNotFoundError:
            if model == self._config.default_model:
                raise
            self._logger.model_fallback(model, self._config.default_model)

        return await self._create(
            client,
            self._config.default_model,
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    async def _create(
        self,
        client: Any,
        model: str,
        messages: Sequence[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self._logger.request(model, len(messages))
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=list(messages),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.NotFoundError as e:
            raise AIModelNotFoundError(
                f"Model not found: {model}. Try a different model."
            ) from e
        except openai.AuthenticationError as e:
            raise AIClientError(
                "Invalid API key. Check your OPENROUTER_API_KEY."
            ) from e
        except openai.RateLimitError as e:
            raise AIClientError("Rate limit exceeded. Try again later.") from e
        except openai.APITimeoutError as e:
            raise AIClientError("AI request timed out") from e
        except openai.APIStatusError as e:
            raise AIClientError(f"API request failed: {e.status_code}") from e
        except openai.APIError as e:
            raise AIClientError(f"AI request failed: {e}") from e

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise AIResponseError("Unexpected response format from API")
        content = choices[0].message.content
        if not content or not content.strip():
            raise AIResponseError("Empty response from API")
        return str(content)

    async def list_models(self) -> list[str]:
        """Return the model ids the backend advertises."""
        client = self._get_client()
        try:
            page = await client.models.list()
        except openai.APIError as e:
            raise AIClientError(f"Failed to list models: {e}") from e
        return [model.id for model in page.data]


async def check_ai_status(client: AIClient) -> dict[str, Any]:
    """Report whether the AI backend answers; never raises."""
    if not client.configured:
        return {
            "available": False,
            "models": [],
            "message": "AI backend is not configured. Set OPENROUTER_API_KEY.",
        }
    try:
        models = await client.list_models()
    except AIClientError as e:
        logger.bind(error=str(e)).warning("AI status check failed: {}", e)
        return {
            "available": False,
            "models": [],
            "message": f"AI backend is unreachable: {e}",
        }
    return {
        "available": True,
        "models": models,
        "message": "AI backend is reachable and ready",
    }
