from __future__ import annotations

from typing import Any

import httpx
import openai
from openai import OpenAI

from anatema import config
from anatema import logger as logger_mod

from .base import OPENAI_MODELS, OPENROUTER_FREE_MODELS, AISettings, ModelInfo
from .errors import (
    AuthError,
    HttpStatusError,
    MissingCredentialError,
    ProviderDisabledError,
    ProviderError,
    ProviderNetworkError,
)
from .types import LLMMessage

log = logger_mod.get_logger()

_PROVIDER_LABELS = {"openrouter": "OpenRouter", "openai": "OpenAI"}


class ChatCompletionsLLM:
    """Completion provider for OpenAI-compatible ``/chat/completions`` endpoints.

    Serves both OpenRouter and OpenAI: they share the request/response shape
    and differ only in base URL, key and a couple of headers. The SDK client is
    built per call from the current :class:`AISettings`, so ``settings.reload()``
    takes effect on the next request.

    This class never retries. Retrying is the pipeline's job.
    """

    def __init__(self, settings: AISettings, *, http_client: httpx.Client | None = None):
        self._settings = settings
        self._http_client = http_client

    @property
    def settings(self) -> AISettings:
        return self._settings

    def _label(self) -> str:
        return _PROVIDER_LABELS.get(self._settings.provider, self._settings.provider)

    def _client(self) -> OpenAI:
        s = self._settings
        if not s.api_key:
            raise MissingCredentialError(
                f"Missing {self._label()} API key. Check the AI configuration."
            )

        kwargs: dict[str, Any] = {
            "api_key": s.api_key,
            "timeout": s.timeout_s,
            "max_retries": 0,
        }
        if s.provider == "openai":
            kwargs["base_url"] = config.OPENAI_BASE_URL
        else:
            kwargs["base_url"] = config.OPENROUTER_BASE_URL
            kwargs["default_headers"] = {
                "HTTP-Referer": config.APP_REFERER,
                "X-Title": config.APP_TITLE,
            }
        if self._http_client is not None:
            kwargs["http_client"] = self._http_client
        return OpenAI(**kwargs)

    def _complete(
        self,
        messages: list[LLMMessage],
        *,
        temperature: float = config.COMPLETION_TEMPERATURE,
        max_tokens: int = config.COMPLETION_MAX_TOKENS,
    ) -> str:
        client = self._client()
        label = self._label()
        try:
            resp = client.chat.completions.create(
                model=self._settings.model,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.AuthenticationError as e:
            raise AuthError(
                f"{label} authentication error (401). Check that the API key is "
                f"correct and valid. Details: {e.response.text}",
                status=401,
                body=e.response.text,
            ) from e
        except openai.APIStatusError as e:
            raise HttpStatusError(
                f"{label} API error: {e.status_code} - {e.response.text}",
                status=e.status_code,
                body=e.response.text,
            ) from e
        except openai.APIConnectionError as e:
            raise ProviderNetworkError(f"{label} network error: {e}") from e

        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    def generate_completion(
        self, prompt: str, *, system_message: str | None = None
    ) -> str:
        if not self._settings.enabled:
            raise ProviderDisabledError("AI features are disabled")

        messages: list[LLMMessage] = []
        if system_message:
            messages.append(LLMMessage(role="system", content=system_message))
        messages.append(LLMMessage(role="user", content=prompt))
        return self._complete(messages)

    def test_connection(self) -> bool:
        """Send a tiny prompt; True when the provider returned any text."""

        try:
            text = self._complete(
                [
                    LLMMessage(
                        role="user",
                        content='Test connection. Please respond with "OK".',
                    )
                ],
                temperature=0.1,
                max_tokens=10,
            )
        except ProviderError as e:
            log.error(f"❌ AI connection test failed: {e}")
            return False
        return bool(text)

    def available_models(self) -> tuple[ModelInfo, ...]:
        if self._settings.provider == "openai":
            return OPENAI_MODELS
        return OPENROUTER_FREE_MODELS
