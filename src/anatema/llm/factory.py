from __future__ import annotations

import httpx

from .base import PROVIDERS, AISettings, CompletionProvider
from .errors import LLMError
from .openai_client import ChatCompletionsLLM


def build_provider(
    settings: AISettings, *, http_client: httpx.Client | None = None
) -> CompletionProvider:
    """Factory for completion providers.

    Providers:
    - openrouter
    - openai

    Both speak the same chat-completions contract, so they share one client.
    """

    p = settings.provider.lower().strip()
    if p not in PROVIDERS:
        raise LLMError(f"Unknown LLM provider: {settings.provider}")
    return ChatCompletionsLLM(settings, http_client=http_client)
