from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from anatema import config
from anatema import logger as logger_mod
from anatema.storage import FileStore

log = logger_mod.get_logger()

PROVIDERS = ("openrouter", "openai")

_PERSISTED_FIELDS = (
    "provider",
    "openrouter_api_key",
    "openai_api_key",
    "model",
    "enabled",
)


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str = ""
    free: bool = False


OPENROUTER_FREE_MODELS = (
    ModelInfo("meta-llama/llama-3.1-8b-instruct:free", "Llama 3.1 8B (Free)", free=True),
    ModelInfo("meta-llama/llama-3.2-3b-instruct:free", "Llama 3.2 3B (Free)", free=True),
    ModelInfo("mistralai/mistral-7b-instruct:free", "Mistral 7B (Free)", free=True),
    ModelInfo(
        "mistralai/mistral-small-3.2-24b-instruct:free",
        "Mistral Small 3.2 24B (Free)",
        free=True,
    ),
    ModelInfo("deepseek/deepseek-chat-v3-0324:free", "DeepSeek Chat v3 (Free)", free=True),
    ModelInfo("deepseek/deepseek-r1:free", "DeepSeek R1 (Free)", free=True),
    ModelInfo("google/gemini-2.0-flash-exp:free", "Gemini 2.0 Flash (Free)", free=True),
    ModelInfo("qwen/qwen-2.5-7b-instruct:free", "Qwen 2.5 7B (Free)", free=True),
)

OPENAI_MODELS = (
    ModelInfo("gpt-4o", "GPT-4o", "Optimised GPT-4, faster"),
    ModelInfo("gpt-4o-mini", "GPT-4o Mini", "Cheaper GPT-4o"),
    ModelInfo("gpt-4-turbo", "GPT-4 Turbo", "GPT-4 with extended context"),
    ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", "Fast and cheap"),
)


def _mask(key: str) -> str:
    if not key:
        return "MISSING"
    if len(key) <= 12:
        return key[:2] + "..."
    return f"{key[:8]}...{key[-4:]}"


@dataclass
class AISettings:
    """Explicit provider configuration handed to completion providers.

    Values come from the environment (see :mod:`anatema.config`) layered under
    settings persisted in the key-value store. API keys saved as blank strings
    fall back to the environment. Call :meth:`reload` to pick up changes made
    elsewhere; providers read the settings on every call.
    """

    provider: str = "openrouter"
    openrouter_api_key: str = ""
    openai_api_key: str = ""
    model: str = "meta-llama/llama-3.1-8b-instruct:free"
    enabled: bool = False
    timeout_s: float = 60.0
    store: Optional[FileStore] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_env(cls, store: FileStore | None = None) -> "AISettings":
        settings = cls(store=store)
        settings.reload()
        return settings

    def reload(self) -> None:
        env_openrouter = os.getenv("OPENROUTER_API_KEY", config.OPENROUTER_API_KEY)
        env_openai = os.getenv("OPENAI_API_KEY", config.OPENAI_API_KEY)

        self.provider = os.getenv("AI_PROVIDER", config.AI_PROVIDER).lower().strip()
        self.model = os.getenv("AI_MODEL", config.AI_MODEL)
        self.enabled = os.getenv("AI_ENABLED", str(config.AI_ENABLED)).lower() == "true"
        self.timeout_s = float(os.getenv("AI_TIMEOUT_S", config.AI_TIMEOUT_S))
        self.openrouter_api_key = env_openrouter
        self.openai_api_key = env_openai

        saved = self.store.get_json(config.AI_SETTINGS_KEY, {}) if self.store else {}
        if not isinstance(saved, dict):
            log.warning("⚠️ Ignoring persisted AI settings: not a JSON object")
            saved = {}

        for name in ("provider", "model", "enabled"):
            if name in saved:
                setattr(self, name, saved[name])
        self.openrouter_api_key = saved.get("openrouter_api_key") or env_openrouter
        self.openai_api_key = saved.get("openai_api_key") or env_openai

        log.debug(f"AI settings loaded: {self.describe()}")

    def update(self, **changes: Any) -> None:
        unknown = set(changes) - set(_PERSISTED_FIELDS)
        if unknown:
            raise ValueError(f"Unknown AI settings: {sorted(unknown)}")
        for name, value in changes.items():
            setattr(self, name, value)
        if self.store is not None:
            data = {k: getattr(self, k) for k in _PERSISTED_FIELDS}
            self.store.set_json(config.AI_SETTINGS_KEY, data)

    @property
    def api_key(self) -> str:
        if self.provider == "openai":
            return self.openai_api_key
        return self.openrouter_api_key

    def masked_keys(self) -> dict[str, str]:
        return {
            "openrouter": _mask(self.openrouter_api_key),
            "openai": _mask(self.openai_api_key),
        }

    def describe(self) -> dict[str, Any]:
        """Safe summary for logs: keys are masked."""

        return {
            "provider": self.provider,
            "model": self.model,
            "enabled": self.enabled,
            **self.masked_keys(),
        }


class CompletionProvider(Protocol):
    """Turns one prompt into one free-text completion. Must not retry."""

    def generate_completion(
        self, prompt: str, *, system_message: str | None = None
    ) -> str:
        raise NotImplementedError
