from __future__ import annotations

from typing import Optional

from anatema import config
from anatema import logger as logger_mod
from anatema.storage import FileStore

from .templates import TaskType

log = logger_mod.get_logger()


class CustomPromptStore:
    """User-edited system prompts, keyed by task type.

    The stored value is a JSON object such as
    ``{"labelGeneration": "...", "generalAdvice": "..."}``. It is read on every
    lookup so edits made by another process apply to the next request. Values
    are used as-is; nothing checks what a custom prompt asks the model to do.
    """

    def __init__(self, store: FileStore, key: str = config.CUSTOM_PROMPTS_KEY):
        self._store = store
        self._key = key

    def load(self) -> dict[str, str]:
        data = self._store.get_json(self._key, {})
        if not isinstance(data, dict):
            log.warning(f"⚠️ Ignoring custom prompts under {self._key!r}: not a JSON object")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def system_message_for(self, task: Optional[TaskType]) -> Optional[str]:
        """Return the override for ``task`` when one is set and non-blank."""

        if task is None:
            return None
        value = self.load().get(TaskType(task).value)
        if value and value.strip():
            return value
        return None

    def save(self, task: TaskType, system_message: str) -> None:
        prompts = self.load()
        prompts[TaskType(task).value] = system_message
        self._store.set_json(self._key, prompts)

    def reset(self, task: TaskType | None = None) -> None:
        """Drop one override, or all of them when ``task`` is None."""

        if task is None:
            self._store.remove_item(self._key)
            return
        prompts = self.load()
        prompts.pop(TaskType(task).value, None)
        self._store.set_json(self._key, prompts)
