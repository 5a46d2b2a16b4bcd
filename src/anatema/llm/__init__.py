"""AI response pipeline: providers, prompt templates, response recovery, retries.

Design goals:
- Keep provider-specific SDKs isolated behind ``generate_completion``.
- Never trust a completion: recover a structured value and validate it.
- Bound every retry loop; return a result envelope instead of raising.

    from anatema.llm import AISettings, RobustPipeline, TaskType, build_provider

    pipeline = RobustPipeline(build_provider(AISettings.from_env()))
    result = pipeline.process_with_retry(TaskType.GENERAL_ADVICE, {...})
"""

from .base import AISettings
from .factory import build_provider
from .pipeline import RetryConfig, RobustPipeline
from .prompts_store import CustomPromptStore
from .templates import PromptTemplate, TaskType, get_template
from .types import LLMMessage, ProcessingResult

__all__ = [
    "AISettings",
    "CustomPromptStore",
    "LLMMessage",
    "ProcessingResult",
    "PromptTemplate",
    "RetryConfig",
    "RobustPipeline",
    "TaskType",
    "build_provider",
    "get_template",
]
