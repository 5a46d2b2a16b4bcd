from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from anatema import logger as logger_mod

from .base import CompletionProvider
from .prompts_store import CustomPromptStore
from .recovery import parse_response
from .templates import PromptTemplate, TaskType, get_template
from .types import ProcessingResult, RecoveryResult

log = logger_mod.get_logger()

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

STRICT_RETRY_NOTICE = (
    "\n\n⚠️ IMPORTANT (attempt {attempt}): the previous answer could not be parsed. "
    "Respond ONLY with valid JSON: no additional text, comments or markdown formatting."
)

CANCELLED_ERROR = "AI request cancelled"


@dataclass(frozen=True)
class RetryConfig:
    """Attempt/backoff settings for :meth:`RobustPipeline.process_with_retry`.

    With ``exponential_backoff`` the wait after attempt ``n`` is
    ``delay_s * 2 ** (n - 1)``; otherwise it is always ``delay_s``.
    """

    max_attempts: int = 3
    delay_s: float = 1.0
    exponential_backoff: bool = True

    def __post_init__(self) -> None:
        # Clamp instead of raising, like the request-layer retry policy.
        if self.max_attempts < 1:
            object.__setattr__(self, "max_attempts", 1)
        if self.delay_s < 0:
            object.__setattr__(self, "delay_s", 0.0)

    def delay_for(self, attempt: int) -> float:
        if self.exponential_backoff:
            return self.delay_s * (2 ** (attempt - 1))
        return self.delay_s


def _stringify(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value)
    return str(value)


def render_template(text: str, data: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` with ``str(data[key])``.

    Placeholders without a matching key are left in place and logged.
    """

    missing: list[str] = []

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in data:
            return _stringify(data[key])
        missing.append(key)
        return match.group(0)

    rendered = _PLACEHOLDER_RE.sub(_sub, text)
    if missing:
        log.warning(f"⚠️ Unresolved prompt placeholders left verbatim: {sorted(set(missing))}")
    return rendered


def build_prompt(template: PromptTemplate, data: Mapping[str, Any], attempt: int) -> str:
    prompt = render_template(template.user_prompt_template, data)
    if attempt > 1:
        prompt += STRICT_RETRY_NOTICE.format(attempt=attempt)
    return prompt


def build_fallback_prompt(template: PromptTemplate, data: Mapping[str, Any]) -> str:
    if not template.fallback_prompt:
        return ""
    return render_template(template.fallback_prompt, data)


class RobustPipeline:
    """Turns a task + input data into a validated, typed result.

    Each call to :meth:`process_with_retry` is independent: the only shared
    state is the read-only template registry and the custom prompt store.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        prompts: CustomPromptStore | None = None,
        retry: RetryConfig | None = None,
    ):
        self._provider = provider
        self._prompts = prompts
        self._retry = retry or RetryConfig()

    def _system_message(self, template: PromptTemplate) -> str:
        if self._prompts is not None:
            custom = self._prompts.system_message_for(template.task)
            if custom:
                return custom
        return template.system_message

    @staticmethod
    def _wait(delay_s: float, cancel: Optional[threading.Event]) -> None:
        if cancel is not None:
            cancel.wait(delay_s)
        else:
            time.sleep(delay_s)

    @staticmethod
    def _typed(template: PromptTemplate, parsed: RecoveryResult) -> RecoveryResult:
        """Apply the template's result type; a conversion error is a parse failure."""

        if not parsed.success or template.result_type is None:
            return parsed
        try:
            data = template.result_type(parsed.data)
        except (KeyError, TypeError, ValueError) as e:
            return RecoveryResult(
                success=False, error=f"Response did not match the expected shape: {e}"
            )
        return RecoveryResult(success=True, data=data, strategy=parsed.strategy)

    def _attempt(
        self, template: PromptTemplate, prompt: str, system_message: str
    ) -> tuple[str, RecoveryResult]:
        raw = self._provider.generate_completion(prompt, system_message=system_message)
        log.debug(
            "AI response: length=%d json=%s markdown=%s preview=%r",
            len(raw),
            "{" in raw and "}" in raw,
            "```" in raw,
            raw[:200],
        )
        return raw, self._typed(template, parse_response(raw, template))

    def process_with_retry(
        self,
        template: PromptTemplate | TaskType | str,
        prompt_data: Mapping[str, Any],
        retry: RetryConfig | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ProcessingResult[Any]:
        """Run the attempt/backoff/fallback loop. Never raises for provider or
        parse failures: check ``result.success``."""

        if not isinstance(template, PromptTemplate):
            template = get_template(template)
        retry = retry or self._retry
        system_message = self._system_message(template)

        last_error = ""
        raw_response = ""

        for attempt in range(1, retry.max_attempts + 1):
            if cancel is not None and cancel.is_set():
                return ProcessingResult(
                    success=False,
                    error=CANCELLED_ERROR,
                    attempts=attempt - 1,
                    raw_response=raw_response,
                )

            log.info(f"🔄 AI attempt {attempt}/{retry.max_attempts}")
            prompt = build_prompt(template, prompt_data, attempt)
            try:
                raw_response, parsed = self._attempt(template, prompt, system_message)
                if parsed.success:
                    log.info(f"✅ AI response parsed on attempt {attempt} ({parsed.strategy})")
                    return ProcessingResult(
                        success=True,
                        data=parsed.data,
                        attempts=attempt,
                        raw_response=raw_response,
                        strategy=parsed.strategy,
                    )
                last_error = parsed.error or "Parsing failed"
                log.warning(f"⚠️ Parsing failed on attempt {attempt}: {last_error}")
            except Exception as e:  # noqa: BLE001
                last_error = str(e) or e.__class__.__name__
                log.error(f"❌ AI error on attempt {attempt}: {last_error}")

            if attempt < retry.max_attempts:
                delay = retry.delay_for(attempt)
                log.info(f"⏳ Waiting {delay:.1f}s before the next attempt")
                self._wait(delay, cancel)

        if template.fallback_prompt and not (cancel is not None and cancel.is_set()):
            log.info("🔄 Trying the fallback prompt")
            try:
                raw_response, parsed = self._attempt(
                    template, build_fallback_prompt(template, prompt_data), system_message
                )
                if parsed.success:
                    log.info("✅ Fallback prompt succeeded")
                    return ProcessingResult(
                        success=True,
                        data=parsed.data,
                        attempts=retry.max_attempts + 1,
                        raw_response=raw_response,
                        strategy=parsed.strategy,
                    )
            except Exception as e:  # noqa: BLE001
                log.error(f"❌ Fallback prompt failed too: {e}")

        return ProcessingResult(
            success=False,
            error=last_error,
            attempts=retry.max_attempts,
            raw_response=raw_response,
        )
