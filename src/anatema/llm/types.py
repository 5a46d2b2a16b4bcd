from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, Optional, TypeVar

Role = Literal["system", "user", "assistant"]

T = TypeVar("T")


@dataclass(frozen=True)
class LLMMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of running the recovery strategies over one completion."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    strategy: Optional[str] = None


@dataclass(frozen=True)
class ProcessingResult(Generic[T]):
    """Provider-neutral result envelope returned by the pipeline.

    ``data`` is set only on success and ``error`` only on failure. ``attempts``
    counts provider calls, including the fallback call when it succeeded.
    """

    success: bool
    attempts: int
    data: Optional[T] = None
    error: Optional[str] = None
    raw_response: Optional[str] = None
    strategy: Optional[str] = None
