"""Typed results for each AI task.

Each ``from_dict`` receives a dict that already passed the template's
validation rules, so it only maps field names and fills optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class GeneratedLabel:
    name: str
    description: str
    confidence: float
    reasoning: str
    tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratedLabel":
        return cls(
            name=str(data["name"]),
            description=str(data["description"]),
            confidence=data["confidence"],
            reasoning=str(data["reasoning"]),
            tags=tuple(str(t) for t in data.get("tags") or ()),
        )


@dataclass(frozen=True)
class LabelGenerationResult:
    suggestions: tuple[GeneratedLabel, ...]
    general_advice: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LabelGenerationResult":
        return cls(
            suggestions=tuple(GeneratedLabel.from_dict(s) for s in data["suggestions"]),
            general_advice=str(data.get("generalAdvice") or ""),
        )


@dataclass(frozen=True)
class LabelAssignment:
    response_index: int
    suggested_label_id: str
    confidence: float
    reasoning: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LabelAssignment":
        return cls(
            response_index=int(data["responseIndex"]),
            suggested_label_id=str(data["suggestedLabelId"]),
            confidence=data["confidence"],
            reasoning=str(data["reasoning"]),
        )


@dataclass(frozen=True)
class LabelSuggestionResult:
    suggestions: tuple[LabelAssignment, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LabelSuggestionResult":
        return cls(
            suggestions=tuple(LabelAssignment.from_dict(s) for s in data["suggestions"])
        )


@dataclass(frozen=True)
class AdviceResult:
    advice: str
    suggestions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdviceResult":
        return cls(
            advice=data["advice"],
            suggestions=tuple(str(s) for s in data.get("suggestions") or ()),
        )
