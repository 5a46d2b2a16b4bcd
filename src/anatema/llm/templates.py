"""Prompt templates for each AI task.

Every task type maps to exactly one :class:`PromptTemplate`. A template carries
the prompts sent to the provider and the rules a parsed response must satisfy
before it is accepted.

    from anatema.llm.templates import TaskType, get_template

    template = get_template(TaskType.LABEL_GENERATION)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from jsonschema import Draft7Validator

from .models import AdviceResult, LabelGenerationResult, LabelSuggestionResult

Rule = Callable[[Any], bool]


class TaskType(str, Enum):
    LABEL_GENERATION = "labelGeneration"
    LABEL_SUGGESTION = "labelSuggestion"
    GENERAL_ADVICE = "generalAdvice"


@dataclass(frozen=True)
class PromptTemplate:
    system_message: str
    user_prompt_template: str
    expected_format: str
    fallback_prompt: Optional[str] = None
    validation_rules: tuple[Rule, ...] = ()
    task: Optional[TaskType] = None
    result_type: Optional[Callable[[dict[str, Any]], Any]] = None

    def accepts(self, data: Any) -> bool:
        """True when every validation rule passes. A rule that raises fails."""

        for rule in self.validation_rules:
            try:
                if not rule(data):
                    return False
            except Exception:  # noqa: BLE001
                return False
        return True


# ---------------------------------------------------------------------------
# Rule builders
# ---------------------------------------------------------------------------


def has_field(name: str) -> Rule:
    return lambda data: isinstance(data, dict) and name in data


def field_is_list(name: str) -> Rule:
    return lambda data: isinstance(data.get(name), list)


def field_not_empty(name: str) -> Rule:
    return lambda data: len(data[name]) > 0


def matches_schema(schema: dict[str, Any]) -> Rule:
    validator = Draft7Validator(schema)
    return validator.is_valid


def items_match_schema(name: str, item_schema: dict[str, Any]) -> Rule:
    validator = Draft7Validator(item_schema)
    return lambda data: all(validator.is_valid(item) for item in data[name])


_NON_EMPTY_STRING = {"type": "string", "minLength": 1}

_GENERATED_LABEL_SCHEMA = {
    "type": "object",
    "required": ["name", "description", "confidence", "reasoning"],
    "properties": {
        "name": _NON_EMPTY_STRING,
        "description": _NON_EMPTY_STRING,
        "confidence": {"type": "number"},
        "reasoning": _NON_EMPTY_STRING,
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}

_LABEL_ASSIGNMENT_SCHEMA = {
    "type": "object",
    "required": ["responseIndex", "suggestedLabelId", "confidence", "reasoning"],
    "properties": {
        "responseIndex": {"type": "number"},
        "suggestedLabelId": {"type": ["string", "number"], "minLength": 1},
        "confidence": {"type": "number"},
        "reasoning": _NON_EMPTY_STRING,
    },
}

_ADVICE_SCHEMA = {
    "type": "object",
    "required": ["advice"],
    "properties": {"advice": {"type": "string", "minLength": 11}},
}


LABEL_GENERATION_TEMPLATE = PromptTemplate(
    task=TaskType.LABEL_GENERATION,
    system_message=(
        "You are an expert in qualitative thematic analysis. "
        "Always answer with valid JSON only, without any additional text."
    ),
    user_prompt_template="""{{userPrompt}}

Analyse the following responses and create 5-8 specific thematic labels based on the user's request.

RESPONSES TO ANALYSE:
{{responses}}

EXISTING LABELS (avoid duplicates):
{{existingLabels}}

CRITICAL INSTRUCTIONS:
1. Answer ONLY with valid JSON
2. Do not add text before or after the JSON
3. Do not use markdown or formatting
4. Every label must have name, description, confidence, reasoning

REQUIRED JSON:
{
  "suggestions": [
    {
      "name": "Label name",
      "description": "Detailed description",
      "confidence": 85,
      "reasoning": "Specific reasoning",
      "tags": ["optional", "keywords"]
    }
  ],
  "generalAdvice": "Advice for the analysis"
}""",
    fallback_prompt="""Create 3 simple labels for this data: {{responses}}

Answer only with this JSON:
{
  "suggestions": [
    {"name": "Theme 1", "description": "Short description", "confidence": 70, "reasoning": "Based on the data"},
    {"name": "Theme 2", "description": "Short description", "confidence": 70, "reasoning": "Based on the data"},
    {"name": "Theme 3", "description": "Short description", "confidence": 70, "reasoning": "Based on the data"}
  ],
  "generalAdvice": "Review the identified themes manually"
}""",
    expected_format="JSON with suggestions array and generalAdvice string",
    validation_rules=(
        has_field("suggestions"),
        field_is_list("suggestions"),
        field_not_empty("suggestions"),
        items_match_schema("suggestions", _GENERATED_LABEL_SCHEMA),
    ),
    result_type=LabelGenerationResult.from_dict,
)

LABEL_SUGGESTION_TEMPLATE = PromptTemplate(
    task=TaskType.LABEL_SUGGESTION,
    system_message=(
        "You are an assistant for thematic analysis. Suggest existing labels "
        "for the responses. Answer with valid JSON only."
    ),
    user_prompt_template="""Analyse the responses and suggest which of the existing labels fits each response best.

AVAILABLE LABELS:
{{availableLabels}}

RESPONSES TO ANALYSE:
{{responsesToAnalyze}}

INSTRUCTIONS:
1. Answer ONLY with valid JSON
2. For every response, suggest the most appropriate label
3. Include confidence (0-100) and reasoning

REQUIRED JSON:
{
  "suggestions": [
    {
      "responseIndex": 0,
      "suggestedLabelId": "label_id",
      "confidence": 85,
      "reasoning": "Short explanation"
    }
  ]
}""",
    fallback_prompt="""Suggest labels for these responses: {{responsesToAnalyze}}

Available labels: {{availableLabels}}

Answer only with:
{
  "suggestions": [
    {"responseIndex": 0, "suggestedLabelId": "first_available_label", "confidence": 60, "reasoning": "Automatic analysis"}
  ]
}""",
    expected_format="JSON with suggestions array",
    validation_rules=(
        has_field("suggestions"),
        field_is_list("suggestions"),
        items_match_schema("suggestions", _LABEL_ASSIGNMENT_SCHEMA),
    ),
    result_type=LabelSuggestionResult.from_dict,
)

GENERAL_ADVICE_TEMPLATE = PromptTemplate(
    task=TaskType.GENERAL_ADVICE,
    system_message=(
        "You are an expert consultant in qualitative analysis. "
        "Give practical, specific advice."
    ),
    user_prompt_template="""Context: {{context}}
Question: {{question}}

Give practical, specific advice to improve the analysis.
Keep the answer concise but informative (200 words at most).

Answer in JSON format:
{
  "advice": "Your advice here",
  "suggestions": ["Suggestion 1", "Suggestion 2", "Suggestion 3"]
}""",
    fallback_prompt="""Give one piece of advice for: {{question}}

Answer only with:
{
  "advice": "General advice about thematic analysis",
  "suggestions": ["Review the data", "Identify patterns", "Categorise themes"]
}""",
    expected_format="JSON with advice string and suggestions array",
    validation_rules=(has_field("advice"), matches_schema(_ADVICE_SCHEMA)),
    result_type=AdviceResult.from_dict,
)

TEMPLATES: Mapping[TaskType, PromptTemplate] = MappingProxyType(
    {
        TaskType.LABEL_GENERATION: LABEL_GENERATION_TEMPLATE,
        TaskType.LABEL_SUGGESTION: LABEL_SUGGESTION_TEMPLATE,
        TaskType.GENERAL_ADVICE: GENERAL_ADVICE_TEMPLATE,
    }
)


def get_template(task: TaskType | str) -> PromptTemplate:
    """Resolve a task (enum member or its string value) to its template."""

    try:
        return TEMPLATES[TaskType(task)]
    except ValueError as e:
        raise KeyError(f"Unknown task type: {task}") from e
