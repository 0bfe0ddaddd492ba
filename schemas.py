"""Pydantic schemas for persisted progress, agent payloads and helper utilities."""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Literal, Mapping, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

__all__ = [
    "ProgressRecord",
    "EvaluationResult",
    "TutorReply",
    "ChatMessage",
    "GatewayPayload",
    "GatewayResponse",
    "parse_agent_result",
    "parse_json_safe",
]

PASS = "PASS"
FAIL = "FAIL"


def _coerce_number(value: Any, default: float = 0.0) -> float:
    # bool is an int subclass; a JSON true is not a score.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return float(value)


def _coerce_count(value: Any, default: int = 0, *, minimum: int = 0) -> int:
    number = _coerce_number(value, float(default))
    if number < minimum:
        return default
    return int(number)


def _coerce_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _coerce_text_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


class ProgressRecord(BaseModel):
    """The learner's authoritative progress.

    Every field coerces malformed input to its zero value instead of failing,
    so a partially shaped save payload still yields a usable record.
    """

    xp: int = 0
    completed_modules: set[int] = Field(default_factory=set)
    completed_challenges: set[str] = Field(default_factory=set)
    streak: int = 1
    events: set[str] = Field(default_factory=set)

    @field_validator("xp", mode="before")
    @classmethod
    def _xp(cls, value: Any) -> int:
        return _coerce_count(value, 0)

    @field_validator("streak", mode="before")
    @classmethod
    def _streak(cls, value: Any) -> int:
        return _coerce_count(value, 1, minimum=1)

    @field_validator("completed_modules", mode="before")
    @classmethod
    def _modules(cls, value: Any) -> set[int]:
        if not isinstance(value, (list, tuple, set, frozenset)):
            return set()
        return {
            int(item)
            for item in value
            if not isinstance(item, bool) and isinstance(item, int) and item >= 1
        }

    @field_validator("completed_challenges", "events", mode="before")
    @classmethod
    def _identifiers(cls, value: Any) -> set[str]:
        if not isinstance(value, (list, tuple, set, frozenset)):
            return set()
        return {item for item in value if isinstance(item, str) and item}

    # ------------------------------------------------------------------
    @classmethod
    def from_payload(cls, payload: Any) -> "ProgressRecord":
        """Build a record from the stored ``{xp, doneMods, doneCh, streak}`` shape."""

        if not isinstance(payload, Mapping):
            return cls()
        data: Dict[str, Any] = {}
        for source, target in (
            ("xp", "xp"),
            ("doneMods", "completed_modules"),
            ("doneCh", "completed_challenges"),
            ("streak", "streak"),
            ("events", "events"),
        ):
            if source in payload:
                data[target] = payload[source]
        return cls.model_validate(data)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "doneMods": sorted(self.completed_modules),
            "doneCh": sorted(self.completed_challenges),
            "streak": self.streak,
            "events": sorted(self.events),
        }


class EvaluationResult(BaseModel):
    """Normalized verdict returned by the evaluator agent."""

    is_correct: bool = False
    score: float = 0.0
    xp_awarded: int = 0
    feedback: str = ""
    what_code_does: str = ""
    what_was_expected: str = ""
    errors: List[str] = Field(default_factory=list)
    hints: List[str] = Field(default_factory=list)
    pass_fail: str = FAIL

    model_config = {
        "extra": "ignore",
    }

    @field_validator("is_correct", mode="before")
    @classmethod
    def _is_correct(cls, value: Any) -> bool:
        return value is True

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> float:
        return min(100.0, max(0.0, _coerce_number(value)))

    @field_validator("xp_awarded", mode="before")
    @classmethod
    def _xp_awarded(cls, value: Any) -> int:
        return _coerce_count(value, 0)

    @field_validator("feedback", "what_code_does", "what_was_expected", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _coerce_text(value)

    @field_validator("errors", "hints", mode="before")
    @classmethod
    def _text_list(cls, value: Any) -> List[str]:
        return _coerce_text_list(value)

    @field_validator("pass_fail", mode="before")
    @classmethod
    def _pass_fail(cls, value: Any) -> str:
        # verdict text is kept verbatim; only an exact "PASS" counts as a pass
        if isinstance(value, str) and value:
            return value
        return FAIL

    @property
    def passed(self) -> bool:
        return self.pass_fail == PASS or self.is_correct

    @property
    def perfect(self) -> bool:
        return self.passed and self.score >= 100.0

    @classmethod
    def from_result(cls, data: Mapping[str, Any]) -> "EvaluationResult":
        return cls.model_validate(dict(data))

    @classmethod
    def unavailable(cls, feedback: str, error: str) -> "EvaluationResult":
        """Synthetic failing result used when the evaluator cannot be reached."""

        return cls(feedback=feedback, errors=[error])


class TutorReply(BaseModel):
    explanation: str = ""
    code_example: str = ""
    analogy: str = ""
    follow_up_questions: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(
        cls,
        data: Mapping[str, Any],
        message: str | None = None,
        *,
        fallback: str = "Let me help with that!",
    ) -> "TutorReply":
        explanation = _coerce_text(data.get("explanation")) or _coerce_text(data.get("text"))
        if not explanation:
            explanation = (message if isinstance(message, str) else "") or fallback
        return cls(
            explanation=explanation,
            code_example=_coerce_text(data.get("code_example")),
            analogy=_coerce_text(data.get("analogy")),
            follow_up_questions=_coerce_text_list(data.get("follow_up_questions")),
        )


class ChatMessage(BaseModel):
    role: Literal["user", "tutor"]
    text: str
    code: str = ""
    analogy: str = ""
    follow_ups: List[str] = Field(default_factory=list)


class GatewayPayload(BaseModel):
    result: Any = None
    message: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _message(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class GatewayResponse(BaseModel):
    success: bool = False
    response: GatewayPayload | None = None

    @field_validator("success", mode="before")
    @classmethod
    def _success(cls, value: Any) -> bool:
        return value is True

    @field_validator("response", mode="before")
    @classmethod
    def _response(cls, value: Any) -> Any:
        return value if isinstance(value, Mapping) else None

    @property
    def result(self) -> Any:
        return self.response.result if self.response else None

    @property
    def message(self) -> str | None:
        return self.response.message if self.response else None


_T = TypeVar("_T", bound=BaseModel)


def _find_first_json_object(text: str) -> tuple[str, int, int]:
    start = text.find("{")
    while start != -1:
        depth = 0
        for idx in range(start, len(text)):
            char = text[idx]
            if char == "{" and (idx == 0 or text[idx - 1] != "\\"):
                depth += 1
            elif char == "}" and (idx == 0 or text[idx - 1] != "\\"):
                depth -= 1
                if depth == 0:
                    candidate = text[start : idx + 1]
                    try:
                        json.loads(candidate)
                    except Exception:
                        break
                    return candidate, start, idx + 1
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in provided text")


def parse_agent_result(result: Any) -> Dict[str, Any]:
    """Best-effort conversion of an agent ``result`` into a mapping.

    Text is parsed as JSON, then scanned for an embedded JSON object (models
    like to wrap payloads in prose or code fences); anything else is wrapped
    as ``{"text": raw}``.
    """

    if isinstance(result, Mapping):
        return dict(result)
    if not isinstance(result, str):
        return {}

    try:
        parsed = json.loads(result)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    try:
        snippet, _, _ = _find_first_json_object(result)
    except ValueError:
        return {"text": result}
    parsed = json.loads(snippet)
    if isinstance(parsed, dict):
        return parsed
    return {"text": result}


def parse_json_safe(text: str, model: Type[_T]) -> _T:
    """Parse ``text`` into ``model`` with a fallback JSON extraction pass."""

    first_error: Exception | None = None
    try:
        return model.model_validate_json(text)
    except (ValidationError, ValueError, TypeError) as exc:
        first_error = exc

    try:
        snippet, _, end = _find_first_json_object(text)
    except ValueError:
        if first_error:
            raise first_error
        raise

    trailing = text[end:]
    if trailing.strip():
        if isinstance(first_error, ValidationError):
            raise first_error
        raise ValueError("Trailing content detected after JSON object")

    try:
        return model.model_validate_json(snippet)
    except Exception:
        if first_error:
            raise first_error
        raise
