"""
Schemas for replies from the external LLM scoring service.

A batch evaluation reply must be a JSON object of the form
``{"results": [{"candidate_id": ..., "llm_score": ..., "explanation": ...}]}``.
Scores are clamped to [0, 1] during validation so downstream fusion only
ever sees bounded inputs.
"""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_EXPLANATION = "Explanation unavailable"


@dataclass
class CandidateBlock:
    """One candidate as submitted in a batch evaluation request."""
    candidate_id: str
    resume_text: str


class BatchEvaluation(BaseModel):
    """Score and explanation for one candidate in a batch reply."""

    candidate_id: Optional[str] = None
    llm_score: float
    explanation: str = DEFAULT_EXPLANATION

    @field_validator("candidate_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return None if value is None else str(value)

    @field_validator("llm_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        if isinstance(value, bool):
            raise ValueError("llm_score is not a number")
        try:
            score = float(value)
        except (TypeError, ValueError):
            raise ValueError("llm_score is not a number") from None
        if score != score:  # NaN
            raise ValueError("llm_score is not a number")
        return max(0.0, min(1.0, score))

    @field_validator("explanation", mode="before")
    @classmethod
    def _default_explanation(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_EXPLANATION
        return str(value).strip()


class BatchEvaluationResponse(BaseModel):
    results: List[BatchEvaluation] = Field(...)
