"""
Boundary to the external LLM scoring service.

Two calls are exposed through ``ScoringClient``:

- ``neural_rank_score``: a single functional-similarity score for one
  job/resume pair.
- ``evaluate_batch``: scores plus short explanations for up to
  ``MAX_BATCH_SIZE`` candidates in one request.

``OpenAIScoringClient`` implements both with the ``openai`` SDK. Every reply
is parsed in one place (``parse_neural_score`` / ``parse_batch_response``)
and anything that cannot be parsed raises ``MalformedResponseError``.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import openai
from pydantic import ValidationError

from match_service.exceptions import ConfigurationError, MalformedResponseError, ScoringServiceError
from match_service.models import BatchEvaluation, BatchEvaluationResponse, CandidateBlock

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 20

NEURAL_SYSTEM_PROMPT = "You are a semantic ranking model. Return only a numeric score between 0 and 1."

NEURAL_PROMPT_TEMPLATE = """You are a semantic ranking model.
Compare the following job description and candidate resume.
Return a single float number between 0 and 1 based on functional similarity.

Job:

{job_text}

Resume:

{resume_text}

Return ONLY the number."""

BATCH_SYSTEM_PROMPT = (
    "You are an AI recruiting assistant. Return ONLY valid JSON. "
    "Do not include any text before or after the JSON."
)

BATCH_PROMPT_TEMPLATE = """You are an AI recruiting assistant.
Evaluate the match between the following job description and multiple candidate resumes.

For each candidate, provide:
1. llm_score: A float number from 0 to 1 based on:
   - functional responsibility overlap
   - relevant experience depth
   - industry/domain match
   - growth/leadership indicators
   - seniority alignment
   - similarity of metrics and achievements

2. explanation: A short 1-2 sentence explanation focusing on:
   - functional experience
   - relevant achievements
   - industry match
   - role seniority
   Do NOT include weaknesses.

Job Description:

{job_text}

Candidates:

{candidate_list}

Return ONLY valid JSON in this exact format:
{{
  "results": [
    {{
      "candidate_id": "uuid",
      "llm_score": 0.85,
      "explanation": "1-2 sentence text"
    }}
  ]
}}"""

_LEADING_FLOAT = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


class ScoringClient(ABC):
    """Abstract scoring service used by the ranking pipeline."""

    @abstractmethod
    def neural_rank_score(self, job_text: str, resume_text: str) -> float:
        """Return a functional-similarity score in [0, 1]."""
        raise NotImplementedError

    @abstractmethod
    def evaluate_batch(self, job_text: str, candidates: List[CandidateBlock]) -> List[BatchEvaluation]:
        """Return one evaluation per submitted candidate (order is not guaranteed)."""
        raise NotImplementedError


def build_neural_prompt(job_text: str, resume_text: str) -> str:
    return NEURAL_PROMPT_TEMPLATE.format(job_text=job_text.strip(), resume_text=resume_text.strip())


def build_batch_prompt(job_text: str, candidates: List[CandidateBlock]) -> str:
    candidate_list = "\n\n---\n\n".join(
        f"Candidate {index} (ID: {block.candidate_id}):\n{block.resume_text}"
        for index, block in enumerate(candidates, start=1)
    )
    return BATCH_PROMPT_TEMPLATE.format(job_text=job_text.strip(), candidate_list=candidate_list)


def parse_neural_score(content: Optional[str]) -> float:
    """Read the leading number of a neural rank reply and clamp it to [0, 1]"""
    if not content or not content.strip():
        raise MalformedResponseError("Empty neural rank response")

    match = _LEADING_FLOAT.match(content)
    if not match:
        raise MalformedResponseError(f'Failed to parse neural rank score: "{content}" is not a valid number')

    score = float(match.group(1))
    return max(0.0, min(1.0, score))


def extract_json_object(content: str) -> Optional[str]:
    """Return the first balanced {...} block in content, ignoring braces inside strings"""
    start = content.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(content)):
        char = content[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return content[start:pos + 1]
    return None


def parse_batch_response(content: Optional[str]) -> List[BatchEvaluation]:
    """
    Parse a batch evaluation reply.

    Strict JSON is tried first. If the reply is not JSON (for example a
    fenced code block or leading prose), the first balanced object embedded
    in it is parsed instead. Schema violations are never recovered.
    """
    if not content or not content.strip():
        raise MalformedResponseError("Empty batch evaluation response")

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        embedded = extract_json_object(content)
        if embedded is None:
            raise MalformedResponseError(f"Failed to parse JSON response: {content[:200]}")
        try:
            data = json.loads(embedded)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Failed to parse embedded JSON: {e}") from e

    try:
        return BatchEvaluationResponse.model_validate(data).results
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid batch evaluation format: {e}") from e


class OpenAIScoringClient(ScoringClient):
    """Scoring client backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        neural_model: str = "gpt-4o-mini",
        llm_model: str = "gpt-4o",
        timeout: float = 30.0,
        max_retries: int = 2,
    ):
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not provided")
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self.neural_model = neural_model
        self.llm_model = llm_model

    @classmethod
    def from_settings(cls, config) -> "OpenAIScoringClient":
        return cls(
            api_key=config.openai_api_key,
            neural_model=config.neural_rank_model,
            llm_model=config.llm_rank_model,
            timeout=config.llm_timeout_seconds,
            max_retries=config.llm_max_retries,
        )

    def _complete(self, model: str, system_prompt: str, prompt: str, **kwargs) -> Optional[str]:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise ScoringServiceError(f"{model} request failed: {e}") from e

        if not response.choices:
            return None
        content = response.choices[0].message.content
        return content.strip() if content else None

    def neural_rank_score(self, job_text: str, resume_text: str) -> float:
        content = self._complete(
            self.neural_model,
            NEURAL_SYSTEM_PROMPT,
            build_neural_prompt(job_text, resume_text),
            max_tokens=10,
        )
        return parse_neural_score(content)

    def evaluate_batch(self, job_text: str, candidates: List[CandidateBlock]) -> List[BatchEvaluation]:
        if not candidates:
            return []
        if len(candidates) > MAX_BATCH_SIZE:
            raise ValueError(f"Batch size cannot exceed {MAX_BATCH_SIZE} candidates")

        logger.debug(f"Evaluating batch of {len(candidates)} candidates with {self.llm_model}")
        content = self._complete(
            self.llm_model,
            BATCH_SYSTEM_PROMPT,
            build_batch_prompt(job_text, candidates),
            response_format={"type": "json_object"},
            max_tokens=2000,
        )
        return parse_batch_response(content)
