"""
Tests for scoring service prompts and reply parsing.
"""

from types import SimpleNamespace

import openai
import pytest

from match_service.config import Settings
from match_service.exceptions import ConfigurationError, MalformedResponseError, ScoringServiceError
from match_service.models import DEFAULT_EXPLANATION, CandidateBlock
from match_service.services.scoring_client import (
    MAX_BATCH_SIZE,
    OpenAIScoringClient,
    build_batch_prompt,
    build_neural_prompt,
    extract_json_object,
    parse_batch_response,
    parse_neural_score,
)


class FakeCompletions:
    """Records chat completion requests and replies with canned content."""

    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def client_with(completions: FakeCompletions) -> OpenAIScoringClient:
    client = OpenAIScoringClient(api_key="sk-test")
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client


class TestParseNeuralScore:
    """Test numeric reply parsing."""

    def test_plain_number(self):
        assert parse_neural_score("0.73") == pytest.approx(0.73)

    def test_leading_number_with_trailing_text(self):
        assert parse_neural_score(" 0.8\n") == pytest.approx(0.8)

    def test_clamped(self):
        assert parse_neural_score("1.4") == 1.0
        assert parse_neural_score("-0.2") == 0.0

    @pytest.mark.parametrize("content", ["", None, "high", "score: 0.7"])
    def test_not_a_number(self, content):
        with pytest.raises(MalformedResponseError):
            parse_neural_score(content)


class TestParseBatchResponse:
    """Test strict parsing and the single recovery path."""

    def test_strict_json(self):
        content = '{"results": [{"candidate_id": "a", "llm_score": 0.9, "explanation": "Led growth team"}]}'

        results = parse_batch_response(content)

        assert len(results) == 1
        assert results[0].candidate_id == "a"
        assert results[0].llm_score == pytest.approx(0.9)
        assert results[0].explanation == "Led growth team"

    def test_fenced_json_recovered(self):
        content = 'Here you go:\n```json\n{"results": [{"candidate_id": "a", "llm_score": "0.5"}]}\n```'

        results = parse_batch_response(content)

        assert results[0].llm_score == pytest.approx(0.5)
        assert results[0].explanation == DEFAULT_EXPLANATION

    def test_scores_clamped_and_ids_stringified(self):
        content = '{"results": [{"candidate_id": 7, "llm_score": 3}, {"llm_score": -1, "explanation": " "}]}'

        results = parse_batch_response(content)

        assert results[0].candidate_id == "7"
        assert results[0].llm_score == 1.0
        assert results[1].candidate_id is None
        assert results[1].llm_score == 0.0
        assert results[1].explanation == DEFAULT_EXPLANATION

    def test_no_json_object(self):
        with pytest.raises(MalformedResponseError):
            parse_batch_response("I cannot evaluate these candidates.")

    def test_unbalanced_object(self):
        with pytest.raises(MalformedResponseError):
            parse_batch_response('Result: {"results": [{"llm_score": 0.4}')

    def test_missing_results_key(self):
        with pytest.raises(MalformedResponseError):
            parse_batch_response('{"scores": []}')

    def test_invalid_score(self):
        with pytest.raises(MalformedResponseError):
            parse_batch_response('{"results": [{"candidate_id": "a", "llm_score": "great"}]}')

    @pytest.mark.parametrize("score", ["null", "{\"value\": 0.5}", "[0.5]", "true"])
    def test_non_numeric_score_is_malformed(self, score):
        with pytest.raises(MalformedResponseError):
            parse_batch_response('{"results": [{"candidate_id": "a", "llm_score": ' + score + '}]}')

    def test_numeric_string_score_accepted(self):
        results = parse_batch_response('{"results": [{"candidate_id": "a", "llm_score": "0.75"}]}')
        assert results[0].llm_score == pytest.approx(0.75)


class TestExtractJsonObject:
    """Test balanced-brace extraction."""

    def test_braces_inside_strings_ignored(self):
        content = 'prefix {"explanation": "uses {curly} braces \\" here"} suffix {"other": 1}'
        assert extract_json_object(content) == '{"explanation": "uses {curly} braces \\" here"}'

    def test_nested(self):
        assert extract_json_object('x {"a": {"b": 1}} y') == '{"a": {"b": 1}}'

    def test_none_when_absent(self):
        assert extract_json_object("no braces") is None


class TestPrompts:
    """Test prompt construction."""

    def test_neural_prompt_strips_text(self):
        prompt = build_neural_prompt("  Job text \n", "\nResume text  ")
        assert "Job:\n\nJob text\n\nResume:\n\nResume text\n\nReturn ONLY the number." in prompt

    def test_batch_prompt_lists_candidates(self):
        blocks = [CandidateBlock("id-1", "First resume"), CandidateBlock("id-2", "Second resume")]

        prompt = build_batch_prompt("Job text", blocks)

        assert "Candidate 1 (ID: id-1):\nFirst resume\n\n---\n\nCandidate 2 (ID: id-2):\nSecond resume" in prompt
        assert "Do NOT include weaknesses." in prompt
        assert '"results": [' in prompt


class TestOpenAIScoringClient:
    """Test the OpenAI-backed client with a fake transport."""

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            OpenAIScoringClient(api_key="")

    def test_from_settings(self):
        config = Settings(openai_api_key="sk-test", neural_rank_model="small", llm_rank_model="large")

        client = OpenAIScoringClient.from_settings(config)

        assert client.neural_model == "small"
        assert client.llm_model == "large"

    def test_neural_rank_score_request(self):
        completions = FakeCompletions(content="0.66")
        client = client_with(completions)

        score = client.neural_rank_score("Job", "Resume")

        assert score == pytest.approx(0.66)
        request = completions.requests[0]
        assert request["model"] == "gpt-4o-mini"
        assert request["max_tokens"] == 10
        assert request["temperature"] == 0.3

    def test_evaluate_batch_requests_json(self):
        completions = FakeCompletions(content='{"results": [{"candidate_id": "a", "llm_score": 0.7}]}')
        client = client_with(completions)

        results = client.evaluate_batch("Job", [CandidateBlock("a", "Resume")])

        assert results[0].llm_score == pytest.approx(0.7)
        request = completions.requests[0]
        assert request["model"] == "gpt-4o"
        assert request["response_format"] == {"type": "json_object"}

    def test_empty_batch_skips_request(self):
        completions = FakeCompletions(content="{}")
        assert client_with(completions).evaluate_batch("Job", []) == []
        assert completions.requests == []

    def test_oversized_batch_rejected(self):
        completions = FakeCompletions(content="{}")
        blocks = [CandidateBlock(str(i), "Resume") for i in range(MAX_BATCH_SIZE + 1)]

        with pytest.raises(ValueError):
            client_with(completions).evaluate_batch("Job", blocks)
        assert completions.requests == []

    def test_sdk_error_wrapped(self):
        client = client_with(FakeCompletions(error=openai.OpenAIError("timed out")))

        with pytest.raises(ScoringServiceError):
            client.neural_rank_score("Job", "Resume")

    def test_empty_reply_is_malformed(self):
        client = client_with(FakeCompletions(content=None))

        with pytest.raises(MalformedResponseError):
            client.neural_rank_score("Job", "Resume")
