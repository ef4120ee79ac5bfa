from .schemas import (
    BenchmarkResult,
    CandidateProfile,
    GroundTruthSet,
    JobPosting,
    PreScoreMatch,
    RankingCandidate,
    RankingRun,
    ScoreCacheEntry,
    StageFailure,
    StageOutcome,
)
from .llm_schema import DEFAULT_EXPLANATION, BatchEvaluation, BatchEvaluationResponse, CandidateBlock

__all__ = [
    "BenchmarkResult",
    "CandidateProfile",
    "GroundTruthSet",
    "JobPosting",
    "PreScoreMatch",
    "RankingCandidate",
    "RankingRun",
    "ScoreCacheEntry",
    "StageFailure",
    "StageOutcome",
    "DEFAULT_EXPLANATION",
    "BatchEvaluation",
    "BatchEvaluationResponse",
    "CandidateBlock",
]
