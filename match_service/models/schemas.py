import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional


def _parse_embedding(value: Any) -> Optional[List[float]]:
    """Embeddings come back from pgvector/json columns as text or lists"""
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else None
        if value is None:
            return None
    return [float(v) for v in value]


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass
class JobPosting:
    id: str
    job_text: str
    title: str = ""
    location: str = ""
    industries: List[str] = field(default_factory=list)
    hard_skills: List[str] = field(default_factory=list)
    title_embedding: Optional[List[float]] = None
    location_embedding: Optional[List[float]] = None
    industries_embedding: Optional[List[float]] = None
    skills_embedding: Optional[List[float]] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "JobPosting":
        return cls(
            id=str(row["id"]),
            job_text=row.get("job_text") or "",
            title=row.get("title") or "",
            location=row.get("location") or "",
            industries=_as_list(row.get("industries")),
            hard_skills=_as_list(row.get("hard_skills")),
            title_embedding=_parse_embedding(row.get("title_embedding")),
            location_embedding=_parse_embedding(row.get("location_embedding")),
            industries_embedding=_parse_embedding(row.get("industries_embedding")),
            skills_embedding=_parse_embedding(row.get("skills_embedding")),
        )


@dataclass
class CandidateProfile:
    id: str
    resume_text: str = ""
    title: str = ""
    location: str = ""
    industries: List[str] = field(default_factory=list)
    related_industries: List[str] = field(default_factory=list)
    hard_skills: List[str] = field(default_factory=list)
    willing_to_relocate: bool = False
    title_embedding: Optional[List[float]] = None
    location_embedding: Optional[List[float]] = None
    industries_embedding: Optional[List[float]] = None
    skills_embedding: Optional[List[float]] = None

    @property
    def has_resume(self) -> bool:
        return bool(self.resume_text and self.resume_text.strip())

    @classmethod
    def from_db_row(cls, row: dict) -> "CandidateProfile":
        return cls(
            id=str(row["id"]),
            resume_text=row.get("resume_text") or "",
            title=row.get("general_title") or "",
            location=row.get("location") or "",
            industries=_as_list(row.get("industries")),
            related_industries=_as_list(row.get("related_industries")),
            hard_skills=_as_list(row.get("hard_skills")),
            willing_to_relocate=bool(row.get("willing_to_relocate")),
            title_embedding=_parse_embedding(row.get("title_embedding")),
            location_embedding=_parse_embedding(row.get("location_embedding")),
            industries_embedding=_parse_embedding(row.get("industries_embedding")),
            skills_embedding=_parse_embedding(row.get("skills_embedding")),
        )


@dataclass
class PreScoreMatch:
    """One row of the datastore's structural pre-score query"""
    candidate_id: str
    meta_similarity: float
    content_similarity: float
    pre_score: float

    @classmethod
    def from_db_row(cls, row: dict) -> "PreScoreMatch":
        return cls(
            candidate_id=str(row["candidate_id"]),
            meta_similarity=float(row.get("meta_similarity") or 0.0),
            content_similarity=float(row.get("content_similarity") or 0.0),
            pre_score=float(row.get("pre_score") or 0.0),
        )


@dataclass
class RankingCandidate:
    """Candidate record filled in stage by stage as it survives the funnel"""
    candidate_id: str
    pre_score: float
    neural_rank_score: Optional[float] = None
    llm_score: Optional[float] = None
    final_score: Optional[float] = None
    explanation: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoreCacheEntry:
    job_id: str
    candidate_id: str
    pre_score: Optional[float] = None
    neural_rank_score: Optional[float] = None
    llm_score: Optional[float] = None
    final_score: Optional[float] = None
    explanation: Optional[str] = None
    pre_score_updated_at: Optional[datetime] = None
    neural_updated_at: Optional[datetime] = None
    llm_updated_at: Optional[datetime] = None
    final_updated_at: Optional[datetime] = None
    explanation_updated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    FIELDS = ("pre_score", "neural_rank_score", "llm_score", "final_score", "explanation")

    # Each cached field carries its own write time
    TIMESTAMPS = {
        "pre_score": "pre_score_updated_at",
        "neural_rank_score": "neural_updated_at",
        "llm_score": "llm_updated_at",
        "final_score": "final_updated_at",
        "explanation": "explanation_updated_at",
    }

    def fresh_value(self, field_name: str, ttl: timedelta, now: datetime) -> Any:
        """
        Return the cached value of a field if it is set and younger than ttl.

        Age is taken from the field's own timestamp, so one row can hold a
        fresh explanation next to an expired llm_score, and rewriting one
        field never extends the life of another.
        """
        if field_name not in self.FIELDS:
            raise KeyError(f"Unknown score cache field: {field_name}")
        value = getattr(self, field_name)
        written_at = getattr(self, self.TIMESTAMPS[field_name])
        if value is None or written_at is None:
            return None
        if now - written_at < ttl:
            return value
        return None

    @classmethod
    def from_db_row(cls, row: dict) -> "ScoreCacheEntry":
        return cls(
            job_id=str(row["vacancy_id"]),
            candidate_id=str(row["candidate_id"]),
            pre_score=row.get("pre_score"),
            neural_rank_score=row.get("neural_rank_score"),
            llm_score=row.get("llm_score"),
            final_score=row.get("final_score"),
            explanation=row.get("explanation"),
            pre_score_updated_at=row.get("pre_score_updated_at"),
            neural_updated_at=row.get("neural_updated_at"),
            llm_updated_at=row.get("llm_updated_at"),
            final_updated_at=row.get("final_updated_at"),
            explanation_updated_at=row.get("explanation_updated_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class GroundTruthSet:
    job_id: str
    candidate_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_db_row(cls, row: dict) -> "GroundTruthSet":
        candidates = row.get("ground_truth_candidates") or []
        if isinstance(candidates, str):
            candidates = json.loads(candidates)
        return cls(job_id=str(row["job_id"]), candidate_ids=[str(c) for c in candidates])


@dataclass
class BenchmarkResult:
    job_id: str
    version: str
    precision_at_5: float
    precision_at_10: float
    recall_at_5: float
    recall_at_10: float
    ndcg_at_5: float
    ndcg_at_10: float
    mrr: float
    total_relevant_candidates: int
    total_retrieved_candidates: int
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_db_row(cls, row: dict) -> "BenchmarkResult":
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return cls(
            job_id=str(row["job_id"]),
            version=row["version"],
            precision_at_5=row.get("precision_5") or 0.0,
            precision_at_10=row.get("precision_10") or 0.0,
            recall_at_5=row.get("recall_5") or 0.0,
            recall_at_10=row.get("recall_10") or 0.0,
            ndcg_at_5=row.get("ndcg_5") or 0.0,
            ndcg_at_10=row.get("ndcg_10") or 0.0,
            mrr=row.get("mrr") or 0.0,
            total_relevant_candidates=row.get("total_relevant_candidates") or 0,
            total_retrieved_candidates=row.get("total_retrieved_candidates") or 0,
            timestamp=row.get("timestamp"),
            metadata=metadata,
        )


@dataclass
class StageFailure:
    """A candidate (or whole batch) dropped from a stage, kept for observability"""
    stage: str
    candidate_ids: List[str]
    error: str


@dataclass
class StageOutcome:
    items: List[RankingCandidate] = field(default_factory=list)
    failures: List[StageFailure] = field(default_factory=list)

    @property
    def candidate_ids(self) -> List[str]:
        return [item.candidate_id for item in self.items]


@dataclass
class RankingRun:
    """Trace of a single pipeline run across all four stages"""
    job_id: str
    pool: List[RankingCandidate] = field(default_factory=list)
    neural_ranked: List[RankingCandidate] = field(default_factory=list)
    llm_ranked: List[RankingCandidate] = field(default_factory=list)
    results: List[RankingCandidate] = field(default_factory=list)
    failures: List[StageFailure] = field(default_factory=list)

    def stats(self) -> dict:
        return {
            "pool": len(self.pool),
            "neural_ranked": len(self.neural_ranked),
            "llm_ranked": len(self.llm_ranked),
            "results": len(self.results),
            "failures": len(self.failures),
        }
