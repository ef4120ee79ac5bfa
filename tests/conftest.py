"""
Pytest configuration and shared fixtures.

Everything here runs in memory: the repositories and the scoring client are
fakes, so no database or network access is needed.
"""

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from match_service.config import Settings
from match_service.models import (
    BatchEvaluation,
    CandidateProfile,
    JobPosting,
    PreScoreMatch,
    ScoreCacheEntry,
)
from match_service.services.pipeline import CascadeRankingPipeline
from match_service.services.score_cache import ScoreCache
from match_service.services.scoring_client import ScoringClient

JOB_ID = "11111111-1111-4111-8111-111111111111"


def candidate_id(index: int) -> str:
    return f"00000000-0000-4000-8000-{index:012d}"


def resume_for(cid: str) -> str:
    return f"Resume of candidate {cid}"


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryCacheRepository:
    """Dict-backed stand-in for MatchCacheRepository."""

    def __init__(self):
        self.rows: Dict[tuple, ScoreCacheEntry] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0
        self._lock = threading.Lock()

    def get_entries(self, job_id: str, candidate_ids: List[str]) -> Dict[str, ScoreCacheEntry]:
        if self.fail_reads:
            raise ConnectionError("cache unavailable")
        with self._lock:
            return {
                cid: replace(self.rows[(job_id, cid)])
                for cid in candidate_ids
                if (job_id, cid) in self.rows
            }

    def upsert(self, job_id: str, candidate_id: str, fields: dict, updated_at: datetime, stamped=None) -> None:
        if self.fail_writes:
            raise ConnectionError("cache unavailable")
        with self._lock:
            entry = self.rows.get((job_id, candidate_id)) or ScoreCacheEntry(job_id, candidate_id)
            stamped = set(fields) if stamped is None else set(stamped)
            stamps = {ScoreCacheEntry.TIMESTAMPS[name]: updated_at for name in fields if name in stamped}
            self.rows[(job_id, candidate_id)] = replace(entry, updated_at=updated_at, **fields, **stamps)
            self.writes += 1


class FakeJobRepository:
    def __init__(self, jobs: Optional[Dict[str, JobPosting]] = None):
        self.jobs = jobs or {}

    def get_job(self, job_id: str) -> Optional[JobPosting]:
        return self.jobs.get(job_id)


class FakeCandidateRepository:
    def __init__(self, pool: List[PreScoreMatch], profiles: Dict[str, CandidateProfile]):
        self.pool = pool
        self.profiles = profiles
        self.requested_limits: List[int] = []

    def get_pre_score_pool(self, job_id: str, limit: int = 50) -> List[PreScoreMatch]:
        self.requested_limits.append(limit)
        ranked = sorted(self.pool, key=lambda m: -m.pre_score)
        return ranked[:limit]

    def get_profiles(self, candidate_ids: List[str]) -> Dict[str, CandidateProfile]:
        return {cid: self.profiles[cid] for cid in candidate_ids if cid in self.profiles}


class FakeScoringClient(ScoringClient):
    """
    Scoring client returning canned scores and counting every call.

    Neural scores are looked up by resume text, LLM scores by candidate id.
    """

    def __init__(self, neural_scores: Dict[str, float], llm_scores: Dict[str, float]):
        self.neural_scores = neural_scores
        self.llm_scores = llm_scores
        self.neural_failures: set = set()
        self.failing_batch_members: set = set()
        self.omitted: set = set()
        self.drop_ids = False
        self.on_neural: Optional[Callable[[str], None]] = None
        self.neural_calls = 0
        self.batch_calls = 0
        self.batch_sizes: List[int] = []
        self._lock = threading.Lock()

    def neural_rank_score(self, job_text: str, resume_text: str) -> float:
        with self._lock:
            self.neural_calls += 1
        cid = resume_text.rsplit(" ", 1)[-1]
        if self.on_neural is not None:
            self.on_neural(cid)
        if cid in self.neural_failures:
            raise TimeoutError(f"neural rank timed out for {cid}")
        return self.neural_scores[cid]

    def evaluate_batch(self, job_text: str, candidates) -> List[BatchEvaluation]:
        with self._lock:
            self.batch_calls += 1
            self.batch_sizes.append(len(candidates))
        ids = [block.candidate_id for block in candidates]
        if self.failing_batch_members & set(ids):
            raise ValueError("unparseable batch reply")
        return [
            BatchEvaluation(
                candidate_id=None if self.drop_ids else cid,
                llm_score=self.llm_scores[cid],
                explanation=f"Strong functional fit for {cid}",
            )
            for cid in ids
            if cid not in self.omitted
        ]

    @property
    def total_calls(self) -> int:
        return self.neural_calls + self.batch_calls


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def cache_repo() -> InMemoryCacheRepository:
    return InMemoryCacheRepository()


@pytest.fixture
def cache(cache_repo, clock) -> ScoreCache:
    return ScoreCache(cache_repo, clock=clock)


@pytest.fixture
def job() -> JobPosting:
    return JobPosting(id=JOB_ID, job_text="Senior backend engineer building payment APIs in Python.")


@pytest.fixture
def candidate_ids() -> List[str]:
    return [candidate_id(i) for i in range(1, 13)]


@pytest.fixture
def pool(candidate_ids) -> List[PreScoreMatch]:
    """Twelve candidates with pre-scores 0.90, 0.85, ... 0.35"""
    return [
        PreScoreMatch(cid, meta_similarity=0.5, content_similarity=0.5, pre_score=round(0.90 - 0.05 * i, 2))
        for i, cid in enumerate(candidate_ids)
    ]


@pytest.fixture
def profiles(candidate_ids) -> Dict[str, CandidateProfile]:
    return {cid: CandidateProfile(id=cid, resume_text=resume_for(cid)) for cid in candidate_ids}


@pytest.fixture
def scoring_client(candidate_ids) -> FakeScoringClient:
    # Neural order reverses the pre-score order; LLM scores are flat-ish
    neural = {cid: round(0.30 + 0.05 * i, 2) for i, cid in enumerate(candidate_ids)}
    llm = {cid: 0.60 for cid in candidate_ids}
    return FakeScoringClient(neural, llm)


@pytest.fixture
def config() -> Settings:
    return replace(Settings(), prefilter_enabled=False, neural_workers=4, llm_batch_workers=2)


@pytest.fixture
def make_pipeline(job, pool, profiles, scoring_client, cache, config):
    def _make(**overrides) -> CascadeRankingPipeline:
        return CascadeRankingPipeline(
            scoring_client=overrides.get("scoring_client", scoring_client),
            job_repo=overrides.get("job_repo", FakeJobRepository({job.id: job})),
            candidate_repo=overrides.get("candidate_repo", FakeCandidateRepository(pool, profiles)),
            cache=overrides.get("cache", cache),
            config=overrides.get("config", config),
        )

    return _make
