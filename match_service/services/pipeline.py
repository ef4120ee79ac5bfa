"""
Cascading candidate ranking pipeline.

A job goes through four stages, each narrowing the candidates of the one
before it:

1. Pre-score: structural similarity computed in the datastore (cheap, no LLM),
   optionally passed through the attribute prefilter. Keeps the top 50.
2. Neural rank: one functional-similarity score per candidate from the
   scoring service, cached per (job, candidate). Keeps the top 10.
3. LLM rank: batched scoring with short explanations, cached.
4. Fusion: fixed-weight blend of the three scores.

Per-candidate and per-batch failures are recorded on the run and the
affected candidates are dropped; configuration errors propagate.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import timedelta
from functools import partial
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from match_service.config import settings
from match_service.database import CandidateRepository, DatabaseConnection, JobRepository, MatchCacheRepository
from match_service.exceptions import (
    ConfigurationError,
    InvalidJobIdError,
    JobNotFoundError,
    RankingCancelledError,
)
from match_service.models import (
    DEFAULT_EXPLANATION,
    CandidateBlock,
    CandidateProfile,
    JobPosting,
    RankingCandidate,
    RankingRun,
    StageFailure,
    StageOutcome,
)
from .prefilter import AttributePrefilter
from .score_cache import ScoreCache
from .scoring_client import OpenAIScoringClient, ScoringClient

logger = logging.getLogger(__name__)

STAGE_PRE_SCORE = "pre_score"
STAGE_NEURAL = "neural_rank"
STAGE_LLM = "llm_rank"
STAGE_FUSION = "fusion"


def fuse_scores(
    pre_score: float,
    neural_rank_score: float,
    llm_score: float,
    weights: Tuple[float, float, float] = (0.20, 0.50, 0.30),
) -> float:
    """Weighted blend of the three stage scores, each clamped to [0, 1]"""
    if abs(sum(weights) - 1.0) > 1e-6:
        raise ConfigurationError(f"Fusion weights must sum to 1.0, got {weights}")

    scores = (pre_score, neural_rank_score, llm_score)
    return sum(w * max(0.0, min(1.0, float(s))) for w, s in zip(weights, scores))


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class CascadeRankingPipeline:
    def __init__(
        self,
        scoring_client: Optional[ScoringClient] = None,
        job_repo: Optional[JobRepository] = None,
        candidate_repo: Optional[CandidateRepository] = None,
        cache: Optional[ScoreCache] = None,
        config=None,
    ):
        """
        Initialize the pipeline.

        Args:
            scoring_client: External scoring service (default: OpenAI client built from settings)
            job_repo: Source of job postings
            candidate_repo: Source of the pre-score pool and candidate profiles
            cache: Score cache (default: backed by the match_cache table)
            config: Settings object (default: module settings)
        """
        self.config = config or settings

        if job_repo is None or candidate_repo is None or cache is None:
            db = DatabaseConnection()
            job_repo = job_repo or JobRepository(db)
            candidate_repo = candidate_repo or CandidateRepository(db)
            cache = cache or ScoreCache(MatchCacheRepository(db))

        self.job_repo = job_repo
        self.candidate_repo = candidate_repo
        self.cache = cache
        self.scoring_client = scoring_client or OpenAIScoringClient.from_settings(self.config)
        self.prefilter = AttributePrefilter()

        self.pool_size = self.config.pre_score_pool_size
        self.neural_top_n = self.config.neural_top_n
        self.batch_size = self.config.llm_batch_size

    def rank(self, job_id: str, cancel_event: Optional[threading.Event] = None) -> List[RankingCandidate]:
        """Rank candidates for a job, best first"""
        return self.rank_with_report(job_id, cancel_event).results

    def rank_with_report(self, job_id: str, cancel_event: Optional[threading.Event] = None) -> RankingRun:
        """Rank candidates for a job and return the trace of every stage"""
        job_id = self._validate_job_id(job_id)

        logger.info("=" * 50)
        logger.info(f"Ranking candidates for job {job_id}")
        logger.info("=" * 50)

        run = RankingRun(job_id=job_id)

        self._check_cancelled(cancel_event, STAGE_PRE_SCORE)
        job = self._load_job(job_id)

        logger.info("Stage 1: Structural pre-score")
        run.pool, profiles = self._pre_score_pool(job)
        logger.info(f"Pre-score pool: {len(run.pool)} candidates")
        if not run.pool:
            logger.warning(f"No candidates in pre-score pool for job {job_id}")
            return run

        self._check_cancelled(cancel_event, STAGE_NEURAL)
        logger.info("Stage 2: Neural re-rank")
        missing = [c.candidate_id for c in run.pool if c.candidate_id not in profiles]
        if missing:
            profiles.update(self.candidate_repo.get_profiles(missing))
        outcome = self._neural_rank(job, run.pool, profiles)
        run.neural_ranked = outcome.items
        run.failures.extend(outcome.failures)
        logger.info(f"Neural re-rank kept {len(run.neural_ranked)} candidates")

        self._check_cancelled(cancel_event, STAGE_LLM)
        logger.info("Stage 3: LLM batch re-rank")
        outcome = self._llm_rank(job, run.neural_ranked, profiles)
        run.llm_ranked = outcome.items
        run.failures.extend(outcome.failures)
        logger.info(f"LLM re-rank kept {len(run.llm_ranked)} candidates")

        self._check_cancelled(cancel_event, STAGE_FUSION)
        logger.info("Stage 4: Score fusion")
        run.results = self._fuse(job_id, run.llm_ranked)

        logger.info("=" * 50)
        logger.info(f"Ranking completed. Stats: {run.stats()}")
        logger.info("=" * 50)

        return run

    @staticmethod
    def _validate_job_id(job_id) -> str:
        try:
            return str(uuid.UUID(str(job_id)))
        except (TypeError, ValueError) as e:
            raise InvalidJobIdError(f"Invalid job id: {job_id!r}") from e

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], next_stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Ranking cancelled before stage '{next_stage}'")
            raise RankingCancelledError(f"Ranking cancelled before stage '{next_stage}'")

    def _load_job(self, job_id: str) -> JobPosting:
        job = self.job_repo.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if not job.job_text or not job.job_text.strip():
            raise ConfigurationError(f"Job {job_id} has no job text")
        return job

    def _pre_score_pool(self, job: JobPosting) -> Tuple[List[RankingCandidate], Dict[str, CandidateProfile]]:
        """
        Stage 1: top candidates by datastore pre-score.

        With the prefilter enabled a wider set is fetched, filtered and
        penalized, then cut back to the pool size. Datastore errors propagate.
        """
        profiles: Dict[str, CandidateProfile] = {}

        if self.config.prefilter_enabled:
            fetch_size = max(self.pool_size, self.config.pre_score_fetch_size)
            matches = self.candidate_repo.get_pre_score_pool(job.id, fetch_size)
            if matches:
                profiles = self.candidate_repo.get_profiles([m.candidate_id for m in matches])
                matches = self.prefilter.apply(job, matches, profiles, self.pool_size)
        else:
            matches = self.candidate_repo.get_pre_score_pool(job.id, self.pool_size)
            matches = sorted(matches, key=lambda m: (-m.pre_score, m.candidate_id))[:self.pool_size]

        pool = [RankingCandidate(candidate_id=m.candidate_id, pre_score=m.pre_score) for m in matches]
        return pool, profiles

    def _neural_rank(
        self,
        job: JobPosting,
        pool: List[RankingCandidate],
        profiles: Dict[str, CandidateProfile],
    ) -> StageOutcome:
        """Stage 2: score the pool concurrently and keep the top N"""
        ttl = timedelta(days=self.config.neural_cache_ttl_days)
        failures: List[StageFailure] = []

        scorable = []
        for candidate in pool:
            profile = profiles.get(candidate.candidate_id)
            if profile is None or not profile.has_resume:
                logger.warning(f"Skipping candidate {candidate.candidate_id}: missing resume text")
                failures.append(StageFailure(STAGE_NEURAL, [candidate.candidate_id], "missing resume text"))
                continue
            scorable.append((candidate, profile))

        scored: List[RankingCandidate] = []
        if scorable:
            workers = max(1, min(self.config.neural_workers, len(scorable)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(
                        self.cache.get_or_compute,
                        job.id,
                        candidate.candidate_id,
                        "neural_rank_score",
                        ttl,
                        partial(self.scoring_client.neural_rank_score, job.job_text, profile.resume_text),
                    ): candidate
                    for candidate, profile in scorable
                }
                for future in as_completed(futures):
                    candidate = futures[future]
                    try:
                        score = future.result()
                    except Exception as e:
                        logger.warning(f"Neural rank failed for candidate {candidate.candidate_id}: {e}")
                        failures.append(StageFailure(STAGE_NEURAL, [candidate.candidate_id], str(e)))
                        continue
                    scored.append(replace(candidate, neural_rank_score=float(score)))

        scored.sort(key=lambda c: (-c.neural_rank_score, -c.pre_score, c.candidate_id))
        return StageOutcome(items=scored[:self.neural_top_n], failures=failures)

    def _llm_rank(
        self,
        job: JobPosting,
        ranked: List[RankingCandidate],
        profiles: Dict[str, CandidateProfile],
    ) -> StageOutcome:
        """Stage 3: batched LLM scoring; survivors keep the stage-2 order"""
        if not ranked:
            return StageOutcome()

        ttl = timedelta(days=self.config.llm_cache_ttl_days)
        failures: List[StageFailure] = []

        candidate_ids = [c.candidate_id for c in ranked]
        scores = self.cache.fresh_values(job.id, candidate_ids, "llm_score", ttl)
        if scores:
            logger.info(f"Using cached llm_score for {len(scores)} candidates")

        pending = [c for c in ranked if c.candidate_id not in scores]
        batches = list(_chunks(pending, self.batch_size))

        if batches:
            workers = max(1, min(self.config.llm_batch_workers, len(batches)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._evaluate_batch, job, batch, profiles): batch
                    for batch in batches
                }
                for future in as_completed(futures):
                    batch_ids = [c.candidate_id for c in futures[future]]
                    try:
                        batch_scores, unanswered = future.result()
                    except Exception as e:
                        logger.error(f"LLM batch of {len(batch_ids)} candidates failed: {e}")
                        failures.append(StageFailure(STAGE_LLM, batch_ids, str(e)))
                        continue

                    scores.update(batch_scores)
                    for candidate_id in unanswered:
                        logger.warning(f"LLM batch response missing candidate {candidate_id}")
                        failures.append(StageFailure(STAGE_LLM, [candidate_id], "missing from batch response"))

        items = [
            replace(c, llm_score=float(scores[c.candidate_id]))
            for c in ranked
            if c.candidate_id in scores
        ]
        return StageOutcome(items=items, failures=failures)

    def _evaluate_batch(
        self,
        job: JobPosting,
        batch: Sequence[RankingCandidate],
        profiles: Dict[str, CandidateProfile],
    ) -> Tuple[Dict[str, float], List[str]]:
        """
        Evaluate one batch and cache each result.

        Results carrying a known candidate_id are matched first. Results with
        an absent or unknown id then fill the still-unmatched candidates at
        their own position in the batch.
        Returns (scores by candidate id, ids missing from the reply).
        """
        blocks = [CandidateBlock(c.candidate_id, profiles[c.candidate_id].resume_text) for c in batch]
        evaluations = self.scoring_client.evaluate_batch(job.job_text, blocks)

        batch_ids = [block.candidate_id for block in blocks]
        matched = {}
        for evaluation in evaluations:
            if evaluation.candidate_id in batch_ids and evaluation.candidate_id not in matched:
                matched[evaluation.candidate_id] = evaluation

        for position, evaluation in enumerate(evaluations):
            if evaluation.candidate_id in batch_ids or position >= len(batch_ids):
                continue
            candidate_id = batch_ids[position]
            if candidate_id not in matched:
                matched[candidate_id] = evaluation

        scores = {}
        for candidate_id, evaluation in matched.items():
            self.cache.store(
                job.id,
                candidate_id,
                llm_score=evaluation.llm_score,
                explanation=evaluation.explanation,
            )
            scores[candidate_id] = evaluation.llm_score

        unanswered = [cid for cid in batch_ids if cid not in matched]
        return scores, unanswered

    def _fuse(self, job_id: str, ranked: List[RankingCandidate]) -> List[RankingCandidate]:
        """
        Stage 4: fixed-weight fusion, sorted by final score.

        All four scores are written, but only pre_score and final_score are
        restamped. Neural and LLM scores keep the age given by the stage that
        computed them.
        """
        if not ranked:
            return []

        weights = self.config.fusion_weights
        explanations = self.cache.fresh_values(
            job_id,
            [c.candidate_id for c in ranked],
            "explanation",
            timedelta(days=self.config.explanation_cache_ttl_days),
        )

        results = []
        for candidate in ranked:
            final_score = fuse_scores(candidate.pre_score, candidate.neural_rank_score, candidate.llm_score, weights)
            self.cache.store(
                job_id,
                candidate.candidate_id,
                stamp=("pre_score", "final_score"),
                pre_score=candidate.pre_score,
                neural_rank_score=candidate.neural_rank_score,
                llm_score=candidate.llm_score,
                final_score=final_score,
            )
            results.append(
                replace(
                    candidate,
                    final_score=final_score,
                    explanation=explanations.get(candidate.candidate_id) or DEFAULT_EXPLANATION,
                )
            )

        results.sort(key=lambda c: (-c.final_score, c.candidate_id))
        return results
