import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from psycopg import sql
from psycopg.types.json import Jsonb

from match_service.models import (
    BenchmarkResult,
    CandidateProfile,
    GroundTruthSet,
    JobPosting,
    PreScoreMatch,
    ScoreCacheEntry,
)
from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


class JobRepository:
    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get_job(self, job_id: str) -> Optional[JobPosting]:
        """Get a job posting with its structured attributes"""
        query = """
            SELECT
                v.id,
                v.job_text,
                v.title,
                v.location,
                v.industries,
                v.hard_skills,
                v.title_embedding,
                v.location_embedding,
                v.industries_embedding,
                v.skills_embedding
            FROM vacancies v
            WHERE v.id = %s
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (job_id,))
            row = cursor.fetchone()
        return JobPosting.from_db_row(row) if row else None


class CandidateRepository:
    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get_pre_score_pool(self, job_id: str, limit: int = 50) -> List[PreScoreMatch]:
        """
        Get candidates ranked by structural pre-score for a job.

        Delegates to the match_candidates_pre_score SQL function, which blends
        metadata and content embedding similarity.
        """
        query = """
            SELECT candidate_id, meta_similarity, content_similarity, pre_score
            FROM match_candidates_pre_score(%s, %s)
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (job_id, limit))
            rows = cursor.fetchall()
        return [PreScoreMatch.from_db_row(row) for row in rows]

    def get_profiles(self, candidate_ids: List[str]) -> Dict[str, CandidateProfile]:
        """Get profiles for the given candidates, returns dict {candidate_id: profile}"""
        if not candidate_ids:
            return {}

        query = """
            SELECT
                c.id,
                c.resume_text,
                c.general_title,
                c.location,
                c.industries,
                c.related_industries,
                c.hard_skills,
                c.willing_to_relocate,
                c.title_embedding,
                c.location_embedding,
                c.industries_embedding,
                c.skills_embedding
            FROM candidates c
            WHERE c.id = ANY(%s::uuid[])
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (list(candidate_ids),))
            rows = cursor.fetchall()

        profiles = {}
        for row in rows:
            profile = CandidateProfile.from_db_row(row)
            profiles[profile.id] = profile
        return profiles


class MatchCacheRepository:
    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get_entries(self, job_id: str, candidate_ids: List[str]) -> Dict[str, ScoreCacheEntry]:
        """Get cached score rows for a job, returns dict {candidate_id: entry}"""
        if not candidate_ids:
            return {}

        query = """
            SELECT
                vacancy_id,
                candidate_id,
                pre_score,
                neural_rank_score,
                llm_score,
                final_score,
                explanation,
                pre_score_updated_at,
                neural_updated_at,
                llm_updated_at,
                final_updated_at,
                explanation_updated_at,
                updated_at
            FROM match_cache
            WHERE vacancy_id = %s
                AND candidate_id = ANY(%s::uuid[])
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (job_id, list(candidate_ids)))
            rows = cursor.fetchall()

        entries = {}
        for row in rows:
            entry = ScoreCacheEntry.from_db_row(row)
            entries[entry.candidate_id] = entry
        return entries

    def upsert(
        self,
        job_id: str,
        candidate_id: str,
        fields: dict,
        updated_at: datetime,
        stamped: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Upsert score fields for a (job, candidate) pair.

        Only the given fields are written; the others keep their current
        values. Fields in stamped (default: all given) also get updated_at as
        their write time. The unique key makes concurrent writers safe (last
        write wins).
        """
        stamped = set(fields) if stamped is None else set(stamped)
        fields = {name: fields[name] for name in ScoreCacheEntry.FIELDS if name in fields}
        if not fields:
            return

        columns = []
        params = [job_id, candidate_id]
        for name, value in fields.items():
            columns.append(name)
            params.append(value)
            if name in stamped:
                columns.append(ScoreCacheEntry.TIMESTAMPS[name])
                params.append(updated_at)
        params.append(updated_at)

        query = sql.SQL(
            """
            INSERT INTO match_cache (vacancy_id, candidate_id, {columns}, updated_at)
            VALUES (%s, %s, {placeholders}, %s)
            ON CONFLICT (vacancy_id, candidate_id)
            DO UPDATE SET {updates}, updated_at = EXCLUDED.updated_at
            """
        ).format(
            columns=sql.SQL(", ").join(sql.Identifier(name) for name in columns),
            placeholders=sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
            updates=sql.SQL(", ").join(
                sql.SQL("{0} = EXCLUDED.{0}").format(sql.Identifier(name)) for name in columns
            ),
        )

        with self.db.get_cursor() as cursor:
            cursor.execute(query, params)


class BenchmarkRepository:
    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get_ground_truth(self, job_id: str) -> Optional[GroundTruthSet]:
        """Get the curated relevant-candidate list for a job"""
        query = """
            SELECT job_id, ground_truth_candidates
            FROM benchmark_jobs
            WHERE job_id = %s
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (job_id,))
            row = cursor.fetchone()
        return GroundTruthSet.from_db_row(row) if row else None

    def upsert_ground_truth(self, ground_truth: GroundTruthSet) -> None:
        """Create or replace the ground truth for a job"""
        query = """
            INSERT INTO benchmark_jobs (job_id, ground_truth_candidates, created_at, updated_at)
            VALUES (%s, %s, NOW(), NOW())
            ON CONFLICT (job_id)
            DO UPDATE SET ground_truth_candidates = EXCLUDED.ground_truth_candidates, updated_at = NOW()
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, (ground_truth.job_id, Jsonb(ground_truth.candidate_ids)))
        logger.info(
            f"Upserted ground truth for job {ground_truth.job_id} "
            f"({len(ground_truth.candidate_ids)} candidates)"
        )

    def get_benchmark_job_ids(self) -> List[str]:
        """Get every job that has ground truth"""
        query = """
            SELECT job_id
            FROM benchmark_jobs
            ORDER BY created_at
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query)
            return [str(row["job_id"]) for row in cursor.fetchall()]

    def insert_result(self, result: BenchmarkResult) -> None:
        """Append a benchmark run; rows are never updated"""
        query = """
            INSERT INTO matching_benchmark_results (
                job_id, version,
                precision_5, precision_10,
                recall_5, recall_10,
                ndcg_5, ndcg_10,
                mrr,
                total_relevant_candidates, total_retrieved_candidates,
                timestamp, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()), %s)
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(
                query,
                (
                    result.job_id,
                    result.version,
                    result.precision_at_5,
                    result.precision_at_10,
                    result.recall_at_5,
                    result.recall_at_10,
                    result.ndcg_at_5,
                    result.ndcg_at_10,
                    result.mrr,
                    result.total_relevant_candidates,
                    result.total_retrieved_candidates,
                    result.timestamp,
                    Jsonb(result.metadata),
                ),
            )

    def get_results(self, job_id: Optional[str] = None, version: Optional[str] = None) -> List[BenchmarkResult]:
        """Get stored benchmark runs, newest first"""
        conditions = []
        params = []
        if job_id:
            conditions.append("job_id = %s")
            params.append(job_id)
        if version:
            conditions.append("version = %s")
            params.append(version)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT *
            FROM matching_benchmark_results
            {where}
            ORDER BY timestamp DESC
        """
        with self.db.get_cursor() as cursor:
            cursor.execute(query, params)
            return [BenchmarkResult.from_db_row(row) for row in cursor.fetchall()]
