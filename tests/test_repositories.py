"""
Tests for row mapping and repository SQL wiring, using a recording cursor.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from psycopg import sql

from match_service.database import BenchmarkRepository, CandidateRepository, JobRepository, MatchCacheRepository
from match_service.models import BenchmarkResult, CandidateProfile, GroundTruthSet, JobPosting, ScoreCacheEntry

NOW = datetime(2026, 1, 5, tzinfo=timezone.utc)


class RecordingCursor:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.executed = []

    def execute(self, query, params=None):
        self.executed.append((query, params))

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def fetchall(self):
        return self.rows


class FakeDatabase:
    def __init__(self, rows=None):
        self.cursor = RecordingCursor(rows)

    @contextmanager
    def get_cursor(self, dict_cursor=True):
        yield self.cursor


class TestRowMapping:
    """Test from_db_row conversions."""

    def test_job_posting_parses_text_embeddings(self):
        job = JobPosting.from_db_row({
            "id": "j1",
            "job_text": "Build APIs",
            "industries": "Fintech",
            "hard_skills": ["python"],
            "title_embedding": "[0.1, 0.2]",
            "skills_embedding": None,
        })

        assert job.industries == ["Fintech"]
        assert job.title_embedding == [0.1, 0.2]
        assert job.skills_embedding is None
        assert job.location == ""

    def test_candidate_profile_uses_general_title(self):
        profile = CandidateProfile.from_db_row({"id": "c1", "general_title": "Engineer", "resume_text": None})

        assert profile.title == "Engineer"
        assert not profile.has_resume
        assert profile.willing_to_relocate is False

    def test_ground_truth_from_json_text(self):
        gt = GroundTruthSet.from_db_row({"job_id": "j1", "ground_truth_candidates": json.dumps(["a", "b"])})
        assert gt.candidate_ids == ["a", "b"]

    def test_benchmark_result_columns(self):
        result = BenchmarkResult.from_db_row({
            "job_id": "j1", "version": "v1", "precision_5": 0.6, "ndcg_10": 0.5, "mrr": 1.0,
            "total_relevant_candidates": 3, "metadata": '{"ground_truth_count": 3}',
        })

        assert result.precision_at_5 == 0.6
        assert result.ndcg_at_10 == 0.5
        assert result.recall_at_5 == 0.0
        assert result.metadata == {"ground_truth_count": 3}

    def test_cache_entry_freshness(self):
        entry = ScoreCacheEntry("j1", "c1", llm_score=0.4, llm_updated_at=NOW, updated_at=NOW)

        assert entry.fresh_value("llm_score", timedelta(days=7), NOW + timedelta(days=6)) == 0.4
        assert entry.fresh_value("llm_score", timedelta(days=7), NOW + timedelta(days=7)) is None
        assert entry.fresh_value("final_score", timedelta(days=7), NOW) is None


class TestRepositories:
    """Test queries and parameters sent to the cursor."""

    def test_get_job_missing(self):
        assert JobRepository(FakeDatabase()).get_job("j1") is None

    def test_pre_score_pool_passes_limit(self):
        db = FakeDatabase([{"candidate_id": "c1", "meta_similarity": 0.5, "content_similarity": 0.7, "pre_score": 0.63}])

        pool = CandidateRepository(db).get_pre_score_pool("j1", 25)

        query, params = db.cursor.executed[0]
        assert "match_candidates_pre_score" in query
        assert params == ("j1", 25)
        assert pool[0].pre_score == pytest.approx(0.63)

    def test_get_profiles_empty_skips_query(self):
        db = FakeDatabase()
        assert CandidateRepository(db).get_profiles([]) == {}
        assert db.cursor.executed == []

    def test_cache_entries_keyed_by_candidate(self):
        db = FakeDatabase([{"vacancy_id": "j1", "candidate_id": "c1", "llm_score": 0.9, "updated_at": NOW}])

        entries = MatchCacheRepository(db).get_entries("j1", ["c1"])

        assert entries["c1"].llm_score == 0.9
        assert entries["c1"].job_id == "j1"

    def test_cache_upsert_only_whitelisted_fields(self):
        db = FakeDatabase()

        MatchCacheRepository(db).upsert("j1", "c1", {"explanation": "Fit", "llm_score": 0.8}, NOW)

        query, params = db.cursor.executed[0]
        assert isinstance(query, sql.Composed)
        # Columns follow the cache field order, not the dict order
        assert params == ["j1", "c1", 0.8, NOW, "Fit", NOW, NOW]

    def test_cache_upsert_without_fields_is_noop(self):
        db = FakeDatabase()
        MatchCacheRepository(db).upsert("j1", "c1", {}, NOW)
        assert db.cursor.executed == []

    def test_results_filtered_by_version(self):
        db = FakeDatabase()

        BenchmarkRepository(db).get_results(version="v2")

        query, params = db.cursor.executed[0]
        assert "WHERE version = %s" in query
        assert params == ["v2"]

    def test_cache_upsert_restamps_only_named_fields(self):
        db = FakeDatabase()

        MatchCacheRepository(db).upsert(
            "j1", "c1", {"final_score": 0.7, "llm_score": 0.8}, NOW, stamped={"final_score"}
        )

        _, params = db.cursor.executed[0]
        assert params == ["j1", "c1", 0.8, 0.7, NOW, NOW]

    def test_cache_entry_reads_field_timestamps(self):
        earlier = NOW - timedelta(days=9)
        entry = ScoreCacheEntry.from_db_row({
            "vacancy_id": "j1", "candidate_id": "c1", "llm_score": 0.9, "neural_rank_score": 0.5,
            "llm_updated_at": earlier, "neural_updated_at": NOW, "updated_at": NOW,
        })

        assert entry.fresh_value("llm_score", timedelta(days=7), NOW) is None
        assert entry.fresh_value("neural_rank_score", timedelta(days=7), NOW) == 0.5
