from .connection import DatabaseConnection
from .repositories import BenchmarkRepository, CandidateRepository, JobRepository, MatchCacheRepository

__all__ = ["DatabaseConnection", "BenchmarkRepository", "CandidateRepository", "JobRepository", "MatchCacheRepository"]
