from .similarity import cosine_similarity, embedding_score, semantic_similarity, title_score
from .score_cache import ScoreCache
from .scoring_client import OpenAIScoringClient, ScoringClient
from .pipeline import CascadeRankingPipeline, fuse_scores

__all__ = [
    "cosine_similarity",
    "embedding_score",
    "semantic_similarity",
    "title_score",
    "ScoreCache",
    "OpenAIScoringClient",
    "ScoringClient",
    "CascadeRankingPipeline",
    "fuse_scores",
]
