"""
Evaluation module for the candidate ranking pipeline.

This module provides:
- Ranking metrics (Precision@K, Recall@K, nDCG@K, MRR)
- Benchmark runs against curated ground truth, stored append-only
"""

from .metrics import EvaluationMetrics, EvaluationResult
from .evaluator import BenchmarkRunner

__all__ = ["EvaluationMetrics", "EvaluationResult", "BenchmarkRunner"]
