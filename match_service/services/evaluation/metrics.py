"""
Evaluation Metrics for the candidate ranking pipeline.

Implements ranking metrics for a single job with a set of relevant candidates:
- Precision@K / Recall@K
- NDCG@K (Normalized Discounted Cumulative Gain, binary relevance)
- MRR (reciprocal rank of the first relevant candidate)
"""

import logging
from dataclasses import dataclass
from typing import Collection, List

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Container for evaluation results."""
    precision_at_5: float
    precision_at_10: float
    recall_at_5: float
    recall_at_10: float
    ndcg_at_5: float
    ndcg_at_10: float
    mrr: float
    total_relevant_candidates: int
    total_retrieved_candidates: int

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "precision_at_5": self.precision_at_5,
            "precision_at_10": self.precision_at_10,
            "recall_at_5": self.recall_at_5,
            "recall_at_10": self.recall_at_10,
            "ndcg_at_5": self.ndcg_at_5,
            "ndcg_at_10": self.ndcg_at_10,
            "mrr": self.mrr,
            "total_relevant_candidates": self.total_relevant_candidates,
            "total_retrieved_candidates": self.total_retrieved_candidates,
        }

    def __str__(self) -> str:
        """Format results as string."""
        return (
            f"Evaluation Results:\n"
            f"  Precision@5:   {self.precision_at_5:.4f}\n"
            f"  Precision@10:  {self.precision_at_10:.4f}\n"
            f"  Recall@5:      {self.recall_at_5:.4f}\n"
            f"  Recall@10:     {self.recall_at_10:.4f}\n"
            f"  NDCG@5:        {self.ndcg_at_5:.4f}\n"
            f"  NDCG@10:       {self.ndcg_at_10:.4f}\n"
            f"  MRR:           {self.mrr:.4f}\n"
            f"  Relevant:      {self.total_relevant_candidates}\n"
            f"  Retrieved:     {self.total_retrieved_candidates}"
        )


class EvaluationMetrics:
    """
    Calculator for ranking evaluation metrics.

    Every method is pure: ranked_list is the candidate ids in rank order
    (best first) and ground_truth is the collection of relevant ids.
    """

    @staticmethod
    def precision_at_k(ranked_list: List[str], ground_truth: Collection[str], k: int) -> float:
        """
        Precision@K = |top-K ∩ GT| / K

        The denominator is K even when fewer than K candidates were returned.
        """
        if k <= 0:
            return 0.0
        relevant = set(ground_truth)
        hits = sum(1 for item in ranked_list[:k] if item in relevant)
        return hits / k

    @staticmethod
    def recall_at_k(ranked_list: List[str], ground_truth: Collection[str], k: int) -> float:
        """Recall@K = |top-K ∩ GT| / |GT|, 0 for empty ground truth"""
        relevant = set(ground_truth)
        if not relevant:
            return 0.0
        hits = sum(1 for item in ranked_list[:k] if item in relevant)
        return hits / len(relevant)

    @staticmethod
    def dcg_at_k(relevances: List[float], k: int) -> float:
        """
        Calculate Discounted Cumulative Gain at K.

        DCG@K = sum_{i=1}^{K} (rel_i / log2(i+1))

        Args:
            relevances: List of relevance scores (0 or 1 for binary relevance)
            k: Number of top results to consider

        Returns:
            DCG@K value
        """
        relevances = relevances[:k]
        if not relevances:
            return 0.0

        dcg = 0.0
        for i, rel in enumerate(relevances):
            dcg += rel / np.log2(i + 2)  # i+2 because i starts at 0, log2(1) = 0

        return float(dcg)

    @staticmethod
    def idcg_at_k(num_relevant: int, k: int) -> float:
        """Ideal DCG: all relevant candidates ranked first"""
        return EvaluationMetrics.dcg_at_k([1.0] * min(num_relevant, k), k)

    @staticmethod
    def ndcg_at_k(ranked_list: List[str], ground_truth: Collection[str], k: int) -> float:
        """
        Calculate Normalized DCG at K.

        For binary relevance:
        - rel_i = 1 if ranked_list[i] is in the ground truth, else 0
        - IDCG@K = DCG of min(|GT|, K) relevant items at the top

        NDCG@K = DCG@K / IDCG@K (0 when IDCG is 0)
        """
        relevant = set(ground_truth)
        relevances = [1.0 if item in relevant else 0.0 for item in ranked_list[:k]]

        dcg = EvaluationMetrics.dcg_at_k(relevances, k)
        idcg = EvaluationMetrics.idcg_at_k(len(relevant), k)

        return dcg / idcg if idcg > 0 else 0.0

    @staticmethod
    def reciprocal_rank(ranked_list: List[str], ground_truth: Collection[str]) -> float:
        """
        Calculate reciprocal rank.

        Returns:
            1/rank of the first relevant candidate (1-indexed), 0.0 if none
        """
        relevant = set(ground_truth)
        for rank, item in enumerate(ranked_list, start=1):
            if item in relevant:
                return 1.0 / rank
        return 0.0

    @classmethod
    def evaluate(cls, ranked_list: List[str], ground_truth: Collection[str]) -> EvaluationResult:
        """
        Run all evaluation metrics at K = 5 and K = 10.

        Args:
            ranked_list: Candidate ids returned by the pipeline, best first
            ground_truth: Relevant candidate ids

        Returns:
            EvaluationResult with all metrics
        """
        relevant = set(ground_truth)
        if not relevant:
            logger.warning("Empty ground truth provided")

        return EvaluationResult(
            precision_at_5=cls.precision_at_k(ranked_list, relevant, 5),
            precision_at_10=cls.precision_at_k(ranked_list, relevant, 10),
            recall_at_5=cls.recall_at_k(ranked_list, relevant, 5),
            recall_at_10=cls.recall_at_k(ranked_list, relevant, 10),
            ndcg_at_5=cls.ndcg_at_k(ranked_list, relevant, 5),
            ndcg_at_10=cls.ndcg_at_k(ranked_list, relevant, 10),
            mrr=cls.reciprocal_rank(ranked_list, relevant),
            total_relevant_candidates=len(relevant),
            total_retrieved_candidates=len(ranked_list),
        )
