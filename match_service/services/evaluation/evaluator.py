"""
Benchmark runner for the candidate ranking pipeline.

Orchestrates a benchmark run:
1. Load curated ground truth for the job
2. Get the ranking from the pipeline
3. Compute evaluation metrics
4. Append the result to the benchmark history
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from match_service.config import settings
from match_service.database import BenchmarkRepository, DatabaseConnection
from match_service.exceptions import GroundTruthMissingError
from match_service.models import BenchmarkResult, GroundTruthSet
from .metrics import EvaluationMetrics

logger = logging.getLogger(__name__)

METRIC_COLUMNS = [
    "precision_at_5",
    "precision_at_10",
    "recall_at_5",
    "recall_at_10",
    "ndcg_at_5",
    "ndcg_at_10",
    "mrr",
]


class BenchmarkRunner:
    """
    Runs benchmarks for jobs with ground truth and keeps their history.

    Results are append-only: every run adds one row per job.
    """

    def __init__(
        self,
        pipeline=None,
        repository: Optional[BenchmarkRepository] = None,
        output_path: str = "./evaluation_data/benchmark_results.json",
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the runner.

        Args:
            pipeline: Ranking pipeline (default: built on first use)
            repository: Benchmark storage (default: PostgreSQL)
            output_path: Path to save benchmark results JSON
            clock: Source of run timestamps (default: current UTC time)
        """
        self._pipeline = pipeline
        self.repository = repository or BenchmarkRepository(DatabaseConnection())
        self.output_path = Path(output_path)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def pipeline(self):
        if self._pipeline is None:
            from match_service.services.pipeline import CascadeRankingPipeline
            self._pipeline = CascadeRankingPipeline()
        return self._pipeline

    def run_benchmark(self, job_id: str, version: Optional[str] = None) -> BenchmarkResult:
        """
        Benchmark the pipeline on one job.

        Raises GroundTruthMissingError when the job has no curated candidates.
        A failure to store the result is logged and the result still returned.
        """
        version = version or settings.benchmark_version

        ground_truth = self.repository.get_ground_truth(job_id)
        if ground_truth is None or not ground_truth.candidate_ids:
            raise GroundTruthMissingError(f"No ground truth found for job {job_id}")

        logger.info(f"Running benchmark for job {job_id} with version {version}...")
        ranking = self.pipeline.rank(job_id)
        ranked_ids = [candidate.candidate_id for candidate in ranking]

        metrics = EvaluationMetrics.evaluate(ranked_ids, ground_truth.candidate_ids)
        result = BenchmarkResult(
            job_id=job_id,
            version=version,
            precision_at_5=metrics.precision_at_5,
            precision_at_10=metrics.precision_at_10,
            recall_at_5=metrics.recall_at_5,
            recall_at_10=metrics.recall_at_10,
            ndcg_at_5=metrics.ndcg_at_5,
            ndcg_at_10=metrics.ndcg_at_10,
            mrr=metrics.mrr,
            total_relevant_candidates=metrics.total_relevant_candidates,
            total_retrieved_candidates=metrics.total_retrieved_candidates,
            timestamp=self.clock(),
            metadata={
                "system_ranking_count": len(ranked_ids),
                "ground_truth_count": len(ground_truth.candidate_ids),
            },
        )

        try:
            self.repository.insert_result(result)
        except Exception as e:
            logger.error(f"Failed to store benchmark results for job {job_id}: {e}")

        logger.info(f"Benchmark completed for job {job_id}. Precision@10: {result.precision_at_10:.4f}")
        return result

    def run_all(self, version: Optional[str] = None) -> Dict[str, BenchmarkResult]:
        """Benchmark every job that has ground truth; one failing job does not stop the rest"""
        logger.info("=" * 60)
        logger.info("Starting benchmark run")
        logger.info("=" * 60)

        job_ids = self.repository.get_benchmark_job_ids()
        logger.info(f"Found {len(job_ids)} benchmark jobs")

        results = {}
        for job_id in job_ids:
            try:
                results[job_id] = self.run_benchmark(job_id, version)
            except Exception as e:
                logger.error(f"Benchmark failed for job {job_id}: {e}")

        logger.info("=" * 60)
        logger.info(f"Benchmark run completed: {len(results)}/{len(job_ids)} jobs succeeded")
        logger.info("=" * 60)
        return results

    def history_frame(self, job_id: Optional[str] = None, version: Optional[str] = None) -> pd.DataFrame:
        """Stored benchmark results as a DataFrame, newest first"""
        results = self.repository.get_results(job_id=job_id, version=version)
        columns = list(BenchmarkResult.__dataclass_fields__)
        df = pd.DataFrame([r.to_dict() for r in results], columns=columns)
        if not df.empty:
            df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
            df = df.sort_values("timestamp", ascending=False).reset_index(drop=True)
        return df

    def summarize_by_version(self) -> pd.DataFrame:
        """Mean of each metric per version, with the number of runs"""
        df = self.history_frame()
        if df.empty:
            return pd.DataFrame(columns=["version", "runs"] + METRIC_COLUMNS)

        summary = df.groupby("version")[METRIC_COLUMNS].mean()
        summary.insert(0, "runs", df.groupby("version").size())
        return summary.reset_index()

    @staticmethod
    def load_ground_truth_csv(path: str) -> List[GroundTruthSet]:
        """
        Load ground truth from a CSV file with job_id,candidate_id rows.

        Returns:
            One GroundTruthSet per job, candidates in file order without duplicates
        """
        csv_path = Path(path)
        if not csv_path.exists():
            raise FileNotFoundError(f"Ground truth file not found: {csv_path}")

        df = pd.read_csv(csv_path, dtype=str)
        missing = {"job_id", "candidate_id"} - set(df.columns)
        if missing:
            raise ValueError(f"Ground truth CSV is missing columns: {sorted(missing)}")

        df = df.dropna(subset=["job_id", "candidate_id"])
        df["job_id"] = df["job_id"].str.strip()
        df["candidate_id"] = df["candidate_id"].str.strip()
        df = df.drop_duplicates(subset=["job_id", "candidate_id"])

        ground_truth = [
            GroundTruthSet(job_id=job_id, candidate_ids=group["candidate_id"].tolist())
            for job_id, group in df.groupby("job_id", sort=False)
        ]
        logger.info(f"Loaded ground truth for {len(ground_truth)} jobs from {csv_path}")
        return ground_truth

    def save_results(self, results: Dict[str, BenchmarkResult]) -> str:
        """
        Save benchmark results to JSON file.

        Returns:
            Path to saved file
        """
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "timestamp": datetime.now().isoformat(),
            "results": {job_id: result.to_dict() for job_id, result in results.items()}
        }

        with open(self.output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"Saved benchmark results to {self.output_path}")
        return str(self.output_path)
