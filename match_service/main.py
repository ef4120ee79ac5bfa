import argparse
import json
import logging
import sys

from match_service.config import settings
from match_service.database import DatabaseConnection
from match_service.exceptions import ConfigurationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("match_service.log")
    ]
)

logger = logging.getLogger(__name__)


def test_connection() -> bool:
    """Test database connection"""
    db = DatabaseConnection()
    if db.test_connection():
        logger.info("Database connection successful")
        return True
    else:
        logger.error("Database connection failed")
        return False


def run_match(job_id: str) -> None:
    from match_service.services import CascadeRankingPipeline

    pipeline = CascadeRankingPipeline()
    run = pipeline.rank_with_report(job_id)
    for failure in run.failures:
        logger.warning(f"[{failure.stage}] {', '.join(failure.candidate_ids)}: {failure.error}")
    print(json.dumps([candidate.to_dict() for candidate in run.results], indent=2))


def run_benchmark(job_id: str, version: str) -> None:
    from match_service.services.evaluation import BenchmarkRunner

    runner = BenchmarkRunner()
    if job_id:
        results = {job_id: runner.run_benchmark(job_id, version)}
    else:
        results = runner.run_all(version)

    for result in results.values():
        logger.info(
            f"Job {result.job_id}: P@5={result.precision_at_5:.4f} P@10={result.precision_at_10:.4f} "
            f"nDCG@10={result.ndcg_at_10:.4f} MRR={result.mrr:.4f}"
        )
    runner.save_results(results)


def main():
    parser = argparse.ArgumentParser(description="Candidate Matching Service")
    parser.add_argument(
        "--mode",
        choices=["match", "benchmark", "schedule", "test"],
        default="match",
        help="Run mode: 'match' to rank candidates for a job, 'benchmark' to evaluate against ground truth, "
             "'schedule' for the weekly benchmark, 'test' for connection test"
    )
    parser.add_argument(
        "--job-id",
        type=str,
        help="Job (vacancy) UUID; required for 'match', optional for 'benchmark'"
    )
    parser.add_argument(
        "--version",
        type=str,
        default=settings.benchmark_version,
        help=f"Benchmark version label (default: {settings.benchmark_version})"
    )
    parser.add_argument(
        "--immediate",
        action="store_true",
        help="Run the benchmark immediately when starting the scheduler"
    )

    args = parser.parse_args()

    logger.info("=" * 50)
    logger.info("Candidate Matching Service")
    logger.info("=" * 50)
    logger.info(f"Mode: {args.mode}")
    logger.info(f"Database: {settings.database_url_clean}")
    logger.info(f"Models: neural={settings.neural_rank_model}, llm={settings.llm_rank_model}")
    logger.info(
        f"Funnel: pool={settings.pre_score_pool_size}, neural_top_n={settings.neural_top_n}, "
        f"batch={settings.llm_batch_size}"
    )
    logger.info("=" * 50)

    # Test connection first
    if not test_connection():
        logger.error("Cannot connect to database. Exiting.")
        sys.exit(1)

    if args.mode == "test":
        logger.info("Connection test passed. Exiting.")
        sys.exit(0)

    try:
        if args.mode == "match":
            if not args.job_id:
                parser.error("--job-id is required for match mode")
            run_match(args.job_id)
        elif args.mode == "benchmark":
            run_benchmark(args.job_id, args.version)
        else:  # schedule
            from match_service.scheduler import BenchmarkScheduler
            BenchmarkScheduler().start(run_immediately=args.immediate)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
