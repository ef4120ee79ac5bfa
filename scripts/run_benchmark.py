"""
Run Benchmark of the candidate ranking pipeline.

Evaluates the pipeline against curated ground truth using:
- Precision@5, Precision@10
- Recall@5, Recall@10
- NDCG@5, NDCG@10
- MRR

Prerequisites:
1. Ground truth must be imported first (run import_ground_truth.py)

Usage:
    python scripts/run_benchmark.py
    python scripts/run_benchmark.py --job-id <uuid> --version v2
    python scripts/run_benchmark.py --summary
"""

import sys
import logging
import argparse
from pathlib import Path

# Add parent directory to path to import match_service
sys.path.insert(0, str(Path(__file__).parent.parent))

from match_service.config import settings
from match_service.services.evaluation import BenchmarkRunner

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def main():
    """Main function to run benchmark"""
    parser = argparse.ArgumentParser(
        description="Run benchmark of the candidate ranking pipeline"
    )
    parser.add_argument(
        "--job-id",
        type=str,
        help="Benchmark a single job (default: every job with ground truth)"
    )
    parser.add_argument(
        "--version",
        type=str,
        default=settings.benchmark_version,
        help=f"Version label stored with the results (default: {settings.benchmark_version})"
    )
    parser.add_argument(
        "--output",
        type=str,
        default="./evaluation_data/benchmark_results.json",
        help="Path to save benchmark results JSON (default: ./evaluation_data/benchmark_results.json)"
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Only print the stored history averaged per version"
    )

    args = parser.parse_args()

    runner = BenchmarkRunner(output_path=args.output)

    if args.summary:
        summary = runner.summarize_by_version()
        if summary.empty:
            logger.info("No benchmark results stored yet")
        else:
            print(summary.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
        return

    if args.job_id:
        results = {args.job_id: runner.run_benchmark(args.job_id, args.version)}
    else:
        results = runner.run_all(args.version)

    if not results:
        logger.error("No benchmark results produced")
        sys.exit(1)

    for job_id, result in results.items():
        print(f"\nJob {job_id} ({result.version})")
        print(f"  Precision@5:   {result.precision_at_5:.4f}")
        print(f"  Precision@10:  {result.precision_at_10:.4f}")
        print(f"  Recall@5:      {result.recall_at_5:.4f}")
        print(f"  Recall@10:     {result.recall_at_10:.4f}")
        print(f"  NDCG@5:        {result.ndcg_at_5:.4f}")
        print(f"  NDCG@10:       {result.ndcg_at_10:.4f}")
        print(f"  MRR:           {result.mrr:.4f}")

    output_path = runner.save_results(results)
    print(f"\nResults saved to: {output_path}")


if __name__ == "__main__":
    main()
