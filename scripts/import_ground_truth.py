"""
Import curated ground truth into the benchmark_jobs table.

The CSV must have job_id and candidate_id columns, one relevant candidate
per row. Existing ground truth for a job is replaced.

Usage:
    python scripts/import_ground_truth.py ./evaluation_data/ground_truth.csv
"""

import sys
import logging
import argparse
from pathlib import Path

# Add parent directory to path to import match_service
sys.path.insert(0, str(Path(__file__).parent.parent))

from match_service.database import BenchmarkRepository, DatabaseConnection
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
    parser = argparse.ArgumentParser(description="Import benchmark ground truth from CSV")
    parser.add_argument("csv_path", type=str, help="Path to ground truth CSV (job_id,candidate_id)")
    args = parser.parse_args()

    db = DatabaseConnection()
    if not db.test_connection():
        logger.error("Cannot connect to database. Exiting.")
        sys.exit(1)

    repository = BenchmarkRepository(db)
    ground_truth = BenchmarkRunner.load_ground_truth_csv(args.csv_path)
    for entry in ground_truth:
        repository.upsert_ground_truth(entry)

    logger.info(f"Imported ground truth for {len(ground_truth)} jobs")


if __name__ == "__main__":
    main()
