import logging
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from match_service.config import settings
from match_service.services.evaluation import BenchmarkRunner

logger = logging.getLogger(__name__)


class BenchmarkScheduler:
    def __init__(self, runner: BenchmarkRunner = None):
        self.scheduler = BlockingScheduler()
        self.runner = runner or BenchmarkRunner()
        self.day_of_week = settings.benchmark_day_of_week
        self.hour = settings.benchmark_hour
        self.version = settings.benchmark_version

    def _run_benchmark_job(self) -> None:
        """Benchmark every job with ground truth"""
        logger.info(f"[{datetime.now()}] Starting scheduled benchmark job")
        try:
            results = self.runner.run_all(self.version)
            logger.info(f"[{datetime.now()}] Benchmark job completed for {len(results)} jobs")
        except Exception as e:
            logger.error(f"[{datetime.now()}] Benchmark job failed: {e}", exc_info=True)

    def start(self, run_immediately: bool = False) -> None:
        """
        Start the weekly benchmark schedule.

        Args:
            run_immediately: If True, run the benchmark once before starting the schedule
        """
        logger.info(f"Starting benchmark scheduler: every {self.day_of_week} at {self.hour:02d}:00")

        if run_immediately:
            logger.info("Running initial benchmark job...")
            self._run_benchmark_job()

        self.scheduler.add_job(
            self._run_benchmark_job,
            trigger=CronTrigger(day_of_week=self.day_of_week, hour=self.hour, minute=0),
            id="weekly_benchmark_job",
            name="Benchmark candidate ranking against ground truth",
            replace_existing=True
        )

        logger.info("Scheduler started. Press Ctrl+C to exit.")

        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped.")
            self.scheduler.shutdown()

    def run_once(self) -> dict:
        """Run the benchmark job once without scheduling"""
        logger.info("Running benchmark job once...")
        return self.runner.run_all(self.version)
