from .jobs import BenchmarkScheduler

__all__ = ["BenchmarkScheduler"]
