"""Cascading candidate match-and-rank service with an offline evaluation harness."""

__version__ = "0.1.0"
