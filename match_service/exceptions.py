"""
Exception hierarchy for the matching service.

Configuration errors fail fast and propagate to the caller. Scoring service
errors are transient: the pipeline catches them per candidate or per batch
and drops the affected items from that stage.
"""


class MatchServiceError(Exception):
    """Base class for all matching service errors."""
    pass


class DimensionMismatchError(MatchServiceError, ValueError):
    """Raised when two embeddings being compared have different lengths."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions must match: {left} vs {right}")
        self.left = left
        self.right = right


class ConfigurationError(MatchServiceError):
    """Raised for problems the caller must fix; never retried."""
    pass


class InvalidJobIdError(ConfigurationError):
    """Raised when a job identifier is not a valid UUID."""
    pass


class JobNotFoundError(ConfigurationError):
    """Raised when the job does not exist in the datastore."""
    pass


class GroundTruthMissingError(ConfigurationError):
    """Raised when a benchmark is requested for a job without ground truth."""
    pass


class ScoringServiceError(MatchServiceError):
    """Raised when the external scoring service fails or times out."""
    pass


class MalformedResponseError(ScoringServiceError):
    """Raised when a scoring service reply cannot be parsed."""
    pass


class RankingCancelledError(MatchServiceError):
    """Raised when a ranking request is cancelled between stages."""
    pass
