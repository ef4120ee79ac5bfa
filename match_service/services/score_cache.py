import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from match_service.models import ScoreCacheEntry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: Any) -> Any:
    """Clamp numeric scores to [0, 1]; other values pass through"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return max(0.0, min(1.0, float(value)))


class ScoreCache:
    """
    Per (job, candidate) cache of expensive scores.

    Freshness is checked per field at read time against the caller's TTL,
    using that field's own write time. Reads that fail count as misses and
    writes that fail are logged, so the cache never breaks a ranking run.
    """

    def __init__(self, repository, clock: Optional[Callable[[], datetime]] = None):
        self.repository = repository
        self.clock = clock or utc_now

    def _read(self, job_id: str, candidate_ids: List[str]) -> Dict[str, ScoreCacheEntry]:
        try:
            return self.repository.get_entries(job_id, candidate_ids)
        except Exception as e:
            logger.warning(f"Score cache read failed for job {job_id}, treating as miss: {e}")
            return {}

    def get_or_compute(
        self,
        job_id: str,
        candidate_id: str,
        field: str,
        ttl: timedelta,
        compute_fn: Callable[[], Any],
    ) -> Any:
        """
        Return a fresh cached value, or compute, store and return a new one.

        Exceptions from compute_fn propagate to the caller.
        """
        entry = self._read(job_id, [candidate_id]).get(candidate_id)
        if entry is not None:
            cached = entry.fresh_value(field, ttl, self.clock())
            if cached is not None:
                return cached

        value = _clamp(compute_fn())
        self.store(job_id, candidate_id, **{field: value})
        return value

    def fresh_values(self, job_id: str, candidate_ids: List[str], field: str, ttl: timedelta) -> Dict[str, Any]:
        """Fresh values of one field for many candidates, in a single read"""
        now = self.clock()
        values = {}
        for candidate_id, entry in self._read(job_id, candidate_ids).items():
            value = entry.fresh_value(field, ttl, now)
            if value is not None:
                values[candidate_id] = value
        return values

    def store(self, job_id: str, candidate_id: str, stamp: Optional[Iterable[str]] = None, **fields) -> bool:
        """
        Best-effort upsert of the given fields; returns False on failure.

        Only the fields named in stamp get a new write time (default: all of
        them). The rest are rewritten without resetting their age.
        """
        stamped = set(fields) if stamp is None else set(stamp)
        unknown = (set(fields) | stamped) - set(ScoreCacheEntry.FIELDS)
        if unknown:
            raise KeyError(f"Unknown score cache fields: {sorted(unknown)}")

        values = {name: _clamp(value) for name, value in fields.items()}
        try:
            self.repository.upsert(job_id, candidate_id, values, self.clock(), stamped=stamped)
            return True
        except Exception as e:
            logger.warning(f"Score cache write failed for {job_id}/{candidate_id}: {e}")
            return False
