import logging
from dataclasses import replace
from typing import Dict, List, Optional

from match_service.models import CandidateProfile, JobPosting, PreScoreMatch
from .matchers import (
    industries_match_score,
    location_match_score,
    normalize_terms,
    normalize_title,
    parse_location,
    skills_match_score,
    titles_similar,
)

logger = logging.getLogger(__name__)


class AttributePrefilter:
    """
    Hard and soft filters applied to the pre-score pool.

    Hard filters drop a candidate:
    - skills coverage below 60%
    - no shared or related industry
    - general title neither equal nor similar to the job title
    - location mismatch for non-remote roles

    Soft filters apply a single flat penalty to the pre-score:
    - skills coverage from 60% up to 80%
    - industry only matched through related industries
    - title similar but not equal
    - location matched by region or relocation only

    A rule only fires when both the job and the candidate carry the attribute.
    """

    SOFT_PENALTY = 0.15
    MIN_SKILLS_COVERAGE = 60.0
    FULL_SKILLS_COVERAGE = 80.0

    def evaluate(self, job: JobPosting, candidate: CandidateProfile) -> Optional[float]:
        """Return the penalty for a candidate, or None if it is excluded"""
        penalty = 0.0

        if normalize_terms(job.hard_skills) and normalize_terms(candidate.hard_skills):
            coverage = skills_match_score(job.hard_skills, candidate.hard_skills)
            if coverage < self.MIN_SKILLS_COVERAGE:
                return None
            if coverage < self.FULL_SKILLS_COVERAGE:
                penalty = self.SOFT_PENALTY

        if normalize_terms(job.industries) and normalize_terms(candidate.industries):
            if industries_match_score(candidate.industries, job.industries) == 0:
                if industries_match_score(candidate.related_industries, job.industries) > 0:
                    penalty = self.SOFT_PENALTY
                else:
                    return None

        job_title = normalize_title(job.title)
        candidate_title = normalize_title(candidate.title)
        if job_title and candidate_title and job_title != candidate_title:
            if titles_similar(job_title, candidate_title, job.title_embedding, candidate.title_embedding):
                penalty = self.SOFT_PENALTY
            else:
                return None

        if job.location and candidate.location and not parse_location(job.location).is_remote:
            score = location_match_score(job.location, candidate.location, candidate.willing_to_relocate)
            if score == 0:
                return None
            if score < 1.0:
                penalty = self.SOFT_PENALTY

        return penalty

    def apply(
        self,
        job: JobPosting,
        pool: List[PreScoreMatch],
        profiles: Dict[str, CandidateProfile],
        limit: int,
    ) -> List[PreScoreMatch]:
        """
        Filter the pool and re-sort by penalized pre-score.

        Candidates without a loaded profile pass through unchanged; the
        neural stage reports them.
        """
        kept = []
        excluded = 0
        for match in pool:
            profile = profiles.get(match.candidate_id)
            if profile is None:
                kept.append(match)
                continue

            penalty = self.evaluate(job, profile)
            if penalty is None:
                excluded += 1
                continue
            kept.append(replace(match, pre_score=match.pre_score * (1 - penalty)))

        kept.sort(key=lambda m: (-m.pre_score, m.candidate_id))
        logger.info(f"Prefilter kept {len(kept)} of {len(pool)} candidates ({excluded} excluded)")
        return kept[:limit]


def apply_prefilter(
    job: JobPosting,
    pool: List[PreScoreMatch],
    profiles: Dict[str, CandidateProfile],
    limit: int = 50,
) -> List[PreScoreMatch]:
    return AttributePrefilter().apply(job, pool, profiles, limit)
