"""
Attribute matchers comparing structured job and candidate fields.

Scales differ per matcher and are kept as the consumers expect them:
industries and skills score 0-100, location scores 0-1.
"""

import logging
import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Sequence, Union

from .similarity import embedding_score, semantic_similarity, title_score

logger = logging.getLogger(__name__)

Terms = Union[str, Iterable[str], None]

COUNTRY_ALIASES = {
    "usa": "USA",
    "united states": "USA",
    "us": "USA",
    "uk": "UK",
    "united kingdom": "UK",
    "canada": "Canada",
    "germany": "Germany",
    "france": "France",
    "spain": "Spain",
    "italy": "Italy",
    "netherlands": "Netherlands",
    "poland": "Poland",
    "sweden": "Sweden",
    "norway": "Norway",
    "denmark": "Denmark",
    "switzerland": "Switzerland",
    "australia": "Australia",
    "india": "India",
    "china": "China",
    "japan": "Japan",
    "singapore": "Singapore",
    "brazil": "Brazil",
    "mexico": "Mexico",
    "argentina": "Argentina",
}

COUNTRY_REGIONS = {
    "USA": "North America",
    "Canada": "North America",
    "Mexico": "North America",
    "UK": "Europe",
    "Germany": "Europe",
    "France": "Europe",
    "Spain": "Europe",
    "Italy": "Europe",
    "Netherlands": "Europe",
    "Poland": "Europe",
    "Sweden": "Europe",
    "Norway": "Europe",
    "Denmark": "Europe",
    "Switzerland": "Europe",
    "Australia": "Oceania",
    "India": "Asia",
    "China": "Asia",
    "Japan": "Asia",
    "Singapore": "Asia",
    "Brazil": "South America",
    "Argentina": "South America",
}

_COUNTRY_PATTERNS = [
    (re.compile(rf"\b{re.escape(alias)}\b"), country)
    for alias, country in COUNTRY_ALIASES.items()
]


def normalize_terms(values: Terms) -> List[str]:
    """Trim and lowercase terms, dropping empty ones"""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    normalized = (str(v).strip().lower() for v in values if v is not None)
    return [v for v in normalized if v]


def industries_match_score(candidate_industries: Terms, job_industries: Terms) -> float:
    """100 if the candidate shares any industry with the job, else 0"""
    candidate = normalize_terms(candidate_industries)
    job = normalize_terms(job_industries)
    if not candidate or not job:
        return 0.0
    return 100.0 if set(candidate) & set(job) else 0.0


def industries_match_score_weighted(
    candidate_industries: Terms,
    candidate_embedding: Optional[Sequence[float]],
    job_industries: Terms,
    job_embedding: Optional[Sequence[float]],
) -> float:
    """
    Hybrid industries score (0-100) kept for comparison runs only.

    Blends the mean intersection ratio (40%) with embedding similarity (60%).
    The ranking path uses industries_match_score.
    """
    candidate = normalize_terms(candidate_industries)
    job = normalize_terms(job_industries)
    if not candidate or not job:
        return 0.0

    overlap = len(set(candidate) & set(job))
    intersection_score = (overlap / len(candidate) + overlap / len(job)) / 2

    semantic_score = 0.0
    if (
        candidate_embedding is not None
        and job_embedding is not None
        and len(candidate_embedding) > 0
        and len(job_embedding) > 0
    ):
        semantic_score = semantic_similarity(candidate_embedding, job_embedding)

    return (intersection_score * 0.4 + semantic_score * 0.6) * 100


def skills_match_score(job_skills: Terms, candidate_skills: Terms) -> float:
    """Percentage of job skills covered by the candidate, rounded to 2 places"""
    job = normalize_terms(job_skills)
    candidate = set(normalize_terms(candidate_skills))
    if not job or not candidate:
        return 0.0

    matching = [skill for skill in job if skill in candidate]
    return round(100.0 * len(matching) / len(job), 2)


TITLE_TEXT_SIMILARITY = 0.6
TITLE_EMBEDDING_SIMILARITY = 16.0  # title_score scale, 0-20


def normalize_title(title: Optional[str]) -> str:
    return " ".join((title or "").lower().split())


def titles_similar(
    job_title: Optional[str],
    candidate_title: Optional[str],
    job_embedding: Optional[Sequence[float]] = None,
    candidate_embedding: Optional[Sequence[float]] = None,
) -> bool:
    """
    Loose title match: one title contains the other, the strings are close,
    or the title embeddings are close. Blank titles never match.
    """
    job = normalize_title(job_title)
    candidate = normalize_title(candidate_title)
    if not job or not candidate:
        return False
    if job in candidate or candidate in job:
        return True
    if SequenceMatcher(None, job, candidate).ratio() >= TITLE_TEXT_SIMILARITY:
        return True
    return title_score(job_embedding, candidate_embedding) >= TITLE_EMBEDDING_SIMILARITY


@dataclass
class ParsedLocation:
    country: Optional[str] = None
    region: Optional[str] = None
    is_remote: bool = False


def parse_location(location: Optional[str]) -> ParsedLocation:
    """
    Extract country and region from a free-text location.

    "New York, NY, USA" -> (USA, North America)
    "Remote"            -> is_remote
    """
    if not location:
        return ParsedLocation()

    text = location.lower().strip()
    if "remote" in text or "anywhere" in text:
        return ParsedLocation(is_remote=True)

    for pattern, country in _COUNTRY_PATTERNS:
        if pattern.search(text):
            return ParsedLocation(country=country, region=COUNTRY_REGIONS.get(country))

    return ParsedLocation()


def location_match_score(
    job_location: Optional[str],
    candidate_location: Optional[str],
    willing_to_relocate: bool = False,
) -> float:
    """
    Location fit in [0, 1]; the first matching rule wins.

    remote job 1.0, exact text 1.0, same country 1.0, same region 0.7,
    willing to relocate 0.5, otherwise 0.0.
    """
    if not job_location or not job_location.strip():
        return 0.0

    job = parse_location(job_location)
    if job.is_remote:
        return 1.0

    candidate_text = (candidate_location or "").lower().strip()
    if job_location.lower().strip() == candidate_text:
        return 1.0

    candidate = parse_location(candidate_location)
    if job.country and candidate.country and job.country == candidate.country:
        return 1.0
    if job.region and candidate.region and job.region == candidate.region:
        return 0.7
    if willing_to_relocate:
        return 0.5
    return 0.0


def location_embedding_score(
    job_embedding: Optional[Sequence[float]],
    candidate_embedding: Optional[Sequence[float]],
) -> float:
    return embedding_score(job_embedding, candidate_embedding)
