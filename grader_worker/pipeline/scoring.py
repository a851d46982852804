"""Visibility score and issue list for a scanned place."""

import math
from typing import Dict, List, Optional, Sequence

from grader_worker.core.models import (
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    CompetitorRecord,
    Issue,
    PerformanceReport,
    PlaceDetails,
    ScoreResult,
    StageResult,
)

MAX_TOTAL = 100
TOP_ISSUE_LIMIT = 3

BREAKDOWN_KEYS = ("profile", "reviews", "photos", "performance", "competition")

PROFILE_WITH_HOURS = 20
PROFILE_FLOOR = 8
REVIEWS_CAP = 15
REVIEWS_FLOOR = 4
PHOTOS_CAP = 10
PHOTOS_FLOOR = 3
PERFORMANCE_POINTS = 15
PERFORMANCE_FLOOR = 6
COMPETITORS_COUNTED = 5
POINTS_PER_COMPETITOR = 3


def round_half_up(value: float) -> int:
    """Round .5 away from zero; the builtin ``round`` rounds half to even."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _profile_score(details: Optional[PlaceDetails]) -> float:
    return PROFILE_WITH_HOURS if details and details.opening_hours else PROFILE_FLOOR


def _review_score(details: Optional[PlaceDetails]) -> float:
    if not details or not details.rating:
        return REVIEWS_FLOOR
    return min(round_half_up(details.rating * 3), REVIEWS_CAP)


def _photo_score(details: Optional[PlaceDetails]) -> float:
    if not details or details.photo_count is None:
        return PHOTOS_FLOOR
    return min(details.photo_count / 2, PHOTOS_CAP)


def _performance_score(report: Optional[PerformanceReport]) -> float:
    # A zero score is treated like a missing one, the same as a zero rating.
    if report is None or not report.performance_score:
        return PERFORMANCE_FLOOR
    return round_half_up(report.performance_score * PERFORMANCE_POINTS)


def _competition_score(competitors: Optional[Sequence[CompetitorRecord]]) -> float:
    return min(len(competitors or ()), COMPETITORS_COUNTED) * POINTS_PER_COMPETITOR


def calculate_score(
    details: StageResult[PlaceDetails],
    performance: StageResult[PerformanceReport],
    competitors: StageResult[List[CompetitorRecord]],
) -> ScoreResult:
    """Score a place from its enrichment results.

    Each sub-score has a floor used when its input is missing, so a degraded
    stage lowers the score without zeroing the category.
    """
    breakdown: Dict[str, float] = {
        "profile": _profile_score(details.value),
        "reviews": _review_score(details.value),
        "photos": _photo_score(details.value),
        "performance": _performance_score(performance.value),
        "competition": _competition_score(competitors.value),
    }
    raw_total = sum(breakdown.values())
    return ScoreResult(
        total=min(raw_total, MAX_TOTAL),
        raw_total=raw_total,
        breakdown=breakdown,
        provenance={
            "details": details.provenance,
            "performance": performance.provenance,
            "competitors": competitors.provenance,
        },
    )


def derive_issues(details: Optional[PlaceDetails]) -> List[Issue]:
    """Ordered issue list; rule order is the display order."""
    issues: List[Issue] = []
    if not details or not details.opening_hours:
        issues.append(
            Issue(
                key="hours_missing",
                label="Add operating hours to your Google Business Profile.",
                severity=SEVERITY_MEDIUM,
                weight=8,
            )
        )
    if not details or not details.website:
        issues.append(
            Issue(
                key="website_missing",
                label="Add your website to your Google Business Profile.",
                severity=SEVERITY_HIGH,
                weight=10,
            )
        )
    return issues


def top_issues(issues: Sequence[Issue], limit: int = TOP_ISSUE_LIMIT) -> List[Issue]:
    return list(issues[:limit])
