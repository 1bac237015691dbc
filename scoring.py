"""
Scoring and Recommendation Module

Turns a PageAnalysisResult into a 0-100 score and a list of recommendations,
and aggregates page scores into a batch summary. Rules are evaluated in
order and are independent of each other: every rule whose predicate holds
deducts its penalty and contributes its recommendation.
"""

import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from models import PageAnalysisResult, OverallSummary
from utils import get_timestamp


MAX_SCORE = 100
MIN_SCORE = 0

NO_ISSUES_RECOMMENDATION = "✅ Great performance! No issues found - all metrics are within acceptable ranges"


@dataclass(frozen=True)
class ScoringRule:
    name: str
    predicate: Callable[[PageAnalysisResult], bool]
    penalty: int
    recommendation: str


def vital_value(result: PageAnalysisResult, *names: str) -> Optional[float]:
    """Value of the first vital present under any of the given names"""
    for name in names:
        sample = result.vitals.get(name)
        if sample is not None:
            return sample.value
    return None


def _lcp(result: PageAnalysisResult) -> Optional[float]:
    return vital_value(result, 'LCP', 'largest-contentful-paint')


def _fid(result: PageAnalysisResult) -> Optional[float]:
    return vital_value(result, 'FID', 'first-input-delay')


SCORING_RULES: Tuple[ScoringRule, ...] = (
    ScoringRule(
        name='slow-load',
        predicate=lambda r: r.load_time_ms > 3000,
        penalty=20,
        recommendation="⚠️ Slow loading time - optimize images, enable compression and implement caching"
    ),
    ScoringRule(
        name='very-slow-load',
        predicate=lambda r: r.load_time_ms > 5000,
        penalty=30,
        recommendation="⚠️ Very slow loading time (over 5s) - audit render-blocking resources and server response time"
    ),
    ScoringRule(
        name='low-js-utilization',
        predicate=lambda r: r.bundle.javascript.utilization_percent < 50,
        penalty=15,
        recommendation="⚠️ JavaScript utilization is low - consider code splitting to reduce unused code"
    ),
    ScoringRule(
        name='low-css-utilization',
        predicate=lambda r: r.bundle.css.utilization_percent < 60,
        penalty=10,
        recommendation="⚠️ CSS utilization is low - remove unused CSS rules or inline critical CSS"
    ),
    ScoringRule(
        name='poor-lcp',
        predicate=lambda r: (_lcp(r) or 0) > 2500,
        penalty=25,
        recommendation="⚠️ Poor LCP - optimize the largest contentful paint by optimizing images and critical resources"
    ),
    ScoringRule(
        name='poor-fid',
        predicate=lambda r: (_fid(r) or 0) > 100,
        penalty=20,
        recommendation="⚠️ Poor FID - reduce JavaScript execution time and optimize event handlers"
    ),
)

ADVISORY_RULES: Tuple[ScoringRule, ...] = (
    ScoringRule(
        name='too-many-requests',
        predicate=lambda r: r.resources.total_count > 100,
        penalty=0,
        recommendation="⚠️ Too many requests - consider bundling and reducing the number of HTTP requests"
    ),
)


def score(result: PageAnalysisResult) -> Tuple[int, List[str]]:
    """
    Score a page from 0 to 100 and list recommendations.

    Args:
        result: The assembled page analysis

    Returns:
        (score, recommendations). Identical input always yields identical output.
    """
    page_score = MAX_SCORE
    recommendations = []

    for rule in SCORING_RULES:
        if rule.predicate(result):
            page_score -= rule.penalty
            recommendations.append(rule.recommendation)

    if not recommendations:
        recommendations.append(NO_ISSUES_RECOMMENDATION)

    for rule in ADVISORY_RULES:
        if rule.predicate(result):
            recommendations.append(rule.recommendation)

    return max(MIN_SCORE, min(MAX_SCORE, page_score)), recommendations


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate(results: Iterable[PageAnalysisResult]) -> OverallSummary:
    """
    Summarize the successful pages of a batch.

    With no results the summary carries None for the averages, which
    reporters must render as "no data" rather than 0.
    """
    results = list(results)
    timestamp = get_timestamp()

    if not results:
        return OverallSummary(timestamp=timestamp, page_count=0)

    scores = [r.score if r.score is not None else score(r)[0] for r in results]
    average_load_time = sum(r.load_time_ms for r in results) / len(results)

    return OverallSummary(
        timestamp=timestamp,
        page_count=len(results),
        average_load_time_ms=average_load_time,
        aggregate_score=round_half_up(sum(scores) / len(scores))
    )
