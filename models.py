"""
Data Models Module

This module contains the dataclass definitions used throughout the performance
analyzer: targets, raw telemetry, bundle statistics, page results and batch summaries.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


RATING_GOOD = "good"
RATING_NEEDS_IMPROVEMENT = "needs-improvement"
RATING_POOR = "poor"
RATINGS = (RATING_GOOD, RATING_NEEDS_IMPROVEMENT, RATING_POOR)

RESOURCE_CATEGORIES = ("script", "stylesheet", "image", "font", "other")


@dataclass(frozen=True)
class AnalysisTarget:
    """One page to measure"""
    url: str
    name: str


@dataclass
class WebVitalSample:
    """A single captured Web Vital"""
    name: str
    value: float
    rating: str = RATING_GOOD


@dataclass
class ResourceEntry:
    """One entry of the browser's resource-timing buffer"""
    url: str
    transferred_bytes: int
    duration_ms: float
    start_time_ms: float
    category: str = "other"


@dataclass
class ResourceSummary:
    """Summary of every resource loaded by one navigation"""
    total_count: int = 0
    total_bytes: int = 0
    by_category: Dict[str, List[ResourceEntry]] = field(
        default_factory=lambda: {category: [] for category in RESOURCE_CATEGORIES}
    )
    slowest: List[Tuple[str, float]] = field(default_factory=list)


@dataclass(frozen=True)
class CoverageRange:
    """A used byte range within one covered resource (end exclusive)"""
    start: int
    end: int

    @property
    def length(self) -> int:
        return max(0, self.end - self.start)


@dataclass
class CoverageEntry:
    """Coverage for one script or stylesheet"""
    url: str
    text: str
    ranges: List[CoverageRange] = field(default_factory=list)


@dataclass
class BundleStat:
    """Size and utilization for one asset class"""
    total_bytes: int = 0
    used_bytes: int = 0
    unused_bytes: int = 0
    utilization_percent: float = 0


@dataclass
class BundleAnalysis:
    """Bundle statistics for javascript and css"""
    javascript: BundleStat = field(default_factory=BundleStat)
    css: BundleStat = field(default_factory=BundleStat)


@dataclass
class HeapMetrics:
    """Point-in-time snapshot of the browser's performance counters"""
    used_heap_bytes: int = 0
    total_heap_bytes: int = 0
    event_listener_count: int = 0
    node_count: int = 0
    document_count: int = 0
    frame_count: int = 0
    task_duration_ms: float = 0


@dataclass
class PageAnalysisResult:
    """Everything measured for one page"""
    page_name: str
    url: str
    timestamp: str
    load_time_ms: float
    vitals: Dict[str, WebVitalSample] = field(default_factory=dict)
    resources: ResourceSummary = field(default_factory=ResourceSummary)
    bundle: BundleAnalysis = field(default_factory=BundleAnalysis)
    heap_metrics: HeapMetrics = field(default_factory=HeapMetrics)
    score: Optional[int] = None
    recommendations: List[str] = field(default_factory=list)


@dataclass
class PageFailure:
    """A page whose analysis did not complete"""
    page_name: str
    url: str
    error_type: str
    error: str


@dataclass
class OverallSummary:
    """Aggregate over the successful pages of one batch"""
    timestamp: str
    page_count: int
    average_load_time_ms: Optional[float] = None
    aggregate_score: Optional[int] = None

    @property
    def has_data(self) -> bool:
        return self.page_count > 0


@dataclass
class BatchResults:
    """Overall batch results"""
    results: List[PageAnalysisResult]
    failures: List[PageFailure]
    summary: OverallSummary
    duration: float


@dataclass
class TargetCheck:
    """Reachability check for a single target"""
    page_name: str
    url: str
    reachable: bool
    status_code: Optional[int] = None
    response_time_ms: float = 0
    issues: List[str] = field(default_factory=list)


@dataclass
class DryRunReport:
    """Dry-run analysis report"""
    checks: List[TargetCheck]
    reachable_count: int
    issues_found: List[str]
    recommendations: List[str]
