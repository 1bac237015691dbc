"""
In-Page Telemetry Module

Collects navigation timing, Web Vitals, resource timing entries and
performance counters from a live browser session. Raw data is read with
injected scripts or DevTools commands; turning it into model objects is done
by small pure functions so it can be tested without a browser.
"""

import logging
import re
import time
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from selenium.common.exceptions import TimeoutException, WebDriverException

from browser import BrowserSession
from errors import NavigationTimeout, NavigationError, InstrumentationFailure
from models import (
    WebVitalSample, ResourceEntry, ResourceSummary, HeapMetrics,
    RATINGS, RATING_GOOD, RATING_NEEDS_IMPROVEMENT, RATING_POOR,
    RESOURCE_CATEGORIES
)
from utils import get_url_path

logger = logging.getLogger(__name__)

DEFAULT_NAVIGATION_TIMEOUT_MS = 30000
DEFAULT_SETTLE_MS = 1000
DEFAULT_NETWORK_IDLE_MS = 500
IDLE_POLL_INTERVAL = 0.1
SLOWEST_LIMIT = 5

DOM_CONTENT_LOADED_GOOD_MS = 1500
LOAD_EVENT_GOOD_MS = 2500

# Category patterns are checked in order, first match wins
RESOURCE_PATTERNS = [
    ('script', re.compile(r'\.(js|jsx|ts|tsx|mjs)$')),
    ('stylesheet', re.compile(r'\.(css|scss|sass|less)$')),
    ('image', re.compile(r'\.(jpg|jpeg|png|gif|webp|avif|svg|ico)$')),
    ('font', re.compile(r'\.(woff|woff2|ttf|otf|eot)$')),
]

# (good, needs-improvement) upper bounds used when the vitals library
# reports a metric without a rating
VITAL_THRESHOLDS = {
    'LCP': (2500, 4000),
    'FID': (100, 300),
    'CLS': (0.1, 0.25),
    'FCP': (1800, 3000),
    'TTFB': (800, 1800),
    'INP': (200, 500),
}

RESOURCE_COUNT_SCRIPT = """
return Math.max(window.__perfResourceCount || 0,
                performance.getEntriesByType('resource').length);
"""

VITALS_SCRIPT = """
var settleMs = arguments[0];
var done = arguments[arguments.length - 1];
var vitals = {};

function capture(metric) {
    if (!metric || !metric.name) return;
    vitals[metric.name] = {
        name: metric.name,
        value: metric.value,
        rating: metric.rating || null
    };
}

var lib = window.webVitals || window;
var hooks = [
    ['getCLS', 'onCLS'], ['getFID', 'onFID'], ['getFCP', 'onFCP'],
    ['getLCP', 'onLCP'], ['getTTFB', 'onTTFB']
];
hooks.forEach(function(pair) {
    var subscribe = lib[pair[0]] || lib[pair[1]];
    if (typeof subscribe === 'function') {
        try { subscribe(capture, {reportAllChanges: true}); } catch (e) {}
    }
});

var nav = performance.getEntriesByType('navigation')[0];
if (nav) {
    var dcl = nav.domContentLoadedEventEnd - nav.domContentLoadedEventStart;
    var load = nav.loadEventEnd - nav.loadEventStart;
    vitals.DOMContentLoaded = {
        name: 'DOMContentLoaded',
        value: dcl,
        rating: dcl < %(dcl_good)d ? 'good' : 'needs-improvement'
    };
    vitals.LoadEvent = {
        name: 'LoadEvent',
        value: load,
        rating: load < %(load_good)d ? 'good' : 'needs-improvement'
    };
}

setTimeout(function() { done(vitals); }, settleMs);
""" % {'dcl_good': DOM_CONTENT_LOADED_GOOD_MS, 'load_good': LOAD_EVENT_GOOD_MS}

RESOURCES_SCRIPT = """
return performance.getEntriesByType('resource').map(function(r) {
    return {
        name: r.name,
        transferSize: r.transferSize,
        encodedBodySize: r.encodedBodySize,
        duration: r.duration,
        startTime: r.startTime
    };
});
"""

HEAP_COUNTERS = {
    'JSHeapUsedSize': 'used_heap_bytes',
    'JSHeapTotalSize': 'total_heap_bytes',
    'JSEventListeners': 'event_listener_count',
    'Nodes': 'node_count',
    'Documents': 'document_count',
    'Frames': 'frame_count',
}


def capture_navigation(session: BrowserSession, url: str,
                       timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
                       idle_ms: int = DEFAULT_NETWORK_IDLE_MS) -> Tuple[float, bool]:
    """
    Navigate to url and wait until the network has been quiet for idle_ms.

    Returns:
        (load_time_ms, True) once the page is idle

    Raises:
        NavigationTimeout: If the load or the idle wait exceeds timeout_ms
        NavigationError: If the browser could not load the page
    """
    driver = session.driver
    if driver is None:
        raise NavigationError("Browser session is not started")

    deadline = time.monotonic() + timeout_ms / 1000
    start = time.monotonic()
    logger.info(f"Loading page: {url}")

    try:
        driver.get(url)
    except TimeoutException as e:
        raise NavigationTimeout(f"Navigation to {url} exceeded {timeout_ms}ms") from e
    except WebDriverException as e:
        raise NavigationError(f"Navigation to {url} failed: {e.msg or e}") from e

    _wait_for_network_idle(session, url, deadline, idle_ms, timeout_ms)

    load_time_ms = round((time.monotonic() - start) * 1000)
    logger.debug(f"Page {url} reached network idle after {load_time_ms}ms")
    return load_time_ms, True


def _wait_for_network_idle(session: BrowserSession, url: str, deadline: float,
                           idle_ms: int, timeout_ms: int):
    """Block until the resource-timing buffer stops growing for idle_ms"""
    last_count = None
    quiet_since = time.monotonic()

    while True:
        try:
            count = session.driver.execute_script(RESOURCE_COUNT_SCRIPT)
        except TimeoutException as e:
            raise NavigationTimeout(f"Page {url} did not respond within {timeout_ms}ms") from e
        except WebDriverException as e:
            raise NavigationError(f"Lost page {url} while waiting for network idle: {e.msg or e}") from e

        now = time.monotonic()
        if count != last_count:
            last_count = count
            quiet_since = now
        elif (now - quiet_since) * 1000 >= idle_ms:
            return

        if now >= deadline:
            raise NavigationTimeout(f"Page {url} did not reach network idle within {timeout_ms}ms")
        time.sleep(IDLE_POLL_INTERVAL)


def rate_vital(name: str, value: float) -> str:
    """Rate a vital against the standard thresholds, good when unknown"""
    thresholds = VITAL_THRESHOLDS.get(name)
    if not thresholds:
        return RATING_GOOD
    good, needs_improvement = thresholds
    if value <= good:
        return RATING_GOOD
    if value <= needs_improvement:
        return RATING_NEEDS_IMPROVEMENT
    return RATING_POOR


def parse_vitals(raw: Any) -> Dict[str, WebVitalSample]:
    """Convert the in-page vitals mapping into WebVitalSamples"""
    if not isinstance(raw, Mapping):
        raise InstrumentationFailure(f"Unexpected Web Vitals payload: {type(raw).__name__}")

    vitals: Dict[str, WebVitalSample] = {}
    for key, sample in raw.items():
        if not isinstance(sample, Mapping) or sample.get('value') is None:
            logger.debug(f"Skipping malformed vital {key!r}")
            continue

        name = sample.get('name') or key
        value = float(sample['value'])
        rating = sample.get('rating')
        if rating is None:
            rating = rate_vital(name, value)
        elif rating not in RATINGS:
            rating = RATING_NEEDS_IMPROVEMENT

        vitals[name] = WebVitalSample(name=name, value=value, rating=rating)
    return vitals


def capture_vitals(session: BrowserSession, settle_ms: int = DEFAULT_SETTLE_MS) -> Dict[str, WebVitalSample]:
    """
    Collect Web Vitals reported within the settling window after load.

    Vitals the page never reports are absent from the result. The
    DOMContentLoaded and LoadEvent durations are always present when the
    navigation timing entry exists.
    """
    raw = session.evaluate_async(VITALS_SCRIPT, settle_ms)
    vitals = parse_vitals(raw)
    logger.debug(f"Captured vitals: {sorted(vitals)}")
    return vitals


def classify_resource(url: str) -> str:
    """Resource category from the URL's file extension"""
    path = get_url_path(url)
    for category, pattern in RESOURCE_PATTERNS:
        if pattern.search(path):
            return category
    return 'other'


def _entry_size(raw: Mapping) -> int:
    for key in ('transferSize', 'encodedBodySize'):
        value = raw.get(key)
        if value:
            return int(value)
    return 0


def summarize_resources(raw_entries: Iterable[Mapping]) -> ResourceSummary:
    """Build a ResourceSummary from raw resource-timing entries"""
    summary = ResourceSummary()
    entries: List[ResourceEntry] = []

    for raw in raw_entries:
        url = raw.get('name') or ''
        entry = ResourceEntry(
            url=url,
            transferred_bytes=_entry_size(raw),
            duration_ms=float(raw.get('duration') or 0),
            start_time_ms=float(raw.get('startTime') or 0),
            category=classify_resource(url)
        )
        entries.append(entry)
        summary.by_category[entry.category].append(entry)
        summary.total_bytes += entry.transferred_bytes

    summary.total_count = len(entries)
    slowest = sorted(entries, key=lambda e: e.duration_ms, reverse=True)[:SLOWEST_LIMIT]
    summary.slowest = [(e.url, e.duration_ms) for e in slowest]
    return summary


def capture_resources(session: BrowserSession) -> ResourceSummary:
    """Read every resource-timing entry recorded since navigation start"""
    raw = session.evaluate(RESOURCES_SCRIPT)
    if not isinstance(raw, list):
        raise InstrumentationFailure(f"Unexpected resource timing payload: {type(raw).__name__}")

    summary = summarize_resources(raw)
    logger.debug(f"Captured {summary.total_count} resources "
                 f"({', '.join(f'{c}={len(summary.by_category[c])}' for c in RESOURCE_CATEGORIES)})")
    return summary


def parse_heap_metrics(metrics: Iterable[Mapping]) -> HeapMetrics:
    """Map Performance.getMetrics counters onto HeapMetrics"""
    values = {m.get('name'): m.get('value', 0) for m in metrics}

    heap = HeapMetrics()
    for counter, attr in HEAP_COUNTERS.items():
        setattr(heap, attr, int(values.get(counter) or 0))
    # TaskDuration is reported in seconds
    heap.task_duration_ms = round(float(values.get('TaskDuration') or 0) * 1000, 3)
    return heap


def capture_heap_metrics(session: BrowserSession) -> HeapMetrics:
    """Point-in-time snapshot of the browser's performance counters"""
    session.execute_cdp('Performance.enable', {})
    response = session.execute_cdp('Performance.getMetrics', {})
    metrics = response.get('metrics') if isinstance(response, Mapping) else None
    if metrics is None:
        raise InstrumentationFailure("Performance.getMetrics returned no metrics")
    return parse_heap_metrics(metrics)
