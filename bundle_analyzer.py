"""
Bundle Analyzer Module

Records which byte ranges of the page's scripts and stylesheets were used
during a load, through the DevTools Profiler and CSS domains, and computes
size and utilization statistics from that coverage.

analyze_bundle() and the range conversion helpers are pure functions.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Tuple

from browser import BrowserSession
from errors import InstrumentationFailure
from models import BundleAnalysis, BundleStat, CoverageEntry, CoverageRange

logger = logging.getLogger(__name__)


def to_disjoint_ranges(ranges: Iterable[Mapping]) -> List[CoverageRange]:
    """
    Flatten nested {startOffset, endOffset, count} ranges into disjoint used ranges.

    The innermost range decides whether a byte was used. Adjacent used
    ranges are merged.
    """
    points = []
    for r in ranges:
        start, end = r['startOffset'], r['endOffset']
        length = end - start
        # At equal offsets ends sort before starts; longer ranges open first and close last
        points.append((start, 1, -length, r.get('count', 0)))
        points.append((end, 0, length, None))
    points.sort(key=lambda p: (p[0], p[1], p[2]))

    results: List[CoverageRange] = []
    count_stack: List[int] = []
    last_offset = 0

    for offset, is_start, _, count in points:
        if count_stack and last_offset < offset and count_stack[-1] > 0:
            if results and results[-1].end == last_offset:
                results[-1] = CoverageRange(results[-1].start, offset)
            else:
                results.append(CoverageRange(last_offset, offset))
        last_offset = offset
        if is_start:
            count_stack.append(count)
        elif count_stack:
            count_stack.pop()

    return [r for r in results if r.length > 0]


def js_function_ranges_to_used(functions: Iterable[Mapping]) -> List[CoverageRange]:
    """Used ranges of one script from its V8 precise-coverage functions"""
    ranges = []
    for function in functions:
        ranges.extend(function.get('ranges', []))
    return to_disjoint_ranges(ranges)


def css_rule_usage_to_ranges(rule_usage: Iterable[Mapping]) -> Dict[str, List[CoverageRange]]:
    """Group CSS rule usage by stylesheet into disjoint used ranges"""
    grouped: Dict[str, List[Mapping]] = {}
    for rule in rule_usage:
        grouped.setdefault(rule['styleSheetId'], []).append({
            'startOffset': rule['startOffset'],
            'endOffset': rule['endOffset'],
            'count': 1 if rule.get('used') else 0,
        })
    return {sheet_id: to_disjoint_ranges(rules) for sheet_id, rules in grouped.items()}


def bundle_stat(entries: Iterable[CoverageEntry]) -> BundleStat:
    """Total, used and unused bytes for one asset class"""
    total = 0
    used = 0
    for entry in entries:
        total += len(entry.text)
        used += sum(r.length for r in entry.ranges)

    used = min(used, total)
    utilization = round(used / total * 100, 2) if total > 0 else 0
    return BundleStat(
        total_bytes=total,
        used_bytes=used,
        unused_bytes=total - used,
        utilization_percent=utilization
    )


def analyze_bundle(js_entries: Iterable[CoverageEntry], css_entries: Iterable[CoverageEntry]) -> BundleAnalysis:
    """Bundle statistics for javascript and css coverage"""
    return BundleAnalysis(javascript=bundle_stat(js_entries), css=bundle_stat(css_entries))


class CoverageRecorder:
    """Starts and stops JS and CSS coverage on a browser session"""

    def __init__(self, session: BrowserSession):
        self.session = session
        self.started = False

    def start(self):
        """Begin recording. Must be called before navigation."""
        self.session.execute_cdp('Profiler.enable', {})
        self.session.execute_cdp('Debugger.enable', {})
        self.session.execute_cdp('Profiler.startPreciseCoverage', {'callCount': False, 'detailed': True})
        self.session.execute_cdp('DOM.enable', {})
        self.session.execute_cdp('CSS.enable', {})
        self.session.execute_cdp('CSS.startRuleUsageTracking', {})
        self.started = True
        logger.debug("Coverage recording started")

    def stop(self) -> Tuple[List[CoverageEntry], List[CoverageEntry]]:
        """Stop recording and return (js_entries, css_entries)"""
        if not self.started:
            raise InstrumentationFailure("Coverage recording was not started")

        js_result = self.session.execute_cdp('Profiler.takePreciseCoverage', {})
        css_result = self.session.execute_cdp('CSS.stopRuleUsageTracking', {})
        self.session.execute_cdp('Profiler.stopPreciseCoverage', {})
        self.started = False

        js_entries = self._js_entries(js_result.get('result', []))
        css_entries = self._css_entries(css_result.get('ruleUsage', []))

        self.session.execute_cdp('Profiler.disable', {})
        self.session.execute_cdp('Debugger.disable', {})
        self.session.execute_cdp('CSS.disable', {})

        logger.debug(f"Coverage recording stopped: {len(js_entries)} scripts, {len(css_entries)} stylesheets")
        return js_entries, css_entries

    def _js_entries(self, script_coverages: Iterable[Mapping]) -> List[CoverageEntry]:
        entries = []
        for script in script_coverages:
            url = script.get('url')
            if not url:
                continue  # anonymous and eval'd scripts

            try:
                source = self.session.execute_cdp('Debugger.getScriptSource', {'scriptId': script['scriptId']})
            except InstrumentationFailure as e:
                logger.debug(f"Skipping script {url} that is no longer available: {e}")
                continue

            entries.append(CoverageEntry(
                url=url,
                text=source.get('scriptSource', ''),
                ranges=js_function_ranges_to_used(script.get('functions', []))
            ))
        return entries

    def _css_entries(self, rule_usage: Iterable[Mapping]) -> List[CoverageEntry]:
        entries = []
        for sheet_id, ranges in css_rule_usage_to_ranges(rule_usage).items():
            # Sheets removed from the document during the load have no text left
            try:
                text = self.session.execute_cdp('CSS.getStyleSheetText', {'styleSheetId': sheet_id})
            except InstrumentationFailure as e:
                logger.debug(f"Skipping stylesheet {sheet_id} that is no longer available: {e}")
                continue

            entries.append(CoverageEntry(
                url=f"stylesheet:{sheet_id}",
                text=text.get('text', ''),
                ranges=ranges
            ))
        return entries
