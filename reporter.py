"""
Progress Reporting and Report Writing Module

This module handles console progress lines during a batch, and persisting
per-page JSON results, per-page Markdown summaries and the cross-page
aggregate summary. Every file is written atomically.
"""

import os
from collections import defaultdict
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from models import PageAnalysisResult, OverallSummary, BatchResults, DryRunReport
from scoring import aggregate
from utils import (
    atomic_json_dump, atomic_write_text, sanitize_filename, unix_millis,
    format_file_size, format_duration
)


OVERALL_SUMMARY_FILE = 'overall-summary.json'


def result_to_dict(result: PageAnalysisResult) -> Dict[str, Any]:
    """Full JSON-ready serialization of a page result"""
    data = asdict(result)
    data['resources']['slowest'] = [
        {'url': url, 'duration_ms': duration} for url, duration in result.resources.slowest
    ]
    return data


def summary_to_dict(summary: OverallSummary) -> Dict[str, Any]:
    """Serialization used for overall-summary.json"""
    data = {
        'timestamp': summary.timestamp,
        'totalPages': summary.page_count,
        'averageLoadTime': summary.average_load_time_ms,
        'performanceScore': summary.aggregate_score,
    }
    if not summary.has_data:
        data['status'] = 'no-data'
    return data


def _kb(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.2f} KB"


def _ms(value: Optional[float]) -> str:
    if value is None:
        return "not measured"
    return f"{value:.2f}ms"


def render_markdown(result: PageAnalysisResult) -> str:
    """Human-readable Markdown report for one page"""
    vitals = result.vitals
    dcl = vitals.get('DOMContentLoaded')
    load_event = vitals.get('LoadEvent')

    lines = [
        f"# Performance Report for {result.page_name}",
        "",
        f"**Generated:** {result.timestamp}",
        f"**URL:** {result.url}",
    ]
    if result.score is not None:
        lines.append(f"**Performance Score:** {result.score}/100")

    lines += [
        "",
        "## Loading Performance",
        "",
        f"- **Total Load Time:** {result.load_time_ms}ms",
        f"- **DOM Content Loaded:** {_ms(dcl.value if dcl else None)}",
        f"- **Load Event:** {_ms(load_event.value if load_event else None)}",
        "",
        "## Web Vitals",
        "",
    ]

    if vitals:
        lines += ["| Metric | Value | Rating |", "|---|---|---|"]
        for name, sample in vitals.items():
            unit = "" if name == 'CLS' else "ms"
            lines.append(f"| {name} | {sample.value:.2f}{unit} | {sample.rating} |")
    else:
        lines.append("No Web Vitals were observed.")

    for name in ('LCP', 'FID'):
        if name not in vitals:
            lines.append(f"\n_{name} was not measured during the settling window._")

    bundle = result.bundle
    lines += [
        "",
        "## Bundle Analysis",
        "",
        "| Asset | Total | Used | Unused | Utilization |",
        "|---|---|---|---|---|",
    ]
    for label, stat in (('JavaScript', bundle.javascript), ('CSS', bundle.css)):
        lines.append(
            f"| {label} | {_kb(stat.total_bytes)} | {_kb(stat.used_bytes)} | "
            f"{_kb(stat.unused_bytes)} | {stat.utilization_percent}% |"
        )

    resources = result.resources
    lines += [
        "",
        "## Resource Loading",
        "",
        f"- **Total Resources:** {resources.total_count}",
        f"- **Total Size:** {_kb(resources.total_bytes)}",
    ]
    for category, entries in resources.by_category.items():
        if entries:
            size = sum(e.transferred_bytes for e in entries)
            lines.append(f"- **{category}:** {len(entries)} ({format_file_size(size)})")

    lines += ["", "### Slowest Resources", ""]
    if resources.slowest:
        for url, duration in resources.slowest:
            lines.append(f"- {url}: {duration:.2f}ms")
    else:
        lines.append("No resources recorded.")

    heap = result.heap_metrics
    lines += [
        "",
        "## Runtime Metrics",
        "",
        f"- **JS Heap Used:** {format_file_size(heap.used_heap_bytes)}",
        f"- **JS Heap Total:** {format_file_size(heap.total_heap_bytes)}",
        f"- **Event Listeners:** {heap.event_listener_count}",
        f"- **DOM Nodes:** {heap.node_count}",
        f"- **Documents:** {heap.document_count}",
        f"- **Frames:** {heap.frame_count}",
        f"- **Task Duration:** {heap.task_duration_ms:.2f}ms",
        "",
        "## Recommendations",
        "",
    ]
    lines += [f"- {rec}" for rec in result.recommendations]
    lines.append("")

    return "\n".join(lines)


class ReportWriter:
    """Persists page reports and the aggregate summary"""

    def __init__(self, output_dir: str = 'performance-reports'):
        self.output_dir = output_dir

    def _path(self, filename: str) -> str:
        return os.path.join(self.output_dir, filename)

    def write_report(self, result: PageAnalysisResult) -> Tuple[str, str]:
        """
        Write <page>-<unixMillis>.json and <page>-summary.md for one page.

        Raises:
            PersistenceFailure: If either file cannot be written
        """
        page = sanitize_filename(result.page_name)
        json_path = atomic_json_dump(result_to_dict(result), self._path(f"{page}-{unix_millis()}.json"))
        markdown_path = atomic_write_text(render_markdown(result), self._path(f"{page}-summary.md"))
        print(f"Performance report saved to: {markdown_path}")
        return json_path, markdown_path

    def write_aggregate(self, results: Iterable[PageAnalysisResult]) -> str:
        """
        Write overall-summary.json for the successful pages of a batch.

        Raises:
            PersistenceFailure: If the file cannot be written
        """
        return self.write_summary(aggregate(results))

    def write_summary(self, summary: OverallSummary) -> str:
        return atomic_json_dump(summary_to_dict(summary), self._path(OVERALL_SUMMARY_FILE))


class ProgressReporter:
    """Handles per-page console progress and the final console report"""

    def __init__(self):
        self.stats: Dict[str, int] = defaultdict(int)

    def update_progress(self, page: str, action: str, details: str = ""):
        """Display a progress line"""
        timestamp = datetime.now().strftime("%H:%M:%S")

        status_msg = f"[{timestamp}] {page}: {action}"
        if details:
            status_msg += f" - {details}"

        print(status_msg)
        self.stats[f"total_{action}"] += 1

    def track_start(self, page: str, url: str):
        self.update_progress(page, "start", f"Analyzing {url}")

    def track_success(self, page: str, result: PageAnalysisResult):
        self.update_progress(page, "success",
                             f"Loaded in {result.load_time_ms}ms, score {result.score}/100")

    def track_failure(self, page: str, error: Exception):
        message = str(error)
        self.update_progress(page, "failed", message)

    def generate_report(self, batch: BatchResults) -> str:
        """Generate the final console report"""
        lines = []
        lines.append("=" * 60)
        lines.append("WEB PERFORMANCE ANALYSIS - FINAL REPORT")
        lines.append("=" * 60)
        lines.append(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append(f"Total duration: {format_duration(batch.duration)}")
        lines.append("")

        lines.append("PAGES")
        lines.append("-" * 30)
        for result in batch.results:
            lines.append(f"\n{result.page_name} ({result.url}):")
            lines.append(f"  Load time: {result.load_time_ms}ms")
            lines.append(f"  Score: {result.score}/100")
            lines.append(f"  JS utilization: {result.bundle.javascript.utilization_percent}%")
            lines.append(f"  CSS utilization: {result.bundle.css.utilization_percent}%")
            lines.append(f"  Resources: {result.resources.total_count} "
                         f"({format_file_size(result.resources.total_bytes)})")

        for failure in batch.failures:
            lines.append(f"\n{failure.page_name} ({failure.url}):")
            lines.append(f"  ❌ {failure.error_type}: {failure.error}")

        summary = batch.summary
        lines.append("")
        lines.append("OVERALL SUMMARY")
        lines.append("-" * 30)
        lines.append(f"Pages analyzed: {summary.page_count}")
        lines.append(f"Pages failed: {len(batch.failures)}")
        if summary.has_data:
            lines.append(f"Average load time: {summary.average_load_time_ms:.0f}ms")
            lines.append(f"Performance score: {summary.aggregate_score}/100")
        else:
            lines.append("Average load time: no data")
            lines.append("Performance score: no data")
        lines.append("=" * 60)

        return "\n".join(lines)

    def print_final_summary(self, batch: BatchResults):
        print(self.generate_report(batch))

    def print_dry_run_report(self, report: DryRunReport):
        """Print dry-run reachability report"""
        print("\n" + "=" * 50)
        print("DRY-RUN ANALYSIS RESULTS")
        print("=" * 50)

        for check in report.checks:
            status = "✅" if check.reachable else "❌"
            code = check.status_code if check.status_code is not None else "-"
            print(f"\n{status} {check.page_name}: {check.url}")
            print(f"  Status: {code}, response time: {check.response_time_ms:.0f}ms")
            for issue in check.issues:
                print(f"  ❌ {issue}")

        print(f"\nReachable targets: {report.reachable_count}/{len(report.checks)}")

        if report.issues_found:
            print("\nIssues Found:")
            for issue in report.issues_found:
                print(f"  ❌ {issue}")

        if report.recommendations:
            print("\nRecommendations:")
            for rec in report.recommendations:
                print(f"  💡 {rec}")

        print("=" * 50)
