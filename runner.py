"""
Batch Runner Module

This module contains the BatchRunner, which analyzes the configured pages one
after another, isolates per-page failures and writes the overall summary.
Pages are never analyzed in parallel so that one cold load cannot disturb the
timings of another.
"""

import logging
import time
from typing import List, Optional

import requests
from tqdm import tqdm

from analyzer import PageAnalyzer
from config import AnalyzerConfig
from errors import PageAnalysisError, PersistenceFailure
from models import (
    AnalysisTarget, BatchResults, PageAnalysisResult, PageFailure,
    TargetCheck, DryRunReport
)
from reporter import ReportWriter, ProgressReporter
from scoring import aggregate
from utils import retry_with_backoff, is_valid_url


class BatchRunner:
    """Runs a full analysis over every configured page"""

    def __init__(self, config: AnalyzerConfig, analyzer: Optional[PageAnalyzer] = None,
                 report_writer: Optional[ReportWriter] = None,
                 progress_reporter: Optional[ProgressReporter] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.report_writer = report_writer or ReportWriter(config.output.output_dir)
        self.analyzer = analyzer or PageAnalyzer(config, self.report_writer)
        self.progress_reporter = progress_reporter or ProgressReporter()

        self.logger.info("BatchRunner initialized successfully")

    def _get_targets(self, pages: Optional[List[str]]) -> List[AnalysisTarget]:
        """Configured targets, optionally filtered to the given page names"""
        targets = self.config.targets()
        if not pages:
            return targets

        known = {t.name for t in targets}
        unknown = [p for p in pages if p not in known]
        if unknown:
            raise ValueError(f"Unknown pages: {', '.join(unknown)}. Available: {', '.join(sorted(known))}")
        return [t for t in targets if t.name in pages]

    def run(self, pages: Optional[List[str]] = None) -> BatchResults:
        """
        Analyze each target in order and write the overall summary.

        Args:
            pages: Optional list of page names to analyze

        Returns:
            BatchResults with successful results, failures and the summary

        Raises:
            PersistenceFailure: If any report cannot be written
        """
        start_time = time.time()
        targets = self._get_targets(pages)
        self.logger.info(f"Starting performance analysis of {len(targets)} pages: {[t.name for t in targets]}")

        results: List[PageAnalysisResult] = []
        failures: List[PageFailure] = []

        for target in tqdm(targets, desc="Analyzing pages", unit="page", leave=True):
            self.progress_reporter.track_start(target.name, target.url)
            try:
                result = self.analyzer.analyze_page(target)
            except PersistenceFailure:
                self.logger.error(f"Cannot write reports for {target.name}, aborting batch")
                raise
            except PageAnalysisError as e:
                cause = e.cause
                self.logger.error(f"Error analyzing {target.name}: {cause}")
                failures.append(PageFailure(
                    page_name=target.name,
                    url=target.url,
                    error_type=type(cause).__name__,
                    error=str(cause)
                ))
                self.progress_reporter.track_failure(target.name, cause)
                continue

            results.append(result)
            self.progress_reporter.track_success(target.name, result)

        summary = aggregate(results)
        self.report_writer.write_summary(summary)

        duration = time.time() - start_time
        if summary.has_data:
            self.logger.info(f"Analysis completed in {duration:.1f}s: {summary.page_count} pages, "
                             f"score {summary.aggregate_score}/100")
        else:
            self.logger.warning(f"Analysis completed in {duration:.1f}s with no successful pages")

        return BatchResults(results=results, failures=failures, summary=summary, duration=duration)

    def dry_run(self, pages: Optional[List[str]] = None) -> DryRunReport:
        """
        Check that each target answers over HTTP without launching a browser.
        """
        self.logger.info("Starting dry-run analysis")
        checks = [self._check_target(target) for target in self._get_targets(pages)]

        issues = []
        recommendations = []
        unreachable = [c for c in checks if not c.reachable]
        for check in unreachable:
            issues.extend(f"{check.page_name}: {issue}" for issue in check.issues)

        if len(unreachable) == len(checks) and checks:
            recommendations.append(f"No target answered - make sure the application is running at {self.config.base_url}")
        elif unreachable:
            recommendations.append("Fix or remove unreachable pages before running the full analysis")

        slow = [c for c in checks if c.reachable and c.response_time_ms > 3000]
        if slow:
            recommendations.append(f"{len(slow)} pages responded slowly to a plain HTTP request - "
                                   f"expect high load times")

        return DryRunReport(
            checks=checks,
            reachable_count=len(checks) - len(unreachable),
            issues_found=issues,
            recommendations=recommendations
        )

    def _check_target(self, target: AnalysisTarget) -> TargetCheck:
        check = TargetCheck(page_name=target.name, url=target.url, reachable=False)

        if not is_valid_url(target.url):
            check.issues.append(f"Invalid URL: {target.url}")
            return check

        timeout = self.config.settings.navigation_timeout_ms / 1000
        start = time.time()
        try:
            response = self._fetch(target.url, timeout)
        except requests.RequestException as e:
            self.logger.warning(f"Target {target.name} is unreachable: {e}")
            check.issues.append(f"Unreachable: {e}")
            return check

        check.response_time_ms = (time.time() - start) * 1000
        check.status_code = response.status_code
        if response.status_code >= 400:
            check.issues.append(f"HTTP {response.status_code}")
        else:
            check.reachable = True
        return check

    @retry_with_backoff(max_retries=2, base_delay=0.5)
    def _fetch(self, url: str, timeout: float) -> requests.Response:
        return requests.get(url, timeout=timeout)
