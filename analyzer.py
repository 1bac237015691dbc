"""
Page Analysis Module

This module contains the PageAnalyzer, which measures a single page inside
its own browser session. Phases run in a fixed order and any failure ends
the analysis in the FAILED state without producing a partial result:

    IDLE -> SESSION_ACQUIRED -> NAVIGATED -> TELEMETRY_CAPTURED
         -> COVERAGE_CAPTURED -> ASSEMBLED -> SUCCESS | FAILED

Coverage recording starts before navigation and stops right after the Web
Vitals settling window, so the byte ranges belong to the load being timed.
"""

import logging
from enum import Enum
from typing import Callable, ContextManager, Optional

from browser import BrowserSession, browser_session
from bundle_analyzer import CoverageRecorder, analyze_bundle
from config import AnalyzerConfig, AnalysisSettings
from errors import PageAnalysisError, PersistenceFailure
from models import AnalysisTarget, PageAnalysisResult
from reporter import ReportWriter
from scoring import score
from telemetry import capture_navigation, capture_vitals, capture_resources, capture_heap_metrics
from utils import get_timestamp

logger = logging.getLogger(__name__)

SessionFactory = Callable[[AnalysisSettings], ContextManager[BrowserSession]]


class AnalysisState(Enum):
    IDLE = "idle"
    SESSION_ACQUIRED = "session-acquired"
    NAVIGATED = "navigated"
    TELEMETRY_CAPTURED = "telemetry-captured"
    COVERAGE_CAPTURED = "coverage-captured"
    ASSEMBLED = "assembled"
    SUCCESS = "success"
    FAILED = "failed"


class PageAnalyzer:
    """Runs the measurement phases for one page at a time"""

    def __init__(self, config: AnalyzerConfig, report_writer: Optional[ReportWriter] = None,
                 session_factory: SessionFactory = browser_session):
        self.config = config
        self.settings = config.settings
        self.report_writer = report_writer or ReportWriter(config.output.output_dir)
        self.session_factory = session_factory
        self.state = AnalysisState.IDLE

    def _transition(self, state: AnalysisState, page_name: str):
        logger.debug(f"{page_name}: {self.state.value} -> {state.value}")
        self.state = state

    def analyze_page(self, target: AnalysisTarget) -> PageAnalysisResult:
        """
        Measure one page, persist its report and return the result.

        Raises:
            PageAnalysisError: If any phase fails; carries the failed phase and cause
            PersistenceFailure: If the report could not be written
        """
        self.state = AnalysisState.IDLE
        last_state = self.state

        try:
            with self.session_factory(self.settings) as session:
                self._transition(AnalysisState.SESSION_ACQUIRED, target.name)
                result = self._measure(session, target)
        except PersistenceFailure:
            raise
        except Exception as e:
            last_state = self.state
            self._transition(AnalysisState.FAILED, target.name)
            logger.error(f"Analysis of {target.name} failed after {last_state.value}: {e}")
            raise PageAnalysisError(target.name, last_state.value, e) from e

        # Persistence happens after the browser is released
        self.report_writer.write_report(result)
        self._transition(AnalysisState.SUCCESS, target.name)
        return result

    def _measure(self, session: BrowserSession, target: AnalysisTarget) -> PageAnalysisResult:
        settings = self.settings
        recorder = CoverageRecorder(session)
        recorder.start()

        load_time_ms, _ = capture_navigation(
            session, target.url,
            timeout_ms=settings.navigation_timeout_ms,
            idle_ms=settings.network_idle_ms
        )
        self._transition(AnalysisState.NAVIGATED, target.name)

        vitals = capture_vitals(session, settle_ms=settings.settle_ms)
        js_entries, css_entries = recorder.stop()
        resources = capture_resources(session)
        heap_metrics = capture_heap_metrics(session)
        self._transition(AnalysisState.TELEMETRY_CAPTURED, target.name)

        bundle = analyze_bundle(js_entries, css_entries)
        self._transition(AnalysisState.COVERAGE_CAPTURED, target.name)

        result = PageAnalysisResult(
            page_name=target.name,
            url=target.url,
            timestamp=get_timestamp(),
            load_time_ms=load_time_ms,
            vitals=vitals,
            resources=resources,
            bundle=bundle,
            heap_metrics=heap_metrics
        )
        result.score, result.recommendations = score(result)
        self._transition(AnalysisState.ASSEMBLED, target.name)
        return result
