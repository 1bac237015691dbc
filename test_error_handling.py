#!/usr/bin/env python3
"""
Error Handling Tests

This module contains tests for the page analyzer's failure handling: each
phase failing, session launch failures, persistence failures, and the
ordering of coverage recording relative to navigation.
"""

from contextlib import contextmanager

import pytest
from unittest.mock import Mock, patch
from selenium.common.exceptions import WebDriverException

from analyzer import PageAnalyzer, AnalysisState
from config import AnalyzerConfig, OutputConfig
from errors import (
    SessionLaunchFailure, NavigationTimeout, NavigationError, InstrumentationFailure,
    PersistenceFailure, PageAnalysisError
)
from models import AnalysisTarget, HeapMetrics, ResourceSummary, WebVitalSample


TARGET = AnalysisTarget(url='http://localhost:3000/dashboard', name='dashboard')


class FakeBrowser:
    """Records the order of analysis phases"""

    def __init__(self):
        self.events = []
        self.session = Mock()

    @contextmanager
    def factory(self, settings):
        self.events.append('launch')
        try:
            yield self.session
        finally:
            self.events.append('teardown')


class TestPageAnalyzer:
    """Test the phase ordering and failure mapping of PageAnalyzer"""

    def setup_method(self):
        self.browser = FakeBrowser()
        self.writer = Mock()
        self.config = AnalyzerConfig(output=OutputConfig(output_dir='unused'))
        self.analyzer = PageAnalyzer(self.config, self.writer, session_factory=self.browser.factory)

        events = self.browser.events
        recorder = Mock()
        recorder.start.side_effect = lambda: events.append('coverage-start')

        def stop():
            events.append('coverage-stop')
            return [], []

        recorder.stop.side_effect = stop
        self.recorder = recorder

        def navigate(session, url, timeout_ms, idle_ms):
            events.append('navigate')
            return 1200, True

        def vitals(session, settle_ms):
            events.append('vitals')
            return {'LCP': WebVitalSample('LCP', 1800, 'good')}

        def resources(session):
            events.append('resources')
            return ResourceSummary(total_count=3)

        def heap(session):
            events.append('heap')
            return HeapMetrics(node_count=99)

        self.patches = [
            patch('analyzer.CoverageRecorder', return_value=recorder),
            patch('analyzer.capture_navigation', side_effect=navigate),
            patch('analyzer.capture_vitals', side_effect=vitals),
            patch('analyzer.capture_resources', side_effect=resources),
            patch('analyzer.capture_heap_metrics', side_effect=heap),
        ]
        self.mocks = [p.start() for p in self.patches]

    def teardown_method(self):
        for p in self.patches:
            p.stop()

    def test_successful_analysis(self):
        result = self.analyzer.analyze_page(TARGET)

        assert result.page_name == 'dashboard'
        assert result.url == TARGET.url
        assert result.load_time_ms == 1200
        assert result.vitals['LCP'].value == 1800
        assert result.heap_metrics.node_count == 99
        assert result.score is not None
        assert result.recommendations
        assert self.analyzer.state == AnalysisState.SUCCESS
        self.writer.write_report.assert_called_once_with(result)

    def test_phase_order(self):
        self.analyzer.analyze_page(TARGET)

        assert self.browser.events == [
            'launch', 'coverage-start', 'navigate', 'vitals', 'coverage-stop',
            'resources', 'heap', 'teardown'
        ]

    def test_navigation_settings_passed_through(self):
        self.config.settings.navigation_timeout_ms = 12000
        self.config.settings.settle_ms = 750

        self.analyzer.analyze_page(TARGET)

        navigate_mock, vitals_mock = self.mocks[1], self.mocks[2]
        assert navigate_mock.call_args[1]['timeout_ms'] == 12000
        assert vitals_mock.call_args[1]['settle_ms'] == 750

    @pytest.mark.parametrize("error", [NavigationTimeout("too slow"), NavigationError("refused")])
    def test_navigation_failure(self, error):
        self.mocks[1].side_effect = error

        with pytest.raises(PageAnalysisError) as exc_info:
            self.analyzer.analyze_page(TARGET)

        assert exc_info.value.cause is error
        assert exc_info.value.state == AnalysisState.SESSION_ACQUIRED.value
        assert self.analyzer.state == AnalysisState.FAILED
        assert 'vitals' not in self.browser.events
        assert self.browser.events[-1] == 'teardown'
        self.writer.write_report.assert_not_called()

    def test_instrumentation_failure_skips_remaining_phases(self):
        self.mocks[2].side_effect = InstrumentationFailure("script rejected")

        with pytest.raises(PageAnalysisError) as exc_info:
            self.analyzer.analyze_page(TARGET)

        assert isinstance(exc_info.value.cause, InstrumentationFailure)
        assert exc_info.value.state == AnalysisState.NAVIGATED.value
        assert 'resources' not in self.browser.events
        assert 'heap' not in self.browser.events
        assert self.browser.events[-1] == 'teardown'
        self.writer.write_report.assert_not_called()

    def test_heap_failure_is_page_failure(self):
        self.mocks[4].side_effect = InstrumentationFailure("Performance domain unavailable")

        with pytest.raises(PageAnalysisError):
            self.analyzer.analyze_page(TARGET)

        assert self.browser.events[-1] == 'teardown'
        self.writer.write_report.assert_not_called()

    def test_unexpected_error_is_page_failure(self):
        self.mocks[3].side_effect = KeyError('name')

        with pytest.raises(PageAnalysisError) as exc_info:
            self.analyzer.analyze_page(TARGET)

        assert isinstance(exc_info.value.cause, KeyError)

    def test_session_launch_failure(self):
        @contextmanager
        def failing_factory(settings):
            raise SessionLaunchFailure("Chrome not found")
            yield

        analyzer = PageAnalyzer(self.config, self.writer, session_factory=failing_factory)

        with pytest.raises(PageAnalysisError) as exc_info:
            analyzer.analyze_page(TARGET)

        assert isinstance(exc_info.value.cause, SessionLaunchFailure)
        assert exc_info.value.state == AnalysisState.IDLE.value
        self.mocks[1].assert_not_called()

    def test_persistence_failure_propagates(self):
        self.writer.write_report.side_effect = PersistenceFailure("disk full")

        with pytest.raises(PersistenceFailure):
            self.analyzer.analyze_page(TARGET)

        assert self.browser.events[-1] == 'teardown'

    def test_error_message_names_page_and_cause(self):
        self.mocks[1].side_effect = NavigationTimeout("exceeded 30000ms")

        with pytest.raises(PageAnalysisError) as exc_info:
            self.analyzer.analyze_page(TARGET)

        message = str(exc_info.value)
        assert 'dashboard' in message
        assert 'NavigationTimeout' in message
        assert 'exceeded 30000ms' in message


class TestAnalyzerWithBrowserSession:
    """Test the analyzer against the real scoped session with WebDriver mocked"""

    @patch('browser.webdriver.Chrome')
    def test_browser_quit_when_navigation_fails(self, mock_chrome, tmp_path):
        mock_driver = Mock()
        mock_driver.get.side_effect = WebDriverException("net::ERR_CONNECTION_REFUSED")
        mock_chrome.return_value = mock_driver

        config = AnalyzerConfig(output=OutputConfig(output_dir=str(tmp_path)))
        analyzer = PageAnalyzer(config)

        with pytest.raises(PageAnalysisError) as exc_info:
            analyzer.analyze_page(TARGET)

        assert isinstance(exc_info.value.cause, NavigationError)
        mock_driver.quit.assert_called_once()
        assert list(tmp_path.iterdir()) == []
