"""
Browser Session Module

This module manages one isolated headless Chrome instance per page analysis
using Selenium WebDriver. Each session gets a throw-away profile directory,
a fixed 1920x1080 viewport and a disabled HTTP cache so every measurement is
a cold load. The browser is always shut down when the session ends, whether
the analysis succeeded or raised.
"""

import logging
import shutil
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.common.exceptions import WebDriverException

from config import AnalysisSettings
from errors import SessionLaunchFailure, InstrumentationFailure

logger = logging.getLogger(__name__)

# Chrome keeps 250 resource-timing entries unless told otherwise
RESOURCE_TIMING_BUFFER_SIZE = 10000

# Runs before any page script. The observer count keeps growing after the
# buffer is full, so network-idle detection never sees a frozen count.
RESOURCE_OBSERVER_SCRIPT = """
(function() {
    performance.setResourceTimingBufferSize(%d);
    window.__perfResourceCount = 0;
    try {
        new PerformanceObserver(function(list) {
            window.__perfResourceCount += list.getEntries().length;
        }).observe({type: 'resource', buffered: true});
    } catch (e) {}
})();
""" % RESOURCE_TIMING_BUFFER_SIZE


class BrowserSession:
    """Owns a single Chrome process and its DevTools connection"""

    def __init__(self, headless: bool = True, settings: Optional[AnalysisSettings] = None):
        self.settings = settings or AnalysisSettings(headless=headless)
        self.headless = headless
        self.driver: Optional[webdriver.Chrome] = None
        self.profile_dir: Optional[str] = None

    def _build_options(self) -> Options:
        options = Options()

        if self.headless:
            options.add_argument('--headless=new')
            logger.debug("Browser running in headless mode")

        # Chrome options for stability inside containers
        options.add_argument('--no-sandbox')
        options.add_argument('--disable-dev-shm-usage')
        options.add_argument('--disable-gpu')
        options.add_argument(f'--window-size={self.settings.viewport_width},{self.settings.viewport_height}')
        options.add_argument(f'--user-data-dir={self.profile_dir}')

        if self.settings.chrome_binary:
            options.binary_location = self.settings.chrome_binary

        return options

    def start_browser(self):
        """Launch Chrome and prepare it for a cold-load measurement"""
        if self.driver:
            return

        logger.info("Starting browser instance...")
        self.profile_dir = tempfile.mkdtemp(prefix='perf-profile-')
        options = self._build_options()

        try:
            if self.settings.chromedriver_path:
                service = Service(executable_path=self.settings.chromedriver_path)
                self.driver = webdriver.Chrome(service=service, options=options)
            else:
                self.driver = webdriver.Chrome(options=options)
        except (WebDriverException, OSError) as e:
            logger.error(f"Failed to start browser: {e}")
            self._remove_profile()
            raise SessionLaunchFailure(f"Failed to start browser: {e}") from e

        try:
            self._configure()
        except WebDriverException as e:
            logger.error(f"Failed to configure browser: {e}")
            self.close_browser()
            raise SessionLaunchFailure(f"Failed to configure browser: {e}") from e

        logger.info("Browser started successfully")

    def _configure(self):
        timeout_s = self.settings.navigation_timeout_ms / 1000
        self.driver.set_page_load_timeout(timeout_s)
        self.driver.set_script_timeout(timeout_s)

        self.driver.execute_cdp_cmd('Emulation.setDeviceMetricsOverride', {
            'width': self.settings.viewport_width,
            'height': self.settings.viewport_height,
            'deviceScaleFactor': 1,
            'mobile': False,
        })
        self.driver.execute_cdp_cmd('Network.enable', {})
        self.driver.execute_cdp_cmd('Network.setCacheDisabled', {'cacheDisabled': True})
        self.driver.execute_cdp_cmd('Page.enable', {})
        self.driver.execute_cdp_cmd('Page.addScriptToEvaluateOnNewDocument', {'source': RESOURCE_OBSERVER_SCRIPT})

    def _require_driver(self) -> webdriver.Chrome:
        if not self.driver:
            raise InstrumentationFailure("Browser session is not started")
        return self.driver

    def execute_cdp(self, command: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a DevTools protocol command to the page target"""
        driver = self._require_driver()
        try:
            return driver.execute_cdp_cmd(command, params or {})
        except WebDriverException as e:
            raise InstrumentationFailure(f"DevTools command {command} failed: {e}") from e

    def evaluate(self, script: str, *args) -> Any:
        """Run a synchronous script in the page and return its result"""
        driver = self._require_driver()
        try:
            return driver.execute_script(script, *args)
        except WebDriverException as e:
            raise InstrumentationFailure(f"In-page script failed: {e}") from e

    def evaluate_async(self, script: str, *args) -> Any:
        """Run a script that reports through the callback passed as its last argument"""
        driver = self._require_driver()
        try:
            return driver.execute_async_script(script, *args)
        except WebDriverException as e:
            raise InstrumentationFailure(f"In-page async script failed: {e}") from e

    def _remove_profile(self):
        if self.profile_dir:
            shutil.rmtree(self.profile_dir, ignore_errors=True)
            self.profile_dir = None

    def close_browser(self):
        """Terminate the browser process and remove its profile"""
        if self.driver:
            try:
                logger.info("Closing browser instance...")
                self.driver.quit()
                logger.info("Browser closed successfully")
            except Exception as e:
                logger.error(f"Error closing browser: {e}")
            finally:
                self.driver = None
        self._remove_profile()

    def __enter__(self) -> 'BrowserSession':
        self.start_browser()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close_browser()
        return False


@contextmanager
def browser_session(settings: AnalysisSettings) -> Iterator[BrowserSession]:
    """
    Scoped acquisition of a fresh browser session.

    The browser is launched on entry and always quit on exit, including when
    the body raises. Launch failures raise SessionLaunchFailure.
    """
    session = BrowserSession(headless=settings.headless, settings=settings)
    session.start_browser()
    try:
        yield session
    finally:
        session.close_browser()
