"""
Performance analysis exceptions
"""


class PerformanceAnalysisError(Exception):
    """Base exception for performance analysis errors"""


class SessionLaunchFailure(PerformanceAnalysisError):
    """Raised when the browser process could not be started"""


class NavigationTimeout(PerformanceAnalysisError):
    """Raised when a page did not reach network idle within the timeout"""


class NavigationError(PerformanceAnalysisError):
    """Raised when the target page is unreachable or navigation fails"""


class InstrumentationFailure(PerformanceAnalysisError):
    """Raised when an injected script or DevTools command cannot run"""


class PersistenceFailure(PerformanceAnalysisError):
    """Raised when a report file cannot be written. Fatal for the whole batch."""


class PageAnalysisError(PerformanceAnalysisError):
    """Raised by the page analyzer when a page ends in the failed state"""

    def __init__(self, page_name: str, state: str, cause: Exception):
        self.page_name = page_name
        self.state = state
        self.cause = cause
        super().__init__(f"{page_name}: {type(cause).__name__} after {state}: {cause}")
