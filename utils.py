"""
Common Utilities Module

This module contains helper functions used across the performance analyzer,
including logging setup, retry logic, URL helpers, atomic report writing and
formatting of sizes and durations.
"""

import os
import re
import json
import time
import logging
import tempfile
from datetime import datetime, timezone
from functools import wraps
from typing import Callable, Any
from urllib.parse import urlparse, unquote

from errors import PersistenceFailure


def retry_with_backoff(max_retries: int = 3, base_delay: float = 1.0):
    """Simple exponential backoff retry decorator"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if attempt == max_retries - 1:
                        raise
                    delay = base_delay * (2 ** attempt)
                    logging.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {str(e)}")
                    time.sleep(delay)
        return wrapper
    return decorator


def is_valid_url(url: str) -> bool:
    """
    Check if URL is valid and properly formatted

    Args:
        url: URL to validate

    Returns:
        True if URL is valid, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urlparse(url.strip())
        return bool(parsed.netloc and parsed.scheme in ('http', 'https'))
    except Exception:
        return False


def get_url_path(url: str) -> str:
    """Return the unquoted, lower-cased path of a URL without query or fragment"""
    if not url:
        return ""
    try:
        return unquote(urlparse(url).path).lower()
    except ValueError:
        return ""


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a page name for use in report filenames

    Args:
        filename: Original name

    Returns:
        Name safe for filesystem use
    """
    # Invalid characters: < > : " / \ | ? * and control characters
    filename = re.sub(r'[<>:"/\\|?*]', '_', filename or "")
    filename = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', filename)
    filename = re.sub(r'[_\s]+', '_', filename)
    filename = filename.strip(' .')

    if not filename or filename in ('_', '.'):
        filename = "page"

    return filename[:200]


def setup_logging(log_level: str = "INFO", log_file: str = None):
    """
    Set up logging configuration for the analyzer

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
    """
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))

    # Use simpler format for console
    console_format = '%(asctime)s - %(levelname)s - %(message)s'
    console_handler.setFormatter(logging.Formatter(console_format, datefmt='%H:%M:%S'))
    handlers.append(console_handler)

    # File handler with detailed format
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)  # Always debug level for file
        file_handler.setFormatter(logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S'))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG,  # Set to DEBUG, handlers will filter
        handlers=handlers,
        force=True
    )

    logger = logging.getLogger('web_perf_analyzer')
    logger.info(f"Logging initialized at {log_level} level" + (f" (file: {log_file})" if log_file else ""))

    # Reduce noise from third-party libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('selenium').setLevel(logging.WARNING)


def format_file_size(size_bytes: int) -> str:
    """
    Format byte counts in human-readable format

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "234 KB")
    """
    if size_bytes <= 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    import math
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_names) - 1)
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)

    return f"{s} {size_names[i]}"


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2m 30s", "45.0s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = int(minutes // 60)
    remaining_minutes = int(minutes % 60)
    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


def atomic_write_text(content: str, file_path: str) -> str:
    """
    Write text to file_path so that the file is either complete or absent

    The content goes to a temporary file in the same directory which is then
    renamed over the target.

    Raises:
        PersistenceFailure: If the file cannot be written
    """
    directory = os.path.dirname(os.path.abspath(file_path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.part')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, file_path)
        tmp_path = None
    except OSError as e:
        logging.error(f"Failed to write {file_path}: {e}")
        raise PersistenceFailure(f"Failed to write {file_path}: {e}") from e
    finally:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
    return file_path


def atomic_json_dump(data: Any, file_path: str) -> str:
    """
    Serialize data as indented JSON and write it atomically

    Raises:
        PersistenceFailure: If the data cannot be serialized or written
    """
    try:
        content = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise PersistenceFailure(f"Failed to serialize JSON for {file_path}: {e}") from e
    return atomic_write_text(content, file_path)


def get_timestamp() -> str:
    """
    Get current UTC timestamp in ISO 8601 format

    Returns:
        ISO formatted timestamp string
    """
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def unix_millis() -> int:
    """Milliseconds since the epoch, used to qualify report filenames"""
    return int(time.time() * 1000)
