"""
Configuration management for the Web Performance Analyzer.

This module handles loading configuration from YAML files and from the
environment (BASE_URL, HEADLESS, PERF_REPORT_DIR), and turning the configured
page list into analysis targets.
"""

import os
import yaml
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
from pathlib import Path

from models import AnalysisTarget


DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_OUTPUT_DIR = "performance-reports"

DEFAULT_PAGES = {
    'home': '/',
    'customers': '/customers',
    'dashboard': '/dashboard',
    'reports': '/reports',
}


@dataclass
class AnalysisSettings:
    """Browser and measurement settings."""
    headless: bool = True
    navigation_timeout_ms: int = 30000
    settle_ms: int = 1000  # Web Vitals settling window after load
    network_idle_ms: int = 500
    viewport_width: int = 1920
    viewport_height: int = 1080
    chrome_binary: Optional[str] = None
    chromedriver_path: Optional[str] = None


@dataclass
class OutputConfig:
    """Where reports are written."""
    output_dir: str = DEFAULT_OUTPUT_DIR


@dataclass
class AnalyzerConfig:
    """Main configuration object containing all settings."""
    base_url: str = DEFAULT_BASE_URL
    pages: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PAGES))
    settings: AnalysisSettings = field(default_factory=AnalysisSettings)
    output: OutputConfig = field(default_factory=OutputConfig)

    def targets(self) -> List[AnalysisTarget]:
        """Build the ordered list of pages to analyze"""
        base = self.base_url.rstrip('/')
        targets = []
        for name, path in self.pages.items():
            if not path.startswith('/'):
                path = '/' + path
            targets.append(AnalysisTarget(url=f"{base}{path}", name=name))
        return targets


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() != 'false'


def _setting_bool(settings_data: dict, key: str, default: bool) -> bool:
    """YAML booleans, or the strings true/false, yes/no, 1/0"""
    value = settings_data.get(key, default)
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('true', 'yes', 'on', '1'):
        return True
    if text in ('false', 'no', 'off', '0'):
        return False
    raise ValueError(f"Setting '{key}' must be true or false, got {value!r}")


def _setting_int(settings_data: dict, key: str, default: int) -> int:
    value = settings_data.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"Setting '{key}' must be a whole number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Setting '{key}' must be a whole number, got {value!r}")


def apply_env_overrides(config: AnalyzerConfig, environ: Optional[Mapping[str, str]] = None) -> AnalyzerConfig:
    """
    Override configuration values from environment variables.

    BASE_URL sets the target base address, HEADLESS=false shows the browser
    window and PERF_REPORT_DIR changes the output directory.
    """
    if environ is None:
        environ = os.environ

    if environ.get('BASE_URL'):
        config.base_url = environ['BASE_URL']
    if 'HEADLESS' in environ:
        config.settings.headless = _parse_bool(environ['HEADLESS'])
    if environ.get('PERF_REPORT_DIR'):
        config.output.output_dir = environ['PERF_REPORT_DIR']
    return config


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> AnalyzerConfig:
    """Default configuration with environment overrides applied"""
    return apply_env_overrides(AnalyzerConfig(), environ)


def load_config(config_path: str, environ: Optional[Mapping[str, str]] = None) -> AnalyzerConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file
        environ: Environment used for overrides (defaults to os.environ)

    Returns:
        AnalyzerConfig object with loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        ValueError: If configuration is invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML configuration: {e}")

    if not data:
        raise ValueError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ValueError("Configuration must be a mapping")

    pages = data.get('pages', DEFAULT_PAGES)
    if not isinstance(pages, dict):
        raise ValueError("'pages' must map page names to paths")
    if not pages:
        raise ValueError("At least one page must be configured")
    for name, path in pages.items():
        if not isinstance(path, str) or not path:
            raise ValueError(f"Page '{name}' must have a non-empty path")

    settings_data = data.get('settings', {}) or {}
    if not isinstance(settings_data, dict):
        raise ValueError("'settings' must be a mapping")

    settings = AnalysisSettings(
        headless=_setting_bool(settings_data, 'headless', True),
        navigation_timeout_ms=_setting_int(settings_data, 'navigation_timeout_ms', 30000),
        settle_ms=_setting_int(settings_data, 'settle_ms', 1000),
        network_idle_ms=_setting_int(settings_data, 'network_idle_ms', 500),
        viewport_width=_setting_int(settings_data, 'viewport_width', 1920),
        viewport_height=_setting_int(settings_data, 'viewport_height', 1080),
        chrome_binary=settings_data.get('chrome_binary'),
        chromedriver_path=settings_data.get('chromedriver_path')
    )

    if settings.navigation_timeout_ms <= 0:
        raise ValueError("navigation_timeout_ms must be positive")
    for name in ('settle_ms', 'network_idle_ms'):
        if getattr(settings, name) < 0:
            raise ValueError(f"{name} must not be negative")

    output_data = data.get('output', {}) or {}
    output = OutputConfig(
        output_dir=output_data.get('output_dir', DEFAULT_OUTPUT_DIR)
    )

    config = AnalyzerConfig(
        base_url=data.get('base_url', DEFAULT_BASE_URL),
        pages={str(name): path for name, path in pages.items()},
        settings=settings,
        output=output
    )
    return apply_env_overrides(config, environ)


def save_config_to_yaml(config: AnalyzerConfig, output_path: str) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: AnalyzerConfig object to save
        output_path: Path where to save the YAML file
    """
    config_dict = {
        'base_url': config.base_url,
        'pages': dict(config.pages),
        'settings': {
            'headless': config.settings.headless,
            'navigation_timeout_ms': config.settings.navigation_timeout_ms,
            'settle_ms': config.settings.settle_ms,
            'network_idle_ms': config.settings.network_idle_ms,
            'viewport_width': config.settings.viewport_width,
            'viewport_height': config.settings.viewport_height,
        },
        'output': {
            'output_dir': config.output.output_dir
        }
    }
    if config.settings.chrome_binary:
        config_dict['settings']['chrome_binary'] = config.settings.chrome_binary
    if config.settings.chromedriver_path:
        config_dict['settings']['chromedriver_path'] = config.settings.chromedriver_path

    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False, indent=2)
