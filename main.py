#!/usr/bin/env python3
"""
Web Performance Analyzer - Main Entry Point

This module provides the command-line interface for measuring the runtime
performance of a web application. Each configured page is loaded in a fresh
headless Chrome with caching disabled; load time, Web Vitals, resource timing,
code coverage and heap counters are captured, scored from 0 to 100 and written
to the performance-reports/ directory.

Configuration comes from the environment (BASE_URL, HEADLESS, PERF_REPORT_DIR)
and optionally a YAML file.

Usage Examples:
    python main.py
    BASE_URL=http://staging:3000 HEADLESS=false python main.py
    python main.py --config perf.yaml --pages home dashboard
    python main.py --dry-run
"""

import argparse
import logging
import sys

from utils import setup_logging
from config import load_config, config_from_env
from errors import PersistenceFailure
from runner import BatchRunner


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Web Performance Analyzer - measure load time, Web Vitals and bundle utilization',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  BASE_URL          target base address (default: http://localhost:3000)
  HEADLESS          set to "false" to show the browser window
  PERF_REPORT_DIR   output directory (default: performance-reports)

Examples:
  %(prog)s
  %(prog)s --config perf.yaml
  %(prog)s --pages home dashboard
  %(prog)s --dry-run
        """
    )

    parser.add_argument('--config',
                        help='Configuration file path (YAML)')
    parser.add_argument('--pages',
                        nargs='+',
                        help='Specific pages to analyze')
    parser.add_argument('--output-dir',
                        help='Directory for reports (overrides configuration)')
    parser.add_argument('--dry-run',
                        action='store_true',
                        help='Only check that the target pages are reachable')
    parser.add_argument('--log-level',
                        default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Set logging level (default: INFO)')
    parser.add_argument('--log-file',
                        default=None,
                        help='Optional log file path')

    args = parser.parse_args()

    try:
        setup_logging(log_level=args.log_level, log_file=args.log_file)
        logger = logging.getLogger('web_perf_analyzer')
        logger.info("=" * 60)
        logger.info("Web Performance Analyzer starting...")
        logger.info(f"Command line: {' '.join(sys.argv)}")
        logger.info("=" * 60)
    except Exception as e:
        print(f"❌ Failed to set up logging: {str(e)}")
        sys.exit(1)

    if args.config:
        print(f"⚙️  Loading configuration from: {args.config}")
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            print(f"❌ Configuration file not found: {args.config}")
            print("Please check the file path and try again.")
            sys.exit(1)
        except Exception as e:
            print(f"❌ Failed to load configuration: {str(e)}")
            print("Please check the configuration file format and try again.")
            sys.exit(1)
    else:
        config = config_from_env()

    if args.output_dir:
        config.output.output_dir = args.output_dir

    print(f"🎯 Target: {config.base_url} ({len(config.pages)} pages, "
          f"{'headless' if config.settings.headless else 'visible'} browser)")
    logger.info(f"Target base URL: {config.base_url}")

    try:
        runner = BatchRunner(config)

        if args.dry_run:
            print("🔍 Running dry-run analysis...")
            report = runner.dry_run(args.pages)
            runner.progress_reporter.print_dry_run_report(report)
            print("✅ Dry-run analysis completed")
            return

        print("🚀 Starting performance analysis...")
        batch = runner.run(args.pages)
        runner.progress_reporter.print_final_summary(batch)
        print(f"\n✅ Performance analysis complete! Reports saved to: {config.output.output_dir}")

    except KeyboardInterrupt:
        logger.info("Analysis interrupted by user (Ctrl+C)")
        print("\n⚠️  Analysis interrupted by user")
        sys.exit(1)
    except ValueError as e:
        print(f"❌ {str(e)}")
        sys.exit(1)
    except PersistenceFailure as e:
        logger.error(f"Cannot write reports: {str(e)}")
        print(f"❌ Cannot write reports: {str(e)}")
        print("Please check directory permissions and free disk space.")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Performance analysis failed: {str(e)}", exc_info=True)
        print(f"\n❌ Performance analysis failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
