#!/usr/bin/env python3
"""
BookStack to Wiki.js Sync Tool - Main CLI Entry Point

This script provides the command-line interface for syncing the BookStack
shelf/book/chapter/page hierarchy, with its images and attachments, into a
Wiki.js instance. Re-runs update previously synced pages and reuse previously
uploaded assets, as recorded in the sync state file.
"""

import argparse
import logging
import os
import signal
import sys
import threading
import time
from pathlib import Path

import yaml

# Add project root to Python path for relative imports
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

from config_loader import ConfigLoader, DEFAULT_CONFIG_PATH
from logger import setup_logging, log_section, log_config
from models import SyncStats
from orchestrator import SyncOrchestrator, SyncReport

# Version
__version__ = "1.0.0"

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Sync BookStack shelves, books, chapters and pages into Wiki.js",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write a configuration template
  python sync.py --init --config config.yaml

  # Run a sync
  python sync.py --config config.yaml

  # Preview without writing to Wiki.js
  python sync.py --dry-run

  # Use the default identity for all pages
  python sync.py --skip-users

  # Only pages changed since the last run, four upload workers
  python sync.py --incremental --workers 4

  # Verbose logging
  python sync.py -vv
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    parser.add_argument(
        '--config',
        type=str,
        default=os.getenv('CONFIG_PATH', DEFAULT_CONFIG_PATH),
        help='Path to configuration YAML file (default: $CONFIG_PATH or config.yaml)'
    )

    parser.add_argument(
        '--init',
        action='store_true',
        help='Write a configuration template to --config and exit'
    )

    parser.add_argument(
        '--state-path',
        type=str,
        help='Path of the sync state file (overrides sync.state_path)'
    )

    parser.add_argument(
        '--dry-run',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Resolve and transform everything without writing to Wiki.js'
    )

    parser.add_argument(
        '--skip-users',
        action='store_true',
        help='Skip user mapping and use the default identity for all content'
    )

    parser.add_argument(
        '--include-drafts',
        action='store_true',
        help='Also sync draft pages (as unpublished)'
    )

    parser.add_argument(
        '--incremental',
        action='store_true',
        help='Skip pages not updated since the last successful sync'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Number of parallel asset upload workers (default: 1)'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )

    parser.add_argument(
        '--report',
        type=str,
        help='Write the run report as JSON to this path'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also log to this file (rotated at 10MB)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def install_interrupt_handler(cancel_event: threading.Event, logger: logging.Logger):
    """
    First Ctrl+C requests cancellation between items, a second one interrupts.

    Returns:
        The previous SIGINT handler
    """
    def handle_sigint(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received, finishing current item (press Ctrl+C again to abort)")
        cancel_event.set()

    return signal.signal(signal.SIGINT, handle_sigint)


def exit_code_for(report: dict) -> int:
    """Map a run report to the process exit code."""
    status = report.get('status')
    if status == 'cancelled':
        return EXIT_INTERRUPTED
    if status == 'failed' or report.get('statistics', {}).get('errors', 0) > 0:
        return EXIT_ERRORS
    return EXIT_OK


def print_config_failure_report(args: argparse.Namespace, start_time: float) -> None:
    """Print the (empty) statistics summary for a run stopped by its configuration."""
    report_generator = SyncReport()
    stats = SyncStats()
    stats.increment('errors')
    report = report_generator.generate_report(
        stats,
        time.time() - start_time,
        dry_run=bool(args.dry_run),
        status='failed'
    )
    print("\n" + report_generator.format_console_report(report))

    if args.report:
        report_generator.export_json_report(report, args.report)


def run_sync(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute a sync run and print its report."""
    report_generator = SyncReport(logger)
    cancel_event = threading.Event()
    previous_handler = install_interrupt_handler(cancel_event, logger)
    start_time = time.time()

    orchestrator = None
    report = None
    exit_code = EXIT_ERRORS

    try:
        orchestrator = SyncOrchestrator.from_config(config, cancel_event=cancel_event)
        report = orchestrator.run()
        exit_code = exit_code_for(report)
    except KeyboardInterrupt:
        logger.error("Sync interrupted by user")
        exit_code = EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Sync failed: {str(e)}", exc_info=True)
        exit_code = EXIT_ERRORS
    finally:
        signal.signal(signal.SIGINT, previous_handler)

        if report is None:
            context = orchestrator.context if orchestrator else None
            stats = context.stats if context else SyncStats()
            status = 'cancelled' if exit_code == EXIT_INTERRUPTED else 'failed'
            report = report_generator.generate_report(
                stats,
                time.time() - start_time,
                dry_run=config.get('sync', {}).get('dry_run', False),
                state=context.state if context else None,
                status=status
            )

        print("\n" + report_generator.format_console_report(report))

        if args.report:
            report_generator.export_json_report(report, args.report)

    if exit_code == EXIT_OK:
        logger.info("Sync completed successfully")
    else:
        logger.warning(f"Sync finished with status '{report.get('status')}' (exit code {exit_code})")

    return exit_code


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args()

    if args.init:
        try:
            ConfigLoader.write_template(args.config)
        except FileExistsError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_CONFIG
        print(f"Configuration template written to {args.config}")
        return EXIT_OK

    start_time = time.time()
    try:
        # Minimal logging for config loading
        setup_logging(verbosity=args.verbose, log_file=args.log_file)
        logger = logging.getLogger('bookstack_wikijs_sync.cli')

        log_section("BookStack to Wiki.js Sync")
        logger.info(f"Version: {__version__}")

        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)

        # CLI takes precedence
        config = ConfigLoader.merge_with_args(config, args)
        ConfigLoader.validate(config)

        logging_config = config.get('logging', {})
        setup_logging(
            verbosity=args.verbose,
            log_file=logging_config.get('file'),
            level=logging_config.get('level')
        )

        log_config(config)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        print("Run with --init to create a configuration template.", file=sys.stderr)
        print_config_failure_report(args, start_time)
        return EXIT_CONFIG
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        print_config_failure_report(args, start_time)
        return EXIT_CONFIG
    except yaml.YAMLError as e:
        print(f"ERROR: Invalid YAML in {args.config}: {e}", file=sys.stderr)
        print_config_failure_report(args, start_time)
        return EXIT_CONFIG

    return run_sync(config, args, logger)


if __name__ == "__main__":
    sys.exit(main())
