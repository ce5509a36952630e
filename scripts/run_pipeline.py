#!/usr/bin/env python3
"""
Main pipeline runner script for the sales report tool
Reads a sales CSV, aggregates it and writes the PDF report
"""

from __future__ import annotations

import sys
import os
import time
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import SETTINGS, ReportConfig
from data.record_source import CSVRecordSource
from reporting.pipeline import ReportPipeline
from utils.exceptions import ConfigurationError, LockTimeoutError, RecordSourceError, ReportError
from utils.helpers import format_amount, format_duration
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_INPUT = 2
EXIT_LOCKED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Generate a sales analysis PDF report from a CSV file')
    parser.add_argument('--input', '-i', required=True, help='Sales CSV file (header row required)')
    parser.add_argument('--output', '-o', default='sales_report.pdf',
                        help='Report filename inside the allowed output directory (default: sales_report.pdf)')
    parser.add_argument('--stdout', action='store_true', help='Write the PDF to standard output instead of a file')
    parser.add_argument('--output-dir', help='Allowed output directory (overrides REPORT_ALLOWED_OUTPUT_DIR)')
    parser.add_argument('--log-dir', help='Directory for retained run logs (overrides REPORT_LOG_DIR)')
    parser.add_argument('--title', help='Report title')
    parser.add_argument('--max-data-rows', type=int, help='Maximum rows shown in trend and ranking tables')
    parser.add_argument('--lock-retries', type=int, help='Lock attempts before giving up')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--version', action='version', version=f"%(prog)s {SETTINGS['version']}")
    return parser


def config_from_args(args: argparse.Namespace) -> ReportConfig:
    overrides = {
        'allowed_output_dir': args.output_dir,
        'log_dir': args.log_dir,
        'report_title': args.title,
        'max_data_rows': args.max_data_rows,
        'lock_retries': args.lock_retries,
    }
    return ReportConfig.from_mapping({k: v for k, v in overrides.items() if v is not None})


def main(argv=None) -> int:
    """Main pipeline execution function"""
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level)
    start_time = time.time()

    try:
        config = config_from_args(args)
        records = CSVRecordSource(args.input).read()
        pipeline = ReportPipeline(config)
        if args.stdout:
            result = pipeline.run(records, sink=sys.stdout.buffer)
        else:
            result = pipeline.run(records, output_path=args.output)
    except (ConfigurationError, RecordSourceError) as e:
        logger.error(f"Cannot generate report: {e}")
        return EXIT_BAD_INPUT
    except LockTimeoutError as e:
        logger.error(f"Report destination is busy, try again later: {e}")
        return EXIT_LOCKED
    except ReportError as e:
        logger.error(f"Report generation failed: {e}")
        return EXIT_FAILED
    except Exception as e:
        logger.exception(f"Unexpected error while generating report: {e}")
        return EXIT_FAILED

    logger.info(f"Records: {len(records):,}")
    logger.info(f"Charts: {result.charts_rendered} rendered, {result.charts_skipped} skipped")
    if result.output_path:
        logger.info(f"Report written to: {result.output_path} ({format_amount(result.bytes_written)} bytes)")
    if result.log_path:
        logger.info(f"Run log: {result.log_path}")
    logger.info(f"Completed in {format_duration(time.time() - start_time)}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
