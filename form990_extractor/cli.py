"""
Command-line interface for the Form 990 flattening system.

Commands:
    csv     Flatten every extracted document under the data root into one CSV file
    unzip   Extract the archives under the data root into shard directories
    config  Log the effective configuration

Typical workflow:
    form990_extractor unzip
    form990_extractor csv --workers 12 --output irs_990_data.csv
"""

import argparse
import logging
import signal
import sys

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .archive.zip_extractor import ZipExtractor
from .config.config_manager import get_config_manager
from .config.processing_defaults import ProcessingDefaults
from .exceptions import XMLExtractionError
from .pipeline import FlattenPipeline


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_level: str, log_dir: Optional[str] = "logs") -> logging.Logger:
    """
    Configure the package logger with a stdout handler and, optionally, a log file.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ...)
        log_dir: Directory for the run log file; None disables file logging

    Returns:
        The package logger
    """
    level = getattr(logging, log_level.upper())
    package_logger = logging.getLogger('form990_extractor')
    package_logger.setLevel(level)

    # Remove any existing handlers to avoid duplicates
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"form990_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger


def confirmation(prompt: str, tries: int = 3, input_func: Callable[[str], str] = input) -> bool:
    """
    Ask a y/n question, re-asking on empty answers.

    Args:
        prompt: Description of what is about to happen
        tries: Attempts before giving up (empty answers only)
        input_func: Source of answers

    Returns:
        True only for an answer starting with 'y'
    """
    for _ in range(tries):
        try:
            answer = input_func(f"{prompt} Proceed? [y/n]: ")
        except EOFError:
            return False
        answer = answer.strip().lower()
        if not answer:
            continue
        return answer[0] == 'y'
    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='form990_extractor',
        description='Flatten IRS Form 990 e-file XML documents into a single CSV table.'
    )
    parser.add_argument('--log-level', default=ProcessingDefaults.LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help=f'Logging level (default: {ProcessingDefaults.LOG_LEVEL})')
    parser.add_argument('--log-dir', default='logs',
                        help='Directory for run log files; pass an empty value to disable (default: logs)')
    parser.add_argument('--config-path', default=None,
                        help='Base path for relative configuration paths (default: FORM990_CONFIG_PATH or cwd)')
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Skip the confirmation prompt')

    subparsers = parser.add_subparsers(dest='command', required=True)

    csv_parser = subparsers.add_parser('csv', help='Process XML files and generate CSV output')
    csv_parser.add_argument('--data-root', default=None,
                            help=f'Directory of extracted archives (default: {ProcessingDefaults.DATA_ROOT})')
    csv_parser.add_argument('--output', '-o', default=None,
                            help=f'CSV file to create (default: {ProcessingDefaults.OUTPUT_FILE})')
    csv_parser.add_argument('--workers', '-w', type=int, default=None,
                            help=f'Shards processed concurrently (default: {ProcessingDefaults.WORKERS})')
    csv_parser.add_argument('--header', default=None,
                            help='JSON or YAML header definition (default: built-in Form 990 header)')
    csv_parser.add_argument('--separator', default=None,
                            help=f"Delimiter for repeated values (default: '{ProcessingDefaults.MULTI_VALUE_SEPARATOR}')")
    csv_parser.add_argument('--sequential', action='store_true',
                            help='Process shards in a single process')
    csv_parser.add_argument('--fsync', action='store_true',
                            help='fsync the output after every row')

    unzip_parser = subparsers.add_parser('unzip', help='Extract all ZIP files to directories')
    unzip_parser.add_argument('--data-root', default=None,
                              help=f'Directory holding the archives (default: {ProcessingDefaults.DATA_ROOT})')

    subparsers.add_parser('config', help='Show the effective configuration')

    return parser


def _run_csv(args, config_manager, logger: logging.Logger, confirm: Callable[[str], bool]) -> int:
    config = config_manager.get_processing_config()
    if args.workers is not None:
        config.max_workers = args.workers
    if args.separator is not None:
        config.multi_value_separator = args.separator
    if args.fsync:
        config.fsync_each_row = True
    if config.max_workers <= 0:
        logger.error("--workers must be greater than 0")
        return 1

    data_root = config_manager.paths.resolve(args.data_root) if args.data_root else config_manager.data_root
    output_path = config_manager.paths.resolve(args.output) if args.output else config_manager.output_path
    header = config_manager.load_header_schema(args.header)

    if not confirm(f"Flatten {data_root} into {output_path} (existing file will be overwritten)."):
        logger.warning("Aborting")
        return 1

    pipeline = FlattenPipeline(
        data_root, output_path, header, config,
        sequential=args.sequential,
        log_level=logging.getLogger('form990_extractor').getEffectiveLevel()
    )

    def handle_interrupt(signum, frame):
        logger.warning("Interrupt received, finishing in-flight documents")
        pipeline.request_stop()

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        result = pipeline.run()
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if result.cancelled:
        logger.warning(f"CSV generation stopped early. Partial output in {output_path}")
        return 1
    logger.info(f"CSV generation complete! Check {output_path}")
    return 0


def _run_unzip(args, config_manager, logger: logging.Logger, confirm: Callable[[str], bool]) -> int:
    data_root = config_manager.paths.resolve(args.data_root) if args.data_root else config_manager.data_root
    if not confirm(f"Extract every archive under {data_root}."):
        logger.warning("Aborting")
        return 1

    summary = ZipExtractor(data_root, ProcessingDefaults.ARCHIVE_EXTENSIONS).extract_all()
    logger.info(f"Unzip complete! Extracted: {summary.extracted}, Skipped: {summary.skipped}, "
                f"Failed: {summary.failed}")
    return 0 if summary.failed == 0 else 1


def _run_config(args, config_manager, logger: logging.Logger) -> int:
    summary = config_manager.get_configuration_summary()
    logger.info("=== Configuration Summary ===")
    for section, values in summary.items():
        logger.info(f"{section}:")
        for key, value in values.items():
            logger.info(f"  {key}: {value}")
    ProcessingDefaults.log_summary(logger)
    return 0


def main(args: Optional[list] = None, input_func: Callable[[str], str] = input) -> int:
    """
    Main entry point for the CLI application.

    Args:
        args: Optional command line arguments (defaults to sys.argv)
        input_func: Source of confirmation answers

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if args is None:
        args = sys.argv[1:]

    parsed = build_parser().parse_args(args)
    logger = setup_logging(parsed.log_level, parsed.log_dir or None)

    def confirm(prompt: str) -> bool:
        return parsed.yes or confirmation(prompt, tries=3, input_func=input_func)

    try:
        config_manager = get_config_manager(parsed.config_path)

        if parsed.command == 'csv':
            return _run_csv(parsed, config_manager, logger, confirm)
        if parsed.command == 'unzip':
            return _run_unzip(parsed, config_manager, logger, confirm)
        return _run_config(parsed, config_manager, logger)

    except XMLExtractionError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
