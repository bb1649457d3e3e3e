"""
Centralized configuration defaults for Form 990 flattening runs.

This module defines operational configuration constants used throughout the system.
Environment variables (FORM990_*) and CLI arguments can override these defaults at runtime.

Single Source of Truth: Change these values once; all modules automatically use updated defaults.
"""


class ProcessingDefaults:
    """
    Centralized operational configuration for flattening runs.

    All values are defaults that can be overridden via CLI arguments:
    - form990_extractor csv --workers 8 --output filings.csv
    - form990_extractor --log-level DEBUG csv

    These settings apply consistently across all runs unless explicitly overridden.
    """

    # Parallelization
    WORKERS = 12  # Shards processed concurrently (one worker process per shard)

    # Progress reporting
    PROGRESS_INTERVAL = 1000  # Completed documents between progress log lines

    # Input / output locations
    DATA_ROOT = "./data/990_zips"  # One subdirectory per extracted archive
    OUTPUT_FILE = "irs_990_data.csv"
    ARCHIVE_EXTENSIONS = (".zip",)  # Never treated as shards

    # Row materialization
    MULTI_VALUE_SEPARATOR = "|"  # Joins repeated values of one path; "" concatenates

    # Streaming and buffering
    READ_CHUNK_SIZE = 65536  # Bytes fed to the XML parser per read
    ROW_QUEUE_SIZE = 10000  # Rows buffered between worker processes and the writer thread
    FSYNC_EACH_ROW = False  # os.fsync after every row (slow, crash-proof)

    # Logging
    LOG_LEVEL = "INFO"  # Default logging level (CRITICAL, ERROR, WARNING, INFO, DEBUG)

    @classmethod
    def to_dict(cls) -> dict:
        """
        Export all defaults as a dictionary.

        Returns:
            Dictionary of all ProcessingDefaults class attributes.
        """
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if not key.startswith('_') and key.isupper()
        }

    @classmethod
    def log_summary(cls, logger=None):
        """
        Log a summary of all operational defaults.

        Args:
            logger: Optional logger instance. If None, prints to stdout.
        """
        config_dict = cls.to_dict()
        summary = "\n".join([f"  {key}: {value}" for key, value in sorted(config_dict.items())])
        message = f"Processing Configuration Defaults:\n{summary}"

        if logger:
            logger.info(message)
        else:
            print(message)
