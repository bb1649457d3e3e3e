"""
Centralized configuration management for the Form 990 flattening system.

This module provides the ConfigManager class that serves as the single source of truth
for run configuration: processing parameters, file locations, the output header
definition and environment variable handling.

Environment variables:
    FORM990_WORKERS                Concurrency limit
    FORM990_PROGRESS_INTERVAL      Documents between progress log lines
    FORM990_MULTI_VALUE_SEPARATOR  Delimiter for repeated values
    FORM990_READ_CHUNK_SIZE        Parser feed size in bytes
    FORM990_ROW_QUEUE_SIZE         Rows buffered ahead of the writer thread
    FORM990_FSYNC_EACH_ROW         true/false
    FORM990_CONFIG_PATH            Base path for relative config paths
    FORM990_DATA_ROOT              Directory of extracted archives
    FORM990_OUTPUT_FILE            CSV file to create
    FORM990_HEADER_PATH            JSON/YAML header definition (built-in header if unset)
"""

import os
import json
import logging

from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field

import yaml

from ..interfaces import HeaderProviderInterface
from ..mapping.header_schema import build_header_schema, default_header_schema
from ..models import HeaderSchema, ProcessingConfig
from ..exceptions import ConfigurationError
from .processing_defaults import ProcessingDefaults


_TRUE_VALUES = ('true', '1', 'yes', 'y', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'n', 'off')


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer, got '{raw}'")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Environment variable {name} must be true or false, got '{raw}'")


@dataclass
class ProcessingParameters:
    """Processing parameters with environment variable support."""
    workers: int = ProcessingDefaults.WORKERS
    progress_interval: int = ProcessingDefaults.PROGRESS_INTERVAL
    multi_value_separator: str = ProcessingDefaults.MULTI_VALUE_SEPARATOR
    read_chunk_size: int = ProcessingDefaults.READ_CHUNK_SIZE
    row_queue_size: int = ProcessingDefaults.ROW_QUEUE_SIZE
    fsync_each_row: bool = ProcessingDefaults.FSYNC_EACH_ROW

    @classmethod
    def from_environment(cls) -> 'ProcessingParameters':
        """Create processing parameters from environment variables."""
        return cls(
            workers=_env_int('FORM990_WORKERS', cls.workers),
            progress_interval=_env_int('FORM990_PROGRESS_INTERVAL', cls.progress_interval),
            # An empty separator is meaningful (plain concatenation), so only unset falls back
            multi_value_separator=os.environ.get('FORM990_MULTI_VALUE_SEPARATOR', cls.multi_value_separator),
            read_chunk_size=_env_int('FORM990_READ_CHUNK_SIZE', cls.read_chunk_size),
            row_queue_size=_env_int('FORM990_ROW_QUEUE_SIZE', cls.row_queue_size),
            fsync_each_row=_env_bool('FORM990_FSYNC_EACH_ROW', cls.fsync_each_row),
        )


@dataclass
class ConfigPaths:
    """Configuration file paths with environment variable support."""
    base_config_path: Path = field(default_factory=lambda: Path.cwd())
    data_root: str = ProcessingDefaults.DATA_ROOT
    output_file: str = ProcessingDefaults.OUTPUT_FILE
    header_path: Optional[str] = None

    @classmethod
    def from_environment(cls, base_path: Optional[Union[str, Path]] = None) -> 'ConfigPaths':
        """Create configuration paths from environment variables."""
        if base_path:
            base_config_path = Path(base_path)
        else:
            base_config_path = Path(os.environ.get('FORM990_CONFIG_PATH', Path.cwd()))

        return cls(
            base_config_path=base_config_path,
            data_root=os.environ.get('FORM990_DATA_ROOT', cls.data_root),
            output_file=os.environ.get('FORM990_OUTPUT_FILE', cls.output_file),
            header_path=os.environ.get('FORM990_HEADER_PATH') or None,
        )

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a possibly relative path against the base configuration path."""
        path = Path(path)
        return path if path.is_absolute() else self.base_config_path / path


class ConfigManager(HeaderProviderInterface):
    """
    Centralized configuration manager serving as single source of truth.

    This class consolidates:
    - Processing parameters (concurrency, progress, separator, buffering)
    - Data root and output locations
    - Output header loading (JSON or YAML) with caching
    - Environment variable handling
    """

    def __init__(self, base_config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the centralized configuration manager.

        Args:
            base_config_path: Base path for relative configuration paths. If None, uses
                FORM990_CONFIG_PATH or the current directory.

        Raises:
            ConfigurationError: If an environment variable holds an invalid value
        """
        self.logger = logging.getLogger(__name__)

        self.paths = ConfigPaths.from_environment(base_config_path)
        self.processing_params = ProcessingParameters.from_environment()

        self._header_cache: Dict[str, HeaderSchema] = {}

        self.logger.info(f"ConfigManager initialized with base path: {self.paths.base_config_path}")
        self.logger.debug(f"Processing workers: {self.processing_params.workers}")

    @property
    def data_root(self) -> Path:
        return self.paths.resolve(self.paths.data_root)

    @property
    def output_path(self) -> Path:
        return self.paths.resolve(self.paths.output_file)

    def get_processing_config(self) -> ProcessingConfig:
        """
        Get processing configuration with all parameters.

        Returns:
            ProcessingConfig object with environment-configured values

        Raises:
            ConfigurationError: If a parameter is out of range
        """
        try:
            return ProcessingConfig(
                max_workers=self.processing_params.workers,
                progress_interval=self.processing_params.progress_interval,
                multi_value_separator=self.processing_params.multi_value_separator,
                read_chunk_size=self.processing_params.read_chunk_size,
                row_queue_size=self.processing_params.row_queue_size,
                fsync_each_row=self.processing_params.fsync_each_row,
                archive_extensions=ProcessingDefaults.ARCHIVE_EXTENSIONS,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid processing configuration: {e}")

    def load_header_schema(self, header_path: Optional[str] = None) -> HeaderSchema:
        """
        Load the output header with caching.

        Args:
            header_path: Optional JSON/YAML header definition. If None, uses FORM990_HEADER_PATH,
                and the built-in Form 990 header when that is unset too.

        Returns:
            Loaded and validated HeaderSchema

        Raises:
            ConfigurationError: If the file is missing, unreadable or not JSON/YAML
            SchemaValidationError: If the definition is invalid
        """
        if header_path is None:
            header_path = self.paths.header_path

        if header_path is None:
            self.logger.debug("No header definition configured, using built-in header")
            return default_header_schema()

        cache_key = str(header_path)
        if cache_key in self._header_cache:
            self.logger.debug(f"Returning cached header for {header_path}")
            return self._header_cache[cache_key]

        full_path = self.paths.resolve(header_path)
        if not full_path.exists():
            raise ConfigurationError(f"Header definition file not found: {full_path}", str(full_path))

        suffix = full_path.suffix.lower()
        try:
            with open(full_path, 'r', encoding='utf-8') as file:
                if suffix in ('.yaml', '.yml'):
                    definition = yaml.safe_load(file)
                elif suffix == '.json':
                    definition = json.load(file)
                else:
                    raise ConfigurationError(f"Unsupported header file format: {full_path.suffix}", str(full_path))
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to parse header definition {full_path}: {e}", str(full_path))
        except OSError as e:
            raise ConfigurationError(f"Failed to read header definition {full_path}: {e}", str(full_path))

        header = build_header_schema(definition, str(full_path))
        self._header_cache[cache_key] = header

        self.logger.info(f"Loaded header with {len(header)} columns from {full_path}")
        return header

    def validate_configuration(self) -> bool:
        """
        Validate all configuration settings.

        Returns:
            True if all configurations are valid

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        errors = []

        if not self.paths.base_config_path.exists():
            errors.append(f"Base configuration path does not exist: {self.paths.base_config_path}")

        if not self.data_root.is_dir():
            errors.append(f"Data root is not a directory: {self.data_root}")

        if self.paths.header_path and not self.paths.resolve(self.paths.header_path).exists():
            errors.append(f"Header definition file does not exist: {self.paths.resolve(self.paths.header_path)}")

        if self.processing_params.workers <= 0:
            errors.append("Workers must be greater than 0")

        if self.processing_params.progress_interval <= 0:
            errors.append("Progress interval must be greater than 0")

        if self.processing_params.read_chunk_size <= 0:
            errors.append("Read chunk size must be greater than 0")

        if self.processing_params.row_queue_size <= 0:
            errors.append("Row queue size must be greater than 0")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        self.logger.info("Configuration validation passed")
        return True

    def get_configuration_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all configuration settings.

        Returns:
            Dictionary containing configuration summary
        """
        return {
            'processing': {
                'workers': self.processing_params.workers,
                'progress_interval': self.processing_params.progress_interval,
                'multi_value_separator': self.processing_params.multi_value_separator,
                'read_chunk_size': self.processing_params.read_chunk_size,
                'row_queue_size': self.processing_params.row_queue_size,
                'fsync_each_row': self.processing_params.fsync_each_row,
            },
            'paths': {
                'base_config_path': str(self.paths.base_config_path),
                'data_root': str(self.data_root),
                'output_file': str(self.output_path),
                'header_path': str(self.paths.resolve(self.paths.header_path)) if self.paths.header_path else None,
            },
            'cache_status': {
                'header_definitions': len(self._header_cache),
            }
        }

    def clear_cache(self) -> None:
        """Clear all cached configuration data."""
        self._header_cache.clear()
        self.logger.info("Configuration cache cleared")

    def reload_configuration(self) -> None:
        """Reload configuration from environment variables and clear cache."""
        self.paths = ConfigPaths.from_environment(self.paths.base_config_path)
        self.processing_params = ProcessingParameters.from_environment()
        self.clear_cache()
        self.logger.info("Configuration reloaded from environment variables")


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager(base_config_path: Optional[Union[str, Path]] = None) -> ConfigManager:
    """
    Get the global configuration manager instance.

    Args:
        base_config_path: Base path for configuration files. Only used on first call.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager

    if _global_config_manager is None:
        _global_config_manager = ConfigManager(base_config_path)

    return _global_config_manager


def reset_config_manager() -> None:
    """Reset the global configuration manager instance."""
    global _global_config_manager
    _global_config_manager = None
