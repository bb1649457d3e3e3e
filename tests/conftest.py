"""Shared fixtures for the form990_extractor test suite."""

import logging

import pytest

from form990_extractor.config.config_manager import reset_config_manager
from form990_extractor.mapping.header_schema import default_header_schema
from form990_extractor.models import ProcessingConfig

from helpers import build_corpus, standard_layout


@pytest.fixture
def header():
    """Built-in Form 990 header."""
    return default_header_schema()


@pytest.fixture
def config():
    """Small-footprint processing configuration."""
    return ProcessingConfig(max_workers=2, progress_interval=5, read_chunk_size=128, row_queue_size=50)


@pytest.fixture
def corpus(tmp_path):
    """Data root with 3 shards of 4 well-formed returns each, plus a stray archive."""
    root = build_corpus(tmp_path / "990_zips", standard_layout())
    (root / "2023_TEOS_XML_00A.zip").write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return root


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep FORM990_* settings and the config singleton from leaking between tests."""
    for var in (
        'FORM990_WORKERS', 'FORM990_PROGRESS_INTERVAL', 'FORM990_MULTI_VALUE_SEPARATOR',
        'FORM990_READ_CHUNK_SIZE', 'FORM990_ROW_QUEUE_SIZE', 'FORM990_FSYNC_EACH_ROW',
        'FORM990_CONFIG_PATH', 'FORM990_DATA_ROOT', 'FORM990_OUTPUT_FILE', 'FORM990_HEADER_PATH',
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config_manager()
    yield
    reset_config_manager()
    package_logger = logging.getLogger('form990_extractor')
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
