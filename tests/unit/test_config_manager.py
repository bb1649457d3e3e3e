"""
Tests for the centralized ConfigManager.

This module tests the configuration management system to ensure it properly
handles environment variables, header loading and caching, and validation.
"""

import json
import os
import tempfile
import unittest
from pathlib import Path

from form990_extractor.config.config_manager import (
    ConfigManager,
    ConfigPaths,
    ProcessingParameters,
    get_config_manager,
    reset_config_manager
)
from form990_extractor.config.processing_defaults import ProcessingDefaults
from form990_extractor.exceptions import ConfigurationError, SchemaValidationError


REPO_ROOT = Path(__file__).resolve().parents[2]

ENV_VARS = [
    'FORM990_WORKERS',
    'FORM990_PROGRESS_INTERVAL',
    'FORM990_MULTI_VALUE_SEPARATOR',
    'FORM990_READ_CHUNK_SIZE',
    'FORM990_ROW_QUEUE_SIZE',
    'FORM990_FSYNC_EACH_ROW',
    'FORM990_CONFIG_PATH',
    'FORM990_DATA_ROOT',
    'FORM990_OUTPUT_FILE',
    'FORM990_HEADER_PATH',
]


class EnvironmentTestCase(unittest.TestCase):
    """Base class restoring FORM990_* variables after each test."""

    def setUp(self):
        self._saved = {var: os.environ.pop(var) for var in ENV_VARS if var in os.environ}
        reset_config_manager()

    def tearDown(self):
        for var in ENV_VARS:
            os.environ.pop(var, None)
        os.environ.update(self._saved)
        reset_config_manager()


class TestProcessingParameters(EnvironmentTestCase):
    """Test ProcessingParameters class."""

    def test_defaults(self):
        params = ProcessingParameters.from_environment()

        self.assertEqual(params.workers, 12)
        self.assertEqual(params.progress_interval, 1000)
        self.assertEqual(params.multi_value_separator, "|")
        self.assertFalse(params.fsync_each_row)

    def test_environment_variable_override(self):
        os.environ['FORM990_WORKERS'] = '4'
        os.environ['FORM990_PROGRESS_INTERVAL'] = '50'
        os.environ['FORM990_FSYNC_EACH_ROW'] = 'yes'
        os.environ['FORM990_MULTI_VALUE_SEPARATOR'] = ';'

        params = ProcessingParameters.from_environment()

        self.assertEqual(params.workers, 4)
        self.assertEqual(params.progress_interval, 50)
        self.assertTrue(params.fsync_each_row)
        self.assertEqual(params.multi_value_separator, ';')

    def test_empty_separator_is_kept(self):
        """Test an explicitly empty separator selects plain concatenation."""
        os.environ['FORM990_MULTI_VALUE_SEPARATOR'] = ''
        self.assertEqual(ProcessingParameters.from_environment().multi_value_separator, '')

    def test_invalid_values_raise(self):
        os.environ['FORM990_WORKERS'] = 'twelve'
        with self.assertRaises(ConfigurationError):
            ProcessingParameters.from_environment()

        os.environ['FORM990_WORKERS'] = '2'
        os.environ['FORM990_FSYNC_EACH_ROW'] = 'maybe'
        with self.assertRaises(ConfigurationError):
            ProcessingParameters.from_environment()


class TestConfigPaths(EnvironmentTestCase):
    """Test ConfigPaths class."""

    def test_defaults_and_overrides(self):
        paths = ConfigPaths.from_environment('/srv/form990')
        self.assertEqual(paths.data_root, ProcessingDefaults.DATA_ROOT)
        self.assertEqual(paths.output_file, ProcessingDefaults.OUTPUT_FILE)
        self.assertIsNone(paths.header_path)

        os.environ['FORM990_OUTPUT_FILE'] = 'custom.csv'
        os.environ['FORM990_HEADER_PATH'] = 'config/header_contract.json'
        paths = ConfigPaths.from_environment('/srv/form990')
        self.assertEqual(paths.output_file, 'custom.csv')
        self.assertEqual(paths.resolve(paths.output_file), Path('/srv/form990/custom.csv'))
        self.assertEqual(paths.resolve('/abs/out.csv'), Path('/abs/out.csv'))


class TestConfigManager(EnvironmentTestCase):
    """Test ConfigManager class."""

    def setUp(self):
        super().setUp()
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.temp_dir.name)
        (self.base / 'data' / '990_zips').mkdir(parents=True)

    def tearDown(self):
        self.temp_dir.cleanup()
        super().tearDown()

    def write(self, name, content):
        path = self.base / name
        path.write_text(content, encoding='utf-8')
        return name

    def test_builtin_header_when_none_configured(self):
        header = ConfigManager(self.base).load_header_schema()
        self.assertEqual(header.column_names[:2], ['FileName', 'EIN'])

    def test_load_json_header_with_cache(self):
        name = self.write('header.json', json.dumps({'columns': [
            {'name': 'EIN', 'paths': ['Return/ReturnHeader/Filer/EIN']},
        ]}))
        manager = ConfigManager(self.base)

        header = manager.load_header_schema(name)

        self.assertEqual(header.column_names, ['EIN'])
        self.assertIs(manager.load_header_schema(name), header)
        self.assertEqual(manager.get_configuration_summary()['cache_status']['header_definitions'], 1)

        manager.clear_cache()
        self.assertIsNot(manager.load_header_schema(name), header)

    def test_load_yaml_header(self):
        name = self.write('header.yaml', (
            "columns:\n"
            "  - name: FileName\n"
            "    source: file_name\n"
            "  - name: TaxYear\n"
            "    paths:\n"
            "      - Return/ReturnHeader/TaxYr\n"
            "      - Return/ReturnHeader/TaxYear\n"
        ))
        header = ConfigManager(self.base).load_header_schema(name)
        self.assertEqual(header.column_names, ['FileName', 'TaxYear'])
        self.assertEqual(header.columns[1].paths, ('.Return.ReturnHeader.TaxYr', '.Return.ReturnHeader.TaxYear'))

    def test_header_path_from_environment(self):
        name = self.write('env_header.json', json.dumps({'columns': [{'name': 'X', 'path': 'Return/X'}]}))
        os.environ['FORM990_HEADER_PATH'] = name
        self.assertEqual(ConfigManager(self.base).load_header_schema().column_names, ['X'])

    def test_shipped_header_contract_loads(self):
        """Test the header definition shipped in config/ is valid."""
        header = ConfigManager(REPO_ROOT).load_header_schema('config/header_contract.json')
        self.assertEqual(header.column_names[:5], ['FileName', 'EIN', 'OrganizationName', 'TaxYear', 'ReturnType'])

    def test_header_errors(self):
        manager = ConfigManager(self.base)
        with self.assertRaises(ConfigurationError):
            manager.load_header_schema('missing.json')
        with self.assertRaises(ConfigurationError):
            manager.load_header_schema(self.write('header.txt', 'columns: []'))
        with self.assertRaises(ConfigurationError):
            manager.load_header_schema(self.write('broken.json', '{"columns": ['))
        with self.assertRaises(ConfigurationError):
            manager.load_header_schema(self.write('broken.yaml', 'columns: [unclosed'))
        with self.assertRaises(SchemaValidationError):
            manager.load_header_schema(self.write('empty.json', '{"columns": []}'))

    def test_get_processing_config(self):
        os.environ['FORM990_WORKERS'] = '3'
        os.environ['FORM990_MULTI_VALUE_SEPARATOR'] = ''
        config = ConfigManager(self.base).get_processing_config()

        self.assertEqual(config.max_workers, 3)
        self.assertEqual(config.multi_value_separator, '')
        self.assertEqual(config.archive_extensions, ('.zip',))

    def test_out_of_range_processing_config_raises(self):
        os.environ['FORM990_WORKERS'] = '0'
        with self.assertRaises(ConfigurationError):
            ConfigManager(self.base).get_processing_config()

    def test_validate_configuration(self):
        os.environ['FORM990_DATA_ROOT'] = 'data/990_zips'
        self.assertTrue(ConfigManager(self.base).validate_configuration())

        os.environ['FORM990_DATA_ROOT'] = 'does/not/exist'
        os.environ['FORM990_WORKERS'] = '-1'
        with self.assertRaises(ConfigurationError) as context:
            ConfigManager(self.base).validate_configuration()
        self.assertIn('Data root is not a directory', str(context.exception))
        self.assertIn('Workers must be greater than 0', str(context.exception))

    def test_reload_configuration(self):
        manager = ConfigManager(self.base)
        os.environ['FORM990_WORKERS'] = '7'
        manager.reload_configuration()
        self.assertEqual(manager.processing_params.workers, 7)
        self.assertEqual(manager.paths.base_config_path, self.base)

    def test_global_instance(self):
        first = get_config_manager(self.base)
        self.assertIs(get_config_manager(), first)
        reset_config_manager()
        self.assertIsNot(get_config_manager(self.base), first)


class TestProcessingDefaults(unittest.TestCase):
    """Test ProcessingDefaults class."""

    def test_to_dict(self):
        defaults = ProcessingDefaults.to_dict()
        self.assertEqual(defaults['WORKERS'], 12)
        self.assertEqual(defaults['PROGRESS_INTERVAL'], 1000)
        self.assertNotIn('to_dict', defaults)


if __name__ == '__main__':
    unittest.main()
