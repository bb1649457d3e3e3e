"""
End-to-end tests for the form990_extractor command line.
"""

import json
import logging
import zipfile

import pytest

from form990_extractor.cli import build_parser, confirmation, main
from form990_extractor.output.csv_sink import read_rows

from helpers import form990_xml


pytestmark = pytest.mark.e2e


def answers(*replies):
    """input() replacement returning the given replies in order."""
    remaining = list(replies)

    def _input(prompt):
        if not remaining:
            raise EOFError
        return remaining.pop(0)
    return _input


class TestConfirmation:
    """Test suite for the y/n prompt."""

    def test_yes_and_no(self):
        assert confirmation("Go.", input_func=answers("y"))
        assert confirmation("Go.", input_func=answers("  YES "))
        assert not confirmation("Go.", input_func=answers("n"))

    def test_empty_answers_are_asked_again(self):
        assert confirmation("Go.", input_func=answers("", "", "y"))
        assert not confirmation("Go.", tries=3, input_func=answers("", "", "", "y"))

    def test_end_of_input_declines(self):
        assert not confirmation("Go.", input_func=answers())


class TestCsvCommand:
    """Test suite for the csv command."""

    def test_sequential_run(self, corpus, tmp_path):
        output = tmp_path / "out.csv"

        code = main(["--log-dir", "", "--yes", "csv",
                     "--data-root", str(corpus), "--output", str(output), "--sequential"])

        assert code == 0
        rows = read_rows(output)
        assert rows[0][:2] == ["FileName", "EIN"]
        assert len(rows) == 13

    def test_parallel_run_with_custom_header(self, corpus, tmp_path):
        header_path = tmp_path / "header.json"
        header_path.write_text(json.dumps({"columns": [
            {"name": "FileName", "source": "file_name"},
            {"name": "EIN", "paths": ["Return/ReturnHeader/Filer/EIN"]},
        ]}), encoding="utf-8")
        output = tmp_path / "out.csv"

        code = main(["--log-dir", "", "--yes", "csv", "--data-root", str(corpus), "--output", str(output),
                     "--workers", "2", "--header", str(header_path)])

        assert code == 0
        rows = read_rows(output)
        assert rows[0] == ["FileName", "EIN"]
        assert sorted(rows[1:])[0] == ["2023000000_public.xml", "00-0000000"]

    def test_declined_confirmation_aborts_without_output(self, corpus, tmp_path):
        output = tmp_path / "out.csv"

        code = main(["--log-dir", "", "csv", "--data-root", str(corpus), "--output", str(output)],
                    input_func=answers("n"))

        assert code == 1
        assert not output.exists()

    def test_invalid_header_file_fails(self, corpus, tmp_path, caplog):
        bad_header = tmp_path / "header.json"
        bad_header.write_text('{"columns": [', encoding="utf-8")

        code = main(["--log-dir", "", "--yes", "csv", "--data-root", str(corpus),
                     "--output", str(tmp_path / "out.csv"), "--header", str(bad_header)])

        assert code == 1
        assert any("ConfigurationError" in record.getMessage() for record in caplog.records)

    def test_missing_data_root_fails(self, tmp_path):
        code = main(["--log-dir", "", "--yes", "csv", "--data-root", str(tmp_path / "missing"),
                     "--output", str(tmp_path / "out.csv"), "--sequential"])
        assert code == 1

    def test_non_positive_workers_rejected(self, corpus, tmp_path):
        code = main(["--log-dir", "", "--yes", "csv", "--data-root", str(corpus),
                     "--output", str(tmp_path / "out.csv"), "--workers", "0"])
        assert code == 1

    def test_log_file_is_written(self, corpus, tmp_path):
        log_dir = tmp_path / "logs"

        main(["--log-dir", str(log_dir), "--yes", "csv", "--data-root", str(corpus),
              "--output", str(tmp_path / "out.csv"), "--sequential"])

        log_files = list(log_dir.glob("form990_*.log"))
        assert len(log_files) == 1
        assert "Flattening run summary" in log_files[0].read_text(encoding="utf-8")


class TestUnzipCommand:
    """Test suite for the unzip command."""

    def test_extracts_then_csv_reads_extracted_shards(self, tmp_path):
        data_root = tmp_path / "990_zips"
        data_root.mkdir()
        with zipfile.ZipFile(data_root / "2023_TEOS_XML_01A.zip", "w") as archive:
            archive.writestr("202301_public.xml", form990_xml("12-3456789", "Zipped Org"))

        assert main(["--log-dir", "", "--yes", "unzip", "--data-root", str(data_root)]) == 0
        assert (data_root / "2023_TEOS_XML_01A" / "202301_public.xml").exists()

        output = tmp_path / "out.csv"
        assert main(["--log-dir", "", "--yes", "csv", "--data-root", str(data_root),
                     "--output", str(output), "--sequential"]) == 0
        assert read_rows(output)[1][:3] == ["202301_public.xml", "12-3456789", "Zipped Org"]

    def test_failed_archive_gives_non_zero_exit(self, tmp_path):
        data_root = tmp_path / "990_zips"
        data_root.mkdir()
        (data_root / "broken.zip").write_bytes(b"not a zip")

        assert main(["--log-dir", "", "--yes", "unzip", "--data-root", str(data_root)]) == 1


class TestConfigCommand:
    """Test suite for the config command."""

    def test_logs_effective_configuration(self, tmp_path, monkeypatch, caplog):
        monkeypatch.setenv("FORM990_WORKERS", "5")
        caplog.set_level(logging.INFO)

        code = main(["--log-dir", "", "--config-path", str(tmp_path), "config"])

        assert code == 0
        messages = "\n".join(record.getMessage() for record in caplog.records)
        assert "=== Configuration Summary ===" in messages
        assert "  workers: 5" in messages

    def test_invalid_environment_value_fails(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FORM990_WORKERS", "many")
        assert main(["--log-dir", "", "--config-path", str(tmp_path), "config"]) == 1


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
