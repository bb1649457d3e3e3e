"""
End-to-end tests for FlattenPipeline.

Each test builds a small data root on disk, runs the full
header -> sink -> discovery -> scheduler path and reads the CSV back.
"""

import pytest

from form990_extractor.exceptions import ShardDiscoveryError
from form990_extractor.mapping.header_schema import build_header_schema
from form990_extractor.models import ProcessingConfig
from form990_extractor.output.csv_sink import read_rows
from form990_extractor.pipeline import FlattenPipeline

from helpers import build_corpus, form990_xml


pytestmark = pytest.mark.e2e


@pytest.mark.parametrize("sequential", [True, False], ids=["sequential", "parallel"])
def test_full_run_writes_one_row_per_document(header, config, corpus, tmp_path, sequential):
    output = tmp_path / "irs_990_data.csv"

    result = FlattenPipeline(corpus, output, header, config, sequential=sequential).run()

    rows = read_rows(output)
    assert rows[0] == header.column_names
    assert len(rows) == 13
    assert all(len(row) == len(header) for row in rows)
    assert sorted(row[1] for row in rows[1:])[:2] == ["00-0000000", "00-0000001"]
    assert {row[4] for row in rows[1:]} == {"990"}

    assert result.documents_processed == 12
    assert result.documents_skipped == 0
    assert result.shards_processed == 3
    assert result.shards_skipped == 0
    assert not result.cancelled
    assert result.performance_metrics['rows_written'] == 12
    assert set(result.performance_metrics['stage_timings']) == {'discovery', 'processing'}


def test_existing_output_is_truncated(header, config, corpus, tmp_path):
    output = tmp_path / "out.csv"
    output.write_text("stale,content\n" * 50, encoding="utf-8")

    FlattenPipeline(corpus, output, header, config, sequential=True).run()

    assert len(read_rows(output)) == 13


def test_repeated_values_use_configured_separator(tmp_path):
    """Test repeated elements are joined in document order, and "" concatenates."""
    root = build_corpus(tmp_path / "990_zips", {
        "2023_A": {
            "0001.xml": form990_xml("11-1111111", "Multi", extra=(
                "<IRS990><ProgramSrvcAccomplishmentGrp><ActivityCd>100</ActivityCd></ProgramSrvcAccomplishmentGrp>"
                "<ProgramSrvcAccomplishmentGrp><ActivityCd>200</ActivityCd></ProgramSrvcAccomplishmentGrp></IRS990>"
            )),
        }
    })
    header = build_header_schema({"columns": [
        {"name": "FileName", "source": "file_name"},
        {"name": "ActivityCodes", "paths": ["Return/ReturnData/IRS990/ProgramSrvcAccomplishmentGrp/ActivityCd"]},
    ]})

    FlattenPipeline(root, tmp_path / "piped.csv", header, ProcessingConfig(), sequential=True).run()
    FlattenPipeline(root, tmp_path / "joined.csv", header,
                    ProcessingConfig(multi_value_separator=""), sequential=True).run()

    assert read_rows(tmp_path / "piped.csv")[1] == ["0001.xml", "100|200"]
    assert read_rows(tmp_path / "joined.csv")[1] == ["0001.xml", "100200"]


def test_stop_before_run_leaves_header_only(header, config, corpus, tmp_path):
    output = tmp_path / "out.csv"
    pipeline = FlattenPipeline(corpus, output, header, config)
    pipeline.request_stop()

    result = pipeline.run()

    assert result.cancelled
    assert result.documents_processed == 0
    assert read_rows(output) == [header.column_names]


def test_unreadable_data_root_is_fatal_but_output_is_closed(header, config, tmp_path):
    output = tmp_path / "out.csv"

    with pytest.raises(ShardDiscoveryError):
        FlattenPipeline(tmp_path / "missing", output, header, config).run()

    assert read_rows(output) == [header.column_names]


def test_empty_data_root(header, config, tmp_path):
    root = tmp_path / "990_zips"
    root.mkdir()
    output = tmp_path / "out.csv"

    result = FlattenPipeline(root, output, header, config).run()

    assert result.shards_total == 0
    assert read_rows(output) == [header.column_names]
