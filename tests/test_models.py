"""Tests for the copy-out data models."""

import pytest

from copy_out.core.exceptions import InvalidJobInputError
from copy_out.core.models import (
    JobDefaults,
    JobInput,
    JobParameters,
    ManifestRow,
    ResultWriterManifest,
    SummaryEntry,
    TransferRecord,
    apply_defaults,
)


def _defaults() -> JobDefaults:
    return JobDefaults(required_region="ap-southeast-2")


class TestApplyDefaults:
    """Tests for overlaying job input on defaults."""

    def test_defaults_fill_unspecified_fields(self):
        """Test that omitted fields take the default values."""
        job_input = JobInput.model_validate(
            {
                "sourceFilesCsvBucket": "working",
                "sourceFilesCsvKey": "job.csv",
                "destinationBucket": "dest",
            }
        )

        params = apply_defaults(_defaults(), job_input)

        assert params.destination_prefix_key == ""
        assert params.max_items_per_batch == 8
        assert params.copy_concurrency == 80
        assert params.required_region == "ap-southeast-2"
        assert params.destination_start_copy_relative_key == "STARTED_COPY.txt"
        assert params.destination_end_copy_relative_key == "ENDED_COPY.csv"

    def test_caller_values_win(self):
        """Test that explicitly supplied fields override defaults."""
        job_input = JobInput.model_validate(
            {
                "sourceFilesCsvBucket": "working",
                "sourceFilesCsvKey": "job.csv",
                "destinationBucket": "dest",
                "destinationPrefixKey": "incoming/",
                "maxItemsPerBatch": 2,
                "requiredRegion": "us-west-2",
            }
        )

        params = apply_defaults(_defaults(), job_input)

        assert params.destination_prefix_key == "incoming/"
        assert params.max_items_per_batch == 2
        assert params.required_region == "us-west-2"
        assert params.copy_concurrency == 80

    def test_null_values_do_not_override(self):
        """Test that a field given as null keeps its default."""
        job_input = JobInput.model_validate(
            {
                "sourceFilesCsvBucket": "working",
                "sourceFilesCsvKey": "job.csv",
                "destinationBucket": "dest",
                "copyConcurrency": None,
            }
        )

        assert apply_defaults(_defaults(), job_input).copy_concurrency == 80

    def test_missing_required_fields(self):
        """Test that missing manifest or destination fields are rejected."""
        job_input = JobInput.model_validate({"sourceFilesCsvBucket": "working"})

        with pytest.raises(InvalidJobInputError, match="sourceFilesCsvKey") as exc_info:
            apply_defaults(_defaults(), job_input)
        assert "destinationBucket" in str(exc_info.value)

    def test_non_positive_batch_size_rejected(self):
        """Test that maxItemsPerBatch must be positive."""
        job_input = JobInput.model_validate(
            {
                "sourceFilesCsvBucket": "working",
                "sourceFilesCsvKey": "job.csv",
                "destinationBucket": "dest",
                "maxItemsPerBatch": 0,
            }
        )

        with pytest.raises(InvalidJobInputError):
            apply_defaults(_defaults(), job_input)

    def test_parameters_serialise_with_wire_names(self):
        """Test that parameters dump back to their camelCase names."""
        job_input = JobInput(
            source_files_csv_bucket="working",
            source_files_csv_key="job.csv",
            destination_bucket="dest",
        )

        dumped = apply_defaults(_defaults(), job_input).model_dump(by_alias=True)

        assert dumped["sourceFilesCsvBucket"] == "working"
        assert dumped["maxItemsPerBatch"] == 8
        assert JobParameters.model_validate(dumped).destination_bucket == "dest"


class TestManifestRow:
    def test_str_is_s3_url(self):
        assert str(ManifestRow(bucket="b", key="dir/file.txt")) == "s3://b/dir/file.txt"


class TestTransferRecord:
    """Tests for rclone stats parsing."""

    def test_aliases_and_extra_counters(self):
        """Test that rclone field names map and unknown counters are kept."""
        record = TransferRecord.model_validate(
            {
                "source": "s3:b/k",
                "bytes": 10,
                "serverSideCopies": 1,
                "serverSideCopyBytes": 10,
                "elapsedTime": 0.5,
                "deletes": 0,
            }
        )

        assert record.server_side
        assert record.server_side_copy_bytes == 10
        assert record.elapsed_time == 0.5
        assert not record.failed
        assert record.model_extra == {"deletes": 0}

    def test_failed_when_last_error_present(self):
        record = TransferRecord.model_validate({"source": "s3:b/k", "lastError": "boom"})
        assert record.failed
        assert not record.server_side


class TestSummaryEntry:
    def test_mebibytes_view(self):
        entry = SummaryEntry(object_name="a.bin", throughput_bytes_per_second=1048576.0)
        assert entry.throughput_mebibytes_per_second == pytest.approx(1.0)

    def test_unknown_throughput(self):
        entry = SummaryEntry(object_name="a.bin")
        assert entry.throughput_mebibytes_per_second is None


class TestResultWriterManifest:
    def test_parses_result_writer_format(self):
        """Test parsing of the result-writer manifest format."""
        manifest = ResultWriterManifest.model_validate(
            {
                "DestinationBucket": "working",
                "MapRunArn": "run-1",
                "ResultFiles": {
                    "SUCCEEDED": [{"Key": "x/SUCCEEDED_0.json", "Size": 12}],
                    "FAILED": [],
                    "PENDING": [],
                },
            }
        )

        assert manifest.map_run_id == "run-1"
        assert manifest.result_files is not None
        assert manifest.result_files.succeeded[0].key == "x/SUCCEEDED_0.json"
        assert manifest.result_files.failed == []

    def test_result_files_may_be_absent(self):
        assert ResultWriterManifest.model_validate({"MapRunArn": "r"}).result_files is None
