"""Turning result-writer output into a per-object throughput report."""

import csv
import io
import json
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..core.exceptions import (
    CopyNotSucceededError,
    MalformedManifestError,
    MissingArtifactError,
    MissingResultManifestError,
)
from ..core.logging_config import get_logger
from ..core.models import ResultWriterDetails, ResultWriterManifest, SummaryEntry, TransferRecord
from ..core.protocols import LoggerProtocol, S3ClientProtocol
from ..core.storage import S3ArtifactStore

REPORT_HEADER = ["name", "throughput_bytes_per_second", "throughput_mebibytes_per_second"]


def object_name(source: str) -> str:
    """Base filename of an rclone or S3 source locator."""
    return source.rstrip("/").rsplit("/", 1)[-1]


def throughput(record: TransferRecord) -> Optional[float]:
    if record.elapsed_time <= 0:
        return None
    return record.server_side_copy_bytes / record.elapsed_time


def format_report(entries: Iterable[SummaryEntry]) -> str:
    """CSV copy report written as the end marker."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    for entry in entries:
        bps = entry.throughput_bytes_per_second
        mibps = entry.throughput_mebibytes_per_second
        writer.writerow([
            entry.object_name,
            "" if bps is None else f"{bps:.0f}",
            "" if mibps is None else f"{mibps:.2f}",
        ])
    return out.getvalue()


class ResultSummarizer:
    """
    Reads the result-writer manifest of the copy fan-out and produces one
    SummaryEntry per copied object.

    The copy stage must have fully succeeded: any FAILED or PENDING result
    is fatal here, whatever tolerance the fan-out itself applied.

    Transfer records that report errors (an rclone that exited non-zero,
    or was interrupted or skipped) are logged and left out of the report.

    Entries are keyed by base filename, so objects sharing a filename under
    different prefixes overwrite each other and the last one read wins.
    """

    def __init__(self, s3_client: S3ClientProtocol, logger: Optional[LoggerProtocol] = None):
        self._s3_client = s3_client
        self._logger = logger or get_logger("copy-out.summarise")

    def summarise(self, details: ResultWriterDetails) -> List[SummaryEntry]:
        store = S3ArtifactStore(self._s3_client, details.bucket)
        try:
            raw = store.get_json(details.key)
        except MissingArtifactError as e:
            raise MissingResultManifestError(
                f"No result manifest at s3://{details.bucket}/{details.key}"
            ) from e

        if not isinstance(raw, dict):
            raise MalformedManifestError(f"Result manifest s3://{details.bucket}/{details.key} is not an object")
        try:
            manifest = ResultWriterManifest.model_validate(raw)
        except ValidationError as e:
            raise MalformedManifestError(f"Result manifest s3://{details.bucket}/{details.key} is invalid: {e}") from e
        if manifest.result_files is None:
            raise MissingResultManifestError(
                f"Result manifest s3://{details.bucket}/{details.key} has no ResultFiles"
            )

        files = manifest.result_files
        if files.failed or files.pending:
            raise CopyNotSucceededError(
                f"Copy results contain {len(files.failed)} FAILED and "
                f"{len(files.pending)} PENDING result file(s)"
            )
        if files.succeeded is None:
            raise CopyNotSucceededError("Copy results contain no SUCCEEDED section")

        by_name: Dict[str, SummaryEntry] = {}
        for ref in files.succeeded:
            for record in self._transfer_records(store, ref.key):
                if not record.source:
                    self._logger.warning(f"Skipping transfer record without a source in {ref.key}")
                    continue
                if record.failed:
                    reason = record.last_error or f"{record.errors} error(s)"
                    self._logger.warning(f"Leaving {record.source} out of the summary: {reason}")
                    continue
                name = object_name(record.source)
                if name in by_name:
                    self._logger.warning(f"Summary entry for {name} is being replaced by {record.source}")
                by_name[name] = SummaryEntry(
                    object_name=name, throughput_bytes_per_second=throughput(record)
                )

        self._logger.info(f"Summarised {len(by_name)} copied objects")
        return list(by_name.values())

    def _transfer_records(self, store: S3ArtifactStore, key: str) -> List[TransferRecord]:
        items = store.get_json(key)
        if not isinstance(items, list):
            raise MalformedManifestError(f"Result file {key} is not a JSON array")

        records: List[TransferRecord] = []
        for item in items:
            output = self._decode_output(item, key)
            for stats in output.get("rcloneResult", []):
                try:
                    records.append(TransferRecord.model_validate(stats))
                except ValidationError as e:
                    raise MalformedManifestError(f"Result file {key} has invalid transfer stats: {e}") from e
        return records

    @staticmethod
    def _decode_output(item: Any, key: str) -> Dict[str, Any]:
        if not isinstance(item, dict) or "Output" not in item:
            raise MalformedManifestError(f"Result file {key} has an entry without Output")
        try:
            output = json.loads(item["Output"])
        except (TypeError, json.JSONDecodeError) as e:
            raise MalformedManifestError(f"Result file {key} has an undecodable Output: {e}") from e
        if not isinstance(output, dict):
            raise MalformedManifestError(f"Result file {key} has an Output that is not an object")
        return output
