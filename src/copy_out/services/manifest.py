"""Reading manifest CSVs and partitioning their rows into copy batches."""

import csv
import io
from typing import Iterable, List, Optional

from ..core.exceptions import InvalidJobInputError, MalformedManifestError, MissingArtifactError
from ..core.logging_config import get_logger
from ..core.models import CopyBatch, ManifestRow
from ..core.protocols import LoggerProtocol, S3ClientProtocol
from ..core.storage import S3ArtifactStore


def parse_manifest(text: str) -> List[ManifestRow]:
    """
    Parse a two column `bucket,"key"` manifest with no header row.

    Blank lines are ignored. Any other line that is not exactly two non-empty
    columns makes the whole manifest malformed.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    rows: List[ManifestRow] = []
    reader = csv.reader(io.StringIO(text))
    try:
        for fields in reader:
            if not fields or all(not f.strip() for f in fields):
                continue
            if len(fields) != 2:
                raise MalformedManifestError(
                    f"expected 2 columns (bucket, key) but found {len(fields)}",
                    line_number=reader.line_num,
                )
            bucket, key = fields[0].strip(), fields[1]
            if not bucket or not key:
                raise MalformedManifestError("bucket and key must be non-empty", line_number=reader.line_num)
            rows.append(ManifestRow(bucket=bucket, key=key))
    except csv.Error as e:
        raise MalformedManifestError(str(e), line_number=reader.line_num) from e

    return rows


def format_manifest(rows: Iterable[ManifestRow]) -> str:
    """Render rows back into manifest form; the key is always quoted."""
    lines = []
    for row in rows:
        quoted_key = row.key.replace('"', '""')
        lines.append(f'{row.bucket},"{quoted_key}"\n')
    return "".join(lines)


def partition_rows(rows: List[ManifestRow], max_items_per_batch: int) -> List[CopyBatch]:
    """Split rows into ceil(N / B) batches of at most B rows each."""
    if max_items_per_batch <= 0:
        raise ValueError("max_items_per_batch must be positive")

    return [
        CopyBatch(index=i // max_items_per_batch, rows=rows[i : i + max_items_per_batch])
        for i in range(0, len(rows), max_items_per_batch)
    ]


class ManifestReader:
    """Loads a manifest CSV from S3."""

    def __init__(self, s3_client: S3ClientProtocol, logger: Optional[LoggerProtocol] = None):
        self._s3_client = s3_client
        self._logger = logger or get_logger("copy-out.manifest")

    def read(self, bucket: str, key: str) -> List[ManifestRow]:
        store = S3ArtifactStore(self._s3_client, bucket)
        try:
            text = store.get_text(key)
        except MissingArtifactError as e:
            raise InvalidJobInputError(f"Manifest s3://{bucket}/{key} does not exist") from e
        except UnicodeDecodeError as e:
            raise MalformedManifestError(f"Manifest s3://{bucket}/{key} is not UTF-8 text") from e

        rows = parse_manifest(text)
        self._logger.info(f"Read {len(rows)} rows from manifest s3://{bucket}/{key}")
        return rows
