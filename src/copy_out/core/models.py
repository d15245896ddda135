"""Shared data models for copy-out."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidJobInputError

DEFAULT_MAX_ITEMS_PER_BATCH = 8
DEFAULT_COPY_CONCURRENCY = 80
DEFAULT_START_COPY_RELATIVE_KEY = "STARTED_COPY.txt"
DEFAULT_END_COPY_RELATIVE_KEY = "ENDED_COPY.csv"

MEBIBYTE = 1024 * 1024


class JobInput(BaseModel):
    """Job parameters exactly as supplied by the caller. Everything is optional here."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_files_csv_bucket: Optional[str] = Field(default=None, alias="sourceFilesCsvBucket")
    source_files_csv_key: Optional[str] = Field(default=None, alias="sourceFilesCsvKey")
    destination_bucket: Optional[str] = Field(default=None, alias="destinationBucket")
    destination_prefix_key: Optional[str] = Field(default=None, alias="destinationPrefixKey")
    max_items_per_batch: Optional[int] = Field(default=None, alias="maxItemsPerBatch")
    copy_concurrency: Optional[int] = Field(default=None, alias="copyConcurrency")
    required_region: Optional[str] = Field(default=None, alias="requiredRegion")
    destination_start_copy_relative_key: Optional[str] = Field(
        default=None, alias="destinationStartCopyRelativeKey"
    )
    destination_end_copy_relative_key: Optional[str] = Field(
        default=None, alias="destinationEndCopyRelativeKey"
    )


class JobDefaults(BaseModel):
    """Defaults laid under the caller's input before a job starts."""

    model_config = ConfigDict(populate_by_name=True)

    destination_prefix_key: str = Field(default="", alias="destinationPrefixKey")
    max_items_per_batch: int = Field(default=DEFAULT_MAX_ITEMS_PER_BATCH, alias="maxItemsPerBatch")
    copy_concurrency: int = Field(default=DEFAULT_COPY_CONCURRENCY, alias="copyConcurrency")
    required_region: str = Field(alias="requiredRegion")
    destination_start_copy_relative_key: str = Field(
        default=DEFAULT_START_COPY_RELATIVE_KEY, alias="destinationStartCopyRelativeKey"
    )
    destination_end_copy_relative_key: str = Field(
        default=DEFAULT_END_COPY_RELATIVE_KEY, alias="destinationEndCopyRelativeKey"
    )


class JobParameters(BaseModel):
    """The effective parameters of a job, after defaults have been applied."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source_files_csv_bucket: str = Field(alias="sourceFilesCsvBucket", min_length=1)
    source_files_csv_key: str = Field(alias="sourceFilesCsvKey", min_length=1)
    destination_bucket: str = Field(alias="destinationBucket", min_length=1)
    destination_prefix_key: str = Field(default="", alias="destinationPrefixKey")
    max_items_per_batch: int = Field(alias="maxItemsPerBatch", gt=0)
    copy_concurrency: int = Field(alias="copyConcurrency", gt=0)
    required_region: str = Field(alias="requiredRegion", min_length=1)
    destination_start_copy_relative_key: str = Field(alias="destinationStartCopyRelativeKey")
    destination_end_copy_relative_key: str = Field(alias="destinationEndCopyRelativeKey")


def apply_defaults(defaults: JobDefaults, job_input: JobInput) -> JobParameters:
    """
    Overlay the caller's input on top of the defaults, field by field.

    Only fields the caller actually supplied (and did not set to null) take
    part; there is no deep merging of values.
    """
    merged: Dict[str, Any] = defaults.model_dump()
    merged.update(job_input.model_dump(exclude_unset=True, exclude_none=True))

    required = {
        "source_files_csv_bucket": "sourceFilesCsvBucket",
        "source_files_csv_key": "sourceFilesCsvKey",
        "destination_bucket": "destinationBucket",
    }
    missing = [alias for name, alias in required.items() if not merged.get(name)]
    if missing:
        raise InvalidJobInputError(f"Missing required job input: {', '.join(missing)}")

    try:
        return JobParameters(**merged)
    except ValidationError as e:
        raise InvalidJobInputError(f"Invalid job input: {e}") from e


class ManifestRow(BaseModel):
    """One object to migrate, as listed in the manifest CSV."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class ThawState(BaseModel):
    """Restore status of a manifest row sitting in an archive tier."""

    row: ManifestRow
    tier: str
    restore_in_progress: bool = False


class CopyBatch(BaseModel):
    """A partition of manifest rows handed to one copy task invocation."""

    index: int
    rows: List[ManifestRow]


class CopyTaskRequest(BaseModel):
    """What the external copy task receives for one batch."""

    destination: str
    sources: List[str]
    concurrency: int = DEFAULT_COPY_CONCURRENCY


class TransferRecord(BaseModel):
    """Per-object stats reported by the copy tool (rclone field names)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    source: str = ""
    bytes_copied: int = Field(default=0, alias="bytes")
    server_side_copies: int = Field(default=0, alias="serverSideCopies")
    server_side_copy_bytes: int = Field(default=0, alias="serverSideCopyBytes")
    elapsed_time: float = Field(default=0.0, alias="elapsedTime")
    transfer_time: float = Field(default=0.0, alias="transferTime")
    transfers: int = 0
    checks: int = 0
    errors: int = 0
    retry_error: bool = Field(default=False, alias="retryError")
    fatal_error: bool = Field(default=False, alias="fatalError")
    last_error: Optional[str] = Field(default=None, alias="lastError")

    @property
    def server_side(self) -> bool:
        """True when the copy happened inside the storage service, with no data egress."""
        return self.server_side_copies > 0

    @property
    def failed(self) -> bool:
        return self.errors > 0 or self.fatal_error or bool(self.last_error)


class SummaryEntry(BaseModel):
    """Throughput achieved for one copied object, keyed by base filename."""

    object_name: str
    throughput_bytes_per_second: Optional[float] = None

    @property
    def throughput_mebibytes_per_second(self) -> Optional[float]:
        if self.throughput_bytes_per_second is None:
            return None
        return self.throughput_bytes_per_second / MEBIBYTE


class ResultFileRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(alias="Key")
    size: int = Field(default=0, alias="Size")


class ResultFiles(BaseModel):
    """The three outcome classes of a copy fan-out, each a list of result files."""

    model_config = ConfigDict(populate_by_name=True)

    succeeded: Optional[List[ResultFileRef]] = Field(default=None, alias="SUCCEEDED")
    failed: List[ResultFileRef] = Field(default_factory=list, alias="FAILED")
    pending: List[ResultFileRef] = Field(default_factory=list, alias="PENDING")


class ResultWriterManifest(BaseModel):
    """Index object written once per copy fan-out run."""

    model_config = ConfigDict(populate_by_name=True)

    destination_bucket: str = Field(default="", alias="DestinationBucket")
    map_run_id: str = Field(default="", alias="MapRunArn")
    result_files: Optional[ResultFiles] = Field(default=None, alias="ResultFiles")


class ResultWriterDetails(BaseModel):
    """Pointer to a result-writer manifest in the working area."""

    model_config = ConfigDict(populate_by_name=True)

    bucket: str = Field(alias="Bucket")
    key: str = Field(alias="Key")


class ItemStatus(str, Enum):
    """Classification of one fan-out item once the fan-out ends."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class ItemOutcome(BaseModel):
    """What happened to one row or batch handed to a fan-out."""

    index: int
    name: str = ""
    status: ItemStatus
    input: Any = None
    output: Any = None
    error: str = ""
    cause: str = ""


class JobStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class FailureReason(str, Enum):
    WRONG_REGION = "WRONG_REGION"
    TIMED_OUT = "TIMED_OUT"
    EXCEEDED_FAILURE_TOLERANCE = "EXCEEDED_FAILURE_TOLERANCE"
    INVALID_INPUT = "INVALID_INPUT"
    COPY_FAILED = "COPY_FAILED"
    ERROR = "ERROR"


class JobOutcome(BaseModel):
    """What a caller sees when a job ends: succeeded, or failed with a reason."""

    execution_id: str
    status: JobStatus
    reason: Optional[FailureReason] = None
    error: str = ""
    summary: List[SummaryEntry] = Field(default_factory=list)
    history: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED
