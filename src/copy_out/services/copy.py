"""Running the external copy task for one batch of manifest rows."""

from typing import Any, Dict, List, Optional

from ..core.exceptions import CopyOutError, TaskFailureError
from ..core.logging_config import get_logger
from ..core.models import CopyBatch, CopyTaskRequest, JobParameters, TransferRecord
from ..core.protocols import CopyTaskProtocol, LoggerProtocol
from ..core.storage import rclone_location


class BatchCopyExecutor:
    """
    Hands a whole batch to the copy task and shapes the task's stats into the
    per-batch output that the result writer records.

    The copy task is idempotent, so callers may simply re-run a batch after a
    TaskFailureError. Items that failed inside an otherwise successful task are
    reported in their own stats and do not fail the batch.
    """

    def __init__(self, copy_task: CopyTaskProtocol, logger: Optional[LoggerProtocol] = None):
        self._copy_task = copy_task
        self._logger = logger or get_logger("copy-out.copy")

    @staticmethod
    def build_request(batch: CopyBatch, params: JobParameters) -> CopyTaskRequest:
        return CopyTaskRequest(
            destination=rclone_location(params.destination_bucket, params.destination_prefix_key),
            sources=[rclone_location(row.bucket, row.key) for row in batch.rows],
            concurrency=params.copy_concurrency,
        )

    def execute(self, batch: CopyBatch, params: JobParameters) -> Dict[str, Any]:
        request = self.build_request(batch, params)
        self._logger.info(
            f"Copying batch {batch.index} ({len(request.sources)} objects) to {request.destination}"
        )

        try:
            stats = self._copy_task.run(request)
        except CopyOutError:
            raise
        except Exception as e:
            # anything escaping the task is the task failing, which makes the batch retryable
            raise TaskFailureError(f"Copy task for batch {batch.index} failed: {e}") from e

        if len(stats) != len(request.sources):
            raise TaskFailureError(
                f"Copy task for batch {batch.index} returned {len(stats)} results "
                f"for {len(request.sources)} sources"
            )

        records: List[TransferRecord] = [TransferRecord.model_validate(s) for s in stats]
        failed = [r for r in records if r.failed]
        for record in failed:
            self._logger.warning(
                f"Batch {batch.index}: copy of {record.source or 'unknown source'} "
                f"reported an error: {record.last_error or 'errors=' + str(record.errors)}"
            )

        return {
            "BatchInput": {"rcloneDestination": request.destination},
            "Items": [{"rcloneSource": s} for s in request.sources],
            "rcloneResult": stats,
        }
