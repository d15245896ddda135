"""Writing fan-out outcomes to the working area in result-writer format."""

import json
from typing import Any, Dict, List, Optional, Sequence

from ..core.logging_config import get_logger
from ..core.models import (
    ItemOutcome,
    ItemStatus,
    ResultFileRef,
    ResultFiles,
    ResultWriterDetails,
    ResultWriterManifest,
)
from ..core.protocols import ArtifactStore, LoggerProtocol
from ..core.storage import join_key

RESULT_MANIFEST_NAME = "manifest.json"


def outcome_record(map_run_id: str, outcome: ItemOutcome) -> Dict[str, Any]:
    """One entry of a result file. Input and Output are JSON encoded strings."""
    record: Dict[str, Any] = {
        "Name": f"{map_run_id}:{outcome.index}",
        "Status": outcome.status.value,
        "Input": json.dumps(outcome.input),
    }
    if outcome.status == ItemStatus.SUCCEEDED:
        record["Output"] = json.dumps(outcome.output)
    elif outcome.status == ItemStatus.FAILED:
        record["Error"] = outcome.error
        record["Cause"] = outcome.cause
    return record


class ResultWriter:
    """
    Persists the outcomes of one fan-out run under `<prefix><map_run_id>/`.

    SUCCEEDED is always listed in the manifest (possibly empty); a result
    file is only written for a class that has entries.
    """

    def __init__(
        self,
        store: ArtifactStore,
        bucket: str,
        prefix: str,
        logger: Optional[LoggerProtocol] = None,
    ):
        self._store = store
        self._bucket = bucket
        self._prefix = prefix
        self._logger = logger or get_logger("copy-out.results")

    def write(
        self,
        map_run_id: str,
        outcomes: Sequence[ItemOutcome],
        destination_bucket: str = "",
    ) -> ResultWriterDetails:
        run_prefix = join_key(self._prefix, f"{map_run_id}/")

        refs: Dict[ItemStatus, List[ResultFileRef]] = {status: [] for status in ItemStatus}
        for status in ItemStatus:
            records = [outcome_record(map_run_id, o) for o in outcomes if o.status == status]
            if not records:
                continue
            key = f"{run_prefix}{status.value}_0.json"
            size = self._store.put_json(key, records)
            refs[status].append(ResultFileRef(key=key, size=size))

        manifest = ResultWriterManifest(
            destination_bucket=destination_bucket,
            map_run_id=map_run_id,
            result_files=ResultFiles(
                succeeded=refs[ItemStatus.SUCCEEDED],
                failed=refs[ItemStatus.FAILED],
                pending=refs[ItemStatus.PENDING],
            ),
        )
        manifest_key = f"{run_prefix}{RESULT_MANIFEST_NAME}"
        self._store.put_json(manifest_key, manifest.model_dump(by_alias=True))

        self._logger.info(
            f"Wrote results of {map_run_id} to s3://{self._bucket}/{manifest_key} "
            f"({', '.join(f'{s.value}={sum(1 for o in outcomes if o.status == s)}' for s in ItemStatus)})"
        )
        return ResultWriterDetails(bucket=self._bucket, key=manifest_key)
