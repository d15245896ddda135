"""Restoring archived objects to a readable tier before they are copied."""

import re
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel

from ..core.exceptions import IsThawingError, client_error_code, with_error_handling
from ..core.logging_config import get_logger
from ..core.models import ManifestRow, ThawState
from ..core.protocols import LoggerProtocol, S3ClientProtocol

GLACIER = "GLACIER"
DEEP_ARCHIVE = "DEEP_ARCHIVE"
INTELLIGENT_TIERING = "INTELLIGENT_TIERING"
ARCHIVE_ACCESS = "ARCHIVE_ACCESS"
DEEP_ARCHIVE_ACCESS = "DEEP_ARCHIVE_ACCESS"

_ONGOING_REQUEST = re.compile(r'ongoing-request="(true|false)"')


class RestoreParameters(BaseModel):
    """How long restored copies live and how fast they are retrieved, per archive tier."""

    glacier_flexible_retrieval_thaw_days: int = 1
    glacier_flexible_retrieval_thaw_speed: str = "Expedited"
    glacier_deep_archive_thaw_days: int = 1
    glacier_deep_archive_thaw_speed: str = "Standard"
    intelligent_tiering_archive_thaw_speed: str = "Standard"
    intelligent_tiering_deep_archive_thaw_speed: str = "Standard"

    def restore_request(self, tier: str) -> Dict[str, Any]:
        if tier == GLACIER:
            return {
                "Days": self.glacier_flexible_retrieval_thaw_days,
                "GlacierJobParameters": {"Tier": self.glacier_flexible_retrieval_thaw_speed},
            }
        if tier == DEEP_ARCHIVE:
            return {
                "Days": self.glacier_deep_archive_thaw_days,
                "GlacierJobParameters": {"Tier": self.glacier_deep_archive_thaw_speed},
            }
        # Intelligent-Tiering restores move the object back to a frequent tier; no Days allowed
        if tier == ARCHIVE_ACCESS:
            return {"GlacierJobParameters": {"Tier": self.intelligent_tiering_archive_thaw_speed}}
        if tier == DEEP_ARCHIVE_ACCESS:
            return {"GlacierJobParameters": {"Tier": self.intelligent_tiering_deep_archive_thaw_speed}}
        raise ValueError(f"No restore parameters for tier {tier}")


def archive_tier(head: Dict[str, Any]) -> Optional[str]:
    """The archive tier an object sits in, or None when it is directly readable."""
    storage_class = head.get("StorageClass", "STANDARD")
    if storage_class in (GLACIER, DEEP_ARCHIVE):
        return storage_class
    if storage_class == INTELLIGENT_TIERING:
        archive_status = head.get("ArchiveStatus")
        if archive_status in (ARCHIVE_ACCESS, DEEP_ARCHIVE_ACCESS):
            return archive_status
    return None


def restore_ongoing(restore_header: Optional[str]) -> Optional[bool]:
    """Parse the Restore header: True while restoring, False once done, None if never requested."""
    if not restore_header:
        return None
    match = _ONGOING_REQUEST.search(restore_header)
    if not match:
        return None
    return match.group(1) == "true"


class ThawCoordinator:
    """Per-row restore logic. Raises IsThawingError until a row is readable."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        restore_parameters: Optional[RestoreParameters] = None,
        logger: Optional[LoggerProtocol] = None,
    ):
        self._s3_client = s3_client
        self._restore_parameters = restore_parameters or RestoreParameters()
        self._logger = logger or get_logger("copy-out.thaw")

    @with_error_handling
    def inspect(self, row: ManifestRow) -> Optional[ThawState]:
        """Return the ThawState of an archived row, or None if it can be read right now."""
        head = self._s3_client.head_object(Bucket=row.bucket, Key=row.key)
        tier = archive_tier(head)
        if tier is None:
            return None

        ongoing = restore_ongoing(head.get("Restore"))
        if ongoing is False:
            # a completed restore leaves a readable copy alongside the archived object
            return None
        return ThawState(row=row, tier=tier, restore_in_progress=bool(ongoing))

    def thaw(self, row: ManifestRow) -> None:
        """
        Make sure the row is readable, requesting a restore if needed.

        Raises:
            IsThawingError: a restore is underway (possibly just requested)
        """
        state = self.inspect(row)
        if state is None:
            self._logger.debug(f"{row} is directly readable")
            return

        if not state.restore_in_progress:
            self._request_restore(row, state.tier)

        raise IsThawingError(
            f"{row} is being restored from {state.tier}",
            bucket=row.bucket,
            key=row.key,
            tier=state.tier,
        )

    @with_error_handling
    def _request_restore(self, row: ManifestRow, tier: str) -> None:
        request = self._restore_parameters.restore_request(tier)
        try:
            self._s3_client.restore_object(Bucket=row.bucket, Key=row.key, RestoreRequest=request)
        except ClientError as e:
            code = client_error_code(e)
            if code == "RestoreAlreadyInProgress":
                return
            if code == "GlacierExpeditedRetrievalNotAvailable":
                self._logger.warning(f"Expedited retrieval unavailable for {row}, falling back to Standard")
                request["GlacierJobParameters"] = {"Tier": "Standard"}
                self._s3_client.restore_object(Bucket=row.bucket, Key=row.key, RestoreRequest=request)
            else:
                raise
        self._logger.info(
            f"Requested restore of {row} from {tier} "
            f"({request['GlacierJobParameters']['Tier']})"
        )
