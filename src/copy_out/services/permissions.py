"""Checks that we are allowed to write to a destination bucket."""

from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from ..core.exceptions import (
    AccessDeniedError,
    ConfigurationError,
    S3Error,
    WrongRegionError,
    client_error_code,
)
from ..core.logging_config import get_logger
from ..core.protocols import LoggerProtocol, S3ClientProvider
from ..core.storage import join_key

START_MARKER_BODY = "A file created by copy-out to ensure correct permissions"

_WRONG_REGION_CODES = ("PermanentRedirect", "301")
_ACCESS_DENIED_CODES = ("AccessDenied", "403", "AllAccessDisabled")


def _bucket_region(response: Dict[str, Any]) -> Optional[str]:
    headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
    return headers.get("x-amz-bucket-region")


class PermissionValidator:
    """
    Probes a destination with a small marker write.

    The S3 client is created in the *required* region so that a bucket living
    elsewhere is reported as a redirect instead of being followed. Unless
    `allow_write_to_installed_account` is set, buckets owned by our own
    account are refused, since writes there succeed implicitly.
    """

    def __init__(
        self,
        client_provider: S3ClientProvider,
        installed_account_id: str = "",
        allow_write_to_installed_account: bool = False,
        logger: Optional[LoggerProtocol] = None,
    ):
        if not allow_write_to_installed_account and not installed_account_id:
            raise ConfigurationError(
                "installed_account_id is required unless writes to the installed account are allowed"
            )
        self._client_provider = client_provider
        self._installed_account_id = installed_account_id
        self._allow_write_to_installed_account = allow_write_to_installed_account
        self._logger = logger or get_logger("copy-out.permissions")

    def check_can_write(
        self,
        required_region: str,
        destination_bucket: str,
        destination_prefix_key: str = "",
        marker_relative_key: str = "STARTED_COPY.txt",
    ) -> str:
        """
        Write the start marker to the destination, returning its key.

        Raises:
            WrongRegionError: destination is not in required_region
            AccessDeniedError: we cannot write there (yet)
            S3Error: anything else
        """
        client = self._client_provider(required_region)
        marker_key = join_key(destination_prefix_key, marker_relative_key)

        self._check_region(client, required_region, destination_bucket)

        if not self._allow_write_to_installed_account:
            self._refuse_installed_account(client, destination_bucket)

        try:
            client.put_object(
                Bucket=destination_bucket,
                Key=marker_key,
                Body=START_MARKER_BODY.encode("utf-8"),
                ContentType="text/plain",
            )
        except ClientError as e:
            code = client_error_code(e)
            if code in _WRONG_REGION_CODES:
                raise WrongRegionError(
                    f"S3 put failed because bucket {destination_bucket} was in the wrong region"
                ) from e
            if code in _ACCESS_DENIED_CODES:
                raise AccessDeniedError(
                    f"S3 put to s3://{destination_bucket}/{marker_key} failed with access denied"
                ) from e
            raise S3Error(f"S3 put to s3://{destination_bucket}/{marker_key} failed: {e}") from e

        self._logger.info(f"Destination s3://{destination_bucket}/{marker_key} is writable")
        return marker_key

    def _check_region(self, client, required_region: str, bucket: str) -> None:
        try:
            response = client.head_bucket(Bucket=bucket)
        except ClientError as e:
            # 403s still carry the region header; 404s fall through to the put
            response = e.response
        region = _bucket_region(response)
        if region and region != required_region:
            raise WrongRegionError(
                f"Bucket {bucket} is in region {region} but {required_region} is required"
            )

    def _refuse_installed_account(self, client, bucket: str) -> None:
        try:
            client.head_bucket(Bucket=bucket, ExpectedBucketOwner=self._installed_account_id)
        except ClientError as e:
            code = client_error_code(e)
            if code in _ACCESS_DENIED_CODES:
                # owned by someone else: the real write decides
                return
            raise S3Error(
                f"Could not confirm bucket {bucket} is outside the installed account ({code or e})"
            ) from e
        self._logger.warning(f"Refusing to write to bucket {bucket} owned by the installed account")
        raise AccessDeniedError(
            f"Bucket {bucket} belongs to the installed account {self._installed_account_id} "
            "and writes there are not permitted"
        )
