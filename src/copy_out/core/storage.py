"""S3-backed working-area storage and S3 location helpers."""

import json
from typing import Any

from botocore.exceptions import ClientError

from .exceptions import MalformedManifestError, MissingArtifactError, client_error_code, with_error_handling
from .protocols import ArtifactStore, S3ClientProtocol

_MISSING_CODES = ("NoSuchKey", "404", "NotFound")


def join_key(prefix: str, relative_key: str) -> str:
    """Join an S3 prefix and a relative key with exactly one separator."""
    if not prefix:
        return relative_key
    if prefix.endswith("/"):
        return prefix + relative_key
    return f"{prefix}/{relative_key}"


def rclone_location(bucket: str, key: str = "") -> str:
    """Location in rclone's remote syntax (not an s3:// URL)."""
    return f"s3:{bucket}/{key}"


class S3ArtifactStore(ArtifactStore):
    """Artifact store writing whole objects into a single working bucket."""

    def __init__(self, s3_client: S3ClientProtocol, bucket: str):
        self._s3_client = s3_client
        self.bucket = bucket

    @with_error_handling
    def put_text(self, key: str, body: str, content_type: str = "text/plain") -> int:
        data = body.encode("utf-8")
        self._s3_client.put_object(
            Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
        )
        return len(data)

    @with_error_handling
    def get_text(self, key: str) -> str:
        try:
            response = self._s3_client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if client_error_code(e) in _MISSING_CODES:
                raise MissingArtifactError(f"No artifact at s3://{self.bucket}/{key}") from e
            raise
        return response["Body"].read().decode("utf-8")

    def put_json(self, key: str, value: Any) -> int:
        return self.put_text(key, json.dumps(value, indent=2), content_type="application/json")

    def get_json(self, key: str) -> Any:
        text = self.get_text(key)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedManifestError(f"s3://{self.bucket}/{key} is not valid JSON: {e}") from e
