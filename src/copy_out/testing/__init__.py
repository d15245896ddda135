"""Testing utilities and fakes for copy-out."""

from .fakes import (
    DEFAULT_REGION,
    INSTALLED_ACCOUNT,
    OTHER_ACCOUNT,
    FakeClock,
    FakeCopyTask,
    FakeLogger,
    FakeS3Client,
    S3Bucket,
    S3Object,
    client_error,
    setup_test_s3_environment,
)

__all__ = [
    "DEFAULT_REGION",
    "INSTALLED_ACCOUNT",
    "OTHER_ACCOUNT",
    "FakeS3Client",
    "FakeCopyTask",
    "FakeClock",
    "FakeLogger",
    "S3Object",
    "S3Bucket",
    "client_error",
    "setup_test_s3_environment",
]
