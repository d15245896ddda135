"""Core utilities and shared components for copy-out."""

from .logging_config import get_logger, get_worker_logger, setup_logger
from .exceptions import (
    AccessDeniedError,
    ConfigurationError,
    CopyNotSucceededError,
    CopyOutError,
    ExecutionTimeoutError,
    InvalidJobInputError,
    IsThawingError,
    MalformedManifestError,
    MissingArtifactError,
    MissingResultManifestError,
    S3Error,
    TaskFailureError,
    ToleratedFailureExceededError,
    WrongRegionError,
    with_error_handling,
)
from .config import OrchestratorSettings
from .models import JobInput, JobOutcome, JobParameters, ManifestRow, apply_defaults

__all__ = [
    "OrchestratorSettings",
    "JobInput",
    "JobParameters",
    "JobOutcome",
    "ManifestRow",
    "apply_defaults",
    "setup_logger",
    "get_logger",
    "get_worker_logger",
    "CopyOutError",
    "ConfigurationError",
    "S3Error",
    "MissingArtifactError",
    "WrongRegionError",
    "AccessDeniedError",
    "IsThawingError",
    "TaskFailureError",
    "InvalidJobInputError",
    "MalformedManifestError",
    "MissingResultManifestError",
    "CopyNotSucceededError",
    "ToleratedFailureExceededError",
    "ExecutionTimeoutError",
    "with_error_handling",
]
