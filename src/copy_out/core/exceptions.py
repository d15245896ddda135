"""Custom exceptions and error translation for copy-out."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from .logging_config import get_logger


class CopyOutError(Exception):
    """Base exception for all copy-out errors."""


class ConfigurationError(CopyOutError):
    """Error raised for invalid orchestrator configuration."""


class S3Error(CopyOutError):
    """Error raised for S3 related failures."""


class MissingArtifactError(S3Error):
    """A working-area artifact that was expected to exist does not."""


class WrongRegionError(CopyOutError):
    """The destination bucket is not in the required region. Never retried."""


class AccessDeniedError(CopyOutError):
    """We cannot (yet) write to the destination. Retried until the job times out."""


class IsThawingError(CopyOutError):
    """The object is being restored from an archive tier and is not readable yet."""

    def __init__(self, message: str, bucket: str = "", key: str = "", tier: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key
        self.tier = tier


class TaskFailureError(CopyOutError):
    """The external copy task failed as a whole for a batch."""


class InvalidJobInputError(CopyOutError):
    """The caller supplied job parameters that cannot be used."""


class MalformedManifestError(CopyOutError):
    """A manifest (input CSV or result-writer JSON) could not be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class MissingResultManifestError(CopyOutError):
    """The result-writer manifest, or its ResultFiles section, is absent."""


class CopyNotSucceededError(CopyOutError):
    """The copy stage reported FAILED or PENDING results."""


class ToleratedFailureExceededError(CopyOutError):
    """A fan-out stage saw more item failures than it is allowed to absorb."""

    def __init__(self, message: str, failed: int = 0, total: int = 0):
        super().__init__(message)
        self.failed = failed
        self.total = total


class ExecutionTimeoutError(CopyOutError):
    """The job ran past its overall wall-clock timeout."""


def client_error_code(exc: BaseException) -> str:
    """Return the S3 error code of a botocore ClientError (or its wrapped cause)."""
    if not isinstance(exc, ClientError) and isinstance(exc.__cause__, ClientError):
        exc = exc.__cause__
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return ""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap an S3-touching function so botocore failures surface as S3Error."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("copy-out.s3")
        try:
            return func(*args, **kwargs)
        except CopyOutError:
            raise
        except ClientError as exc:
            logger.error(f"S3 call failed in {func.__name__}: {exc}", exc_info=True)
            raise S3Error(f"S3 operation failed in {func.__name__}: {exc}") from exc

    return wrapper  # type: ignore[return-value]
