"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Protocol

from .models import CopyTaskRequest


class S3ClientProtocol(Protocol):
    """The subset of the boto3 S3 client the orchestrator uses."""

    def head_bucket(self, **kwargs: Any) -> Dict[str, Any]:
        """Probe a bucket (existence, region, ownership)."""
        ...

    def head_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object metadata, including storage class and restore status."""
        ...

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        ...

    def put_object(self, **kwargs: Any) -> Dict[str, Any]:
        """Put object to S3."""
        ...

    def restore_object(
        self, Bucket: str, Key: str, RestoreRequest: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Request a temporary restored copy of an archived object."""
        ...


S3ClientProvider = Callable[[str], S3ClientProtocol]
"""Returns an S3 client bound to the given region."""


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...


class CopyTaskProtocol(Protocol):
    """
    The external, idempotent copy task.

    Given a batch it copies every source into the destination and returns
    one stats dictionary per source (rclone field names). A failure of the
    task as a whole is raised as TaskFailureError.
    """

    def run(self, request: CopyTaskRequest) -> List[Dict[str, Any]]:
        ...


class ArtifactStore(ABC):
    """Key/value blob store over the working area. Addressed by key, append-only by use."""

    @abstractmethod
    def put_text(self, key: str, body: str, content_type: str = "text/plain") -> int:
        """Store text under key, returning the stored size in bytes."""
        ...

    @abstractmethod
    def get_text(self, key: str) -> str:
        """Fetch text stored under key."""
        ...

    @abstractmethod
    def put_json(self, key: str, value: Any) -> int:
        ...

    @abstractmethod
    def get_json(self, key: str) -> Any:
        ...
