"""Fake implementations for testing purposes."""

import io
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from dataclasses import dataclass, field

from botocore.exceptions import ClientError

from ..core.exceptions import TaskFailureError
from ..core.models import CopyTaskRequest

INSTALLED_ACCOUNT = "111111111111"
OTHER_ACCOUNT = "222222222222"
DEFAULT_REGION = "ap-southeast-2"


def client_error(
    code: str,
    message: str = "",
    status: int = 400,
    operation: str = "Operation",
    headers: Optional[Dict[str, str]] = None,
) -> ClientError:
    """Build the ClientError botocore would raise for an S3 error response."""
    response = {
        "Error": {"Code": code, "Message": message or code},
        "ResponseMetadata": {"HTTPStatusCode": status, "HTTPHeaders": dict(headers or {})},
    }
    return ClientError(response, operation)  # type: ignore[arg-type]


@dataclass
class S3Object:
    """Fake S3 object for testing."""

    key: str
    body: bytes
    content_type: str = "binary/octet-stream"
    storage_class: str = "STANDARD"
    archive_status: Optional[str] = None
    # head_object calls until a requested restore finishes; None never finishes
    restore_polls: Optional[int] = 2
    restore_state: Optional[str] = None
    restore_tier: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.body)

    @property
    def archived(self) -> bool:
        if self.storage_class in ("GLACIER", "DEEP_ARCHIVE"):
            return True
        return self.storage_class == "INTELLIGENT_TIERING" and self.archive_status is not None

    @property
    def readable(self) -> bool:
        return not self.archived or self.restore_state == "done"


@dataclass
class S3Bucket:
    """Fake S3 bucket for testing."""

    name: str
    region: str = DEFAULT_REGION
    owner: str = INSTALLED_ACCOUNT
    writers: Set[str] = field(default_factory=set)
    objects: Dict[str, S3Object] = field(default_factory=dict)

    def add_object(self, key: str, body: bytes = b"", **kwargs: Any) -> S3Object:
        """Add object to bucket."""
        obj = S3Object(key=key, body=body, **kwargs)
        self.objects[key] = obj
        return obj

    def get_object(self, key: str) -> Optional[S3Object]:
        """Get object from bucket."""
        return self.objects.get(key)

    def can_write(self, account_id: str) -> bool:
        return account_id == self.owner or account_id in self.writers


class FakeS3Client:
    """
    Fake S3 client for testing.

    Clients made with `for_region` share buckets and the operation log, like
    real clients of one account talking to one S3.
    """

    def __init__(
        self,
        region_name: str = DEFAULT_REGION,
        account_id: str = INSTALLED_ACCOUNT,
        buckets: Optional[Dict[str, S3Bucket]] = None,
        operations: Optional[List[Tuple[str, str, str]]] = None,
        lock: Optional[threading.RLock] = None,
    ):
        self.region_name = region_name
        self.account_id = account_id
        self.buckets: Dict[str, S3Bucket] = buckets if buckets is not None else {}
        self.operations: List[Tuple[str, str, str]] = operations if operations is not None else []
        self.expedited_unavailable = False
        self._lock = lock or threading.RLock()

    def for_region(self, region_name: str) -> "FakeS3Client":
        client = FakeS3Client(region_name, self.account_id, self.buckets, self.operations, self._lock)
        client.expedited_unavailable = self.expedited_unavailable
        return client

    def provider(self) -> Callable[[str], "FakeS3Client"]:
        """An S3 client provider backed by this fake."""
        return self.for_region

    def create_bucket(
        self,
        name: str,
        region: Optional[str] = None,
        owner: Optional[str] = None,
        writers: Optional[Set[str]] = None,
    ) -> S3Bucket:
        """Create a new bucket."""
        bucket = S3Bucket(
            name=name,
            region=region or self.region_name,
            owner=owner or self.account_id,
            writers=set(writers or ()),
        )
        self.buckets[name] = bucket
        return bucket

    def get_bucket(self, name: str) -> Optional[S3Bucket]:
        """Get bucket by name."""
        return self.buckets.get(name)

    def calls(self, operation: str) -> List[Tuple[str, str, str]]:
        return [op for op in self.operations if op[0] == operation]

    def _record(self, operation: str, bucket: str, key: str = "") -> None:
        self.operations.append((operation, bucket, key))

    def _bucket(self, name: str, operation: str) -> S3Bucket:
        bucket = self.buckets.get(name)
        if bucket is None:
            raise client_error("NoSuchBucket", f"Bucket {name} not found", 404, operation)
        return bucket

    def _region_headers(self, bucket: S3Bucket) -> Dict[str, str]:
        return {"x-amz-bucket-region": bucket.region}

    def head_bucket(self, Bucket: str, ExpectedBucketOwner: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            self._record("head_bucket", Bucket)
            bucket = self.buckets.get(Bucket)
            if bucket is None:
                raise client_error("404", "Not Found", 404, "HeadBucket")
            headers = self._region_headers(bucket)
            if ExpectedBucketOwner is not None and ExpectedBucketOwner != bucket.owner:
                raise client_error("403", "Forbidden", 403, "HeadBucket", headers)
            if not bucket.can_write(self.account_id):
                raise client_error("403", "Forbidden", 403, "HeadBucket", headers)
            return {"ResponseMetadata": {"HTTPStatusCode": 200, "HTTPHeaders": headers}}

    def head_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        with self._lock:
            self._record("head_object", Bucket, Key)
            bucket = self.buckets.get(Bucket)
            obj = bucket.get_object(Key) if bucket else None
            if obj is None:
                raise client_error("404", "Not Found", 404, "HeadObject")

            if obj.restore_state == "ongoing" and obj.restore_polls is not None:
                obj.restore_polls -= 1
                if obj.restore_polls <= 0:
                    obj.restore_state = "done"

            response: Dict[str, Any] = {"ContentLength": obj.size, "ContentType": obj.content_type}
            if obj.storage_class != "STANDARD":
                response["StorageClass"] = obj.storage_class
            if obj.archive_status:
                response["ArchiveStatus"] = obj.archive_status
            if obj.restore_state == "ongoing":
                response["Restore"] = 'ongoing-request="true"'
            elif obj.restore_state == "done":
                response["Restore"] = 'ongoing-request="false", expiry-date="Fri, 21 Dec 2029 00:00:00 GMT"'
            return response

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        with self._lock:
            self._record("get_object", Bucket, Key)
            bucket = self._bucket(Bucket, "GetObject")
            obj = bucket.get_object(Key)
            if obj is None:
                raise client_error("NoSuchKey", f"Object {Key} not found", 404, "GetObject")
            if not obj.readable:
                raise client_error("InvalidObjectState", "Object is archived", 403, "GetObject")
            return {
                "Body": io.BytesIO(obj.body),
                "ContentType": obj.content_type,
                "ContentLength": obj.size,
            }

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str = "binary/octet-stream", **kwargs: Any
    ) -> Dict[str, Any]:
        """Put object to S3."""
        with self._lock:
            self._record("put_object", Bucket, Key)
            bucket = self._bucket(Bucket, "PutObject")
            if bucket.region != self.region_name:
                raise client_error(
                    "PermanentRedirect", "The bucket is in another region", 301, "PutObject",
                    self._region_headers(bucket),
                )
            if not bucket.can_write(self.account_id):
                raise client_error("AccessDenied", "Access Denied", 403, "PutObject")
            body = Body.encode("utf-8") if isinstance(Body, str) else bytes(Body)
            bucket.add_object(Key, body, content_type=ContentType)
            return {
                "ETag": f'"fake-etag-{Key}"',
                "ResponseMetadata": {"HTTPStatusCode": 200},
            }

    def restore_object(self, Bucket: str, Key: str, RestoreRequest: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self._record("restore_object", Bucket, Key)
            bucket = self._bucket(Bucket, "RestoreObject")
            obj = bucket.get_object(Key)
            if obj is None:
                raise client_error("NoSuchKey", f"Object {Key} not found", 404, "RestoreObject")
            if not obj.archived:
                raise client_error("InvalidObjectState", "Object is not archived", 403, "RestoreObject")
            if obj.restore_state == "ongoing":
                raise client_error("RestoreAlreadyInProgress", "Restore in progress", 409, "RestoreObject")

            tier = RestoreRequest.get("GlacierJobParameters", {}).get("Tier")
            if tier == "Expedited" and self.expedited_unavailable:
                raise client_error(
                    "GlacierExpeditedRetrievalNotAvailable", "Expedited unavailable", 503, "RestoreObject"
                )
            obj.restore_state = "ongoing"
            obj.restore_tier = tier
            return {"ResponseMetadata": {"HTTPStatusCode": 202}}


class FakeCopyTask:
    """
    Fake copy task for testing.

    Copies between buckets of a FakeS3Client and reports rclone-style stats.
    Every copy reports `bytes_per_second` throughput as a server-side copy.
    """

    def __init__(
        self,
        s3_client: FakeS3Client,
        elapsed_time: float = 0.25,
        fail_first: int = 0,
        failing_sources: Optional[Set[str]] = None,
    ):
        self.s3_client = s3_client
        self.elapsed_time = elapsed_time
        self.fail_first = fail_first
        self.failing_sources: Set[str] = set(failing_sources or ())
        self.requests: List[CopyTaskRequest] = []
        self._lock = threading.Lock()

    @staticmethod
    def _split(location: str) -> Tuple[str, str]:
        remote_path = location.split(":", 1)[1]
        bucket, _, key = remote_path.partition("/")
        return bucket, key

    def run(self, request: CopyTaskRequest) -> List[Dict[str, Any]]:
        with self._lock:
            self.requests.append(request)
            if self.fail_first > 0:
                self.fail_first -= 1
                raise TaskFailureError("Simulated copy task failure")
            if any(source in self.failing_sources for source in request.sources):
                raise TaskFailureError(f"Simulated copy task failure for {request.sources}")

        dest_bucket, dest_prefix = self._split(request.destination)
        results = []
        for source in request.sources:
            bucket, key = self._split(source)
            try:
                body = self.s3_client.get_object(Bucket=bucket, Key=key)["Body"].read()
            except ClientError as e:
                results.append({"source": source, "errors": 1, "lastError": str(e)})
                continue
            name = key.rsplit("/", 1)[-1]
            self.s3_client.for_region(self.s3_client.buckets[dest_bucket].region).put_object(
                Bucket=dest_bucket, Key=f"{dest_prefix}{name}", Body=body
            )
            results.append({
                "source": source,
                "bytes": len(body),
                "serverSideCopies": 1,
                "serverSideCopyBytes": len(body),
                "elapsedTime": self.elapsed_time,
                "transferTime": self.elapsed_time,
                "transfers": 1,
                "errors": 0,
                "checks": 0,
                "fatalError": False,
                "retryError": False,
            })
        return results


class FakeClock:
    """Manually advanced clock; `sleep` advances it instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class FakeLogger:
    """Fake logger for testing with support for LogContext."""

    def __init__(self, name: str = "test_logger"):
        self.name = name
        self.logs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def _log(
        self, level: str, message: str, context: Any = None, **kwargs: Any
    ) -> None:
        """Internal logging method with context support."""
        log_entry = {
            "level": level,
            "message": message,
            "timestamp": time.time(),
            **kwargs,
        }

        # Handle LogContext if provided
        if context is not None:
            if hasattr(context, "correlation_id"):
                log_entry["correlation_id"] = context.correlation_id
            if hasattr(context, "operation"):
                log_entry["operation"] = context.operation
            if hasattr(context, "metadata"):
                log_entry.update(context.metadata)

        with self._lock:
            self.logs.append(log_entry)

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("DEBUG", message, context, **kwargs)

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("INFO", message, context, **kwargs)

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("WARNING", message, context, **kwargs)

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("ERROR", message, context, **kwargs)

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get logged messages, optionally filtered by level."""
        with self._lock:
            if level:
                return [log for log in self.logs if log["level"] == level]
            return self.logs.copy()


def setup_test_s3_environment() -> FakeS3Client:
    """
    An installed account with a working bucket holding a two-row manifest,
    two readable source objects, and a destination owned by another account
    that grants us write access.
    """
    s3_client = FakeS3Client()

    working = s3_client.create_bucket("copy-out-working")
    working.add_object(
        "manifests/job.csv",
        b'source-bucket,"data/a.bin"\nsource-bucket,"data/nested/b.bin"\n',
    )

    source = s3_client.create_bucket("source-bucket")
    source.add_object("data/a.bin", b"a" * 262144)
    source.add_object("data/nested/b.bin", b"b" * 1024)

    s3_client.create_bucket("dest-bucket", owner=OTHER_ACCOUNT, writers={INSTALLED_ACCOUNT})

    return s3_client
