"""Stage services: manifest, permission check, thaw, copy and summary."""

from .manifest import ManifestReader, format_manifest, parse_manifest, partition_rows
from .permissions import PermissionValidator
from .thaw import RestoreParameters, ThawCoordinator
from .copy import BatchCopyExecutor
from .rclone import RcloneCopyTask
from .results import ResultWriter
from .summarise import ResultSummarizer, format_report

__all__ = [
    "ManifestReader",
    "parse_manifest",
    "format_manifest",
    "partition_rows",
    "PermissionValidator",
    "ThawCoordinator",
    "RestoreParameters",
    "BatchCopyExecutor",
    "RcloneCopyTask",
    "ResultWriter",
    "ResultSummarizer",
    "format_report",
]
