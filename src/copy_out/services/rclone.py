"""Copy task that drives the rclone binary, one invocation per source object."""

import json
import os
import shutil
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from ..core.exceptions import TaskFailureError
from ..core.logging_config import get_logger
from ..core.models import CopyTaskRequest
from ..core.protocols import LoggerProtocol

INTERRUPTED_ERROR = "Interrupted by SIGTERM"
SKIPPED_ERROR = "Skipped due to SIGTERM received"


def parse_stats(stderr: str) -> Optional[Dict[str, Any]]:
    """
    Pull the final stats object out of rclone's JSON log output.

    Each stderr line is either a JSON log record or some other message; the
    last record carrying a `stats` object wins.
    """
    stats = None
    for line in stderr.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict) and isinstance(record.get("stats"), dict):
            stats = record["stats"]
    return stats


class RcloneCopyTask:
    """
    Copies each source of a request with its own `rclone copy`, running up to
    `request.concurrency` of them at once.

    rclone compares checksums and skips unchanged destination objects, which
    is what makes re-running a batch safe.

    `cancel()` (wired to SIGTERM by the CLI) terminates the rclone processes
    that are running and records them as interrupted; sources not yet started
    are recorded as skipped.
    """

    def __init__(
        self,
        rclone_binary: str = "rclone",
        bandwidth_limit: str = "0",
        env: Optional[Mapping[str, str]] = None,
        logger: Optional[LoggerProtocol] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self._rclone_binary = rclone_binary
        self._bandwidth_limit = bandwidth_limit
        self._env = dict(env) if env is not None else None
        self._logger = logger or get_logger("copy-out.rclone")
        self._popen = popen
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._running: Set[subprocess.Popen] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Terminate running rclone processes and skip every source not yet started."""
        self._cancelled.set()
        with self._lock:
            running = list(self._running)
        for process in running:
            self._logger.warning(f"Terminating rclone process {process.pid}")
            process.terminate()

    def _check_binary(self) -> str:
        # we execute whatever this points at, so insist it at least looks like rclone
        if "rclone" not in os.path.basename(self._rclone_binary):
            raise TaskFailureError(f"{self._rclone_binary!r} does not look like an rclone binary")
        resolved = shutil.which(self._rclone_binary)
        if resolved is None:
            raise TaskFailureError(f"rclone binary {self._rclone_binary!r} not found")
        return resolved

    def command(self, binary: str, source: str, destination: str) -> List[str]:
        return [
            binary,
            "--use-json-log",
            "--stats-log-level",
            "NOTICE",
            "--stats-one-line",
            # only emit stats once, at the end
            "--stats",
            "10000h",
            "--bwlimit",
            self._bandwidth_limit,
            "copy",
            source,
            destination,
        ]

    def _copy_one(self, binary: str, source: str, destination: str) -> Dict[str, Any]:
        if self._cancelled.is_set():
            return {"source": source, "lastError": SKIPPED_ERROR}

        try:
            process = self._popen(
                self.command(binary, source, destination),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env,
            )
        except OSError as e:
            raise TaskFailureError(f"Could not execute rclone for {source}: {e}") from e

        with self._lock:
            self._running.add(process)
        try:
            # cancel() may have taken its snapshot before this process was registered
            if self._cancelled.is_set():
                process.terminate()
            _, stderr = process.communicate()
        finally:
            with self._lock:
                self._running.discard(process)

        if process.returncode != 0 and self._cancelled.is_set():
            self._logger.warning(f"rclone for {source} was interrupted")
            return {
                "source": source,
                "lastError": INTERRUPTED_ERROR,
                "systemError": f"exit status {process.returncode}",
                "errors": 1,
            }

        stats = parse_stats(stderr or "") or {}
        stats.setdefault("source", source)

        if process.returncode != 0:
            stats["lastError"] = stats.get("lastError") or f"rclone exited with status {process.returncode}"
            stats["systemError"] = f"exit status {process.returncode}"
            stats["errors"] = max(int(stats.get("errors", 0) or 0), 1)
        elif len(stats) == 1:
            stats["lastError"] = "rclone reported no stats"
        return stats

    def run(self, request: CopyTaskRequest) -> List[Dict[str, Any]]:
        binary = self._check_binary()
        if not request.sources:
            return []

        results: List[Optional[Dict[str, Any]]] = [None] * len(request.sources)
        max_workers = max(1, min(request.concurrency, len(request.sources)))

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rclone") as executor:
            future_to_index = {
                executor.submit(self._copy_one, binary, source, request.destination): i
                for i, source in enumerate(request.sources)
            }

            for future in as_completed(future_to_index):
                index = future_to_index[future]
                results[index] = future.result()
                self._logger.debug(f"rclone finished {request.sources[index]}")

        return [r for r in results if r is not None]
