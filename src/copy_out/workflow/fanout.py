"""Bounded worker-pool fan-out with per-item retry and failure tolerance."""

import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel

from ..core.error_handling import BatchOperationContextManager, RetryPolicy, call_with_retry
from ..core.exceptions import ExecutionTimeoutError, ToleratedFailureExceededError
from ..core.logging_config import get_logger, get_worker_logger
from ..core.models import ItemOutcome, ItemStatus, ResultWriterDetails
from ..services.results import ResultWriter

T = TypeVar("T")


def _default_input(item: Any) -> Any:
    if isinstance(item, BaseModel):
        return item.model_dump()
    return item


@dataclass
class MapResult:
    map_run_id: str
    outcomes: List[ItemOutcome] = field(default_factory=list)
    result_writer_details: Optional[ResultWriterDetails] = None

    def count(self, status: ItemStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self.count(ItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self.count(ItemStatus.FAILED)

    @property
    def pending(self) -> int:
        return self.count(ItemStatus.PENDING)


def exceeds_tolerance(failed: int, total: int, tolerated_failure_percentage: float) -> bool:
    """True when failed/total is strictly above the tolerated percentage."""
    if total == 0 or failed == 0:
        return False
    return failed * 100.0 > tolerated_failure_percentage * total


class DistributedMap(Generic[T]):
    """
    Runs `processor` over every item with at most `max_concurrency` in flight.

    Each item is retried in its worker according to `retry_policies`. Items
    whose retries are exhausted are FAILED; once failures exceed
    `tolerated_failure_percentage` of all items, nothing further is
    scheduled, in-flight items are allowed to finish, never-started items
    are PENDING, and ToleratedFailureExceededError is raised. The result
    writer, when present, records the outcomes in either case.

    An ExecutionTimeoutError, raised by any item or by `deadline_check`
    before an item is started, stops scheduling the same way and is re-raised
    once in-flight items are done and the results are written.
    """

    def __init__(
        self,
        name: str,
        processor: Callable[[T], Any],
        retry_policies: Sequence[RetryPolicy] = (),
        tolerated_failure_percentage: float = 0.0,
        max_concurrency: int = 10,
        sleep: Callable[[float], None] = time.sleep,
        item_name: Callable[[T], str] = str,
        item_input: Callable[[T], Any] = _default_input,
        result_writer: Optional[ResultWriter] = None,
        deadline_check: Optional[Callable[[], None]] = None,
        logger=None,
    ):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        if not 0 <= tolerated_failure_percentage <= 100:
            raise ValueError("tolerated_failure_percentage must be between 0 and 100")
        self.name = name
        self._processor = processor
        self._retry_policies = tuple(retry_policies)
        self._tolerated_failure_percentage = tolerated_failure_percentage
        self._max_concurrency = max_concurrency
        self._sleep = sleep
        self._item_name = item_name
        self._item_input = item_input
        self._result_writer = result_writer
        self._deadline_check = deadline_check
        self._logger = logger or get_logger(f"copy-out.{name}")

    def _past_deadline(self) -> Optional[ExecutionTimeoutError]:
        if self._deadline_check is None:
            return None
        try:
            self._deadline_check()
        except ExecutionTimeoutError as e:
            self._logger.error(f"{self.name}: {e}; no further items will be started")
            return e
        return None

    def _process(self, item: T) -> Any:
        worker_logger = get_worker_logger(self.name)
        description = self._item_name(item)
        worker_logger.debug(f"Processing {description}")
        return call_with_retry(
            lambda: self._processor(item),
            self._retry_policies,
            sleep=self._sleep,
            logger=worker_logger,
            description=description,
        )

    def run(
        self,
        items: Sequence[T],
        map_run_id: Optional[str] = None,
        destination_bucket: str = "",
    ) -> MapResult:
        result = MapResult(map_run_id=map_run_id or uuid.uuid4().hex)
        total = len(items)
        outcomes: Dict[int, ItemOutcome] = {}
        abort: Optional[BaseException] = None

        self._logger.info(
            f"Starting {self.name} over {total} item(s), max concurrency {self._max_concurrency}"
        )

        with BatchOperationContextManager(f"{self.name} fan-out", self._logger) as errors:
            queue: List[Tuple[int, T]] = list(enumerate(items))
            queue.reverse()
            in_flight: Dict[Future, int] = {}

            with ThreadPoolExecutor(
                max_workers=min(self._max_concurrency, max(total, 1)),
                thread_name_prefix=self.name,
            ) as executor:
                while queue or in_flight:
                    while queue and abort is None and len(in_flight) < self._max_concurrency:
                        abort = self._past_deadline()
                        if abort is not None:
                            break
                        index, item = queue.pop()
                        in_flight[executor.submit(self._process, item)] = index

                    if not in_flight:
                        break

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = in_flight.pop(future)
                        item = items[index]
                        outcome = ItemOutcome(
                            index=index,
                            name=self._item_name(item),
                            status=ItemStatus.SUCCEEDED,
                            input=self._item_input(item),
                        )
                        try:
                            outcome.output = future.result()
                        except ExecutionTimeoutError as e:
                            outcome.status = ItemStatus.FAILED
                            outcome.error = type(e).__name__
                            outcome.cause = str(e)
                            abort = abort or e
                        except Exception as e:
                            outcome.status = ItemStatus.FAILED
                            outcome.error = type(e).__name__
                            outcome.cause = str(e)
                            errors.add_error(e, outcome.name)
                        outcomes[index] = outcome

                    failed = sum(1 for o in outcomes.values() if o.status == ItemStatus.FAILED)
                    if abort is None and exceeds_tolerance(
                        failed, total, self._tolerated_failure_percentage
                    ):
                        abort = ToleratedFailureExceededError(
                            f"{self.name}: {failed} of {total} items failed, more than the "
                            f"tolerated {self._tolerated_failure_percentage:g}%",
                            failed=failed,
                            total=total,
                        )
                        self._logger.error(f"{abort}; no further items will be started")

            for index, item in reversed(queue):
                outcomes[index] = ItemOutcome(
                    index=index,
                    name=self._item_name(item),
                    status=ItemStatus.PENDING,
                    input=self._item_input(item),
                )

        result.outcomes = [outcomes[i] for i in sorted(outcomes)]
        self._logger.info(
            f"{self.name} finished: succeeded={result.succeeded} "
            f"failed={result.failed} pending={result.pending}"
        )

        if self._result_writer is not None:
            result.result_writer_details = self._result_writer.write(
                result.map_run_id, result.outcomes, destination_bucket=destination_bucket
            )

        if abort is not None:
            raise abort
        return result
