# src/copy_out/core/error_handling.py

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple, Type, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Declarative retry rule attached to a workflow state or fan-out item.

    `max_attempts` counts retries after the first attempt, so a policy with
    max_attempts=3 allows up to four calls in total. `backoff_rate` of 1.0
    keeps a fixed interval.
    """
    errors: Tuple[Type[BaseException], ...]
    interval_seconds: float = 1.0
    max_attempts: int = 3
    backoff_rate: float = 1.0

    def matches(self, exc: BaseException) -> bool:
        return isinstance(exc, self.errors)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return self.interval_seconds * (self.backoff_rate ** (attempt - 1))


def call_with_retry(
    func: Callable[[], T],
    policies: Sequence[RetryPolicy],
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[logging.Logger] = None,
    description: str = "operation",
) -> T:
    """
    Call `func`, retrying according to the first policy matching each raised error.

    Each policy keeps its own attempt counter. When no policy matches, or the
    matching policy is exhausted, the last error propagates unchanged.
    """
    logger = logger or logging.getLogger(__name__)
    attempts = [0] * len(policies)
    while True:
        try:
            return func()
        except Exception as e:
            index = next((i for i, p in enumerate(policies) if p.matches(e)), None)
            if index is None:
                raise
            policy = policies[index]
            attempts[index] += 1
            if attempts[index] > policy.max_attempts:
                logger.warning(
                    f"'{description}' failed after {policy.max_attempts} retries. Error: {e}"
                )
                raise
            delay = policy.delay_for(attempts[index])
            logger.info(
                f"'{description}' failed with {type(e).__name__}. "
                f"Retry {attempts[index]}/{policy.max_attempts} in {delay:.2f}s. Error: {e}"
            )
            sleep(delay)


class BatchOperationContextManager:
    """
    Context manager for fan-out operations to collect and summarize item errors.
    """
    def __init__(self, operation_name="Batch Operation", logger: Optional[logging.Logger] = None):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logger or logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: Any, item_identifier: str = "Unknown item"):
        """
        Report an error for a specific item from inside the 'with' block.

        Args:
            error_message: The error message or exception.
            item_identifier: A string identifying the item that failed (e.g. an S3 location).
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")

    @property
    def error_count(self) -> int:
        return len(self.errors)
