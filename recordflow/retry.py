import logging
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

from recordflow.contracts import RecordWriter
from recordflow.errors import BatchWriteError
from recordflow.records import Batch


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


def linear_backoff(max_retries: int, backoff_seconds: float) -> Iterator[float]:
    """Delays slept before each retry: backoff, 2 * backoff, ..."""
    for retry in range(1, max_retries + 1):
        yield backoff_seconds * retry


def call_with_retries(
    operation: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    should_retry: Callable[[Exception], bool] | None = None,
    on_failure: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` until it succeeds or retries run out.

    The last failure becomes the ``__cause__`` of the ``RetryExhaustedError``.
    """
    delays = linear_backoff(max_retries, backoff_seconds)
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if should_retry is not None and not should_retry(exc):
                raise RetryExhaustedError(f"not retryable after {attempt} attempt(s): {exc}", attempts=attempt) from exc
            delay = next(delays, None)
            if delay is None:
                raise RetryExhaustedError(f"gave up after {attempt} attempt(s): {exc}", attempts=attempt) from exc
            sleep(delay)


class RetryingRecordWriter(RecordWriter):
    """Retries ``write_batch`` on the delegate with linear backoff.

    A batch that still fails surfaces as ``BatchWriteError`` caused by
    ``RetryExhaustedError``. ``open`` and ``close`` are not retried.
    """

    def __init__(
        self,
        delegate: RecordWriter,
        *,
        max_retries: int,
        backoff_seconds: float = 1.0,
        should_retry: Callable[[Exception], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.delegate = delegate
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.should_retry = should_retry
        self.sleep = sleep
        self.retried_batches = 0

    def open(self) -> None:
        self.delegate.open()

    def write_batch(self, batch: Batch) -> None:
        first_record = batch.records[0].header.number if batch else None

        def log_failure(attempt: int, exc: Exception) -> None:
            if attempt == 1:
                self.retried_batches += 1
            logger.warning(
                "batch write attempt failed",
                extra={
                    "attempt": attempt,
                    "max_attempts": self.max_retries + 1,
                    "batch_size": len(batch),
                    "first_record": first_record,
                    "error": str(exc),
                },
            )

        try:
            call_with_retries(
                lambda: self.delegate.write_batch(batch),
                max_retries=self.max_retries,
                backoff_seconds=self.backoff_seconds,
                should_retry=self.should_retry,
                on_failure=log_failure,
                sleep=self.sleep,
            )
        except RetryExhaustedError as exc:
            raise BatchWriteError(
                f"batch of {len(batch)} record(s) starting at #{first_record} not written: {exc}",
                batch_size=len(batch),
            ) from exc

    def close(self) -> None:
        self.delegate.close()
