from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import threading
from typing import TYPE_CHECKING

from recordflow.contracts import RecordProcessor, RecordReader, RecordWriter
from recordflow.errors import JobConfigurationError
from recordflow.listeners import (
    CompositeJobListener,
    CompositePipelineListener,
    CompositeRecordWriterListener,
    JobListener,
    PipelineListener,
    RecordWriterListener,
)
from recordflow.records import utc_now
from recordflow.writers import NoOpRecordWriter

if TYPE_CHECKING:
    from recordflow.config import Settings


class ErrorMode(str, Enum):
    TOLERANT = "tolerant"
    STRICT = "strict"


class ListenerFailurePolicy(str, Enum):
    RECORD = "record"
    JOB = "job"


class JobStatus(str, Enum):
    CREATED = "created"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


def _parse_enum(enum_type, value, label: str):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_type)
        raise JobConfigurationError(f"invalid {label} {value!r}, expected one of: {choices}") from exc


@dataclass(frozen=True)
class JobParameters:
    name: str = "job"
    batch_size: int = 100
    error_mode: ErrorMode = ErrorMode.TOLERANT
    error_threshold: int | None = None
    listener_failure_policy: ListenerFailurePolicy = ListenerFailurePolicy.RECORD
    # Consecutive read failures tolerated before the run aborts; None disables the cap.
    max_consecutive_read_errors: int | None = 100

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise JobConfigurationError("batch_size must be >= 1")
        if self.error_threshold is not None and self.error_threshold < 0:
            raise JobConfigurationError("error_threshold must be >= 0")
        if self.max_consecutive_read_errors is not None and self.max_consecutive_read_errors < 1:
            raise JobConfigurationError("max_consecutive_read_errors must be >= 1")
        object.__setattr__(self, "error_mode", _parse_enum(ErrorMode, self.error_mode, "error mode"))
        object.__setattr__(
            self,
            "listener_failure_policy",
            _parse_enum(ListenerFailurePolicy, self.listener_failure_policy, "listener failure policy"),
        )

    @classmethod
    def from_settings(cls, settings: "Settings", *, name: str = "job") -> "JobParameters":
        return cls(
            name=name,
            batch_size=settings.batch_size,
            error_mode=settings.error_mode,
            error_threshold=settings.error_threshold,
            listener_failure_policy=settings.listener_failure_policy,
            max_consecutive_read_errors=settings.max_consecutive_read_errors,
        )


@dataclass(frozen=True)
class JobReport:
    job_name: str
    status: JobStatus
    read_count: int
    filtered_count: int
    error_count: int
    write_count: int
    failed_batch_count: int
    start_time: datetime
    end_time: datetime
    parameters: JobParameters
    last_error: BaseException | None = None
    close_errors: tuple[BaseException, ...] = ()

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def summary(self) -> dict[str, object]:
        return {
            "job_name": self.job_name,
            "status": self.status.value,
            "read": self.read_count,
            "filtered": self.filtered_count,
            "errored": self.error_count,
            "written": self.write_count,
            "failed_batches": self.failed_batch_count,
        }


@dataclass
class JobMetrics:
    """Counters updated while a job runs; frozen into a ``JobReport`` at the end."""

    job_name: str
    status: JobStatus = JobStatus.CREATED
    read_count: int = 0
    filtered_count: int = 0
    error_count: int = 0
    write_count: int = 0
    failed_batch_count: int = 0
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    last_error: BaseException | None = None

    @property
    def failure_count(self) -> int:
        return self.error_count + self.failed_batch_count

    def to_report(self, parameters: JobParameters, *, close_errors: Iterable[BaseException] = ()) -> JobReport:
        return JobReport(
            job_name=self.job_name,
            status=self.status,
            read_count=self.read_count,
            filtered_count=self.filtered_count,
            error_count=self.error_count,
            write_count=self.write_count,
            failed_batch_count=self.failed_batch_count,
            start_time=self.start_time,
            end_time=self.end_time or utc_now(),
            parameters=parameters,
            last_error=self.last_error,
            close_errors=tuple(close_errors),
        )


class Job:
    def __init__(
        self,
        reader: RecordReader,
        writer: RecordWriter | None = None,
        *,
        processors: Iterable[RecordProcessor] = (),
        parameters: JobParameters | None = None,
        job_listeners: Iterable[JobListener] = (),
        pipeline_listeners: Iterable[PipelineListener] = (),
        writer_listeners: Iterable[RecordWriterListener] = (),
    ) -> None:
        if reader is None:
            raise JobConfigurationError("a job needs a reader")
        self.reader = reader
        self.writer = writer if writer is not None else NoOpRecordWriter()
        self.processors: list[RecordProcessor] = list(processors)
        self.parameters = parameters or JobParameters()
        self.job_listener = CompositeJobListener(job_listeners)
        self.pipeline_listener = CompositePipelineListener(pipeline_listeners)
        self.writer_listener = CompositeRecordWriterListener(writer_listeners)
        self._stop_requested = threading.Event()

    @property
    def name(self) -> str:
        return self.parameters.name

    def stop(self) -> None:
        self._stop_requested.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def __repr__(self) -> str:
        return f"Job(name={self.name!r}, processors={len(self.processors)})"


class JobBuilder:
    def __init__(self) -> None:
        self._name = "job"
        self._reader: RecordReader | None = None
        self._writer: RecordWriter | None = None
        self._processors: list[RecordProcessor] = []
        self._batch_size = 100
        self._error_mode: ErrorMode | str = ErrorMode.TOLERANT
        self._error_threshold: int | None = None
        self._listener_failure_policy: ListenerFailurePolicy | str = ListenerFailurePolicy.RECORD
        self._max_consecutive_read_errors: int | None = 100
        self._job_listeners: list[JobListener] = []
        self._pipeline_listeners: list[PipelineListener] = []
        self._writer_listeners: list[RecordWriterListener] = []

    def named(self, name: str) -> "JobBuilder":
        self._name = name
        return self

    def reader(self, reader: RecordReader) -> "JobBuilder":
        self._reader = reader
        return self

    def writer(self, writer: RecordWriter) -> "JobBuilder":
        self._writer = writer
        return self

    def processor(self, processor: RecordProcessor) -> "JobBuilder":
        self._processors.append(processor)
        return self

    def batch_size(self, batch_size: int) -> "JobBuilder":
        self._batch_size = batch_size
        return self

    def error_mode(self, error_mode: ErrorMode | str) -> "JobBuilder":
        self._error_mode = error_mode
        return self

    def error_threshold(self, error_threshold: int | None) -> "JobBuilder":
        self._error_threshold = error_threshold
        return self

    def listener_failure_policy(self, policy: ListenerFailurePolicy | str) -> "JobBuilder":
        self._listener_failure_policy = policy
        return self

    def max_consecutive_read_errors(self, limit: int | None) -> "JobBuilder":
        self._max_consecutive_read_errors = limit
        return self

    def job_listener(self, listener: JobListener) -> "JobBuilder":
        self._job_listeners.append(listener)
        return self

    def pipeline_listener(self, listener: PipelineListener) -> "JobBuilder":
        self._pipeline_listeners.append(listener)
        return self

    def writer_listener(self, listener: RecordWriterListener) -> "JobBuilder":
        self._writer_listeners.append(listener)
        return self

    def build(self) -> Job:
        if self._reader is None:
            raise JobConfigurationError("a job needs a reader")
        parameters = JobParameters(
            name=self._name,
            batch_size=self._batch_size,
            error_mode=self._error_mode,
            error_threshold=self._error_threshold,
            listener_failure_policy=self._listener_failure_policy,
            max_consecutive_read_errors=self._max_consecutive_read_errors,
        )
        return Job(
            self._reader,
            self._writer,
            processors=self._processors,
            parameters=parameters,
            job_listeners=self._job_listeners,
            pipeline_listeners=self._pipeline_listeners,
            writer_listeners=self._writer_listeners,
        )
