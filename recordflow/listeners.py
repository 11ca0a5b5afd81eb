"""Listener hooks around job, pipeline and writer phases.

Every hook has a no-op default. The composites fan a hook out to their
delegates: ``before*`` hooks run in registration order and propagate
failures to the caller; ``after*`` and ``on*_exception`` hooks run in
reverse registration order and a failing delegate is logged without
stopping the remaining ones.
"""
from collections.abc import Callable, Iterable
import logging
from typing import TYPE_CHECKING, Any

from recordflow.records import Batch, Record

if TYPE_CHECKING:
    from recordflow.job import JobParameters, JobReport


logger = logging.getLogger(__name__)


class JobListener:
    def before_job_start(self, parameters: "JobParameters") -> None:
        return None

    def after_job_end(self, report: "JobReport") -> None:
        return None


class PipelineListener:
    def before_record_processing(self, record: Record) -> Record:
        return record

    def after_record_processing(self, input_record: Record, output_record: Record | None) -> None:
        return None

    def on_record_processing_exception(self, record: Record, error: Exception) -> None:
        return None


class RecordWriterListener:
    def before_record_writing(self, batch: Batch) -> None:
        return None

    def after_record_writing(self, batch: Batch) -> None:
        return None

    def on_record_writing_exception(self, batch: Batch, error: Exception) -> None:
        return None


def _notify_in_reverse(listeners: list[Any], hook: str, call: Callable[[Any], None]) -> None:
    for listener in reversed(listeners):
        try:
            call(listener)
        except Exception:
            logger.exception(
                "listener hook failed",
                extra={"listener": type(listener).__name__, "hook": hook},
            )


class CompositeJobListener(JobListener):
    def __init__(self, listeners: Iterable[JobListener] = ()) -> None:
        self.listeners: list[JobListener] = list(listeners)

    def add_listener(self, listener: JobListener) -> None:
        self.listeners.append(listener)

    def before_job_start(self, parameters: "JobParameters") -> None:
        for listener in self.listeners:
            listener.before_job_start(parameters)

    def after_job_end(self, report: "JobReport") -> None:
        _notify_in_reverse(self.listeners, "after_job_end", lambda listener: listener.after_job_end(report))


class CompositePipelineListener(PipelineListener):
    def __init__(self, listeners: Iterable[PipelineListener] = ()) -> None:
        self.listeners: list[PipelineListener] = list(listeners)

    def add_listener(self, listener: PipelineListener) -> None:
        self.listeners.append(listener)

    def before_record_processing(self, record: Record) -> Record:
        current = record
        for listener in self.listeners:
            current = listener.before_record_processing(current)
        return current

    def after_record_processing(self, input_record: Record, output_record: Record | None) -> None:
        _notify_in_reverse(
            self.listeners,
            "after_record_processing",
            lambda listener: listener.after_record_processing(input_record, output_record),
        )

    def on_record_processing_exception(self, record: Record, error: Exception) -> None:
        _notify_in_reverse(
            self.listeners,
            "on_record_processing_exception",
            lambda listener: listener.on_record_processing_exception(record, error),
        )


class CompositeRecordWriterListener(RecordWriterListener):
    def __init__(self, listeners: Iterable[RecordWriterListener] = ()) -> None:
        self.listeners: list[RecordWriterListener] = list(listeners)

    def add_listener(self, listener: RecordWriterListener) -> None:
        self.listeners.append(listener)

    def before_record_writing(self, batch: Batch) -> None:
        for listener in self.listeners:
            listener.before_record_writing(batch)

    def after_record_writing(self, batch: Batch) -> None:
        _notify_in_reverse(self.listeners, "after_record_writing", lambda listener: listener.after_record_writing(batch))

    def on_record_writing_exception(self, batch: Batch, error: Exception) -> None:
        _notify_in_reverse(
            self.listeners,
            "on_record_writing_exception",
            lambda listener: listener.on_record_writing_exception(batch, error),
        )
