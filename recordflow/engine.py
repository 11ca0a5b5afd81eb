"""Job engine: open -> (read -> process -> batch -> write)* -> close.

One job runs on the calling thread. Records are read, processed and batched
strictly one after another; a stop request is honoured between records.
Per-record and per-batch failures are counted and either tolerated or abort
the run depending on the job's ``ErrorMode``. Reader and writer are closed
exactly once on every exit path; ``after_job_end`` always sees the final
report.

A reader that keeps raising is cut off after
``JobParameters.max_consecutive_read_errors`` failures in a row, even in
tolerant mode without an error threshold; set it to None to read on forever.
"""
from contextlib import ExitStack
import logging

from recordflow.contracts import RecordReader, RecordWriter
from recordflow.errors import (
    BatchWriteError,
    ListenerHookError,
    RecordFlowError,
    RecordMappingError,
    RecordProcessingError,
    RecordReadError,
    ResourceCloseError,
    SinkOpenError,
    SourceOpenError,
)
from recordflow.job import ErrorMode, Job, JobMetrics, JobParameters, JobReport, JobStatus, ListenerFailurePolicy
from recordflow.records import Batch, Record, utc_now


logger = logging.getLogger(__name__)


def _wrap(error: RecordFlowError, cause: BaseException) -> RecordFlowError:
    error.__cause__ = cause
    return error


class JobEngine:
    def run(self, job: Job) -> JobReport:
        parameters = job.parameters
        metrics = JobMetrics(job_name=parameters.name)
        metrics.status = JobStatus.STARTING
        close_errors: list[ResourceCloseError] = []
        stopped = False

        logger.info(
            "job starting",
            extra={
                "job_name": parameters.name,
                "batch_size": parameters.batch_size,
                "error_mode": parameters.error_mode.value,
            },
        )

        with ExitStack() as resources:
            try:
                self._open(job.reader, "reader", SourceOpenError)
                resources.callback(self._close, job.reader, "reader", close_errors)
                self._open(job.writer, "writer", SinkOpenError)
                resources.callback(self._close, job.writer, "writer", close_errors)
            except (SourceOpenError, SinkOpenError) as error:
                metrics.last_error = error
                logger.error("job aborted before reading", extra={"job_name": parameters.name, "error": str(error)})
            else:
                if self._start(job, metrics):
                    metrics.status = JobStatus.STARTED
                    stopped = self._execute(job, metrics)
            metrics.status = JobStatus.STOPPING

        metrics.end_time = utc_now()
        if metrics.last_error is not None:
            metrics.status = JobStatus.FAILED
        elif stopped:
            metrics.status = JobStatus.ABORTED
        else:
            metrics.status = JobStatus.COMPLETED

        report = metrics.to_report(parameters, close_errors=close_errors)
        job.job_listener.after_job_end(report)
        logger.info("job finished", extra=report.summary())
        return report

    def _open(self, resource: RecordReader | RecordWriter, role: str, error_type: type[RecordFlowError]) -> None:
        try:
            resource.open()
        except Exception as exc:
            raise error_type(f"unable to open {role} {type(resource).__name__}: {exc}") from exc

    def _close(self, resource: RecordReader | RecordWriter, role: str, close_errors: list[ResourceCloseError]) -> None:
        try:
            resource.close()
        except Exception as exc:
            close_errors.append(_wrap(ResourceCloseError(f"unable to close {role} {type(resource).__name__}: {exc}"), exc))
            logger.exception("resource close failed", extra={"role": role})

    def _start(self, job: Job, metrics: JobMetrics) -> bool:
        try:
            job.job_listener.before_job_start(job.parameters)
        except Exception as exc:
            metrics.last_error = _wrap(ListenerHookError(f"before_job_start hook failed: {exc}"), exc)
            logger.error("job aborted before reading", extra={"job_name": job.name, "error": str(exc)})
            return False
        return True

    def _execute(self, job: Job, metrics: JobMetrics) -> bool:
        """Run the read loop; return True when it ended on a stop request."""
        parameters = job.parameters
        batch = Batch(parameters.batch_size)
        stopped = False
        writer_failed = False
        consecutive_read_errors = 0

        while True:
            if job.stop_requested:
                logger.info("stop requested", extra={"job_name": job.name, "read_count": metrics.read_count})
                stopped = True
                break

            try:
                record = job.reader.read_record()
            except Exception as exc:
                metrics.read_count += 1
                metrics.error_count += 1
                consecutive_read_errors += 1
                error = _wrap(RecordReadError(f"unable to read record: {exc}"), exc)
                limit = parameters.max_consecutive_read_errors
                reader_stuck = limit is not None and consecutive_read_errors > limit
                if self._should_abort(parameters, metrics, error, reader_stuck=reader_stuck):
                    break
                continue

            if record is None:
                break
            consecutive_read_errors = 0
            metrics.read_count += 1

            try:
                processed = self._process_record(job, record)
            except (RecordProcessingError, RecordMappingError) as error:
                metrics.error_count += 1
                job.pipeline_listener.on_record_processing_exception(record, error)
                hook_failure = isinstance(error, ListenerHookError)
                if self._should_abort(parameters, metrics, error, record=record, hook_failure=hook_failure):
                    break
                continue

            job.pipeline_listener.after_record_processing(record, processed)
            if processed is None:
                metrics.filtered_count += 1
                continue

            batch.add(processed)
            if batch.is_full:
                abort = self._write_batch(job, batch, metrics)
                batch = Batch(parameters.batch_size)
                if abort:
                    writer_failed = True
                    break

        if batch and not writer_failed:
            self._write_batch(job, batch, metrics)
        return stopped

    def _process_record(self, job: Job, record: Record) -> Record | None:
        try:
            current = job.pipeline_listener.before_record_processing(record)
        except Exception as exc:
            raise ListenerHookError(f"before_record_processing hook failed: {exc}", record.header) from exc
        if not isinstance(current, Record):
            raise ListenerHookError(
                f"before_record_processing hook returned {type(current).__name__}, not a record", record.header
            )
        if current.header != record.header:
            raise ListenerHookError("before_record_processing hook replaced the record header", record.header)

        for processor in job.processors:
            try:
                result = processor.process(current)
            except (RecordProcessingError, RecordMappingError):
                raise
            except Exception as exc:
                raise RecordProcessingError(f"processor {processor.name} failed: {exc}", record.header) from exc

            if result is None:
                return None
            if not isinstance(result, Record):
                raise RecordProcessingError(
                    f"processor {processor.name} returned {type(result).__name__}, not a record", record.header
                )
            if result.header != current.header:
                raise RecordProcessingError(f"processor {processor.name} replaced the record header", record.header)
            current = result
        return current

    def _write_batch(self, job: Job, batch: Batch, metrics: JobMetrics) -> bool:
        """Flush one batch; return True when the run must abort."""
        hook_failure = False
        try:
            try:
                job.writer_listener.before_record_writing(batch)
            except Exception:
                hook_failure = True
                raise
            job.writer.write_batch(batch)
        except Exception as exc:
            metrics.failed_batch_count += 1
            if isinstance(exc, BatchWriteError):
                error = exc
            else:
                error = _wrap(BatchWriteError(f"unable to write batch: {exc}", batch_size=len(batch)), exc)
            job.writer_listener.on_record_writing_exception(batch, error)
            return self._should_abort(job.parameters, metrics, error, hook_failure=hook_failure)

        metrics.write_count += len(batch)
        job.writer_listener.after_record_writing(batch)
        return False

    def _should_abort(
        self,
        parameters: JobParameters,
        metrics: JobMetrics,
        error: RecordFlowError,
        *,
        record: Record | None = None,
        hook_failure: bool = False,
        reader_stuck: bool = False,
    ) -> bool:
        extra: dict[str, object] = {"job_name": parameters.name, "error": str(error)}
        if record is not None:
            extra["record_number"] = record.header.number
            extra["source_name"] = record.header.source_name

        if parameters.error_mode is ErrorMode.STRICT:
            reason = "strict error mode"
        elif hook_failure and parameters.listener_failure_policy is ListenerFailurePolicy.JOB:
            reason = "listener hook failure"
        elif parameters.error_threshold is not None and metrics.failure_count > parameters.error_threshold:
            reason = "error threshold exceeded"
        elif reader_stuck:
            reason = "too many consecutive read errors"
        else:
            logger.warning("failure tolerated", extra=extra)
            return False

        # The first aborting failure stays the recorded cause.
        if metrics.last_error is None:
            metrics.last_error = error
        logger.error("job aborted: %s", reason, extra=extra)
        return True
