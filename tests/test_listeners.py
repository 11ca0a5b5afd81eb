import logging

import pytest

from recordflow.engine import JobEngine
from recordflow.errors import ListenerHookError
from recordflow.job import Job, JobParameters, JobStatus
from recordflow.listeners import (
    CompositeJobListener,
    CompositePipelineListener,
    CompositeRecordWriterListener,
    JobListener,
    PipelineListener,
    RecordWriterListener,
)
from recordflow.processors import FunctionProcessor
from recordflow.readers import IterableRecordReader
from recordflow.records import Batch, Header, Record
from recordflow.writers import CollectingRecordWriter


class TracingListener(JobListener, PipelineListener, RecordWriterListener):
    def __init__(self, label: str, trace: list[str]) -> None:
        self.label = label
        self.trace = trace

    def before_job_start(self, parameters) -> None:
        self.trace.append(f"{self.label}.before_job")

    def after_job_end(self, report) -> None:
        self.trace.append(f"{self.label}.after_job")

    def before_record_processing(self, record: Record) -> Record:
        self.trace.append(f"{self.label}.before")
        return record

    def after_record_processing(self, input_record, output_record) -> None:
        self.trace.append(f"{self.label}.after")

    def on_record_processing_exception(self, record, error) -> None:
        self.trace.append(f"{self.label}.error")

    def before_record_writing(self, batch) -> None:
        self.trace.append(f"{self.label}.before_write")

    def after_record_writing(self, batch) -> None:
        self.trace.append(f"{self.label}.after_write")


class SuffixListener(PipelineListener):
    def __init__(self, suffix: str) -> None:
        self.suffix = suffix

    def before_record_processing(self, record: Record) -> Record:
        return record.with_payload(record.payload + self.suffix)


class ExplodingListener(PipelineListener, RecordWriterListener):
    def before_record_processing(self, record: Record) -> Record:
        raise RuntimeError("before hook exploded")

    def after_record_processing(self, input_record, output_record) -> None:
        raise RuntimeError("after hook exploded")

    def after_record_writing(self, batch) -> None:
        raise RuntimeError("after write hook exploded")


def _record(payload: str = "x") -> Record:
    return Record(Header(1, "test"), payload)


def test_before_hooks_in_order_after_hooks_in_reverse() -> None:
    trace: list[str] = []
    listeners = [TracingListener(label, trace) for label in ("L1", "L2", "L3")]

    def process(payload: str) -> str:
        trace.append("process")
        return payload

    job = Job(
        IterableRecordReader(["a"]),
        CollectingRecordWriter(),
        processors=[FunctionProcessor(process)],
        pipeline_listeners=listeners,
    )
    JobEngine().run(job)

    assert trace == ["L1.before", "L2.before", "L3.before", "process", "L3.after", "L2.after", "L1.after"]


def test_job_and_writer_listener_ordering() -> None:
    trace: list[str] = []
    listeners = [TracingListener(label, trace) for label in ("L1", "L2")]

    job = Job(
        IterableRecordReader(["a"]),
        CollectingRecordWriter(),
        job_listeners=listeners,
        writer_listeners=listeners,
    )
    JobEngine().run(job)

    assert trace == [
        "L1.before_job",
        "L2.before_job",
        "L1.before_write",
        "L2.before_write",
        "L2.after_write",
        "L1.after_write",
        "L2.after_job",
        "L1.after_job",
    ]


def test_before_hooks_chain_transformed_values() -> None:
    composite = CompositePipelineListener([SuffixListener("-1"), SuffixListener("-2")])

    result = composite.before_record_processing(_record("x"))

    assert result.payload == "x-1-2"


def test_failing_before_hook_skips_later_hooks() -> None:
    trace: list[str] = []
    composite = CompositePipelineListener([ExplodingListener(), TracingListener("L2", trace)])

    with pytest.raises(RuntimeError):
        composite.before_record_processing(_record())

    assert trace == []


def test_failing_after_hook_does_not_stop_remaining_hooks(caplog: pytest.LogCaptureFixture) -> None:
    trace: list[str] = []
    composite = CompositePipelineListener([TracingListener("L1", trace), ExplodingListener()])

    with caplog.at_level(logging.ERROR, logger="recordflow.listeners"):
        composite.after_record_processing(_record(), _record())
        composite.on_record_processing_exception(_record(), RuntimeError("boom"))

    assert trace == ["L1.after", "L1.error"]
    assert "listener hook failed" in caplog.text


def test_add_listener_appends() -> None:
    trace: list[str] = []
    job_listener = CompositeJobListener()
    writer_listener = CompositeRecordWriterListener()
    job_listener.add_listener(TracingListener("L1", trace))
    job_listener.add_listener(TracingListener("L2", trace))
    writer_listener.add_listener(TracingListener("W1", trace))
    writer_listener.add_listener(ExplodingListener())

    job_listener.before_job_start(JobParameters())
    writer_listener.after_record_writing(Batch(1))

    assert trace == ["L1.before_job", "L2.before_job", "W1.after_write"]


def test_before_hook_failure_is_a_record_processing_error() -> None:
    trace: list[str] = []
    writer = CollectingRecordWriter()
    job = Job(
        IterableRecordReader(["a", "b"]),
        writer,
        pipeline_listeners=[TracingListener("L1", trace), ExplodingListener(), TracingListener("L3", trace)],
    )

    report = JobEngine().run(job)

    assert report.status is JobStatus.COMPLETED
    assert report.read_count == 2
    assert report.error_count == 2
    assert writer.records == []
    assert "L3.before" not in trace
    assert trace.count("L1.error") == 2


def test_job_listener_failure_policy_aborts_run() -> None:
    class FailsOnSecond(PipelineListener):
        def before_record_processing(self, record: Record) -> Record:
            if record.header.number == 2:
                raise RuntimeError("bad hook")
            return record

    job = Job(
        IterableRecordReader(["a", "b", "c"]),
        CollectingRecordWriter(),
        parameters=JobParameters(listener_failure_policy="job"),
        pipeline_listeners=[FailsOnSecond()],
    )

    report = JobEngine().run(job)

    assert report.status is JobStatus.FAILED
    assert report.read_count == 2
    assert isinstance(report.last_error, ListenerHookError)
    assert str(report.last_error.__cause__) == "bad hook"
