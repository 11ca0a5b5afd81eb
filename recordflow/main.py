import argparse
import logging

from recordflow.config import Settings, get_settings
from recordflow.contracts import RecordReader, RecordWriter
from recordflow.database import build_session_factory
from recordflow.engine import JobEngine
from recordflow.job import ErrorMode, Job, JobParameters, JobStatus
from recordflow.multi_reader import MultiSourceRecordReader
from recordflow.readers import FlatFileRecordReader, JsonLinesRecordReader
from recordflow.retry import RetryingRecordWriter
from recordflow.run_store import JobRunRecorder
from recordflow.writers import JsonLinesRecordWriter


READERS = {
    "jsonl": JsonLinesRecordReader,
    "lines": FlatFileRecordReader,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a record processing job")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run one job")
    run_parser.add_argument("--input", action="append", required=True, help="input file; repeat for several sources")
    run_parser.add_argument("--output", required=True, help="JSON Lines output file")
    run_parser.add_argument("--format", default="jsonl", choices=sorted(READERS), help="input format")
    run_parser.add_argument("--job-name", default="cli", help="name recorded in the job report")
    run_parser.add_argument("--batch-size", type=int, help="records per written batch")
    run_parser.add_argument("--mode", choices=[mode.value for mode in ErrorMode], help="error handling mode")
    run_parser.add_argument("--record-runs", action="store_true", help="persist the job run to DATABASE_URL")

    return parser.parse_args(argv)


def build_job(args: argparse.Namespace, settings: Settings) -> Job:
    parameters = JobParameters(
        name=args.job_name,
        batch_size=args.batch_size or settings.batch_size,
        error_mode=args.mode or settings.error_mode,
        error_threshold=settings.error_threshold,
        listener_failure_policy=settings.listener_failure_policy,
        max_consecutive_read_errors=settings.max_consecutive_read_errors,
    )

    reader_type = READERS[args.format]
    reader: RecordReader
    if len(args.input) == 1:
        reader = reader_type(args.input[0])
    else:
        reader = MultiSourceRecordReader(args.input, reader_type)

    writer: RecordWriter = JsonLinesRecordWriter(args.output)
    if settings.writer_max_retries > 0:
        writer = RetryingRecordWriter(
            writer,
            max_retries=settings.writer_max_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )

    listeners = []
    if args.record_runs:
        recorder = JobRunRecorder(build_session_factory(settings.database_url))
        listeners.append(recorder)

    return Job(
        reader,
        writer,
        parameters=parameters,
        job_listeners=listeners,
        pipeline_listeners=listeners,
    )


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    job = build_job(args, settings)
    report = JobEngine().run(job)

    print(
        "job={job} status={status} read={read} filtered={filtered} errored={errored} written={written} failed_batches={failed_batches}".format(
            job=report.job_name,
            status=report.status.value,
            read=report.read_count,
            filtered=report.filtered_count,
            errored=report.error_count,
            written=report.write_count,
            failed_batches=report.failed_batch_count,
        )
    )
    if report.status is JobStatus.FAILED:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
