import json
import logging
import threading

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from recordflow.db_models import DeadLetterRecord, JobRun, utc_now
from recordflow.job import JobParameters, JobReport
from recordflow.listeners import JobListener, PipelineListener
from recordflow.records import Record


logger = logging.getLogger(__name__)


def create_job_run(db: Session, parameters: JobParameters) -> JobRun:
    run = JobRun(
        job_name=parameters.name,
        status="started",
        batch_size=parameters.batch_size,
        error_mode=parameters.error_mode.value,
        started_at=utc_now(),
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def finish_job_run(db: Session, run: JobRun, report: JobReport) -> None:
    finished_at = utc_now()
    run.status = report.status.value
    run.completed_at = finished_at
    run.duration_ms = report.duration_seconds * 1000
    run.read_count = report.read_count
    run.filtered_count = report.filtered_count
    run.error_count = report.error_count
    run.write_count = report.write_count
    run.failed_batch_count = report.failed_batch_count
    run.error = str(report.last_error) if report.last_error is not None else None
    db.commit()


def store_dead_letter(db: Session, *, run_id: int, record: Record, reason: str) -> None:
    db.add(
        DeadLetterRecord(
            run_id=run_id,
            record_number=record.header.number,
            source_name=record.header.source_name,
            raw_record=_dump_payload(record.payload),
            reason=reason,
        )
    )
    db.commit()


def get_runs_by_name(db: Session, job_name: str) -> list[JobRun]:
    stmt = select(JobRun).where(JobRun.job_name == job_name).order_by(JobRun.id)
    return list(db.execute(stmt).scalars().all())


def _dump_payload(payload: object) -> str:
    try:
        return json.dumps(payload, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(payload)


class JobRunRecorder(JobListener, PipelineListener):
    """Persists one ``job_runs`` row per run and a dead letter per failed record.

    A recorder can be shared by jobs running on different threads: the run
    being recorded is tracked per thread.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def current_run_id(self) -> int | None:
        return getattr(self._local, "run_id", None)

    def before_job_start(self, parameters: JobParameters) -> None:
        with self.session_factory() as db:
            run = create_job_run(db, parameters)
            self._local.run_id = run.id
        logger.info("job run recorded", extra={"job_name": parameters.name, "run_id": self._local.run_id})

    def on_record_processing_exception(self, record: Record, error: Exception) -> None:
        run_id = self.current_run_id
        if run_id is None:
            return
        with self.session_factory() as db:
            store_dead_letter(db, run_id=run_id, record=record, reason=str(error))

    def after_job_end(self, report: JobReport) -> None:
        run_id = self.current_run_id
        with self.session_factory() as db:
            if run_id is None:
                # The run never started (open failure); record it now.
                run = create_job_run(db, report.parameters)
            else:
                run = db.get(JobRun, run_id)
            finish_job_run(db, run, report)
        self._local.run_id = None
