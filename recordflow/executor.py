from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
import logging

from recordflow.engine import JobEngine
from recordflow.job import Job, JobReport


logger = logging.getLogger(__name__)


class JobExecutor:
    """Runs independent jobs on a pool of worker threads, one thread per job."""

    def __init__(self, max_workers: int | None = None, engine: JobEngine | None = None) -> None:
        self.engine = engine or JobEngine()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recordflow-job")

    def submit(self, job: Job) -> Future[JobReport]:
        logger.debug("job submitted", extra={"job_name": job.name})
        return self._pool.submit(self.engine.run, job)

    def submit_all(self, jobs: Iterable[Job]) -> list[Future[JobReport]]:
        return [self.submit(job) for job in jobs]

    def execute(self, job: Job) -> JobReport:
        return self.submit(job).result()

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "JobExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
