from recordflow.executor import JobExecutor
from recordflow.job import Job, JobParameters, JobStatus
from recordflow.readers import IterableRecordReader
from recordflow.run_store import JobRunRecorder, get_runs_by_name
from recordflow.writers import CollectingRecordWriter


def test_executor_runs_independent_jobs(session_factory) -> None:
    recorder = JobRunRecorder(session_factory)
    writers = {name: CollectingRecordWriter() for name in ("alpha", "beta", "gamma")}
    jobs = [
        Job(
            IterableRecordReader(range(size)),
            writers[name],
            parameters=JobParameters(name=name, batch_size=3),
            job_listeners=[recorder],
        )
        for name, size in (("alpha", 5), ("beta", 8), ("gamma", 13))
    ]

    with JobExecutor(max_workers=3) as executor:
        futures = executor.submit_all(jobs)
        reports = [future.result() for future in futures]

    assert [report.status for report in reports] == [JobStatus.COMPLETED] * 3
    assert {report.job_name: report.write_count for report in reports} == {"alpha": 5, "beta": 8, "gamma": 13}
    assert writers["gamma"].payloads == list(range(13))
    with session_factory() as db:
        for name in ("alpha", "beta", "gamma"):
            assert get_runs_by_name(db, name)[0].status == "completed"


def test_execute_blocks_until_report() -> None:
    executor = JobExecutor(max_workers=1)
    try:
        report = executor.execute(Job(IterableRecordReader(["a"])))
    finally:
        executor.shutdown()

    assert report.read_count == 1
