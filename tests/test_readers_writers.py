import json
from pathlib import Path

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, insert, select

from recordflow.engine import JobEngine
from recordflow.errors import SourceOpenError
from recordflow.job import Job, JobParameters, JobStatus
from recordflow.multi_reader import MultiSourceRecordReader
from recordflow.readers import FlatFileRecordReader, IterableRecordReader, JsonLinesRecordReader, SqlRecordReader
from recordflow.writers import CollectingRecordWriter, JsonLinesRecordWriter, SqlTableRecordWriter


def write_lines(path: Path, lines: list[str]) -> Path:
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


def read_all(reader) -> list:
    reader.open()
    try:
        records = []
        while (record := reader.read_record()) is not None:
            records.append(record)
        return records
    finally:
        reader.close()


def test_flat_file_reader_numbers_each_line(temp_workspace: Path) -> None:
    path = write_lines(temp_workspace / "data" / "input" / "lines.txt", ["first", "", "third"])

    records = read_all(FlatFileRecordReader(path))

    assert [record.payload for record in records] == ["first", "", "third"]
    assert [record.header.number for record in records] == [1, 2, 3]
    assert records[0].header.source_name == str(path.resolve())


def test_flat_file_reader_restarts_numbering_on_reopen(temp_workspace: Path) -> None:
    reader = FlatFileRecordReader(write_lines(temp_workspace / "again.txt", ["a", "b"]))

    read_all(reader)
    records = read_all(reader)

    assert [record.header.number for record in records] == [1, 2]


def test_missing_input_file_fails_open(temp_workspace: Path) -> None:
    report = JobEngine().run(Job(JsonLinesRecordReader(temp_workspace / "missing.jsonl")))

    assert report.status is JobStatus.FAILED
    assert isinstance(report.last_error, SourceOpenError)
    assert isinstance(report.last_error.__cause__, FileNotFoundError)


def test_json_lines_reader_skips_blank_lines_and_leaves_no_gap(temp_workspace: Path) -> None:
    path = write_lines(
        temp_workspace / "records.jsonl",
        [json.dumps({"record_key": "1"}), "", "{broken", json.dumps({"record_key": "2"})],
    )
    writer = CollectingRecordWriter()

    report = JobEngine().run(Job(JsonLinesRecordReader(path), writer))

    assert report.read_count == 3
    assert report.error_count == 1
    assert writer.payloads == [{"record_key": "1"}, {"record_key": "2"}]
    assert [record.header.number for record in writer.records] == [1, 2]


def test_json_lines_writer_round_trips_through_multi_source(temp_workspace: Path) -> None:
    first = write_lines(temp_workspace / "a.jsonl", [json.dumps({"n": 1}), json.dumps({"n": 2})])
    second = write_lines(temp_workspace / "b.jsonl", [json.dumps({"n": 3})])
    output = temp_workspace / "outputs" / "nested" / "out.jsonl"

    job = Job(
        MultiSourceRecordReader([first, second], JsonLinesRecordReader),
        JsonLinesRecordWriter(output),
        parameters=JobParameters(batch_size=2),
    )
    report = JobEngine().run(job)

    assert report.status is JobStatus.COMPLETED
    lines = output.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [{"n": 1}, {"n": 2}, {"n": 3}]


def test_iterable_reader_requires_open() -> None:
    with pytest.raises(RuntimeError):
        IterableRecordReader([1]).read_record()


@pytest.fixture()
def sql_tables(temp_workspace: Path):
    engine = create_engine(f"sqlite:///{temp_workspace / 'records.db'}")
    target_engine = create_engine(f"sqlite:///{temp_workspace / 'copy.db'}")
    metadata = MetaData()
    source = Table(
        "customers",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(64)),
    )
    target = Table(
        "customers_copy",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(64)),
    )
    source.create(engine)
    target.create(target_engine)
    with engine.begin() as connection:
        connection.execute(insert(source), [{"id": i, "name": f"customer-{i}"} for i in range(1, 6)])
    yield engine, target_engine, target
    engine.dispose()
    target_engine.dispose()


def test_sql_reader_to_sql_writer(sql_tables) -> None:
    engine, target_engine, target = sql_tables
    reader = SqlRecordReader(engine, "SELECT id, name FROM customers WHERE id >= :low ORDER BY id", params={"low": 2})

    report = JobEngine().run(Job(reader, SqlTableRecordWriter(target_engine, target), parameters=JobParameters(batch_size=2)))

    assert report.status is JobStatus.COMPLETED
    assert report.write_count == 4
    with target_engine.connect() as connection:
        rows = connection.execute(select(target.c.id, target.c.name).order_by(target.c.id)).all()
    assert [tuple(row) for row in rows] == [(2, "customer-2"), (3, "customer-3"), (4, "customer-4"), (5, "customer-5")]


def test_sql_reader_honours_max_rows(sql_tables) -> None:
    engine, _, _ = sql_tables

    records = read_all(SqlRecordReader(engine, "SELECT id FROM customers ORDER BY id", max_rows=2))

    assert [record.payload for record in records] == [{"id": 1}, {"id": 2}]
    assert [record.header.number for record in records] == [1, 2]
    assert "SELECT id FROM customers" in records[0].header.source_name


def test_sql_writer_failure_is_counted(sql_tables) -> None:
    _, target_engine, target = sql_tables
    payloads = [{"id": 1, "name": "a"}, {"id": 1, "name": "duplicate"}, {"id": 2, "name": "b"}]

    report = JobEngine().run(
        Job(IterableRecordReader(payloads), SqlTableRecordWriter(target_engine, target), parameters=JobParameters(batch_size=2))
    )

    assert report.failed_batch_count == 1
    assert report.write_count == 1
