import json
from pathlib import Path

from sqlalchemy import Engine, Table, insert

from recordflow.contracts import RecordWriter
from recordflow.records import Batch, Record


class NoOpRecordWriter(RecordWriter):
    def write_batch(self, batch: Batch) -> None:
        return None


class CollectingRecordWriter(RecordWriter):
    def __init__(self) -> None:
        self.batches: list[list[Record]] = []
        self.open_calls = 0
        self.close_calls = 0

    def open(self) -> None:
        self.open_calls += 1

    def write_batch(self, batch: Batch) -> None:
        self.batches.append(list(batch))

    def close(self) -> None:
        self.close_calls += 1

    @property
    def records(self) -> list[Record]:
        return [record for batch in self.batches for record in batch]

    @property
    def payloads(self) -> list[object]:
        return [record.payload for record in self.records]


class JsonLinesRecordWriter(RecordWriter):
    def __init__(self, path: Path | str, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding
        self._handle = None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("w", encoding=self.encoding)

    def write_batch(self, batch: Batch) -> None:
        if self._handle is None:
            raise RuntimeError("writer is not open")
        for record in batch:
            self._handle.write(json.dumps(record.payload, sort_keys=True, default=str))
            self._handle.write("\n")
        self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class SqlTableRecordWriter(RecordWriter):
    """Inserts the ``dict`` payloads of each batch into a table, one transaction per batch."""

    def __init__(self, engine: Engine, table: Table) -> None:
        self.engine = engine
        self.table = table

    def write_batch(self, batch: Batch) -> None:
        rows = [dict(payload) for payload in batch.payloads()]
        if not rows:
            return
        with self.engine.begin() as connection:
            connection.execute(insert(self.table), rows)
