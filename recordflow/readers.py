from collections.abc import Iterable, Iterator, Mapping
import json
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, text
from sqlalchemy.engine import Connection, CursorResult

from recordflow.contracts import RecordReader
from recordflow.records import HeaderSequence, Record


class IterableRecordReader(RecordReader):
    def __init__(self, payloads: Iterable[Any], source_name: str = "in-memory") -> None:
        self.payloads = payloads
        self._sequence = HeaderSequence(source_name)
        self._iterator: Iterator[Any] | None = None

    def open(self) -> None:
        self._sequence.reset()
        self._iterator = iter(self.payloads)

    def read_record(self) -> Record | None:
        if self._iterator is None:
            raise RuntimeError("reader is not open")
        try:
            payload = next(self._iterator)
        except StopIteration:
            return None
        return Record(self._sequence.next(), payload)

    def close(self) -> None:
        self._iterator = None


class FlatFileRecordReader(RecordReader):
    """One record per line; the trailing newline is stripped from the payload."""

    def __init__(self, path: Path | str, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding
        self._sequence = HeaderSequence(str(self.path.resolve()))
        self._handle = None

    def open(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(f"input file not found: {self.path}")
        self._sequence.reset()
        self._handle = self.path.open("r", encoding=self.encoding)

    def read_record(self) -> Record | None:
        line = self._readline()
        if line is None:
            return None
        return Record(self._sequence.next(), line.rstrip("\r\n"))

    def _readline(self) -> str | None:
        if self._handle is None:
            raise RuntimeError("reader is not open")
        line = self._handle.readline()
        if line == "":
            return None
        return line

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class JsonLinesRecordReader(FlatFileRecordReader):
    """One JSON document per non-blank line."""

    def read_record(self) -> Record | None:
        while True:
            line = self._readline()
            if line is None:
                return None
            line = line.strip()
            if not line:
                continue
            # Parse before numbering so an unreadable line leaves no gap.
            payload = json.loads(line)
            return Record(self._sequence.next(), payload)


class SqlRecordReader(RecordReader):
    """Streams the rows of a query; each row becomes a ``dict`` payload."""

    def __init__(
        self,
        engine: Engine,
        query: str,
        *,
        params: Mapping[str, Any] | None = None,
        fetch_size: int | None = None,
        max_rows: int | None = None,
    ) -> None:
        if fetch_size is not None and fetch_size < 1:
            raise ValueError("fetch_size must be >= 1")
        if max_rows is not None and max_rows < 1:
            raise ValueError("max_rows must be >= 1")
        self.engine = engine
        self.query = query
        self.params = dict(params or {})
        self.fetch_size = fetch_size
        self.max_rows = max_rows
        self._sequence = HeaderSequence(f"{engine.url.render_as_string(hide_password=True)} | {query}")
        self._connection: Connection | None = None
        self._result: CursorResult | None = None

    def open(self) -> None:
        self._sequence.reset()
        self._connection = self.engine.connect()
        connection = self._connection
        if self.fetch_size is not None:
            connection = connection.execution_options(yield_per=self.fetch_size)
        try:
            self._result = connection.execute(text(self.query), self.params)
        except Exception:
            self._connection.close()
            self._connection = None
            raise

    def read_record(self) -> Record | None:
        if self._result is None:
            raise RuntimeError("reader is not open")
        if self.max_rows is not None and self._sequence.last >= self.max_rows:
            return None
        row = self._result.fetchone()
        if row is None:
            return None
        return Record(self._sequence.next(), dict(row._mapping))

    def close(self) -> None:
        result, self._result = self._result, None
        connection, self._connection = self._connection, None
        try:
            if result is not None:
                result.close()
        finally:
            if connection is not None:
                connection.close()
