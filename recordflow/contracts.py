"""Reader, writer and processor contracts consumed by the job engine.

Readers and writers follow an open / operate / close lifecycle; ``open`` and
``close`` default to no-ops so in-memory implementations only override the
operation itself. ``close`` is called exactly once by the engine for every
resource whose ``open`` returned normally.
"""
from abc import ABC, abstractmethod

from recordflow.records import Batch, Record


class RecordReader(ABC):
    def open(self) -> None:
        return None

    @abstractmethod
    def read_record(self) -> Record | None:
        """Return the next record, or ``None`` once the source is exhausted."""

    def close(self) -> None:
        return None


class RecordWriter(ABC):
    def open(self) -> None:
        return None

    @abstractmethod
    def write_batch(self, batch: Batch) -> None:
        ...

    def close(self) -> None:
        return None


class RecordProcessor(ABC):
    @abstractmethod
    def process(self, record: Record) -> Record | None:
        """Return the processed record, or ``None`` to filter it out."""

    @property
    def name(self) -> str:
        return type(self).__name__
