from collections.abc import Callable, Sequence
import logging
from typing import Any

from recordflow.contracts import RecordReader
from recordflow.errors import JobConfigurationError
from recordflow.records import HeaderSequence, Record


logger = logging.getLogger(__name__)

ReaderFactory = Callable[[Any], RecordReader]


class MultiSourceRecordReader(RecordReader):
    """Reads several homogeneous sources, in order, as one logical stream.

    Delegates are created by ``reader_factory`` one source at a time and each
    is closed exactly once, either when it runs dry or in ``close()``.

    Header numbers continue across source boundaries: this reader issues the
    headers of the logical stream from its own sequence, keeping the source
    name and timestamp the delegate recorded.
    """

    def __init__(self, sources: Sequence[Any] | None, reader_factory: ReaderFactory, name: str = "multi-source") -> None:
        if not sources:
            raise JobConfigurationError("multi-source reader needs at least one source")
        self.sources = list(sources)
        self.reader_factory = reader_factory
        self._sequence = HeaderSequence(name)
        self._next_index = 0
        self._delegate: RecordReader | None = None
        self._current_source: Any = None

    @property
    def current_source(self) -> Any:
        return self._current_source

    def open(self) -> None:
        self._sequence.reset()
        self._next_index = 0
        self._open_next_delegate()

    def read_record(self) -> Record | None:
        while self._delegate is not None or self._next_index < len(self.sources):
            if self._delegate is None:
                self._open_next_delegate()
                continue

            record = self._delegate.read_record()
            if record is not None:
                header = self._sequence.next(
                    source_name=record.header.source_name,
                    created_at=record.header.created_at,
                )
                return Record(header=header, payload=record.payload)

            self._close_delegate()
        return None

    def close(self) -> None:
        self._close_delegate()

    def _open_next_delegate(self) -> None:
        source = self.sources[self._next_index]
        self._next_index += 1
        self._current_source = source
        delegate = self.reader_factory(source)
        # Only an opened delegate is tracked for closing.
        delegate.open()
        self._delegate = delegate
        logger.debug("opened source", extra={"source": str(source), "source_index": self._next_index - 1})

    def _close_delegate(self) -> None:
        delegate, self._delegate = self._delegate, None
        if delegate is not None:
            delegate.close()
