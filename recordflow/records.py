from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Header:
    number: int
    source_name: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Record:
    header: Header
    payload: Any

    def with_payload(self, payload: Any) -> "Record":
        # Stages replace the payload and carry the header forward.
        return replace(self, payload=payload)


class HeaderSequence:
    """Issues gap-free, strictly increasing headers for one reader."""

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    def reset(self) -> None:
        self._last = 0

    def next(self, *, source_name: str | None = None, created_at: datetime | None = None) -> Header:
        self._last += 1
        return Header(
            number=self._last,
            source_name=source_name if source_name is not None else self.source_name,
            created_at=created_at if created_at is not None else utc_now(),
        )


class Batch:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("batch capacity must be >= 1")
        self.capacity = capacity
        self._records: list[Record] = []

    def add(self, record: Record) -> None:
        if record is None:
            raise ValueError("a batch never holds an absent record")
        if self.is_full:
            raise ValueError(f"batch is full ({self.capacity} records)")
        self._records.append(record)

    @property
    def is_full(self) -> bool:
        return len(self._records) >= self.capacity

    @property
    def records(self) -> tuple[Record, ...]:
        return tuple(self._records)

    def payloads(self) -> list[Any]:
        return [record.payload for record in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(tuple(self._records))

    def __bool__(self) -> bool:
        return bool(self._records)

    def __repr__(self) -> str:
        return f"Batch(capacity={self.capacity}, size={len(self._records)})"
