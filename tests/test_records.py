from dataclasses import FrozenInstanceError

import pytest

from recordflow.records import Batch, Header, HeaderSequence, Record


def test_header_sequence_is_gap_free_and_restarts_on_reset() -> None:
    sequence = HeaderSequence("orders.csv")

    numbers = [sequence.next().number for _ in range(4)]
    sequence.reset()

    assert numbers == [1, 2, 3, 4]
    assert sequence.next().number == 1
    assert sequence.next(source_name="other.csv").source_name == "other.csv"


def test_with_payload_carries_header_forward() -> None:
    record = Record(Header(7, "orders.csv"), "raw")

    replaced = record.with_payload({"id": 7})

    assert replaced.header is record.header
    assert replaced.payload == {"id": 7}
    assert record.payload == "raw"
    with pytest.raises(FrozenInstanceError):
        record.header.number = 8  # type: ignore[misc]


def test_batch_is_bounded_and_rejects_absent_records() -> None:
    batch = Batch(2)
    first = Record(Header(1, "src"), "a")
    second = Record(Header(2, "src"), "b")

    batch.add(first)
    assert not batch.is_full
    batch.add(second)

    assert batch.is_full
    assert list(batch) == [first, second]
    assert batch.payloads() == ["a", "b"]
    with pytest.raises(ValueError):
        batch.add(Record(Header(3, "src"), "c"))
    with pytest.raises(ValueError):
        Batch(2).add(None)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        Batch(0)
