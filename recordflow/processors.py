from collections.abc import Callable, Iterable, Mapping, Sequence
import re
from typing import Any

from recordflow.contracts import RecordProcessor
from recordflow.errors import RecordMappingError, RecordValidationError
from recordflow.object_mapper import ObjectMapper
from recordflow.records import Record


Check = Callable[[Any], str | None]


class FunctionProcessor(RecordProcessor):
    """Applies ``fn`` to the payload; a ``None`` result filters the record."""

    def __init__(self, fn: Callable[[Any], Any], name: str | None = None) -> None:
        self.fn = fn
        self._name = name or getattr(fn, "__name__", type(self).__name__)

    @property
    def name(self) -> str:
        return self._name

    def process(self, record: Record) -> Record | None:
        payload = self.fn(record.payload)
        if payload is None:
            return None
        return record.with_payload(payload)


class PredicateFilter(RecordProcessor):
    """Keeps records whose payload satisfies ``predicate``."""

    def __init__(self, predicate: Callable[[Any], bool]) -> None:
        self.predicate = predicate

    def process(self, record: Record) -> Record | None:
        if self.predicate(record.payload):
            return record
        return None


class RecordValidator(RecordProcessor):
    """Runs checks in order; each returns an error message or ``None``."""

    def __init__(self, *checks: Check) -> None:
        self.checks: tuple[Check, ...] = checks

    def process(self, record: Record) -> Record | None:
        for check in self.checks:
            reason = check(record.payload)
            if reason:
                raise RecordValidationError(reason, record.header)
        return record


def required(field: str) -> Check:
    def check(payload: Mapping[str, Any]) -> str | None:
        if not str(payload.get(field) or "").strip():
            return f"{field} is required"
        return None

    return check


def in_range(field: str, low: float, high: float) -> Check:
    def check(payload: Mapping[str, Any]) -> str | None:
        try:
            value = float(payload.get(field))
        except (TypeError, ValueError):
            return f"{field} must be a number"
        if value < low or value > high:
            return f"{field} must be between {low:g} and {high:g}"
        return None

    return check


class DelimitedRecordMapper(RecordProcessor):
    """Splits a delimited line into ``{field name -> raw value}``.

    Without configured ``field_names`` the first record is taken as the header
    line: its tokens become the field names and the record itself is filtered.
    """

    def __init__(
        self,
        field_names: Sequence[str] | None = None,
        *,
        delimiter: str = ",",
        qualifier: str = "",
        trim_whitespaces: bool = False,
        expected_length: int | None = None,
        field_positions: Iterable[int] | None = None,
    ) -> None:
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter
        self.qualifier = qualifier
        self.trim_whitespaces = trim_whitespaces
        self.field_names: list[str] | None = list(field_names) if field_names is not None else None
        self.expected_length = expected_length
        if self.expected_length is None and self.field_names is not None and field_positions is None:
            self.expected_length = len(self.field_names)
        self.field_positions = sorted(set(field_positions)) if field_positions is not None else None
        self._split = re.compile(re.escape(delimiter)).split

    def process(self, record: Record) -> Record | None:
        tokens = self._split(str(record.payload))
        if self.field_names is None:
            self.field_names = [self._clean(token) for token in tokens]
            if self.expected_length is None:
                self.expected_length = len(tokens)
            return None

        if self.expected_length is not None and len(tokens) != self.expected_length:
            raise RecordMappingError(
                f"record length ({len(tokens)} fields) not equal to expected length of {self.expected_length} fields"
            )
        self._check_qualifier(tokens)

        values = [self._clean(token) for token in tokens]
        if self.field_positions is not None:
            values = [values[position] for position in self.field_positions if position < len(values)]

        if len(values) > len(self.field_names):
            raise RecordMappingError(f"record has {len(values)} fields but only {len(self.field_names)} names")
        return record.with_payload(dict(zip(self.field_names, values)))

    def _check_qualifier(self, tokens: list[str]) -> None:
        if not self.qualifier:
            return
        for token in tokens:
            token = token.strip() if self.trim_whitespaces else token
            if not (token.startswith(self.qualifier) and token.endswith(self.qualifier)):
                raise RecordMappingError(f"field [{token}] is not enclosed as expected with '{self.qualifier}'")

    def _clean(self, token: str) -> str:
        if self.trim_whitespaces:
            token = token.strip()
        if self.qualifier and len(token) >= 2 * len(self.qualifier):
            if token.startswith(self.qualifier) and token.endswith(self.qualifier):
                token = token[len(self.qualifier) : len(token) - len(self.qualifier)]
        return token


class ObjectMappingProcessor(RecordProcessor):
    def __init__(self, mapper: ObjectMapper) -> None:
        self.mapper = mapper

    def process(self, record: Record) -> Record | None:
        payload = record.payload
        if not isinstance(payload, Mapping):
            raise RecordMappingError(f"expected a mapping payload, got {type(payload).__name__}")
        return record.with_payload(self.mapper.map_object(payload))
