"""Maps ``{property name -> raw string}`` values onto typed target objects.

The property set of a target type is declared once in a ``TargetBinding``
(name, declared type, setter) and reused for every record. Raw values are
converted with the ``TypeConverterRegistry`` owned by each ``ObjectMapper``.
"""
from collections.abc import Callable, Iterable, Mapping
import dataclasses
from dataclasses import dataclass
import logging
import types
import typing
from typing import Any, Generic, TypeVar

from recordflow.converters import TypeConverter, default_converters
from recordflow.errors import RecordMappingError, TypeConverterRegistrationError


logger = logging.getLogger(__name__)
T = TypeVar("T")

Setter = Callable[[Any, Any], None]


def attribute_setter(name: str) -> Setter:
    def set_value(target: Any, value: Any) -> None:
        setattr(target, name, value)

    return set_value


@dataclass(frozen=True)
class PropertyBinding:
    name: str
    declared_type: Any
    setter: Setter


class TargetBinding(Generic[T]):
    def __init__(self, factory: Callable[[], T], properties: Iterable[PropertyBinding] = ()) -> None:
        self.factory = factory
        self._properties: dict[str, PropertyBinding] = {}
        for prop in properties:
            self._properties[prop.name] = prop

    def bind(self, name: str, declared_type: Any, setter: Setter | None = None) -> "TargetBinding[T]":
        self._properties[name] = PropertyBinding(name, declared_type, setter or attribute_setter(name))
        return self

    def get(self, name: str) -> PropertyBinding | None:
        return self._properties.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._properties)

    @classmethod
    def from_dataclass(cls, target: type[T]) -> "TargetBinding[T]":
        if not (isinstance(target, type) and dataclasses.is_dataclass(target)):
            raise TypeError(f"{target!r} is not a dataclass type")
        if target.__dataclass_params__.frozen:
            raise TypeError(f"{target.__name__} is frozen; its properties cannot be set")

        hints = typing.get_type_hints(target)
        binding: TargetBinding[T] = cls(target)
        for field in dataclasses.fields(target):
            binding.bind(field.name, _unwrap_optional(hints.get(field.name, Any)))
        return binding


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


class TypeConverterRegistry:
    def __init__(self, converters: Mapping[type, TypeConverter] | None = None) -> None:
        self._converters: dict[type, TypeConverter] = {}
        for target_type, converter in (converters or {}).items():
            self.register(target_type, converter)

    @classmethod
    def with_defaults(cls) -> "TypeConverterRegistry":
        return cls(default_converters())

    def register(self, target_type: type, converter: TypeConverter) -> None:
        if not isinstance(target_type, type):
            raise TypeConverterRegistrationError(f"converter key must be a type, got {target_type!r}")
        if not callable(converter):
            raise TypeConverterRegistrationError(f"converter for {target_type.__name__} is not callable")
        self._converters[target_type] = converter

    def lookup(self, target_type: Any) -> TypeConverter | None:
        try:
            return self._converters.get(target_type)
        except TypeError:
            # Unhashable annotations have no converter.
            return None

    def copy(self) -> "TypeConverterRegistry":
        return TypeConverterRegistry(self._converters)

    def __contains__(self, target_type: object) -> bool:
        return self.lookup(target_type) is not None


class ObjectMapper(Generic[T]):
    def __init__(
        self,
        binding: TargetBinding[T],
        *,
        empty_to_null: bool = False,
        warn: bool = True,
        registry: TypeConverterRegistry | None = None,
    ) -> None:
        self.binding = binding
        self.empty_to_null = empty_to_null
        self.warn = warn
        self.registry = registry if registry is not None else TypeConverterRegistry.with_defaults()

    @classmethod
    def for_dataclass(cls, target: type[T], **kwargs: Any) -> "ObjectMapper[T]":
        return cls(TargetBinding.from_dataclass(target), **kwargs)

    def register_converter(self, target_type: type, converter: TypeConverter) -> None:
        self.registry.register(target_type, converter)

    def map_object(self, values: Mapping[str, str | None]) -> T:
        try:
            result = self.binding.factory()
        except Exception as exc:
            raise RecordMappingError("unable to create a new instance of the target type") from exc

        for name, raw_value in values.items():
            prop = self.binding.get(name)
            if prop is None:
                self._warn("no settable property, value skipped", name)
                continue

            converter = self.registry.lookup(prop.declared_type)
            if converter is None:
                self._warn("no converter for declared type, value skipped", name, prop.declared_type)
                continue

            if raw_value is None:
                self._warn("raw value is absent, value skipped", name, prop.declared_type)
                continue

            self._set(result, prop, raw_value, converter)

        return result

    def _set(self, target: T, prop: PropertyBinding, raw_value: str, converter: TypeConverter) -> None:
        try:
            if self.empty_to_null and raw_value == "":
                prop.setter(target, None)
            else:
                prop.setter(target, converter(raw_value))
        except Exception as exc:
            raise RecordMappingError(
                f"unable to convert {raw_value!r} to {_type_name(prop.declared_type)} for property {prop.name!r}",
                field=prop.name,
                value=raw_value,
                target_type=prop.declared_type,
            ) from exc

    def _warn(self, message: str, name: str, declared_type: Any = None) -> None:
        if not self.warn:
            return
        extra: dict[str, object] = {"property": name}
        if declared_type is not None:
            extra["declared_type"] = _type_name(declared_type)
        logger.warning(message, extra=extra)


def _type_name(declared_type: Any) -> str:
    return getattr(declared_type, "__name__", repr(declared_type))
