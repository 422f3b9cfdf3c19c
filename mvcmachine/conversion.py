"""
Converter registry: turns raw request strings into typed values.

Converters are registered against a target type. Lookup finds the exact
type first, then the closest related registration:

- a converter registered for a subtype of the requested type builds values
  that are valid instances of the requested type;
- a converter registered for a supertype may only be used for a subtype when
  it was registered with ``allows_subtype_construction`` (for example the
  Enum converter, which builds any Enum subclass).

Example::

    converters = ConverterRegistry.with_defaults()
    converters.convert(int, "42")                  # 42
    converters.convert(List[int], ["1", "2", "3"])  # [1, 2, 3]
    converters.convert(List[int], "1, 2, 3")        # [1, 2, 3]
"""

import datetime
import decimal
import enum
import inspect
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from .exceptions import (
    CannotConvertToPrimitiveError,
    InvalidValueError,
    NoConverterError,
    NotAStringError,
)
from .registry import FreezableRegistry
from .types import TypeDescriptor, TypeLike, describe

logger = logging.getLogger(__name__)


class Converter:
    """Base class for converters.

    Set ``constructs_subtypes = True`` on a subclass that is able to build
    instances of any subtype of the type it is registered for.
    """

    constructs_subtypes = False

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        """Build a value of the target type from a raw string."""
        raise NotImplementedError


class FunctionConverter(Converter):
    """Adapts a plain function into a converter.

    The function receives either ``(value)`` or ``(target, value)``.
    """

    def __init__(self, func: Callable[..., Any], constructs_subtypes: bool = False):
        self.func = func
        self.constructs_subtypes = constructs_subtypes
        params = [
            p for p in inspect.signature(func).parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        self._pass_target = len(params) >= 2

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        if self._pass_target:
            return self.func(target, value)
        return self.func(value)


class StringConverter(Converter):
    def convert(self, target: TypeDescriptor, value: str) -> Any:
        return value


class IntegerConverter(Converter):
    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return int(value.strip())
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e


class FloatConverter(Converter):
    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return float(value.strip())
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e


class DecimalConverter(Converter):
    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return decimal.Decimal(value.strip())
        except decimal.InvalidOperation as e:
            raise InvalidValueError(target, value, e) from e


class BooleanConverter(Converter):
    """Converts "true", "on", "y", "yes" (any case) or any non-zero number to True.

    Everything else is False.
    """

    NUMBER = re.compile(r"[0-9]*\.?[0-9]+")
    ZERO = re.compile(r"0?\.?0+")

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        lowered = value.strip().lower()
        if lowered in ("true", "on", "y", "yes"):
            return True
        return bool(self.NUMBER.fullmatch(lowered) and not self.ZERO.fullmatch(lowered))


class DateConverter(Converter):
    """Converts ISO 8601 dates (``2024-01-31``)."""

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return datetime.date.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e


class DateTimeConverter(Converter):
    """Converts ISO 8601 timestamps (``2024-01-31T12:00:00+00:00``)."""

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return datetime.datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e


class UUIDConverter(Converter):
    def convert(self, target: TypeDescriptor, value: str) -> Any:
        try:
            return uuid.UUID(value.strip())
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e


class EnumConverter(Converter):
    """Converts a member name to the member of the requested Enum subclass."""

    constructs_subtypes = True

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        enum_class = target.python_type
        if enum_class is None or not issubclass(enum_class, enum.Enum) or enum_class is enum.Enum:
            raise InvalidValueError(target, value)
        try:
            return enum_class[value]
        except KeyError as e:
            raise InvalidValueError(target, value, e) from e


class PydanticModelConverter(Converter):
    """Converts JSON text into an instance of the requested Pydantic model."""

    constructs_subtypes = True

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        model_class = target.python_type
        if model_class is None or not issubclass(model_class, BaseModel) or model_class is BaseModel:
            raise InvalidValueError(target, value)
        return model_class.model_validate_json(value)


class ArrayConverter(Converter):
    """Converts a comma separated string into a list, using a converter for the elements.

    ``"21, 42"`` gives two elements; an empty string gives an empty list.
    """

    SEPARATOR = re.compile(r", *")

    def __init__(self, component_converter: Converter):
        self.component_converter = component_converter

    def convert(self, target: TypeDescriptor, value: str) -> Any:
        component = target.component
        if component is None:
            raise InvalidValueError(target, value)
        if component.primitive:
            raise CannotConvertToPrimitiveError(component)
        if not value:
            return []
        return [self.component_converter.convert(component, part) for part in self.SEPARATOR.split(value)]


@dataclass(frozen=True)
class ConverterEntry:
    """A registered converter and the type it is registered for."""

    target: TypeDescriptor
    converter: Converter
    allows_subtype_construction: bool = False


class ConverterRegistry(FreezableRegistry):
    """Holds registered converters and converts raw request values."""

    def __init__(self):
        super().__init__()
        self._entries: Dict[TypeDescriptor, ConverterEntry] = {}

    @classmethod
    def with_defaults(cls) -> "ConverterRegistry":
        """Create a registry with the built-in converters registered."""
        registry = cls()
        registry.register(str, StringConverter())
        registry.register(int, IntegerConverter())
        registry.register(float, FloatConverter())
        registry.register(decimal.Decimal, DecimalConverter())
        registry.register(bool, BooleanConverter())
        registry.register(datetime.date, DateConverter())
        registry.register(datetime.datetime, DateTimeConverter())
        registry.register(uuid.UUID, UUIDConverter())
        registry.register(enum.Enum, EnumConverter())
        registry.register(BaseModel, PydanticModelConverter())
        return registry

    @property
    def entries(self) -> List[ConverterEntry]:
        return list(self._entries.values())

    def register(
        self,
        target: TypeLike,
        converter: Any,
        allows_subtype_construction: Optional[bool] = None,
    ) -> ConverterEntry:
        """Register a converter for a type, replacing any previous one for that exact type.

        Args:
            target: The type the converter builds
            converter: A Converter instance, or a function taking ``(value)`` or ``(target, value)``
            allows_subtype_construction: Whether the converter may build subtypes of target.
                Defaults to the converter's ``constructs_subtypes`` attribute.
        """
        self._check_mutable()
        if not isinstance(converter, Converter):
            if not callable(converter):
                raise TypeError(f"Converter for {target!r} must be a Converter or a callable")
            converter = FunctionConverter(converter)
        if allows_subtype_construction is None:
            allows_subtype_construction = converter.constructs_subtypes

        descriptor = describe(target)
        entry = ConverterEntry(descriptor, converter, allows_subtype_construction)
        self._entries[descriptor] = entry
        logger.debug(
            f"Registered {type(converter).__name__} for {descriptor.name}"
            f"{' (constructs subtypes)' if allows_subtype_construction else ''}"
        )
        return entry

    def find(self, target: TypeLike) -> Optional[Converter]:
        """Return the best converter for a type, or None if there is none."""
        descriptor = describe(target)
        exact = self._entries.get(descriptor)
        if exact is not None:
            return exact.converter

        closest: Optional[ConverterEntry] = None
        closest_distance = None
        for entry in self._entries.values():
            distance = entry.target.distance_to(descriptor)
            if distance is None and entry.allows_subtype_construction:
                distance = descriptor.distance_to(entry.target)
            if distance is not None and (closest_distance is None or distance < closest_distance):
                closest = entry
                closest_distance = distance

        if closest is None:
            return None
        logger.debug(f"Using converter registered for {closest.target.name} to build {descriptor.name}")
        return closest.converter

    def lookup(self, target: TypeLike) -> Converter:
        """Return the best converter for a type.

        Raises:
            NoConverterError: If no registered converter can build the type
        """
        converter = self.find(target)
        if converter is None:
            raise NoConverterError(describe(target))
        return converter

    def convert(self, target: TypeLike, value: Any) -> Any:
        """Convert a raw string, or a (nested) sequence of strings, to the target type.

        Raises:
            NoConverterError: If no converter can build the target (or its elements)
            NotAStringError: If value is neither a string nor a sequence matching an array target
            CannotConvertToPrimitiveError: If an array of a primitive type is requested
            InvalidValueError: If a converter rejects the value
        """
        descriptor = describe(target)
        if isinstance(value, str):
            return self._convert_string(descriptor, value)
        if isinstance(value, (list, tuple)) and descriptor.is_array:
            return self.convert_array(descriptor.component, value)
        raise NotAStringError(type(value), descriptor)

    def convert_array(self, component: TypeLike, values: Sequence[Any]) -> List[Any]:
        """Convert each element of a sequence to the component type."""
        descriptor = describe(component)
        if descriptor.primitive:
            raise CannotConvertToPrimitiveError(descriptor)
        return [self.convert(descriptor, value) for value in values]

    def _convert_string(self, target: TypeDescriptor, value: str) -> Any:
        converter = self.find(target)
        if converter is None and target.is_array:
            if target.component.primitive:
                raise CannotConvertToPrimitiveError(target.component)
            component_converter = self.find(target.component)
            if component_converter is not None:
                converter = ArrayConverter(component_converter)
        if converter is None:
            raise NoConverterError(target)

        try:
            return converter.convert(target, value)
        except ValueError as e:
            raise InvalidValueError(target, value, e) from e
