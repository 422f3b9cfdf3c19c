"""
Explicit type descriptors.

Converters and exception handlers are registered against types and resolved
by assignability. Instead of asking the live class hierarchy on every lookup,
each participating type is described once by an immutable TypeDescriptor that
records its supertypes. Assignability and inheritance distance are answered
by walking that graph.

Example::

    INT = describe(int)
    INTS = array_of(int)            # same as describe(List[int])
    describe(bool).is_assignable_to(INT)   # True, bool subclasses int
    USER_ID = declare_type("UserId", supertypes=[str])
"""

import collections.abc
import ctypes
import functools
import types
import typing
from collections import deque
from typing import Any, Dict, Iterable, Optional, Tuple, Union, get_args, get_origin

# ctypes scalars have no object representation a list slot can hold as-is
PRIMITIVE_TYPES = frozenset([
    ctypes.c_bool,
    ctypes.c_char,
    ctypes.c_byte,
    ctypes.c_ubyte,
    ctypes.c_short,
    ctypes.c_ushort,
    ctypes.c_int,
    ctypes.c_uint,
    ctypes.c_long,
    ctypes.c_ulong,
    ctypes.c_longlong,
    ctypes.c_ulonglong,
    ctypes.c_float,
    ctypes.c_double,
])

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)
_UNION_ORIGINS = (Union, getattr(types, "UnionType", Union))


class TypeDescriptor:
    """Immutable description of a type participating in rule resolution.

    Attributes:
        name: Human readable name, used in error messages
        python_type: The Python class described, if any
        supertypes: Direct supertypes, in declaration order
        component: Element type when this describes an array
        primitive: Whether values of this type are primitive (unboxed)
    """

    __slots__ = ("name", "python_type", "supertypes", "component", "primitive", "_ancestors")

    def __init__(
        self,
        name: str,
        python_type: Optional[type] = None,
        supertypes: Iterable["TypeDescriptor"] = (),
        component: Optional["TypeDescriptor"] = None,
        primitive: bool = False,
    ):
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "python_type", python_type)
        object.__setattr__(self, "supertypes", tuple(supertypes))
        object.__setattr__(self, "component", component)
        object.__setattr__(self, "primitive", primitive)
        object.__setattr__(self, "_ancestors", None)

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def is_declared(self) -> bool:
        """Whether this descriptor stands for neither a Python class nor an array."""
        return self.python_type is None and self.component is None

    def _key(self) -> Tuple[Any, ...]:
        return (self.name, self.python_type, self.component)

    def __eq__(self, other):
        if not isinstance(other, TypeDescriptor):
            return NotImplemented
        # Declared types are only equal to themselves, whatever their name
        if self.is_declared or other.is_declared:
            return self is other
        return self._key() == other._key()

    def __hash__(self):
        if self.is_declared:
            return object.__hash__(self)
        return hash(self._key())

    def __repr__(self):
        return f"TypeDescriptor({self.name})"

    @property
    def is_array(self) -> bool:
        return self.component is not None

    def ancestors(self) -> Dict["TypeDescriptor", int]:
        """Return every supertype (including self) mapped to its shortest distance."""
        cached = self._ancestors
        if cached is not None:
            return cached

        distances: Dict[TypeDescriptor, int] = {self: 0}
        queue = deque([self])
        while queue:
            current = queue.popleft()
            for parent in current.supertypes:
                if parent not in distances:
                    distances[parent] = distances[current] + 1
                    queue.append(parent)

        object.__setattr__(self, "_ancestors", distances)
        return distances

    def distance_to(self, other: "TypeDescriptor") -> Optional[int]:
        """Number of inheritance steps from this type up to other, or None if unrelated."""
        return self.ancestors().get(other)

    def is_assignable_to(self, other: "TypeDescriptor") -> bool:
        """True when every instance of this type is also an instance of other."""
        return other in self.ancestors()


TypeLike = Union[TypeDescriptor, type, Any]


@functools.lru_cache(maxsize=None)
def _describe_class(cls: type) -> TypeDescriptor:
    supertypes = [_describe_class(base) for base in cls.__bases__]
    return TypeDescriptor(
        cls.__qualname__,
        python_type=cls,
        supertypes=supertypes,
        primitive=cls in PRIMITIVE_TYPES,
    )


@functools.lru_cache(maxsize=None)
def _array_of(component: TypeDescriptor) -> TypeDescriptor:
    # Arrays are covariant: X[] is assignable to S[] for every supertype S of X
    supertypes = [_array_of(parent) for parent in component.supertypes]
    return TypeDescriptor(f"{component.name}[]", supertypes=supertypes, component=component)


def array_of(component: TypeLike) -> TypeDescriptor:
    """Describe an array (list) whose elements are of the given type."""
    return _array_of(describe(component))


def declare_type(name: str, supertypes: Iterable[TypeLike] = (), primitive: bool = False) -> TypeDescriptor:
    """Declare a type that has no Python class of its own.

    Each call declares a distinct type: two declarations sharing a name are
    neither equal nor interchangeable as registry keys.
    """
    return TypeDescriptor(name, supertypes=[describe(s) for s in supertypes], primitive=primitive)


def describe(tp: TypeLike) -> TypeDescriptor:
    """Return the descriptor for a class, a typing annotation or an existing descriptor.

    ``List[X]``, ``Sequence[X]``, ``Set[X]`` and ``Tuple[X, ...]`` describe arrays of X.
    ``Optional[X]`` and ``Annotated[X, ...]`` describe X.
    """
    if isinstance(tp, TypeDescriptor):
        return tp

    origin = get_origin(tp)
    if origin is not None:
        args = get_args(tp)
        if origin is typing.Annotated:
            return describe(args[0])
        if origin in _UNION_ORIGINS:
            members = [a for a in args if a is not type(None)]
            if len(members) == 1:
                return describe(members[0])
            raise TypeError(f"Cannot describe union type {tp!r}")
        if origin in _SEQUENCE_ORIGINS:
            if not args:
                return array_of(str)
            if origin is tuple and not (len(args) == 2 and args[1] is Ellipsis):
                raise TypeError(f"Only homogeneous tuples (Tuple[X, ...]) can be described, got {tp!r}")
            return array_of(args[0])
        return describe(origin)

    if isinstance(tp, type):
        return _describe_class(tp)

    raise TypeError(f"Cannot describe {tp!r} as a type")
