"""
Argument fetchers: per-parameter strategies that produce typed method arguments.

A fetcher is created once per controller-method parameter when the route is
registered. On every request its ``fetch`` method locates the raw value in
the request and hands it to the ConverterRegistry. Variants differ only in
where the raw value comes from, never in how it is converted.

Example::

    def show_user(id: int, fields: List[str] = ()) -> ...:
        ...

    binder = ArgumentBinder.for_function(show_user, converters, path_variables={"id"})
    args = binder.bind(request)   # [42, ["name", "email"]]
"""

import inspect
import logging
import typing
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Collection,
    Dict,
    List,
    MutableMapping,
    Optional,
    Sequence,
    Tuple,
    get_args,
    get_origin,
    get_type_hints,
)

from .conversion import ConverterRegistry
from .exceptions import DependencyResolutionError, NoSuchPathVariableError, NoSuchRequestParameterError
from .models import Request, Response
from .types import TypeDescriptor, TypeLike, describe

logger = logging.getLogger(__name__)

Resolver = Callable[[TypeLike], Any]


class _NoDefault:
    def __repr__(self):
        return "NO_DEFAULT"


NO_DEFAULT: Any = _NoDefault()


class ParameterSource(Enum):
    """Where the raw value of a parameter comes from."""

    PATH = "path variables"
    QUERY = "request parameters"
    QUERY_MAP = "request parameter map"
    HEADER = "headers"
    COOKIE = "cookies"
    BODY = "request body"
    ATTRIBUTE = "request attributes"
    SESSION = "session attributes"
    INJECT = "dependencies"
    NONE = "nothing"


@dataclass(frozen=True)
class ParameterDescriptor:
    """Declared metadata of one controller-method parameter."""

    name: str
    declared_type: TypeDescriptor
    source: ParameterSource
    key: Optional[str] = None
    default: Any = NO_DEFAULT
    annotation: Any = None

    @property
    def source_key(self) -> str:
        return self.key or self.name


class ParameterMarker:
    """Base for ``Annotated`` markers selecting a parameter source.

    Example::

        def search(q: Annotated[str, Query("query")], agent: Annotated[str, Header("User-Agent")]):
            ...
    """

    source = ParameterSource.NONE

    def __init__(self, key: Optional[str] = None, default: Any = NO_DEFAULT):
        self.key = key
        self.default = default

    def __repr__(self):
        return f"{type(self).__name__}({self.key!r})"


class Path(ParameterMarker):
    source = ParameterSource.PATH


class Query(ParameterMarker):
    source = ParameterSource.QUERY


class QueryMap(ParameterMarker):
    source = ParameterSource.QUERY_MAP


class Header(ParameterMarker):
    source = ParameterSource.HEADER


class Cookie(ParameterMarker):
    source = ParameterSource.COOKIE


class Body(ParameterMarker):
    source = ParameterSource.BODY


class Attribute(ParameterMarker):
    source = ParameterSource.ATTRIBUTE


class SessionAttribute(ParameterMarker):
    source = ParameterSource.SESSION


class Inject(ParameterMarker):
    source = ParameterSource.INJECT


class AttributeAccessor:
    """Read/write handle on a request or session attribute, injected instead of the value."""

    def __init__(self, attributes: MutableMapping[str, Any], name: str):
        self._attributes = attributes
        self.name = name

    def get(self) -> Any:
        return self._attributes.get(self.name)

    def set(self, value: Any) -> None:
        self._attributes[self.name] = value


class CalltimeArgumentFetcher:
    """Supplies arguments at call time, ahead of the prepared fetchers."""

    def can_fetch(self, parameter: ParameterDescriptor) -> bool:
        raise NotImplementedError

    def fetch(self, parameter: ParameterDescriptor) -> Any:
        raise NotImplementedError


class ArgumentFetcher:
    """Base class for argument fetchers."""

    def __init__(self, parameter: ParameterDescriptor):
        self.parameter = parameter

    @property
    def declared_type(self) -> TypeDescriptor:
        return self.parameter.declared_type

    def fetch(
        self,
        request: Request,
        resolver: Optional[Resolver] = None,
        calltime_fetchers: Sequence[CalltimeArgumentFetcher] = (),
    ) -> Any:
        """Fetch the argument, offering it to call-time fetchers first."""
        for fetcher in calltime_fetchers:
            if fetcher.can_fetch(self.parameter):
                return fetcher.fetch(self.parameter)
        return self.fetch_prepared(request, resolver)

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        """Produce the typed value from the request.

        Raises:
            NoSuchRequestParameterError: If the value is absent and has no default
        """
        raise NotImplementedError


class ConvertingArgumentFetcher(ArgumentFetcher):
    """Fetcher whose raw value is converted by the converter registry."""

    def __init__(self, parameter: ParameterDescriptor, converters: ConverterRegistry, method_name: Optional[str] = None):
        super().__init__(parameter)
        self.converters = converters
        self.method_name = method_name

    def convert(self, value: Any) -> Any:
        return self.converters.convert(self.declared_type, value)

    def missing(self) -> Any:
        """Return the converted default, or raise when there is none."""
        default = self.parameter.default
        if default is NO_DEFAULT:
            raise NoSuchRequestParameterError(self.parameter.source_key, self.parameter.source.value, self.method_name)
        if isinstance(default, str):
            return self.convert(default)
        return default


class PathVariableFetcher(ConvertingArgumentFetcher):
    """Fetches a path variable.

    The variable must be declared by the route: this is checked here, at
    registration time, rather than on each request.
    """

    def __init__(
        self,
        parameter: ParameterDescriptor,
        converters: ConverterRegistry,
        path_variables: Collection[str],
        method_name: str,
    ):
        super().__init__(parameter, converters, method_name)
        if parameter.source_key not in path_variables:
            raise NoSuchPathVariableError(parameter.source_key, method_name)

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        key = self.parameter.source_key
        value = request.path_params.get(key) if request.path_params else None
        if value is None:
            # The route declares this variable, so a match always extracts it
            logger.error(
                f"Path variable '{key}' missing at request time for {self.method_name} "
                f"({request.method.value} {request.path}) although its route declares it"
            )
            raise NoSuchRequestParameterError(key, ParameterSource.PATH.value, self.method_name)
        return self.convert(value)


class QueryParamFetcher(ConvertingArgumentFetcher):
    """Fetches a query string parameter.

    Array parameters receive every value (a single value is split on commas);
    scalar parameters receive the first value.
    """

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        values = request.get_query_values(self.parameter.source_key)
        if values is None:
            return self.missing()
        if self.declared_type.is_array and len(values) > 1:
            return self.convert(values)
        return self.convert(values[0])


class QueryParamMapFetcher(ConvertingArgumentFetcher):
    """Collects ``name[key]=value`` and ``name:key=value`` parameters into a dict."""

    def __init__(self, parameter: ParameterDescriptor, converters: ConverterRegistry, method_name: Optional[str] = None):
        super().__init__(parameter, converters, method_name)
        args = get_args(parameter.annotation) if parameter.annotation is not None else ()
        if get_origin(parameter.annotation) is typing.Annotated:
            args = get_args(args[0])
        self.key_type = describe(args[0]) if len(args) == 2 else describe(str)
        self.value_type = describe(args[1]) if len(args) == 2 else describe(str)

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        prefix = self.parameter.source_key
        result: Dict[Any, Any] = {}
        for name, values in request.query_params.items():
            if not values:
                continue
            if name.startswith(prefix + ":"):
                raw_key = name[len(prefix) + 1:]
            elif name.startswith(prefix + "[") and name.endswith("]"):
                raw_key = name[len(prefix) + 1:-1]
            else:
                continue
            result[self.converters.convert(self.key_type, raw_key)] = self.converters.convert(self.value_type, values[0])

        if result:
            return result
        default = self.parameter.default
        if default is NO_DEFAULT:
            raise NoSuchRequestParameterError(prefix, ParameterSource.QUERY_MAP.value, self.method_name)
        if isinstance(default, str):
            # "a=1,b=2" style default
            for pair in filter(None, default.split(",")):
                raw_key, sep, raw_value = pair.partition("=")
                if sep:
                    result[self.converters.convert(self.key_type, raw_key)] = self.converters.convert(self.value_type, raw_value)
            return result
        return dict(default)


class HeaderFetcher(ConvertingArgumentFetcher):
    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        value = request.get_header(self.parameter.source_key)
        if value is None:
            return self.missing()
        return self.convert(value)


class CookieFetcher(ConvertingArgumentFetcher):
    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        value = request.cookies.get(self.parameter.source_key)
        if value is None:
            return self.missing()
        return self.convert(value)


class BodyFetcher(ConvertingArgumentFetcher):
    """Converts the whole request body, e.g. JSON text into a Pydantic model."""

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        if request.body is None:
            return self.missing()
        return self.convert(request.body)


class AttributeFetcher(ArgumentFetcher):
    """Fetches a request attribute as-is, or an accessor to it."""

    def __init__(self, parameter: ParameterDescriptor):
        super().__init__(parameter)
        self.is_accessor = parameter.declared_type.python_type is AttributeAccessor

    def attributes(self, request: Request) -> MutableMapping[str, Any]:
        return request.attributes

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        attributes = self.attributes(request)
        if self.is_accessor:
            return AttributeAccessor(attributes, self.parameter.source_key)
        return attributes.get(self.parameter.source_key)


class SessionAttributeFetcher(AttributeFetcher):
    """Fetches a session attribute, or an accessor to it. A session is started if the request has none."""

    def attributes(self, request: Request) -> MutableMapping[str, Any]:
        return request.get_session(create=True)


class InjectorFetcher(ArgumentFetcher):
    """Resolves the parameter's declared type through the dependency resolver."""

    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        if resolver is None:
            raise DependencyResolutionError(
                self.declared_type,
                f"Parameter '{self.parameter.name}' needs a dependency resolver to be bound",
            )
        return resolver(self.declared_type)


class NullFetcher(ArgumentFetcher):
    def fetch_prepared(self, request: Request, resolver: Optional[Resolver] = None) -> Any:
        return None


def create_fetcher(
    parameter: ParameterDescriptor,
    converters: ConverterRegistry,
    path_variables: Collection[str] = (),
    method_name: str = "<unknown>",
) -> ArgumentFetcher:
    """Create the fetcher matching a parameter's source."""
    source = parameter.source
    if source is ParameterSource.PATH:
        return PathVariableFetcher(parameter, converters, path_variables, method_name)
    if source is ParameterSource.QUERY:
        return QueryParamFetcher(parameter, converters, method_name)
    if source is ParameterSource.QUERY_MAP:
        return QueryParamMapFetcher(parameter, converters, method_name)
    if source is ParameterSource.HEADER:
        return HeaderFetcher(parameter, converters, method_name)
    if source is ParameterSource.COOKIE:
        return CookieFetcher(parameter, converters, method_name)
    if source is ParameterSource.BODY:
        return BodyFetcher(parameter, converters, method_name)
    if source is ParameterSource.ATTRIBUTE:
        return AttributeFetcher(parameter)
    if source is ParameterSource.SESSION:
        return SessionAttributeFetcher(parameter)
    if source is ParameterSource.INJECT:
        return InjectorFetcher(parameter)
    return NullFetcher(parameter)


def describe_parameters(
    func: Callable[..., Any],
    path_variables: Collection[str] = (),
    injectable: Optional[Callable[[Any], bool]] = None,
) -> List[ParameterDescriptor]:
    """Derive parameter descriptors from a function signature.

    ``Annotated`` markers (Path, Query, Header, ...) win. Otherwise parameters
    annotated with Request, Response or a type accepted by ``injectable`` are
    injected, names matching a path variable bind to it, dict parameters
    collect a query map, and anything else is a query parameter. Unannotated parameters are strings.
    """
    hints = get_type_hints(func, include_extras=True)
    descriptors = []
    for name, param in inspect.signature(func).parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise TypeError(f"{func.__qualname__}: *args and **kwargs parameters cannot be bound")

        annotation = hints.get(name, str)
        default = param.default if param.default is not inspect.Parameter.empty else NO_DEFAULT
        marker = _find_marker(annotation)

        if marker is not None:
            source = marker.source
            key = marker.key
            if marker.default is not NO_DEFAULT:
                default = marker.default
        elif annotation in (Request, Response) or (injectable is not None and injectable(annotation)):
            source, key = ParameterSource.INJECT, None
        elif name in path_variables:
            source, key = ParameterSource.PATH, None
        elif _is_mapping(annotation):
            source, key = ParameterSource.QUERY_MAP, None
        else:
            source, key = ParameterSource.QUERY, None

        declared = describe(dict) if source is ParameterSource.QUERY_MAP else describe(annotation)
        descriptors.append(ParameterDescriptor(name, declared, source, key, default, annotation))
    return descriptors


def _find_marker(annotation: Any) -> Optional[ParameterMarker]:
    if get_origin(annotation) is not typing.Annotated:
        return None
    for extra in get_args(annotation)[1:]:
        if isinstance(extra, ParameterMarker):
            return extra
        if isinstance(extra, type) and issubclass(extra, ParameterMarker):
            return extra()
    return None


def _is_mapping(annotation: Any) -> bool:
    origin = get_origin(annotation) or annotation
    return isinstance(origin, type) and issubclass(origin, dict)


class ArgumentBinder:
    """Builds the ordered argument list of a controller method.

    Fetchers are created once, when the binder is constructed; configuration
    errors such as an undeclared path variable surface immediately.
    """

    def __init__(
        self,
        parameters: Sequence[ParameterDescriptor],
        converters: ConverterRegistry,
        path_variables: Collection[str] = (),
        method_name: str = "<unknown>",
    ):
        self.parameters: Tuple[ParameterDescriptor, ...] = tuple(parameters)
        self.method_name = method_name
        self.fetchers: Tuple[ArgumentFetcher, ...] = tuple(
            create_fetcher(parameter, converters, path_variables, method_name) for parameter in self.parameters
        )

    @classmethod
    def for_function(
        cls,
        func: Callable[..., Any],
        converters: ConverterRegistry,
        path_variables: Collection[str] = (),
        injectable: Optional[Callable[[Any], bool]] = None,
    ) -> "ArgumentBinder":
        parameters = describe_parameters(func, path_variables, injectable)
        return cls(parameters, converters, path_variables, func.__qualname__)

    def bind(
        self,
        request: Request,
        resolver: Optional[Resolver] = None,
        calltime_fetchers: Sequence[CalltimeArgumentFetcher] = (),
    ) -> List[Any]:
        """Fetch every argument, in declaration order."""
        return [fetcher.fetch(request, resolver, calltime_fetchers) for fetcher in self.fetchers]

    def bind_keywords(
        self,
        request: Request,
        resolver: Optional[Resolver] = None,
        calltime_fetchers: Sequence[CalltimeArgumentFetcher] = (),
    ) -> Dict[str, Any]:
        """Fetch every argument, keyed by parameter name."""
        values = self.bind(request, resolver, calltime_fetchers)
        return {parameter.name: value for parameter, value in zip(self.parameters, values)}
