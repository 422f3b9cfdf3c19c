"""
Custom exceptions for the MVC runtime.

Errors fall in four families:

- ConfigurationError: raised while registering behaviors at startup.
- BindingError: raised while turning raw request data into method arguments.
- ViewError: raised while selecting or running a view renderer.
- CacheError: raised while capturing a response into a cache.
"""

from typing import Any, Optional


class MvcMachineError(Exception):
    """Base exception for MVC runtime errors."""

    pass


# Configuration errors


class ConfigurationError(MvcMachineError):
    """Raised at registration time when the configuration can never work."""

    pass


class RegistryFrozenError(ConfigurationError):
    """Raised when a registry is mutated after it has been frozen."""

    def __init__(self, registry_name: str):
        self.registry_name = registry_name
        super().__init__(f"{registry_name} is frozen and cannot be modified while serving requests")


class UnreachableHandlerError(ConfigurationError):
    """Raised when an exception handler could never be reached.

    A handler previously registered for a superclass would always be found first.
    """

    def __init__(self, handler_class: Any, shadowed_by: Any):
        self.handler_class = handler_class
        self.shadowed_by = shadowed_by
        super().__init__(
            f"Handler for {_type_name(handler_class)} is unreachable: "
            f"{_type_name(shadowed_by)} is registered before it and already handles it"
        )


class NoSuchPathVariableError(ConfigurationError):
    """Raised when a parameter is bound to a path variable the route does not declare."""

    def __init__(self, variable: str, method_name: str):
        self.variable = variable
        self.method_name = method_name
        super().__init__(f"{method_name} binds path variable '{variable}' which its route does not declare")


class DependencyResolutionError(ConfigurationError):
    """Raised when a dependency cannot be resolved."""

    def __init__(self, key: Any, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"No binding found for {_type_name(key)}")


# Binding errors


class BindingError(MvcMachineError):
    """Base class for errors raised while binding method arguments."""

    pass


class NoSuchRequestParameterError(BindingError):
    """Raised when a required request value is absent."""

    def __init__(self, name: str, source: str, method_name: Optional[str] = None):
        self.name = name
        self.source = source
        self.method_name = method_name
        message = f"Could not find '{name}' in {source}"
        if method_name:
            message += f" for {method_name}"
        super().__init__(message)


class ConversionError(BindingError):
    """Base class for string to type conversion errors."""

    pass


class NoConverterError(ConversionError):
    """Raised when no registered converter can build the requested type."""

    def __init__(self, target: Any):
        self.target = target
        super().__init__(f"No converter registered that can build {_type_name(target)}")


class NotAStringError(ConversionError):
    """Raised when the conversion source is neither a string nor a sequence of strings.

    This is a programming error of the caller, not bad request data.
    """

    def __init__(self, source_type: Any, target: Any = None):
        self.source_type = source_type
        self.target = target
        message = f"Cannot convert from {_type_name(source_type)}: only str and sequences of str are convertible"
        if target is not None:
            message += f" (target {_type_name(target)})"
        super().__init__(message)


class CannotConvertToPrimitiveError(ConversionError):
    """Raised when asked to build an array whose component type is primitive."""

    def __init__(self, component: Any):
        self.component = component
        super().__init__(f"Cannot build an array of primitive type {_type_name(component)}")


class InvalidValueError(ConversionError):
    """Raised when a converter rejects a malformed raw value."""

    def __init__(self, target: Any, value: str, original_exception: Optional[BaseException] = None):
        self.target = target
        self.value = value
        self.original_exception = original_exception
        super().__init__(f"Invalid value {value!r} for {_type_name(target)}")


# View errors


class ViewError(MvcMachineError):
    """Base class for view rendering errors."""

    pass


class NoViewRendererError(ViewError):
    """Raised when no registered pattern matches a view name."""

    def __init__(self, view_name: str):
        self.view_name = view_name
        super().__init__(f"No view renderer registered for view '{view_name}'")


class ViewRenderingError(ViewError):
    """Raised when a view renderer fails."""

    def __init__(self, view_name: str, original_exception: Optional[BaseException] = None):
        self.view_name = view_name
        self.original_exception = original_exception
        message = f"Failed to render view '{view_name}'"
        if original_exception is not None:
            message += f": {original_exception}"
        super().__init__(message)


# Cache errors


class CacheError(MvcMachineError):
    """Base class for response cache errors."""

    pass


class CacheTooLateError(CacheError):
    """Raised when a cache is bound after the response body has been written."""

    def __init__(self):
        super().__init__("You cannot configure the cache after having already written to the response")


class CacheAlreadyBoundError(CacheError):
    """Raised when a different cache is bound to a request that already has one."""

    def __init__(self, bound: Any, requested: Any):
        self.bound = bound
        self.requested = requested
        super().__init__(
            f"A {type(bound).__name__} is already bound to this request; "
            f"cannot bind {type(requested).__name__}"
        )


def _type_name(value: Any) -> str:
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(value, type):
        return value.__qualname__
    return str(value)
