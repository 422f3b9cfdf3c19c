"""
An extensibility runtime for annotation-driven web MVC applications.

Application code registers converters, exception handlers and view
renderers; the runtime resolves which one applies on each request, binds
controller arguments from raw request values, and can capture responses
into a cache.
"""

from .application import MvcApplication
from .cache import Cache, CacheCapture, CacheInMemory, InMemoryCache, InMemoryCacheStore, cache_in_memory
from .client_cache import CacheControl, cache_in_client
from .config import MvcConfig
from .conversion import Converter, ConverterRegistry
from .dependencies import DependencyScope, Injector
from .exception_chain import ExceptionChain, ExceptionHandler
from .exceptions import (
    BindingError,
    CacheAlreadyBoundError,
    CacheError,
    CacheTooLateError,
    CannotConvertToPrimitiveError,
    ConfigurationError,
    ConversionError,
    DependencyResolutionError,
    InvalidValueError,
    MvcMachineError,
    NoConverterError,
    NoSuchPathVariableError,
    NoSuchRequestParameterError,
    NotAStringError,
    NoViewRendererError,
    RegistryFrozenError,
    UnreachableHandlerError,
    ViewError,
    ViewRenderingError,
)
from .fetchers import (
    ArgumentBinder,
    Attribute,
    AttributeAccessor,
    Body,
    Cookie,
    Header,
    Inject,
    Path,
    Query,
    QueryMap,
    SessionAttribute,
)
from .models import HTTPMethod, Request, Response
from .outcomes import Failure, Ok, Redirect, ResponseAction, invoke
from .template_helpers import JinjaViewRenderer
from .types import TypeDescriptor, array_of, declare_type, describe
from .views import BasicViewRenderer, Model, View, ViewRenderer, ViewRendererRegistry, render_for

__version__ = "0.1.0"
__author__ = "MVC Machine Contributors"
__license__ = "MIT"

__all__ = [
    "MvcApplication",
    "MvcConfig",
    "Request",
    "Response",
    "HTTPMethod",
    "TypeDescriptor",
    "array_of",
    "declare_type",
    "describe",
    "Converter",
    "ConverterRegistry",
    "ArgumentBinder",
    "Path",
    "Query",
    "QueryMap",
    "Header",
    "Cookie",
    "Body",
    "Attribute",
    "AttributeAccessor",
    "SessionAttribute",
    "Inject",
    "ExceptionChain",
    "ExceptionHandler",
    "Ok",
    "Redirect",
    "ResponseAction",
    "Failure",
    "invoke",
    "Model",
    "View",
    "ViewRenderer",
    "BasicViewRenderer",
    "ViewRendererRegistry",
    "JinjaViewRenderer",
    "render_for",
    "Cache",
    "CacheCapture",
    "InMemoryCache",
    "InMemoryCacheStore",
    "CacheInMemory",
    "cache_in_memory",
    "CacheControl",
    "cache_in_client",
    "Injector",
    "DependencyScope",
    "MvcMachineError",
    "ConfigurationError",
    "RegistryFrozenError",
    "UnreachableHandlerError",
    "NoSuchPathVariableError",
    "DependencyResolutionError",
    "BindingError",
    "NoSuchRequestParameterError",
    "ConversionError",
    "NoConverterError",
    "NotAStringError",
    "CannotConvertToPrimitiveError",
    "InvalidValueError",
    "ViewError",
    "NoViewRendererError",
    "ViewRenderingError",
    "CacheError",
    "CacheTooLateError",
    "CacheAlreadyBoundError",
]
