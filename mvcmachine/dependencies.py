"""
Dependency resolution for the MVC runtime.

Dependencies are bound by type. A binding is either a fixed instance or a
zero-argument provider with a scope:

- Request scope: the provider runs at most once per request.
- Session scope: the provider runs at most once for the whole application.

Request-scoped values live in a RequestScope created for each request, so
concurrent requests never share them.
"""

import logging
import threading
from typing import Any, Callable, Dict, Literal, Optional

from .exceptions import DependencyResolutionError
from .registry import FreezableRegistry
from .types import TypeDescriptor, TypeLike, describe

logger = logging.getLogger(__name__)

DependencyScope = Literal["request", "session"]

_MISSING = object()


class DependencyCache:
    """Cache for resolved dependencies with support for request and session scopes.

    - Request scope: Values are cached in this object only.
    - Session scope: Values are cached in a store shared with other caches.
    """

    def __init__(self, session_store: Optional[Dict[TypeDescriptor, Any]] = None):
        self._request_cache: Dict[TypeDescriptor, Any] = {}
        self._session_cache: Dict[TypeDescriptor, Any] = session_store if session_store is not None else {}

    def get(self, key: TypeDescriptor, scope: DependencyScope = "request") -> Any:
        """Get a cached value from the specified scope, or _MISSING."""
        if scope == "session":
            return self._session_cache.get(key, _MISSING)
        return self._request_cache.get(key, _MISSING)

    def set(self, key: TypeDescriptor, value: Any, scope: DependencyScope = "request") -> None:
        if scope == "session":
            self._session_cache[key] = value
        else:
            self._request_cache[key] = value

    def clear(self) -> None:
        """Clear only the request-scoped cache. Session cache persists."""
        self._request_cache.clear()


class Dependency:
    """A provider bound to a type, with its scope."""

    def __init__(self, func: Callable[[], Any], scope: DependencyScope = "request"):
        self.func = func
        self.name = getattr(func, "__name__", repr(func))
        self.scope = scope


class Injector(FreezableRegistry):
    """Type-keyed dependency bindings shared by all requests.

    Example::

        injector = Injector()
        injector.bind(Database, instance=db)

        @injector.provider(Cache)
        def make_cache():
            return InMemoryCache(store)

        scope = injector.for_request()
        scope.resolve(Cache)
    """

    def __init__(self):
        super().__init__()
        self._bindings: Dict[TypeDescriptor, Dependency] = {}
        self._session_store: Dict[TypeDescriptor, Any] = {}
        self._session_lock = threading.Lock()

    def bind(
        self,
        key: TypeLike,
        provider: Optional[Callable[[], Any]] = None,
        instance: Any = _MISSING,
        scope: DependencyScope = "request",
    ) -> None:
        """Bind a type to an instance or to a provider."""
        self._check_mutable()
        descriptor = describe(key)
        if instance is not _MISSING:
            value = instance
            self._bindings[descriptor] = Dependency(lambda: value, scope="session")
        elif provider is not None:
            self._bindings[descriptor] = Dependency(provider, scope)
        else:
            raise ValueError(f"Binding for {descriptor.name} needs a provider or an instance")
        logger.debug(f"Bound {descriptor.name} ({self._bindings[descriptor].scope} scope)")

    def provider(self, key: TypeLike, scope: DependencyScope = "request"):
        """Decorator to register a provider function for a type."""

        def decorator(func: Callable[[], Any]):
            self.bind(key, provider=func, scope=scope)
            return func

        return decorator

    def is_bound(self, key: TypeLike) -> bool:
        return describe(key) in self._bindings

    def for_request(self) -> "RequestScope":
        """Create the resolution scope for one request."""
        return RequestScope(self)

    def _get_session(self, descriptor: TypeDescriptor, dependency: Dependency, cache: DependencyCache) -> Any:
        with self._session_lock:
            value = cache.get(descriptor, "session")
            if value is _MISSING:
                value = dependency.func()
                cache.set(descriptor, value, "session")
        return value


class RequestScope:
    """Resolves dependencies for a single request."""

    def __init__(self, injector: Injector):
        self._injector = injector
        self._cache = DependencyCache(injector._session_store)

    def seed(self, key: TypeLike, value: Any) -> None:
        """Make a request-specific value (such as the request itself) resolvable."""
        self._cache.set(describe(key), value, "request")

    def resolve(self, key: TypeLike) -> Any:
        """Resolve a type to an instance.

        Raises:
            DependencyResolutionError: If nothing is bound for the type
        """
        descriptor = describe(key)
        value = self._cache.get(descriptor, "request")
        if value is not _MISSING:
            return value

        dependency = self._injector._bindings.get(descriptor)
        if dependency is None:
            raise DependencyResolutionError(descriptor)

        if dependency.scope == "session":
            return self._injector._get_session(descriptor, dependency, self._cache)

        value = dependency.func()
        self._cache.set(descriptor, value, "request")
        return value

    def close(self) -> None:
        self._cache.clear()
