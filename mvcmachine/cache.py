"""
Response caching.

During a request, application code may ask for the response to be cached.
The cache is bound to the response writer so that every byte written from
then on is also captured, and it is saved once the response is complete.

Example::

    capture = CacheCapture(request, response, resolver=scope.resolve)
    cache = capture.cache_request()          # resolves a Cache, e.g. an InMemoryCache
    cache.set_expiration(60)
    response.write("<h1>Hello</h1>")         # written to the client and to the cache
    capture.finish()                         # cache.save(response)
"""

import io
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

from .exceptions import CacheAlreadyBoundError, CacheError, CacheTooLateError, DependencyResolutionError
from .models import HTTPMethod, Request, Response
from .types import TypeLike

logger = logging.getLogger(__name__)


class Cache:
    """A request-scoped cache that captures one response."""

    def begin(self, request: Request) -> TextIO:
        """Start capturing a response to the request and return the sink to write it to."""
        raise NotImplementedError

    def save(self, response: Response) -> None:
        """Persist the captured response. Called once, after the response is complete."""
        raise NotImplementedError


class CacheCapture:
    """Binds at most one cache to a request's response writer."""

    def __init__(self, request: Request, response: Response, resolver: Optional[Callable[[TypeLike], object]] = None):
        self.request = request
        self.response = response
        self.resolver = resolver
        self._cache: Optional[Cache] = None
        self._saved = False

    @property
    def cache(self) -> Optional[Cache]:
        """The cache bound to this request, if any."""
        return self._cache

    def cache_request(self, cache: Optional[Cache] = None) -> Cache:
        """Bind a cache to the response, or return the one already bound.

        Without an argument the cache is obtained from the dependency resolver.

        Raises:
            CacheAlreadyBoundError: If a different cache instance is already bound
            CacheTooLateError: If the response body has already been written to
            DependencyResolutionError: If no cache can be resolved
        """
        if self._cache is not None:
            if cache is not None and cache is not self._cache:
                raise CacheAlreadyBoundError(self._cache, cache)
            return self._cache

        if self.response.committed:
            raise CacheTooLateError()

        if cache is None:
            if self.resolver is None:
                raise DependencyResolutionError(Cache, "No dependency resolver available to obtain a Cache")
            cache = self.resolver(Cache)

        sink = cache.begin(self.request)
        self.response.writer.set_cache_sink(sink)
        self._cache = cache
        logger.debug(f"Bound {type(cache).__name__} to {self.request.method.value} {self.request.path}")
        return cache

    def finish(self) -> None:
        """Save the bound cache, if any. Only the first call has an effect."""
        if self._cache is None or self._saved:
            return
        self._saved = True
        self._cache.save(self.response)
        logger.debug(f"Saved {type(self._cache).__name__} for {self.request.path}")


@dataclass
class CacheEntry:
    """A cached response body, valid until ``expires`` for requests carrying ``headers``."""

    expires: float
    headers: Dict[str, Optional[str]] = field(default_factory=dict)
    body: str = ""
    content_type: Optional[str] = None
    status_code: int = 200

    def matches(self, request: Request, now: float) -> bool:
        if self.expires <= now:
            return False
        return all(request.get_header(name) == value for name, value in self.headers.items())


class InMemoryCacheStore:
    """Thread-safe LRU store of cached responses, keyed by request path.

    Each path holds one entry per distinct set of header values.
    """

    def __init__(self, max_size: int = 100, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self.clock = clock
        self._entries: "OrderedDict[str, List[CacheEntry]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, path: str, entry: CacheEntry) -> None:
        with self._lock:
            variants = self._entries.pop(path, [])
            variants = [v for v in variants if v.headers != entry.headers]
            variants.append(entry)
            self._entries[path] = variants
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cached responses for {evicted}")

    def lookup(self, request: Request) -> Optional[CacheEntry]:
        """Return a live entry matching the request, or None."""
        now = self.clock()
        with self._lock:
            variants = self._entries.get(request.path)
            if variants is None:
                return None
            self._entries.move_to_end(request.path)
            for entry in variants:
                if entry.matches(request, now):
                    return entry
        return None

    def serve(self, request: Request, response: Response) -> bool:
        """Write a cached body to the response. Returns False on a cache miss."""
        entry = self.lookup(request)
        if entry is None:
            return False
        logger.debug(f"Serving {request.path} from cache")
        response.status_code = entry.status_code
        if entry.content_type:
            response.content_type = entry.content_type
        response.write(entry.body)
        return True

    def remove(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)


class InMemoryCache(Cache):
    """Captures one response into an InMemoryCacheStore.

    An expiration must be set before the response is saved. Calling
    ``put_header`` makes the entry specific to the request's value of that
    header.
    """

    def __init__(self, store: InMemoryCacheStore):
        self.store = store
        self.request: Optional[Request] = None
        self._sink = io.StringIO()
        self._expires: Optional[float] = None
        self._headers: Dict[str, Optional[str]] = {}

    def begin(self, request: Request) -> TextIO:
        self.request = request
        return self._sink

    def set_expiration(self, seconds: float) -> None:
        """Expire the entry ``seconds`` from now."""
        self._expires = self.store.clock() + seconds

    def set_expires_at(self, timestamp: float) -> None:
        self._expires = timestamp

    def put_header(self, name: str) -> None:
        """Vary the entry on the request's value of a header.

        Raises:
            CacheError: If the cache is not bound to a request, or the request is a POST
        """
        if self.request is None:
            raise CacheError("Cache has not been bound to a request")
        if self.request.method is HTTPMethod.POST:
            raise CacheError("POST requests cannot be cached")
        self._headers[name] = self.request.get_header(name)

    def save(self, response: Response) -> None:
        """Store the captured body.

        Error responses (status 400 and above) are not stored.

        Raises:
            CacheError: If the cache is not bound to a request or no expiration is set
        """
        if self.request is None:
            raise CacheError("Cache has not been bound to a request")
        if self._expires is None:
            raise CacheError("Expiration is not set")
        if response.status_code >= 400:
            logger.debug(f"Not caching {self.request.path}: response status is {response.status_code}")
            return
        entry = CacheEntry(
            expires=self._expires,
            headers=dict(self._headers),
            body=self._sink.getvalue(),
            content_type=response.content_type,
            status_code=response.status_code,
        )
        self.store.put(self.request.path, entry)


@dataclass(frozen=True)
class CacheInMemory:
    """Caches a route's successful responses in memory for ``seconds``, varying on ``headers``."""

    seconds: float
    headers: Tuple[str, ...] = ()

    def apply(self, capture: CacheCapture) -> InMemoryCache:
        """Bind the request's in-memory cache and configure its expiration and header variants.

        Raises:
            CacheError: If the cache resolved for the request is not an InMemoryCache
        """
        cache = capture.cache_request()
        if not isinstance(cache, InMemoryCache):
            raise CacheError(f"In-memory caching needs an InMemoryCache, got {type(cache).__name__}")
        cache.set_expiration(self.seconds)
        for header in self.headers:
            cache.put_header(header)
        return cache


def cache_in_memory(seconds: float, headers: Sequence[str] = ()):
    """Decorator caching every successful response of a route handler in memory.

    Example::

        @app.get("/report")
        @cache_in_memory(60, headers=["Accept-Language"])
        def report():
            ...
    """
    policy = CacheInMemory(seconds, tuple(headers))

    def decorator(func: Callable):
        func._cache_in_memory = policy
        return func

    return decorator
