"""
Main application class for the MVC runtime.
"""

import json
import logging
import re
import threading
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from pydantic import BaseModel

from .cache import Cache, CacheCapture, CacheInMemory, InMemoryCache, InMemoryCacheStore, cache_in_memory
from .client_cache import CacheControl, cache_in_client
from .config import MvcConfig
from .conversion import ConverterRegistry
from .dependencies import DependencyScope, Injector, RequestScope
from .exception_chain import ExceptionChain
from .exceptions import ConfigurationError, RegistryFrozenError, ViewError
from .fetchers import ArgumentBinder
from .models import HTTPMethod, Request, Response
from .outcomes import Failure, Ok, Outcome, invoke
from .template_helpers import JinjaViewRenderer
from .types import TypeLike
from .views import View, ViewRendererRegistry

logger = logging.getLogger(__name__)


class RouteHandler:
    """Represents a registered route, its handler and the handler's argument binder."""

    def __init__(
        self,
        method: HTTPMethod,
        path: str,
        handler: Callable,
        converters: ConverterRegistry,
        injectable: Optional[Callable[[Any], bool]] = None,
    ):
        self.method = method
        self.path = path
        self.handler = handler
        self.path_variables: Tuple[str, ...] = tuple(re.findall(r"\{(\w+)\}", path))
        self.path_pattern: Pattern[str] = re.compile(self._compile_path_pattern(path))
        self.binder = ArgumentBinder.for_function(handler, converters, self.path_variables, injectable)

    def _compile_path_pattern(self, path: str) -> str:
        """Convert path with {param} syntax to a pattern for matching."""
        pattern = re.sub(r"\{(\w+)\}", r"(?P<\1>[^/]+)", path)
        return f"^{pattern}$"

    def match(self, method: HTTPMethod, path: str) -> Optional[Dict[str, str]]:
        if method != self.method:
            return None
        match = self.path_pattern.match(path)
        return match.groupdict() if match else None

    @property
    def cache_in_client(self) -> Optional[CacheControl]:
        return getattr(self.handler, "_cache_in_client", None)

    @property
    def cache_in_memory(self) -> Optional[CacheInMemory]:
        return getattr(self.handler, "_cache_in_memory", None)


class MvcApplication:
    """Wires converters, argument binding, exception handling, views and caching into a request pipeline.

    Example::

        app = MvcApplication()

        @app.get("/users/{id}")
        def show_user(id: int, verbose: bool = False):
            return View("users/show", user=find_user(id), verbose=verbose)

        @app.handles_exception(KeyError)
        def not_found(error, request, response):
            response.send_error(404, "No such user")

        response = app.handle_request(Request.from_target(HTTPMethod.GET, "/users/42"))
    """

    def __init__(self, config: Optional[MvcConfig] = None):
        self.config = config or MvcConfig()
        self.converters = ConverterRegistry.with_defaults()
        self.exception_chain = ExceptionChain()
        self.views = ViewRendererRegistry()
        self.injector = Injector()
        self._routes: List[RouteHandler] = []
        self._prepared = False
        self._prepare_lock = threading.Lock()

        self.cache_store: Optional[InMemoryCacheStore] = None
        if self.config.cache_size is not None:
            store = InMemoryCacheStore(self.config.cache_size)
            self.cache_store = store
            self.injector.bind(InMemoryCacheStore, instance=store)
            self.injector.bind(Cache, provider=lambda: InMemoryCache(store))

    # HTTP method decorators
    def get(self, path: str):
        """Decorator to register a GET route handler."""
        return self._route_decorator(HTTPMethod.GET, path)

    def post(self, path: str):
        """Decorator to register a POST route handler."""
        return self._route_decorator(HTTPMethod.POST, path)

    def put(self, path: str):
        """Decorator to register a PUT route handler."""
        return self._route_decorator(HTTPMethod.PUT, path)

    def delete(self, path: str):
        """Decorator to register a DELETE route handler."""
        return self._route_decorator(HTTPMethod.DELETE, path)

    def patch(self, path: str):
        """Decorator to register a PATCH route handler."""
        return self._route_decorator(HTTPMethod.PATCH, path)

    def _route_decorator(self, method: HTTPMethod, path: str):
        """Internal method to create route decorators."""

        def decorator(func: Callable):
            if self.frozen:
                raise RegistryFrozenError(type(self).__name__)
            route = RouteHandler(method, path, func, self.converters, self._is_injectable)
            self._routes.append(route)
            logger.debug(f"Registered route {method.value} {path} -> {func.__qualname__}")
            return func

        return decorator

    # Registration decorators
    def converter(self, target: TypeLike, allows_subtype_construction: Optional[bool] = None):
        """Decorator to register a function as converter for a type.

        Example::

            @app.converter(Color)
            def parse_color(value):
                return Color.from_hex(value)
        """

        def decorator(func: Callable):
            self.converters.register(target, func, allows_subtype_construction)
            return func

        return decorator

    def handles_exception(self, *exception_classes: TypeLike):
        """Decorator to register a ``func(error, request, response)`` exception handler.

        Handlers for subclasses must be registered before handlers for their superclasses.
        """
        return self.exception_chain.handles(*exception_classes)

    def renders_view(self, pattern: str):
        """Class decorator to register a ViewRenderer subclass for a view name pattern."""
        return self.views.renders(pattern)

    def dependency(self, key: TypeLike, scope: DependencyScope = "request"):
        """Decorator to register a provider for an injectable type."""
        return self.injector.provider(key, scope)

    def cache_in_memory(self, seconds: float, headers: Sequence[str] = ()):
        """Decorator caching a route's successful responses; needs ``MvcConfig.cache_size``.

        Example::

            @app.get("/report")
            @app.cache_in_memory(60, headers=["Accept-Language"])
            def report():
                ...
        """
        return cache_in_memory(seconds, headers)

    def cache_in_client(self, cache_control: Optional[CacheControl] = None, **directives):
        """Decorator setting Cache-Control on a route's successful responses."""
        return cache_in_client(cache_control, **directives)

    def _is_injectable(self, annotation: Any) -> bool:
        # Types bound after a route is registered need an explicit Inject() marker
        if annotation is CacheCapture:
            return True
        return isinstance(annotation, type) and self.injector.is_bound(annotation)

    # Lifecycle
    @property
    def frozen(self) -> bool:
        return self.converters.frozen and self.exception_chain.frozen and self.views.frozen and self.injector.frozen

    def freeze(self) -> None:
        """Stop accepting registrations; from now on registries are only read."""
        self._prepare()
        self.converters.freeze()
        self.exception_chain.freeze()
        self.views.freeze()
        self.injector.freeze()
        logger.info(f"Application frozen with {len(self._routes)} routes")

    def _prepare(self) -> None:
        with self._prepare_lock:
            if self._prepared:
                return
            if self.cache_store is None:
                for route in self._routes:
                    if route.cache_in_memory is not None:
                        raise ConfigurationError(
                            f"{route.handler.__qualname__} caches in memory but MvcConfig.cache_size is not set"
                        )
            self._prepared = True
            if self.config.template_directory is not None:
                renderer = JinjaViewRenderer(
                    self.config.template_directory,
                    suffix=self.config.template_suffix,
                    unsafe=not self.config.autoescape,
                )
                self.views.register(".*", renderer)

    # Request handling
    def handle_request(self, request: Request) -> Response:
        """Run a request through the pipeline and return the finished response.

        Errors no registered exception handler handles propagate to the caller.
        """
        if not self._prepared:
            if self.config.freeze_on_first_request:
                self.freeze()
            else:
                self._prepare()

        response = Response()
        if self.cache_store is not None and request.method == HTTPMethod.GET:
            if self.cache_store.serve(request, response):
                return response.finalize()

        found = self._find_route(request.method, request.path)
        if found is None:
            logger.debug(f"No route for {request.method.value} {request.path}")
            response.send_error(404, "Not Found")
            return response.finalize()

        route, path_params = found
        request.path_params = path_params
        scope = self._create_scope(request, response)
        capture: CacheCapture = scope.resolve(CacheCapture)
        try:
            try:
                args = route.binder.bind(request, scope.resolve)
            except Exception as e:
                logger.warning(f"Could not bind arguments of {route.binder.method_name}: {e}")
                outcome: Outcome = Failure(e)
            else:
                outcome = invoke(route.handler, *args)

            if isinstance(outcome, Ok):
                self._apply_cache_options(route, capture, response)
            self._complete(outcome, request, response)
            capture.finish()
        finally:
            scope.close()

        return response.finalize()

    def _apply_cache_options(self, route: RouteHandler, capture: CacheCapture, response: Response) -> None:
        if route.cache_in_client is not None:
            route.cache_in_client.apply(response)
        if route.cache_in_memory is not None:
            route.cache_in_memory.apply(capture)

    def _create_scope(self, request: Request, response: Response) -> RequestScope:
        scope = self.injector.for_request()
        scope.seed(Request, request)
        scope.seed(Response, response)
        scope.seed(CacheCapture, CacheCapture(request, response, scope.resolve))
        return scope

    def _complete(self, outcome: Outcome, request: Request, response: Response) -> None:
        if isinstance(outcome, Ok):
            try:
                self._render_result(outcome.value, response)
                return
            except ViewError as e:
                outcome = Failure(e)

        if self.exception_chain.handle(outcome, request, response):
            return
        if isinstance(outcome, Failure):
            raise outcome.error

    def _render_result(self, value: Any, response: Response) -> None:
        if value is None:
            return
        if isinstance(value, View):
            response.content_type = response.content_type or self.config.default_content_type
            self.views.render(value.name, value.model, response)
        elif isinstance(value, str):
            response.content_type = response.content_type or self.config.default_content_type
            response.write(value)
        elif isinstance(value, BaseModel):
            response.content_type = response.content_type or "application/json"
            response.write(value.model_dump_json())
        else:
            response.content_type = response.content_type or "application/json"
            response.write(json.dumps(value, default=str))

    def _find_route(self, method: HTTPMethod, path: str) -> Optional[Tuple[RouteHandler, Dict[str, str]]]:
        """Find a matching route for the given method and path."""
        for route in self._routes:
            params = route.match(method, path)
            if params is not None:
                return route, params
        return None
