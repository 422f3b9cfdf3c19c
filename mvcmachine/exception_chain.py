"""
Exception resolution chain.

Handlers are registered against exception classes and kept in registration
order. Resolution walks the chain and picks the first entry the raised class
is assignable to, so a handler for a subclass must be registered before any
handler for one of its superclasses. Registering it afterwards would make it
unreachable, which is reported immediately as UnreachableHandlerError.

Redirects and response actions are resolved through the same chain: two
built-in handlers for them are registered when the chain is created.

Example::

    chain = ExceptionChain()

    @chain.handles(PermissionError)
    def forbidden(error, request, response):
        response.send_error(403, "Forbidden")

    outcome = invoke(controller, *args)
    if isinstance(outcome, Failure) and not chain.handle(outcome, request, response):
        raise outcome.error
"""

import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from .exceptions import UnreachableHandlerError
from .models import Request, Response
from .outcomes import Failure, Outcome, Redirect, ResponseAction
from .registry import FreezableRegistry, LazyProvider
from .types import TypeDescriptor, TypeLike, describe

logger = logging.getLogger(__name__)


class ExceptionHandler:
    """Base class for exception handlers."""

    def handle(self, outcome: Outcome, request: Request, response: Response) -> bool:
        """Handle the outcome.

        Returns:
            True if handled, False to let the caller re-raise the original error
        """
        raise NotImplementedError


class FunctionExceptionHandler(ExceptionHandler):
    """Adapts ``func(error, request, response)`` into a handler.

    The function handles the error unless it explicitly returns False.
    """

    def __init__(self, func: Callable[[Any, Request, Response], Optional[bool]]):
        self.func = func

    def handle(self, outcome: Outcome, request: Request, response: Response) -> bool:
        subject = outcome.error if isinstance(outcome, Failure) else outcome
        return self.func(subject, request, response) is not False


class RedirectHandler(ExceptionHandler):
    def handle(self, outcome: Outcome, request: Request, response: Response) -> bool:
        if not isinstance(outcome, Redirect):
            return False
        logger.debug(f"Redirecting {request.method.value} {request.path} to {outcome.url}")
        response.send_redirect(outcome.url, outcome.status_code)
        return True


class ResponseActionHandler(ExceptionHandler):
    def handle(self, outcome: Outcome, request: Request, response: Response) -> bool:
        if not isinstance(outcome, ResponseAction):
            return False
        outcome.perform(request, response)
        return True


class ExceptionHandlerEntry:
    """A chain entry: the exception class and a provider of its handler.

    The provider is called at most once; later resolutions return the same
    handler instance.
    """

    def __init__(self, exception_class: TypeDescriptor, provider: Callable[[], ExceptionHandler]):
        self.exception_class = exception_class
        self.provider = LazyProvider(provider)

    def handler(self) -> ExceptionHandler:
        return self.provider.get()


class ExceptionChain(FreezableRegistry):
    """Ordered exception class to handler mapping, resolved by first match."""

    def __init__(self, builtin_handlers: bool = True):
        super().__init__()
        self._entries: Dict[TypeDescriptor, ExceptionHandlerEntry] = OrderedDict()
        if builtin_handlers:
            self.register(Redirect, RedirectHandler())
            self.register(ResponseAction, ResponseActionHandler())

    @property
    def entries(self) -> List[ExceptionHandlerEntry]:
        return list(self._entries.values())

    def register(self, exception_class: TypeLike, handler: Any) -> None:
        """Register a handler (or a ``func(error, request, response)``) for an exception class.

        Raises:
            UnreachableHandlerError: If a handler for a superclass is already registered
        """
        if not isinstance(handler, ExceptionHandler):
            if not callable(handler):
                raise TypeError(f"Handler for {exception_class!r} must be an ExceptionHandler or a callable")
            handler = FunctionExceptionHandler(handler)
        self.register_provider(exception_class, lambda: handler)

    def register_provider(self, exception_class: TypeLike, provider: Callable[[], ExceptionHandler]) -> None:
        """Register a lazily created handler for an exception class.

        Re-registering the exact same class replaces its handler in place.

        Raises:
            UnreachableHandlerError: If a handler for a superclass is already registered
        """
        self._check_mutable()
        descriptor = describe(exception_class)
        if descriptor not in self._entries:
            for registered in self._entries:
                if descriptor.is_assignable_to(registered):
                    raise UnreachableHandlerError(descriptor, registered)
        else:
            logger.debug(f"Replacing exception handler for {descriptor.name}")

        self._entries[descriptor] = ExceptionHandlerEntry(descriptor, provider)
        logger.debug(f"Registered exception handler for {descriptor.name}")

    def handles(self, *exception_classes: TypeLike):
        """Decorator registering a function as handler of the given exception classes."""

        def decorator(func: Callable[[Any, Request, Response], Optional[bool]]):
            handler = FunctionExceptionHandler(func)
            for exception_class in exception_classes:
                self.register(exception_class, handler)
            return func

        return decorator

    def resolve(self, exception_class: TypeLike) -> Optional[ExceptionHandler]:
        """Return the handler of the first entry the class is assignable to, or None."""
        descriptor = describe(exception_class)
        for entry in self._entries.values():
            if descriptor.is_assignable_to(entry.exception_class):
                return entry.handler()
        return None

    def handle(self, outcome: Outcome, request: Request, response: Response) -> bool:
        """Resolve and run the handler for an outcome.

        Returns:
            True if a handler handled it; False if none applies or the handler declined
        """
        handler = self.resolve(outcome.tag)
        if handler is None:
            return False
        handled = handler.handle(outcome, request, response)
        if not handled:
            logger.debug(f"{type(handler).__name__} declined {describe(outcome.tag).name}")
        return handled
