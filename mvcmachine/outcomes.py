"""
Tagged results of a controller invocation.

A controller never steers the response through exceptions. Instead,
``invoke`` turns whatever happens into an Outcome:

- ``Ok(value)``: the method returned normally.
- ``Redirect(url)``: the method asked for a redirect.
- ``ResponseAction(fn)``: the method asked for a custom action on the response.
- ``Failure(error)``: the method raised.

Controllers request a redirect or a response action by returning one, or by
raising it with ``raise Redirect("/login").as_exception()`` from deeper code.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from .models import Request, Response


@dataclass(frozen=True)
class Outcome:
    """Base class for invocation outcomes."""

    @property
    def tag(self) -> type:
        """The type the exception chain resolves this outcome by."""
        return type(self)


@dataclass(frozen=True)
class Ok(Outcome):
    value: Any = None


@dataclass(frozen=True)
class ResponseAction(Outcome):
    """A custom action to perform on the response instead of rendering a value."""

    action: Callable[[Request, Response], None] = field(repr=False, compare=False)

    def perform(self, request: Request, response: Response) -> None:
        self.action(request, response)

    def as_exception(self) -> "OutcomeSignal":
        return OutcomeSignal(self)


@dataclass(frozen=True)
class Redirect(ResponseAction):
    """Redirect the client to another URL."""

    url: str = "/"
    status_code: int = 302

    def __init__(self, url: str, status_code: int = 302):
        object.__setattr__(self, "url", url)
        object.__setattr__(self, "status_code", status_code)
        object.__setattr__(self, "action", self._send)

    def _send(self, request: Request, response: Response) -> None:
        response.send_redirect(self.url, self.status_code)


@dataclass(frozen=True)
class Failure(Outcome):
    error: BaseException

    @property
    def tag(self) -> type:
        return type(self.error)


class OutcomeSignal(Exception):
    """Carries a ResponseAction out of nested code; ``invoke`` unwraps it."""

    def __init__(self, outcome: ResponseAction):
        self.outcome = outcome
        super().__init__(repr(outcome))


def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Outcome:
    """Call a controller and capture its result as an Outcome."""
    try:
        result = func(*args, **kwargs)
    except OutcomeSignal as signal:
        return signal.outcome
    except Exception as e:
        return Failure(e)
    if isinstance(result, ResponseAction):
        return result
    return Ok(result)
