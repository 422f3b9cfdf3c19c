"""
Client-side caching: builds the Cache-Control and Pragma headers of a response.

Example::

    @app.get("/news")
    @cache_in_client(max_age=300, s_maxage=600, no_transform=True)
    def news():
        ...

    # or by hand, from a controller that received the Response
    CacheControl(private="user", must_revalidate=True).apply(response)
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .models import Response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheControl:
    """Cache-Control directives for a response.

    ``private`` and ``no_cache`` are either a flag (``True``) or the name of
    the field they apply to (``private="user"`` gives ``private="user"``).
    ``no_cache`` takes precedence over ``private``, which takes precedence
    over ``public``. Ages below zero are left out.
    """

    public: bool = True
    private: Union[bool, str] = False
    no_cache: Union[bool, str] = False
    no_store: bool = False
    no_transform: bool = False
    must_revalidate: bool = False
    max_age: int = -1
    s_maxage: int = -1
    extension: str = ""

    @property
    def pragma(self) -> Optional[str]:
        """The Pragma header value matching the protection directive."""
        if self.no_cache:
            return "no-cache"
        if self.private:
            return "private"
        if self.public:
            return "public"
        return None

    def directives(self) -> List[str]:
        directives = []
        protection = self._protection()
        if protection:
            directives.append(protection)
        if self.no_store:
            directives.append("no-store")
        if self.no_transform:
            directives.append("no-transform")
        if self.must_revalidate:
            directives.append("must-revalidate")
        if self.max_age >= 0:
            directives.append(f"max-age={self.max_age}")
        if self.s_maxage >= 0:
            directives.append(f"s-maxage={self.s_maxage}")
        if self.extension:
            directives.append(self.extension)
        return directives

    @property
    def header_value(self) -> str:
        return ",".join(self.directives())

    def apply(self, response: Response) -> None:
        """Set the Cache-Control header, and Pragma when a protection directive applies."""
        response.headers["Cache-Control"] = self.header_value
        pragma = self.pragma
        if pragma is not None:
            response.headers["Pragma"] = pragma
        logger.debug(f"Cache-Control: {response.headers['Cache-Control']}")

    def _protection(self) -> Optional[str]:
        if self.no_cache:
            return "no-cache" if self.no_cache is True else f'no-cache="{self.no_cache}"'
        if self.private:
            return "private" if self.private is True else f'private="{self.private}"'
        if self.public:
            return "public"
        return None


def cache_in_client(cache_control: Optional[CacheControl] = None, **directives):
    """Decorator setting Cache-Control on every successful response of a route handler.

    Takes either a CacheControl or its directives as keyword arguments.
    """
    if cache_control is None:
        cache_control = CacheControl(**directives)
    elif directives:
        raise TypeError("Pass either a CacheControl or keyword directives, not both")

    def decorator(func: Callable):
        func._cache_in_client = cache_control
        return func

    return decorator
