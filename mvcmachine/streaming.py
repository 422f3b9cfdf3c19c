"""
Response body streams.

The response body is written through a ResponseWriter. Until something has
been written, a secondary sink (typically a cache) can be attached; from then
on every write is duplicated to it.
"""

import io
from typing import Optional, TextIO

from .exceptions import CacheTooLateError


class ResponseWriter(io.TextIOBase):
    """
    A text stream that writes to the real response sink and optionally tees to a cache sink.

    Example:
        ```python
        writer = ResponseWriter()
        cache_sink = io.StringIO()
        writer.set_cache_sink(cache_sink)
        writer.write("<h1>Hello</h1>")

        writer.getvalue()      # "<h1>Hello</h1>"
        cache_sink.getvalue()  # "<h1>Hello</h1>"
        ```
    """

    def __init__(self, base: Optional[TextIO] = None):
        super().__init__()
        self._base = base if base is not None else io.StringIO()
        self._cache_sink: Optional[TextIO] = None
        self._has_written = False

    @property
    def has_written(self) -> bool:
        """Whether any data has reached the response sink."""
        return self._has_written

    @property
    def cache_sink(self) -> Optional[TextIO]:
        return self._cache_sink

    def set_cache_sink(self, sink: TextIO) -> None:
        """
        Duplicate all further writes to the given sink.

        Raises:
            CacheTooLateError: If the response has already been written to
        """
        if self._has_written:
            raise CacheTooLateError()
        self._cache_sink = sink

    def writable(self) -> bool:
        return True

    def write(self, s: str) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed response writer")
        written = self._base.write(s)
        if s:
            self._has_written = True
        if self._cache_sink is not None:
            self._cache_sink.write(s)
        return written if written is not None else len(s)

    def flush(self) -> None:
        self._base.flush()
        if self._cache_sink is not None:
            self._cache_sink.flush()

    def getvalue(self) -> str:
        """Return everything written so far, when the base sink keeps it."""
        if hasattr(self._base, "getvalue"):
            return self._base.getvalue()
        raise TypeError("Underlying response sink does not support getvalue()")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.flush()
        return False
