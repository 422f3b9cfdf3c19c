"""
Core data models for the MVC runtime.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO
from urllib.parse import parse_qs, urlsplit

from .streaming import ResponseWriter


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


@dataclass
class Request:
    """Represents an HTTP request with its already extracted raw values.

    Query parameters are multi-valued: each name maps to the list of raw strings
    received for it, in order. ``session`` holds the attributes of the client's
    session, supplied by whatever keeps sessions between requests.
    """

    method: HTTPMethod
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    path_params: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    session: Optional[Dict[str, Any]] = None

    @classmethod
    def from_target(
        cls,
        method: HTTPMethod,
        target: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> "Request":
        """Build a request from a request target such as ``/users?tag=a&tag=b``."""
        parts = urlsplit(target)
        return cls(
            method=method,
            path=parts.path or "/",
            headers=dict(headers or {}),
            query_params=parse_qs(parts.query, keep_blank_values=True),
            body=body,
        )

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get a header value, case-insensitively."""
        name_lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name_lower:
                return value
        return default

    def get_session(self, create: bool = True) -> Optional[Dict[str, Any]]:
        """Return the session attributes, starting an empty session if there is none and create is set."""
        if self.session is None and create:
            self.session = {}
        return self.session

    def get_query_values(self, name: str) -> Optional[List[str]]:
        """Get all raw values of a query parameter, or None if absent."""
        values = self.query_params.get(name)
        if not values:
            return None
        return list(values)


@dataclass
class Response:
    """Represents an HTTP response being written.

    The body is written through ``writer``; a cache may be attached to it
    before the first write to capture a copy of everything written.
    """

    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = None
    writer: ResponseWriter = field(default_factory=ResponseWriter)
    finished: bool = False

    @classmethod
    def wrapping(cls, sink: TextIO) -> "Response":
        """Build a response writing to an external sink."""
        return cls(writer=ResponseWriter(sink))

    @property
    def committed(self) -> bool:
        """Whether body data has already been written."""
        return self.writer.has_written

    @property
    def body(self) -> str:
        return self.writer.getvalue()

    def write(self, data: str) -> None:
        self.writer.write(data)

    def send_redirect(self, location: str, status_code: int = 302) -> None:
        """Redirect the client to another location."""
        self.status_code = status_code
        self.headers["Location"] = location

    def send_error(self, status_code: int, message: Optional[str] = None) -> None:
        """Set an error status, writing the message as body if given."""
        self.status_code = status_code
        if message:
            self.content_type = self.content_type or "text/plain"
            self.write(message)

    def finalize(self) -> "Response":
        """Flush the body and mark the response as fully written."""
        if self.content_type:
            self.headers["Content-Type"] = self.content_type
        self.writer.flush()
        self.finished = True
        return self
