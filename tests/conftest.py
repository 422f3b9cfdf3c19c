"""
Shared fixtures for the mvcmachine test suite.
"""

from typing import Dict, Optional

import pytest

from mvcmachine.conversion import ConverterRegistry
from mvcmachine.exception_chain import ExceptionChain
from mvcmachine.models import HTTPMethod, Request, Response
from mvcmachine.views import ViewRendererRegistry


@pytest.fixture
def converters():
    """A converter registry with the built-in converters."""
    return ConverterRegistry.with_defaults()


@pytest.fixture
def chain():
    """An exception chain with only the built-in redirect/action handlers."""
    return ExceptionChain()


@pytest.fixture
def views():
    return ViewRendererRegistry()


@pytest.fixture
def response():
    return Response()


@pytest.fixture
def make_request():
    """Build a request from a target such as ``/users/1?tag=a``."""

    def _make(
        target: str = "/",
        method: HTTPMethod = HTTPMethod.GET,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        path_params: Optional[Dict[str, str]] = None,
        cookies: Optional[Dict[str, str]] = None,
    ) -> Request:
        request = Request.from_target(method, target, headers=headers, body=body)
        request.path_params = dict(path_params or {})
        request.cookies = dict(cookies or {})
        return request

    return _make
