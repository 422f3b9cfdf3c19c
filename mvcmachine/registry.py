"""
Registration/serving split shared by all registries.

A registry is mutable while the application is being configured. Once
frozen, every mutation attempt raises RegistryFrozenError and lookups can be
performed concurrently without locks.
"""

import logging
import threading
from typing import Any, Callable

from .exceptions import RegistryFrozenError

logger = logging.getLogger(__name__)


class FreezableRegistry:
    """Base class for registries with a one-way freeze flag."""

    def __init__(self):
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Stop accepting registrations. Calling it again is a no-op."""
        if not self._frozen:
            logger.debug(f"Freezing {type(self).__name__}")
        self._frozen = True

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError(type(self).__name__)


class LazyProvider:
    """Calls a provider at most once and shares its result afterwards."""

    def __init__(self, provider: Callable[[], Any]):
        self.provider = provider
        self._instance: Any = None
        self._created = False
        self._lock = threading.Lock()

    def get(self) -> Any:
        if not self._created:
            with self._lock:
                if not self._created:
                    self._instance = self.provider()
                    self._created = True
        return self._instance
